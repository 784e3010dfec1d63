"""geometry.py

Núcleo geométrico usado pelo planejador evolutivo: pontos/vetores no plano,
círculos (robô e obstáculos), retas e as consultas de distância e ângulo das
quais dependem a verificação de colisão e o cálculo de custo dos caminhos.

As coordenadas são guardadas em `numpy.longdouble` para reduzir o erro de
cancelamento nas cadeias de subtrações e produtos vetoriais. As funções que
devolvem distâncias e ângulos retornam `float` comum.
"""
from dataclasses import dataclass
import math
from typing import Iterator, Optional, Tuple

import numpy as np


T = np.longdouble


@dataclass(frozen=True)
class Point:
	x: T
	y: T

	def __post_init__(self):
		# dataclass congelada: converte via object.__setattr__
		object.__setattr__(self, 'x', T(self.x))
		object.__setattr__(self, 'y', T(self.y))

	def __add__(self, p: "Point") -> "Point":
		return Point(self.x + p.x, self.y + p.y)

	def __sub__(self, p: "Point") -> "Point":
		return Point(self.x - p.x, self.y - p.y)

	def __mul__(self, val) -> "Point":
		return Point(self.x * T(val), self.y * T(val))

	__rmul__ = __mul__

	def __truediv__(self, val) -> "Point":
		return Point(self.x / T(val), self.y / T(val))

	def __iter__(self) -> Iterator[T]:
		yield self.x
		yield self.y

	def __repr__(self) -> str:
		return f"Point({float(self.x):g}, {float(self.y):g})"

	def to_tuple(self) -> Tuple[float, float]:
		return float(self.x), float(self.y)


def perp(p: Point) -> Point:
	"""Vetor rotacionado 90 graus no sentido anti-horário."""
	return Point(-p.y, p.x)


def sq(p: Point) -> T:
	return p.x * p.x + p.y * p.y


def norm(p: Point) -> float:
	"""Módulo (comprimento) do vetor."""
	return float(np.sqrt(sq(p)))


def dot(v: Point, w: Point) -> T:
	return v.x * w.x + v.y * w.y


def cross(v: Point, w: Point) -> T:
	return v.x * w.y - w.x * v.y


def angle(v: Point, w: Point) -> float:
	"""Ângulo em [0, pi] entre dois vetores.

	O cosseno é limitado a [-1, 1] antes do arccos para evitar erro de domínio
	causado por arredondamento. Um vetor nulo não define ângulo: retorna 0.
	"""
	nv = norm(v)
	nw = norm(w)
	if nv == 0.0 or nw == 0.0:
		return 0.0
	cos_theta = float(dot(v, w)) / nv / nw
	return math.acos(max(-1.0, min(1.0, cos_theta)))


def orient(a: Point, b: Point, c: Point) -> T:
	"""> 0 se c está à esquerda de a->b, < 0 à direita, 0 se colineares."""
	return cross(b - a, c - a)


def oriented_angle(a: Point, b: Point, c: Point) -> float:
	"""Ângulo de ab para ac medido no sentido anti-horário, em [0, 2pi)."""
	if orient(a, b, c) >= 0:
		return angle(b - a, c - a)
	return 2.0 * math.pi - angle(b - a, c - a)


def in_angle(a: Point, b: Point, c: Point, p: Point) -> bool:
	"""Verifica se p está dentro do ângulo bac (vértice em a)."""
	if orient(a, b, c) < 0:
		b, c = c, b
	return orient(a, b, p) >= 0 and orient(a, c, p) <= 0


@dataclass(frozen=True)
class Line:
	"""Reta representada pela direção `v` e pelo termo `c` (cross(v, p) == c)."""
	v: Point
	c: T

	@staticmethod
	def from_points(p: Point, q: Point) -> "Line":
		v = q - p
		return Line(v, cross(v, p))

	@staticmethod
	def from_equation(a: float, b: float, c: float) -> "Line":
		# ax + by = c
		return Line(Point(b, -a), T(c))

	def side(self, p: Point) -> T:
		return cross(self.v, p) - self.c

	def dist(self, p: Point) -> float:
		return float(abs(self.side(p))) / norm(self.v)

	def perp_through(self, p: Point) -> "Line":
		return Line.from_points(p, p + perp(self.v))

	def cmp_proj(self, a: Point, b: Point) -> bool:
		"""True se a projeção de a sobre a reta vem antes da de b."""
		return dot(self.v, a) < dot(self.v, b)


def intersect(l1: Line, l2: Line) -> Optional[Point]:
	"""Ponto de interseção de duas retas, ou None se forem paralelas."""
	d = cross(l1.v, l2.v)
	if d == 0:
		return None
	return (l2.v * l1.c - l1.v * l2.c) / d


def seg_point(a: Point, b: Point, p: Point) -> float:
	"""Distância do ponto p ao segmento [a, b].

	Se a projeção de p cai estritamente entre a e b usa a distância
	perpendicular à reta; caso contrário, a menor distância aos extremos.
	"""
	if a != b:
		line = Line.from_points(a, b)
		if line.cmp_proj(a, p) and line.cmp_proj(p, b):
			return line.dist(p)
	return min(norm(p - a), norm(p - b))


@dataclass(frozen=True)
class Circle:
	center: Point
	radius: float = 0.0

	@staticmethod
	def through(a: Point, b: Point, c: Point) -> "Circle":
		"""Circunferência que passa pelos três pontos (circuncírculo)."""
		perp_ab = Line.from_points(a, b).perp_through((a + b) / 2)
		perp_ac = Line.from_points(a, c).perp_through((a + c) / 2)
		o = intersect(perp_ab, perp_ac)
		if o is None:
			raise ValueError("pontos colineares não definem uma circunferência")
		return Circle(o, norm(a - o))

	def contains(self, p: Point, margin: float = 0.0) -> bool:
		"""True se p está a no máximo `radius + margin` do centro."""
		return norm(p - self.center) <= self.radius + margin
