"""genetic_algorithm.py

Algoritmo genético para planejar o caminho de um robô circular entre
obstáculos circulares dentro de uma arena retangular. O indivíduo é uma
sequência de tamanho variável de pontos de passagem (waypoints) que começa no
centro do robô e termina no destino; cada waypoint carrega uma flag indicando
se o segmento que parte dele está livre de colisão.

A cada geração a população é reproduzida por seleção de roleta e crossover,
mutada (remoção, inserção, rotação e perturbação de coordenadas), marcada
quanto à validade e pontuada. Chamadas repetidas a `find_best_path` continuam
a partir da última geração armazenada.
"""
from dataclasses import dataclass, field
import math
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

# usar o Generator do numpy para RNG reproduzível
from numpy.random import default_rng

from evopath.geometry import Circle, Point, angle, norm, seg_point


LENGTH_MODES = ('obstacles', 'generation')

# distância de referência usada para normalizar o peso da distância
DISTANCE_REFERENCE = 100.0


@dataclass(frozen=True)
class Arena:
	min_x: int = 0
	min_y: int = 0
	max_x: int = 1920
	max_y: int = 1000

	def random_point(self, rng) -> Point:
		return Point(int(rng.integers(self.min_x, self.max_x, endpoint=True)),
					 int(rng.integers(self.min_y, self.max_y, endpoint=True)))


@dataclass
class EvolutionConfig:
	"""Parâmetros ajustáveis de uma instância do planejador.

	`distance_weight=None` faz o peso da distância ser derivado do ambiente
	(100 / distância em linha reta entre robô e destino). As taxas são
	probabilidades independentes de cada operador; as escalas de mutação
	definem a fração da distância até a borda usada como perturbação máxima.
	"""
	population_size: int = 100
	seed: Optional[int] = None
	# arena
	min_x: int = 0
	min_y: int = 0
	max_x: int = 1920
	max_y: int = 1000
	# pesos do custo
	distance_weight: Optional[float] = None
	smooth_weight: float = 2000.0
	clear_weight: float = 2.0
	clear_penalty: float = 1.0
	cost_border: float = 10000.0
	# probabilidades dos operadores
	crossover_rate: float = 0.3
	swap_rate: float = 0.01
	insert_rate: float = 0.05
	remove_rate: float = 0.05
	small_mutation_rate: float = 0.05
	large_mutation_rate: float = 0.05
	small_mutation_scale: float = 0.1
	large_mutation_scale: float = 1.0
	# 'obstacles': tamanho máximo = obstáculos + 2; 'generation': geração + 2
	length_mode: str = 'obstacles'
	elitism: bool = True
	history_limit: Optional[int] = None

	def __post_init__(self):
		if self.population_size < 2:
			raise ValueError("population_size deve ser >= 2")
		for name in ('crossover_rate', 'swap_rate', 'insert_rate', 'remove_rate',
					 'small_mutation_rate', 'large_mutation_rate',
					 'small_mutation_scale', 'large_mutation_scale'):
			value = getattr(self, name)
			if not 0.0 <= value <= 1.0:
				raise ValueError(f"{name} deve estar em [0, 1], recebido {value}")
		if self.max_x <= self.min_x or self.max_y <= self.min_y:
			raise ValueError("arena vazia")
		if self.length_mode not in LENGTH_MODES:
			raise ValueError(f"length_mode desconhecido: {self.length_mode!r}")
		if self.history_limit is not None and self.history_limit < 1:
			raise ValueError("history_limit deve ser >= 1 ou None")

	@property
	def arena(self) -> Arena:
		return Arena(self.min_x, self.min_y, self.max_x, self.max_y)


@dataclass(frozen=True)
class Environment:
	robot: Circle
	destination: Point
	obstacles: Tuple[Circle, ...] = ()


@dataclass
class Waypoint:
	point: Point
	# validade do segmento que começa neste waypoint
	valid: bool = True

	def copy(self) -> "Waypoint":
		return Waypoint(self.point, self.valid)


Path = List[Waypoint]


def copy_path(path: Sequence[Waypoint]) -> Path:
	return [w.copy() for w in path]


@dataclass
class Individual:
	path: Path = field(default_factory=list)
	valid: bool = True
	cost: float = 0.0
	fitness: float = 0.0

	def __lt__(self, other: "Individual") -> bool:
		return self.fitness < other.fitness

	def copy(self) -> "Individual":
		return Individual(copy_path(self.path), self.valid, self.cost, self.fitness)

	def points(self) -> List[Point]:
		return [w.point for w in self.path]


class Population:
	"""Conjunto de tamanho fixo de indivíduos com estatísticas de fitness.

	`prefix_sum` acompanha a ordem de `individuals` e é usado na seleção por
	roleta. `calc_stats` deve ser chamado sempre que algum fitness mudar.
	"""

	def __init__(self, size: int):
		self.size = int(size)
		self.individuals: List[Individual] = [Individual() for _ in range(self.size)]
		self.prefix_sum = np.zeros(self.size, dtype=float)
		self.sum = 0.0
		self.avg = 0.0
		self.min = 0.0
		self.max = 0.0

	def calc_stats(self) -> None:
		fitness = np.array([ind.fitness for ind in self.individuals], dtype=float)
		self.prefix_sum = np.cumsum(fitness)
		self.sum = float(self.prefix_sum[-1])
		self.min = float(fitness.min())
		self.max = float(fitness.max())
		self.avg = self.sum / self.size

	def select(self, rng) -> Individual:
		"""Seleção por roleta (proporcional ao fitness).

		Com soma de fitness não positiva a roleta não está definida e a escolha
		passa a ser uniforme sobre a população.

		A busca é de limite superior (`side='right'`): escolhe o primeiro prefixo
		estritamente maior que o sorteio, não o primeiro maior ou igual. Assim um
		sorteio que cai exatamente num prefixo não escolhe o indivíduo de fitness 0
		que o repete.
		"""
		if self.sum <= 0.0:
			return self.individuals[int(rng.integers(0, self.size))]
		choice = rng.random() * self.sum
		# primeiro prefixo estritamente maior: indivíduos com fitness 0 nunca saem
		idx = int(np.searchsorted(self.prefix_sum, choice, side='right'))
		return self.individuals[min(idx, self.size - 1)]

	def get_best(self) -> Individual:
		# max devolve o primeiro em caso de empate
		return max(self.individuals, key=lambda ind: ind.fitness)

	def summary(self) -> Dict[str, float]:
		valid = sum(1 for ind in self.individuals if ind.valid)
		return {
			'size': self.size,
			'sum': self.sum,
			'avg': self.avg,
			'min': self.min,
			'max': self.max,
			'valid': valid,
		}


# ---------------------------------------------------------------------------
# validade e custo
# ---------------------------------------------------------------------------

def destination_inside(obstacle: Circle, env: Environment) -> bool:
	"""True se o destino está dentro do raio de Minkowski do obstáculo.

	O raio usado é `obstacle.radius + robot.radius`, o mesmo do teste de colisão,
	então um destino fora do obstáculo mas a menos de `robot.radius` da borda
	também libera o segmento final.
	"""
	return obstacle.contains(env.destination, env.robot.radius)


def mark_invalid(path: Path, env: Environment) -> bool:
	"""Marca a validade de cada segmento do caminho; retorna a validade geral.

	Um segmento colide com um obstáculo quando a distância do centro do
	obstáculo ao segmento é menor que a soma dos raios do obstáculo e do robô.
	O último segmento ignora obstáculos que contêm o próprio destino: o destino
	é alcançável por definição.
	"""
	all_good = True
	last = len(path) - 2
	for i in range(len(path) - 1):
		path[i].valid = True
		a = path[i].point
		b = path[i + 1].point
		for obstacle in env.obstacles:
			if i == last and destination_inside(obstacle, env):
				continue
			if seg_point(a, b, obstacle.center) < obstacle.radius + env.robot.radius:
				path[i].valid = False
				all_good = False
	path[-1].valid = True
	return all_good


def path_distance(path: Path) -> float:
	return sum(norm(path[i + 1].point - path[i].point) for i in range(len(path) - 1))


def smoothness(path: Path) -> float:
	"""Maior razão entre ângulo de curva e o menor segmento adjacente.

	Waypoints repetidos em sequência são colapsados antes do cálculo: um
	segmento de comprimento zero não define curva.
	"""
	points: List[Point] = []
	for w in path:
		if not points or points[-1] != w.point:
			points.append(w.point)
	max_s = 0.0
	for i in range(1, len(points) - 1):
		a = points[i]
		prev = points[i - 1]
		nxt = points[i + 1]
		shorter = min(norm(prev - a), norm(nxt - a))
		turn = math.pi - angle(prev - a, nxt - a)
		max_s = max(max_s, turn / shorter)
	return max_s


def clearance(path: Path, env: Environment, penalty: float) -> float:
	"""Maior folga entre segmento e a borda do obstáculo mais próximo.

	Folgas negativas (invasão) são multiplicadas por `-penalty`. Obstáculos que
	contêm o destino não contam.
	"""
	obstacles = [o for o in env.obstacles if not destination_inside(o, env)]
	if not obstacles:
		return 0.0
	max_c = 0.0
	for i in range(len(path) - 1):
		a = path[i].point
		b = path[i + 1].point
		min_dist = min(seg_point(a, b, o.center) - o.radius for o in obstacles)
		cl = min_dist - env.robot.radius
		if cl < 0:
			cl *= -penalty
		max_c = max(max_c, cl)
	return max_c


def resolve_distance_weight(config: EvolutionConfig, env: Environment) -> float:
	if config.distance_weight is not None:
		return float(config.distance_weight)
	straight = norm(env.destination - env.robot.center)
	if straight == 0.0:
		return 1.0
	return DISTANCE_REFERENCE / straight


def cost_breakdown(path: Path, env: Environment, config: EvolutionConfig,
				   distance_weight: float) -> Dict[str, float]:
	d = path_distance(path)
	s = smoothness(path)
	c = clearance(path, env, config.clear_penalty)
	return {
		'distance': d,
		'smoothness': s,
		'clearance': c,
		'weighted_distance': distance_weight * d,
		'weighted_smoothness': config.smooth_weight * s,
		'weighted_clearance': config.clear_weight * c,
	}


def calc_good_cost(path: Path, env: Environment, config: EvolutionConfig,
				   distance_weight: float) -> float:
	parts = cost_breakdown(path, env, config, distance_weight)
	return parts['weighted_distance'] + parts['weighted_smoothness'] + parts['weighted_clearance']


def calc_bad_cost(path: Path, max_cost: float) -> float:
	"""Custo de um caminho inválido: sempre acima de qualquer custo válido."""
	invalid = sum(1 for w in path if not w.valid)
	return 2.0 * invalid + 2.0 + max_cost


def fitness_from_cost(cost: float, cost_border: float) -> float:
	return max(cost_border - cost, 0.0)


# ---------------------------------------------------------------------------
# operadores genéticos
# ---------------------------------------------------------------------------

def _roll(rng, rate: float) -> bool:
	return rng.random() < rate


def _cut_index(path: Path, rng) -> int:
	# o corte cai no último segmento inválido; se não houver, é aleatório
	cut = -1
	for i in range(len(path) - 1):
		if not path[i].valid:
			cut = i
	if cut == -1:
		cut = int(rng.integers(0, len(path) - 1))
	return cut


def cross(path1: Path, path2: Path, rng, rate: float) -> Tuple[Path, Path]:
	"""Troca os sufixos dos pais após seus respectivos pontos de corte.

	Os filhos são sempre cópias novas; os pais não são alterados.
	"""
	if not _roll(rng, rate):
		return copy_path(path1), copy_path(path2)
	c1 = _cut_index(path1, rng)
	c2 = _cut_index(path2, rng)
	child1 = copy_path(path1[:c1 + 1] + path2[c2 + 1:])
	child2 = copy_path(path2[:c2 + 1] + path1[c1 + 1:])
	return child1, child2


def swap(path: Path, rng, rate: float) -> Path:
	"""Rotaciona os waypoints internos em torno de um ponto aleatório."""
	if not _roll(rng, rate):
		return path
	n = len(path)
	if n <= 3:
		return path
	p = int(rng.integers(1, n - 1))
	return [path[0]] + path[p + 1:n - 1] + path[1:p + 1] + [path[-1]]


def insert(path: Path, rng, rate: float, max_len: int, arena: Arena) -> Path:
	n = len(path)
	result = [path[0]]
	for i in range(1, n):
		# tamanho final se nada mais for inserido
		if len(result) + (n - i) < max_len and _roll(rng, rate):
			result.append(Waypoint(arena.random_point(rng), False))
		result.append(path[i])
	return result


def remove(path: Path, rng, rate: float) -> Path:
	result = [path[0]]
	for waypoint in path[1:-1]:
		if _roll(rng, rate):
			continue
		result.append(waypoint)
	result.append(path[-1])
	return result


def _shift(rng, value: float, low: float, high: float, scale: float) -> float:
	"""Desloca `value` na direção sorteada, sem sair de [low, high]."""
	if _roll(rng, 0.5):
		return max(low, value - rng.uniform(0.0, scale * max(0.0, value - low)))
	return min(high, value + rng.uniform(0.0, scale * max(0.0, high - value)))


def _mutate_coordinates(path: Path, rng, rate: float, scale: float, arena: Arena) -> Path:
	result = [path[0]]
	for waypoint in path[1:-1]:
		if not _roll(rng, rate):
			result.append(waypoint)
			continue
		x, y = waypoint.point.to_tuple()
		x = _shift(rng, x, arena.min_x, arena.max_x, scale)
		y = _shift(rng, y, arena.min_y, arena.max_y, scale)
		result.append(Waypoint(Point(x, y), waypoint.valid))
	result.append(path[-1])
	return result


def small_mutate(path: Path, rng, rate: float, scale: float, arena: Arena) -> Path:
	return _mutate_coordinates(path, rng, rate, scale, arena)


def large_mutate(path: Path, rng, rate: float, scale: float, arena: Arena) -> Path:
	return _mutate_coordinates(path, rng, rate, scale, arena)


# ---------------------------------------------------------------------------
# driver da evolução
# ---------------------------------------------------------------------------

def _rank(ind: Individual) -> Tuple[bool, float]:
	return (ind.valid, ind.fitness)


class PathEvolver:
	"""Dono do ambiente, do RNG e do histórico de populações.

	Cada instância é independente; com a mesma seed e o mesmo ambiente a
	execução é reproduzível.
	"""

	def __init__(self, config: Optional[EvolutionConfig] = None):
		self.config = config if config is not None else EvolutionConfig()
		self.arena = self.config.arena
		self.rng = default_rng(self.config.seed)
		self.environment: Optional[Environment] = None
		self.distance_weight = 1.0
		self.populations: List[Population] = []
		self.generation_count = 0
		self._best: Optional[Individual] = None

	@property
	def history(self) -> Tuple[Population, ...]:
		return tuple(self.populations)

	def reset(self) -> None:
		self.populations = []
		self.generation_count = 0
		self._best = None
		self.environment = None

	def max_path_length(self) -> int:
		if self.config.length_mode == 'generation':
			return self.generation_count + 2
		if self.environment is None:
			return 2
		return len(self.environment.obstacles) + 2

	def random_point(self) -> Point:
		return self.arena.random_point(self.rng)

	def random_path(self) -> Path:
		env = self.environment
		length = int(self.rng.integers(2, self.max_path_length(), endpoint=True))
		path = [Waypoint(env.robot.center, True)]
		path.extend(Waypoint(self.random_point(), True) for _ in range(length - 2))
		path.append(Waypoint(env.destination, True))
		return path

	# --- operações sobre populações

	def randomize(self, pop: Population) -> None:
		for ind in pop.individuals:
			ind.path = self.random_path()

	def apply_operators(self, path: Path, max_len: int) -> Path:
		c = self.config
		path = remove(path, self.rng, c.remove_rate)
		path = insert(path, self.rng, c.insert_rate, max_len, self.arena)
		path = swap(path, self.rng, c.swap_rate)
		path = small_mutate(path, self.rng, c.small_mutation_rate, c.small_mutation_scale, self.arena)
		path = large_mutate(path, self.rng, c.large_mutation_rate, c.large_mutation_scale, self.arena)
		return path

	def evaluate(self, pop: Population, mutate: bool = True) -> None:
		"""Aplica os operadores (se `mutate`), marca validade e pontua."""
		env = self.environment
		max_len = self.max_path_length()
		max_cost = 0.0
		for ind in pop.individuals:
			if mutate:
				ind.path = self.apply_operators(ind.path, max_len)
			ind.valid = mark_invalid(ind.path, env)
			if ind.valid:
				ind.cost = calc_good_cost(ind.path, env, self.config, self.distance_weight)
				max_cost = max(max_cost, ind.cost)

		for ind in pop.individuals:
			if not ind.valid:
				ind.cost = calc_bad_cost(ind.path, max_cost)
			ind.fitness = fitness_from_cost(ind.cost, self.config.cost_border)

	def inherit(self, curr: Population, last: Population) -> None:
		"""Preenche `curr` com filhos de pares sorteados de `last`."""
		rate = self.config.crossover_rate
		children: List[Path] = []
		if self.config.elitism:
			best = last.get_best()
			children.extend(cross(best.path, best.path, self.rng, rate))
		while len(children) < curr.size:
			a = last.select(self.rng)
			b = last.select(self.rng)
			children.extend(cross(a.path, b.path, self.rng, rate))
		curr.individuals = [Individual(path) for path in children[:curr.size]]

	def cost_breakdown(self, ind: Individual) -> Dict[str, float]:
		return cost_breakdown(ind.path, self.environment, self.config, self.distance_weight)

	# --- histórico

	def _push(self, pop: Population) -> None:
		self.populations.append(pop)
		self.generation_count += 1
		limit = self.config.history_limit
		if limit is not None and len(self.populations) > limit:
			del self.populations[:-limit]
		self._track_best(pop)

	def _track_best(self, pop: Population) -> None:
		# fitness de inválidos depende do pior válido da própria geração, então
		# não é comparável entre gerações: qualquer válido vence um inválido
		best = max(pop.individuals, key=_rank)
		if self._best is None or _rank(best) > _rank(self._best):
			self._best = best.copy()

	def best_individual(self) -> Individual:
		return self.populations[-1].get_best()

	def best_so_far(self) -> Optional[Individual]:
		return self._best

	def _install(self, env: Environment) -> None:
		previous = self.environment
		self.environment = env
		self.distance_weight = resolve_distance_weight(self.config, env)
		if previous is None or previous == env or not self.populations:
			return
		# ambiente novo: reancora a população mais recente e pontua de novo
		pop = Population(self.config.population_size)
		pop.individuals = [ind.copy() for ind in self.populations[-1].individuals]
		for ind in pop.individuals:
			ind.path[0] = Waypoint(env.robot.center, True)
			ind.path[-1] = Waypoint(env.destination, True)
		self.evaluate(pop, mutate=False)
		pop.calc_stats()
		self.populations[-1] = pop
		self._best = None
		self._track_best(pop)

	def find_best_path(self, robot: Circle, destination: Point, obstacles: Sequence[Circle],
					   generations: int, verbose: bool = False,
					   on_generation: Optional[Callable[[int, Population], None]] = None) -> List[Point]:
		"""Evolui por mais `generations` gerações e devolve o melhor caminho.

		O orçamento é cumulativo: uma segunda chamada continua da última
		população armazenada. O caminho devolvido não é garantidamente livre de
		colisão; consulte `best_individual().valid` se isso importar.
		"""
		self._install(Environment(robot, destination, tuple(obstacles)))
		target = self.generation_count + int(generations)
		report_every = max(1, int(generations) // 10)

		if not self.populations:
			pop = Population(self.config.population_size)
			self.randomize(pop)
			self.evaluate(pop, mutate=False)
			pop.calc_stats()
			self._push(pop)
			self._notify(pop, verbose, report_every, target, on_generation)

		while self.generation_count < target:
			pop = Population(self.config.population_size)
			self.inherit(pop, self.populations[-1])
			self.evaluate(pop)
			pop.calc_stats()
			self._push(pop)
			self._notify(pop, verbose, report_every, target, on_generation)

		return self.best_individual().points()

	def _notify(self, pop: Population, verbose: bool, report_every: int, target: int,
				on_generation) -> None:
		gen = self.generation_count - 1
		if on_generation is not None:
			on_generation(gen, pop)
		if verbose and (gen % report_every == 0 or self.generation_count == target):
			s = pop.summary()
			print(f"Generation {gen:4d}: best fitness = {s['max']:.3f}  "
				  f"avg = {s['avg']:.3f}  valid = {s['valid']}/{s['size']}")


if __name__ == "__main__":
	# pequeno teste rápido
	evolver = PathEvolver(EvolutionConfig(seed=35))
	path = evolver.find_best_path(Circle(Point(219, 219), 30.0), Point(810, 460),
								  [Circle(Point(500, 340), 80.0), Circle(Point(650, 420), 40.0)],
								  generations=150, verbose=True)
	print("Best path:", path)
