"""Runner simples para o planejador evolutivo de `genetic_algorithm.py`.

Executar este arquivo monta o ambiente a partir dos argumentos, evolui o
caminho e imprime os pontos do melhor indivíduo encontrado.
"""
import argparse
from typing import List

from evopath.geometry import Circle, Point
from evopath.genetic_algorithm import EvolutionConfig, PathEvolver


def default_obstacles() -> List[Circle]:
	# obstáculos de exemplo (x, y, raio) na arena padrão 1920x1000
	return [
		Circle(Point(500.0, 340.0), 80.0),
		Circle(Point(650.0, 420.0), 40.0),
		Circle(Point(380.0, 520.0), 60.0),
	]


def build_obstacles(args) -> List[Circle]:
	obstacles = []
	if args.obstacles:
		obstacles.extend(default_obstacles())
	for x, y, r in args.obstacle or []:
		obstacles.append(Circle(Point(x, y), r))
	return obstacles


def format_path(path: List[Point]) -> str:
	return " ".join(f"({x:g},{y:g})" for x, y in (p.to_tuple() for p in path))


def run(args) -> List[Point]:
	config = EvolutionConfig(population_size=args.pop,
							 seed=args.seed,
							 length_mode='generation' if args.local else 'obstacles')
	evolver = PathEvolver(config)

	robot = Circle(Point(args.robot[0], args.robot[1]), args.robot[2])
	dest = Point(args.dest[0], args.dest[1])
	obstacles = build_obstacles(args)
	verbose = not args.quiet

	path = evolver.find_best_path(robot, dest, obstacles, args.gens, verbose=verbose)
	if args.resume:
		# continua a mesma execução com mais gerações
		path = evolver.find_best_path(robot, dest, obstacles, args.resume, verbose=verbose)

	best = evolver.best_individual()
	if verbose:
		print(f"Gerações: {evolver.generation_count}  válido: {best.valid}  custo: {best.cost:.3f}")
		if best.valid:
			for key, value in evolver.cost_breakdown(best).items():
				print(f"  {key}: {value:.4f}")
	print(format_path(path))
	return path


def parse_args(argv=None):
	p = argparse.ArgumentParser()
	p.add_argument("--pop", type=int, default=100, help="tamanho da população")
	p.add_argument("--gens", type=int, default=150, help="número de gerações")
	p.add_argument("--seed", type=int, help="seed aleatória")
	p.add_argument("--robot", type=float, nargs=3, metavar=("X", "Y", "R"),
				   default=[219.0, 219.0, 30.0], help="centro e raio do robô")
	p.add_argument("--dest", type=float, nargs=2, metavar=("X", "Y"),
				   default=[810.0, 460.0], help="ponto de destino")
	p.add_argument("--obstacle", type=float, nargs=3, action="append", metavar=("X", "Y", "R"),
				   help="obstáculo circular (pode repetir)")
	p.add_argument("--obstacles", action="store_true", help="usar obstáculos de exemplo")
	p.add_argument("--local", action="store_true",
				   help="tamanho máximo do caminho cresce com a geração em vez do número de obstáculos")
	p.add_argument("--resume", type=int, default=0, help="gerações extras continuando a mesma execução")
	p.add_argument("--quiet", action="store_true", help="não imprimir o progresso")
	return p.parse_args(argv)


if __name__ == '__main__':
	args = parse_args()
	run(args)
