import sys
import os
import pytest
sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))


from evopath.geometry import Circle, Point
from evopath.genetic_algorithm import (
    EvolutionConfig,
    PathEvolver,
    Population,
    path_distance,
)


ROBOT = Circle(Point(0, 0), 5.0)
DEST = Point(100, 0)
BLOCKING = [Circle(Point(50, 0), 10.0)]


@pytest.fixture
def evolver():
    """PathEvolver pequeno com seed fixa para que os resultados sejam reproduzíveis."""
    return PathEvolver(EvolutionConfig(population_size=20, seed=42))


def scattered_obstacles():
    return [
        Circle(Point(400, 300), 50.0),
        Circle(Point(800, 600), 70.0),
        Circle(Point(1200, 200), 40.0),
    ]


# Testa a inicialização aleatória: âncoras fixas e tamanho dentro dos limites
def test_initial_paths_respect_anchors_and_length(evolver):
    robot = Circle(Point(100, 100), 10.0)
    dest = Point(1500, 800)
    obstacles = scattered_obstacles()

    evolver.find_best_path(robot, dest, obstacles, generations=1)

    assert evolver.generation_count == 1
    max_len = evolver.max_path_length()
    assert max_len == len(obstacles) + 2
    lengths = set()
    for ind in evolver.history[0].individuals:
        assert ind.path[0].point == robot.center
        assert ind.path[-1].point == dest
        assert 2 <= len(ind.path) <= max_len
        lengths.add(len(ind.path))
    assert len(lengths) > 1


def test_no_obstacles_collapses_to_direct_path(evolver):
    path = evolver.find_best_path(ROBOT, DEST, [], generations=3)
    assert path == [ROBOT.center, DEST]
    best = evolver.best_individual()
    assert best.valid
    assert all(len(ind.path) == 2 for ind in evolver.history[-1].individuals)


def test_generation_length_mode_grows_with_generations():
    evolver = PathEvolver(EvolutionConfig(population_size=10, seed=1, length_mode='generation'))
    evolver.find_best_path(ROBOT, DEST, BLOCKING, generations=1)
    assert evolver.max_path_length() == 3
    assert all(len(ind.path) == 2 for ind in evolver.history[0].individuals)

    evolver.find_best_path(ROBOT, DEST, BLOCKING, generations=4)
    assert evolver.max_path_length() == evolver.generation_count + 2


def test_population_size_is_stable(evolver):
    evolver.find_best_path(ROBOT, DEST, BLOCKING, generations=5)
    for pop in evolver.history:
        assert len(pop.individuals) == 20
        assert pop.prefix_sum.shape == (20,)


def test_odd_population_size():
    evolver = PathEvolver(EvolutionConfig(population_size=7, seed=3))
    evolver.find_best_path(ROBOT, DEST, BLOCKING, generations=4)
    assert all(len(pop.individuals) == 7 for pop in evolver.history)


def test_without_elitism():
    evolver = PathEvolver(EvolutionConfig(population_size=10, seed=3, elitism=False))
    path = evolver.find_best_path(ROBOT, DEST, BLOCKING, generations=4)
    assert path[0] == ROBOT.center
    assert path[-1] == DEST


def test_every_individual_is_scored(evolver):
    evolver.find_best_path(ROBOT, DEST, BLOCKING, generations=4)
    pop = evolver.history[-1]
    valid_costs = [ind.cost for ind in pop.individuals if ind.valid]
    invalid_costs = [ind.cost for ind in pop.individuals if not ind.valid]
    if valid_costs and invalid_costs:
        # todo inválido pontua pior que qualquer válido da mesma geração
        assert min(invalid_costs) > max(valid_costs)
    for ind in pop.individuals:
        assert ind.fitness == max(evolver.config.cost_border - ind.cost, 0.0)


# Cenário completo: o obstáculo bloqueia a linha reta e o caminho precisa desviar
def test_end_to_end_detour():
    evolver = PathEvolver(EvolutionConfig(seed=35))
    path = evolver.find_best_path(ROBOT, DEST, BLOCKING, generations=50)

    best = evolver.best_individual()
    assert best.valid
    assert path[0] == ROBOT.center
    assert path[-1] == DEST
    assert len(path) >= 3
    assert path_distance(best.path) > 100.0


def test_same_seed_is_reproducible():
    a = PathEvolver(EvolutionConfig(population_size=20, seed=8))
    b = PathEvolver(EvolutionConfig(population_size=20, seed=8))
    obstacles = scattered_obstacles()
    pa = a.find_best_path(Circle(Point(10, 10), 5.0), Point(1700, 900), obstacles, generations=6)
    pb = b.find_best_path(Circle(Point(10, 10), 5.0), Point(1700, 900), obstacles, generations=6)
    assert pa == pb
    assert a.best_individual().fitness == b.best_individual().fitness


def test_resume_is_additive_and_matches_single_run():
    split = PathEvolver(EvolutionConfig(population_size=20, seed=5))
    split.find_best_path(ROBOT, DEST, BLOCKING, generations=6)
    assert split.generation_count == 6
    split_path = split.find_best_path(ROBOT, DEST, BLOCKING, generations=4)
    assert split.generation_count == 10
    assert len(split.history) == 10

    single = PathEvolver(EvolutionConfig(population_size=20, seed=5))
    single_path = single.find_best_path(ROBOT, DEST, BLOCKING, generations=10)

    assert split_path == single_path
    assert split.best_so_far().fitness == single.best_so_far().fitness


def test_best_so_far_never_regresses(evolver):
    seen = []

    def record(gen, pop):
        best = evolver.best_so_far()
        seen.append((best.valid, best.fitness))

    evolver.find_best_path(ROBOT, DEST, BLOCKING, generations=5, on_generation=record)
    evolver.find_best_path(ROBOT, DEST, BLOCKING, generations=5, on_generation=record)
    assert len(seen) == 10
    assert all(a <= b for a, b in zip(seen, seen[1:]))
    valid_max = [ind.fitness for pop in evolver.history for ind in pop.individuals if ind.valid]
    if valid_max:
        assert evolver.best_so_far().valid
        assert evolver.best_so_far().fitness >= max(valid_max)


# gerações sem nenhum válido dão fitness alto a colisões; um válido posterior deve vencer
def test_best_so_far_prefers_valid_over_earlier_invalid():
    evolver = PathEvolver(EvolutionConfig(seed=35, length_mode='generation'))
    evolver.find_best_path(ROBOT, DEST, BLOCKING, generations=50)

    assert not evolver.history[0].get_best().valid
    assert evolver.best_individual().valid
    best = evolver.best_so_far()
    assert best.valid
    assert best.fitness >= evolver.best_individual().fitness
    assert len(best.path) >= 3


def test_track_best_ranks_validity_first():
    evolver = PathEvolver(EvolutionConfig(population_size=2, seed=0))
    invalid = Population(2)
    for ind in invalid.individuals:
        ind.valid, ind.fitness = False, 9996.0
    invalid.calc_stats()
    valid = Population(2)
    valid.individuals[0].fitness = 9800.0
    valid.individuals[1].valid, valid.individuals[1].fitness = False, 9900.0
    valid.calc_stats()

    evolver._track_best(invalid)
    assert not evolver.best_so_far().valid
    evolver._track_best(valid)
    assert evolver.best_so_far().valid
    assert evolver.best_so_far().fitness == 9800.0
    # um inválido de fitness maior não substitui o válido
    evolver._track_best(invalid)
    assert evolver.best_so_far().valid


def test_on_generation_callback_receives_each_generation(evolver):
    calls = []
    evolver.find_best_path(ROBOT, DEST, BLOCKING, generations=3,
                           on_generation=lambda gen, pop: calls.append((gen, pop)))
    assert [gen for gen, _ in calls] == [0, 1, 2]
    assert calls[-1][1] is evolver.history[-1]


def test_verbose_prints_progress(evolver, capsys):
    evolver.find_best_path(ROBOT, DEST, BLOCKING, generations=3, verbose=True)
    out = capsys.readouterr().out
    assert "Generation" in out
    assert "best fitness" in out


def test_history_limit_keeps_newest_populations():
    evolver = PathEvolver(EvolutionConfig(population_size=10, seed=2, history_limit=3))
    evolver.find_best_path(ROBOT, DEST, BLOCKING, generations=8)
    assert evolver.generation_count == 8
    assert len(evolver.history) == 3
    evolver.find_best_path(ROBOT, DEST, BLOCKING, generations=2)
    assert evolver.generation_count == 10
    assert len(evolver.history) == 3


def test_zero_fitness_population_uses_uniform_selection():
    """Com cost_border 0 todo fitness é zero: a seleção cai no sorteio uniforme."""
    evolver = PathEvolver(EvolutionConfig(population_size=10, seed=4, cost_border=0.0))
    path = evolver.find_best_path(ROBOT, DEST, BLOCKING, generations=5)
    for pop in evolver.history:
        assert pop.sum == 0.0
    assert path[0] == ROBOT.center
    assert path[-1] == DEST


def test_new_environment_reanchors_population(evolver):
    evolver.find_best_path(ROBOT, DEST, BLOCKING, generations=3)
    new_robot = Circle(Point(20, 40), 5.0)
    new_dest = Point(300, 200)

    path = evolver.find_best_path(new_robot, new_dest, BLOCKING, generations=2)

    assert evolver.generation_count == 5
    assert path[0] == new_robot.center
    assert path[-1] == new_dest
    for pop in evolver.history[-3:]:
        for ind in pop.individuals:
            assert ind.path[0].point == new_robot.center
            assert ind.path[-1].point == new_dest


def test_reset_starts_over(evolver):
    evolver.find_best_path(ROBOT, DEST, BLOCKING, generations=3)
    evolver.reset()
    assert evolver.generation_count == 0
    assert evolver.history == ()
    assert evolver.best_so_far() is None
    evolver.find_best_path(ROBOT, DEST, BLOCKING, generations=2)
    assert evolver.generation_count == 2


def test_cost_breakdown_of_best(evolver):
    evolver.find_best_path(ROBOT, DEST, BLOCKING, generations=3)
    parts = evolver.cost_breakdown(evolver.best_individual())
    assert set(parts) >= {'distance', 'smoothness', 'clearance'}
    assert parts['distance'] >= 100.0
