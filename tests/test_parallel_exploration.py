"""Tests for the shared-memory parallel strategy."""

from __future__ import annotations

import time

import pytest

from core.errors import ConfigurationError, SimulationError
from evolution.base import GeneticOperators, keep_all
from evolution.ga import TruncationSelection
from exploration.explorer import GeneticExplorer
from exploration.parallel import SharedMemoryParallelStrategy
from exploration.registry import create_strategy
from exploration.sequential import SequentialStrategy
from simulations.foraging.model import ForagingModel, foraging_fitness
from tests.model_fixtures import (
    BUMP_OPERATORS,
    SCENARIO_SCORES,
    ScriptedIndividual,
    best_per_generation,
    bump_score,
    make_config,
    scripted_fitness,
    scripted_population,
)


def _slow_first_fitness(individual: ScriptedIndividual, schedule) -> float:
    # The lowest score finishes last so completion order differs from index order.
    time.sleep(0.05 if individual.score == 0.0 else 0.0)
    return individual.score


def test_parallel_matches_sequential_trajectory() -> None:
    operators = GeneticOperators(selection=TruncationSelection(0.8), mutation=bump_score, crossover=keep_all)
    scores = [0.3, 0.1, 0.7, 0.2, 0.5, 0.4, 0.6, 0.05]

    sequential = GeneticExplorer(make_config(generation_cap=5), scripted_fitness, scripted_population(scores), operators).run()
    parallel = GeneticExplorer(
        make_config(generation_cap=5, execution_mode="parallel", max_workers=4),
        scripted_fitness,
        scripted_population(scores),
        operators,
    ).run()

    assert best_per_generation(parallel.ledger) == best_per_generation(sequential.ledger)
    assert parallel.tracker.best_fitness == sequential.tracker.best_fitness
    assert parallel.tracker.best_generation == sequential.tracker.best_generation


def test_parallel_scenario_reaches_desired_fitness_in_same_generation() -> None:
    config = make_config(generation_cap=5, desired_fitness=0.9, execution_mode="shared_memory_parallel")

    result = GeneticExplorer(config, scripted_fitness, scripted_population(SCENARIO_SCORES), BUMP_OPERATORS).run()

    assert result.generations == 3
    assert [len(result.ledger.generation(g)) for g in (1, 2, 3)] == [10, 10, 10]
    assert result.tracker.best_fitness == pytest.approx(0.95)
    assert result.tracker.best_generation == 3


def test_records_are_ordered_by_index_and_fitness_written_back() -> None:
    explorer = GeneticExplorer(make_config(), _slow_first_fitness, scripted_population([0.5]))
    strategy = SharedMemoryParallelStrategy(explorer.evaluator, max_workers=4)
    population = scripted_population([0.0, 0.1, 0.2, 0.3])

    batch = strategy.evaluate_generation(population, generation=1)

    assert [record.index for record in batch.records] == [0, 1, 2, 3]
    assert [record.fitness for record in batch.records] == [0.0, 0.1, 0.2, 0.3]
    assert [individual.fitness for individual in population] == [0.0, 0.1, 0.2, 0.3]


def test_tasks_work_on_snapshots() -> None:
    explorer = GeneticExplorer(make_config(), scripted_fitness, scripted_population([0.5]))
    strategy = SharedMemoryParallelStrategy(explorer.evaluator, max_workers=2)
    population = scripted_population([0.1, 0.2])

    strategy.evaluate_generation(population, generation=1)

    assert [individual.ticks for individual in population] == [0, 0]


def test_desired_flag_computed_over_whole_batch() -> None:
    explorer = GeneticExplorer(make_config(), scripted_fitness, scripted_population([0.5]))
    strategy = SharedMemoryParallelStrategy(explorer.evaluator, desired_fitness=0.5, max_workers=2)

    batch = strategy.evaluate_generation(scripted_population([0.9, 0.1, 0.2]), generation=1)

    assert batch.desired_fitness_met
    assert len(batch) == 3


def test_task_failure_propagates() -> None:
    explorer = GeneticExplorer(make_config(), scripted_fitness, scripted_population([0.5]))
    strategy = SharedMemoryParallelStrategy(explorer.evaluator, max_workers=2)
    population = scripted_population([0.1, 0.2]) + [ScriptedIndividual(score=0.3, fail=True)]

    with pytest.raises(SimulationError):
        strategy.evaluate_generation(population, generation=1)


def test_registry_resolves_modes_and_rejects_bad_executor() -> None:
    explorer = GeneticExplorer(make_config(), scripted_fitness, scripted_population([0.5]))

    assert isinstance(create_strategy("sequential", explorer.evaluator), SequentialStrategy)
    assert isinstance(create_strategy("parallel", explorer.evaluator), SharedMemoryParallelStrategy)
    with pytest.raises(ConfigurationError, match="executor"):
        create_strategy("parallel", explorer.evaluator, executor="gpu")


def test_process_pool_matches_sequential() -> None:
    population = [ForagingModel(speed=1.0 + 0.5 * i, sense_radius=3.0 + i, food_count=10) for i in range(4)]
    sequential = GeneticExplorer(make_config(step_count=50, generation_cap=1), foraging_fitness, population).run()

    fresh = [ForagingModel(speed=1.0 + 0.5 * i, sense_radius=3.0 + i, food_count=10) for i in range(4)]
    config = make_config(step_count=50, generation_cap=1, execution_mode="parallel", executor="process", max_workers=2)
    parallel = GeneticExplorer(config, foraging_fitness, fresh).run()

    assert [r.fitness for r in parallel.ledger] == [r.fitness for r in sequential.ledger]
