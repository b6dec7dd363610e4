"""Tests for the distributed SPMD strategy, run in-process on the thread backend."""

from __future__ import annotations

from typing import Any

import pytest

from core.errors import LedgerError, PartitionMismatchError, SimulationError
from evolution.base import GeneticOperators, keep_all
from evolution.ga import TruncationSelection
from exploration.convergence import ConvergenceState
from exploration.distributed import SCATTER_TAG, DistributedStrategy
from exploration.explorer import GeneticExplorer
from exploration.evaluation import IndividualEvaluator
from transport.base import ANY_SOURCE, ANY_TAG, Communicator
from transport.local import launch_local
from tests.model_fixtures import (
    BUMP_OPERATORS,
    SCENARIO_SCORES,
    LabelledIndividual,
    ScriptedIndividual,
    best_per_generation,
    bump_score,
    make_config,
    scripted_fitness,
    scripted_population,
)


def _explore(comm: Communicator, scores: list[float], operators: GeneticOperators, **overrides: Any):
    config = make_config(execution_mode="distributed", **overrides)
    population = scripted_population(scores) if comm.rank == 0 else []
    explorer = GeneticExplorer(
        config,
        scripted_fitness,
        population,
        operators,
        state_type=ScriptedIndividual,
        communicator=comm,
    )
    return explorer.run()


def _evaluate_once(comm: Communicator, scores: list[float]):
    evaluator = IndividualEvaluator(ScriptedIndividual, scripted_fitness, max_steps=2)
    strategy = DistributedStrategy(evaluator, comm)
    population = scripted_population(scores) if comm.rank == 0 else []
    batch = strategy.evaluate_generation(population, generation=1)
    return batch, [individual.fitness for individual in population]


def test_seven_individuals_over_three_ranks_gathers_in_order() -> None:
    scores = [0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7]

    results = launch_local(3, _evaluate_once, scores)

    root_batch, root_fitness = results[0]
    assert [record.index for record in root_batch.records] == list(range(7))
    assert [record.fitness for record in root_batch.records] == scores
    assert root_fitness == scores
    assert all(len(batch) == 0 for batch, _ in results[1:])


def test_more_ranks_than_individuals() -> None:
    results = launch_local(4, _evaluate_once, [0.3, 0.6])

    assert [record.fitness for record in results[0][0].records] == [0.3, 0.6]


def test_distributed_scenario_matches_sequential() -> None:
    results = launch_local(3, _explore, SCENARIO_SCORES, BUMP_OPERATORS, generation_cap=5, desired_fitness=0.9)

    root = results[0]
    assert root.state is ConvergenceState.DESIRED_FITNESS_MET
    assert root.ledger.generations() == [1, 2, 3]
    assert root.tracker.best_fitness == pytest.approx(0.95)
    assert root.tracker.best_generation == 3
    for peer in results[1:]:
        assert len(peer.ledger) == 0
        assert peer.state is ConvergenceState.DESIRED_FITNESS_MET
        assert peer.generations == 3


def test_distributed_trajectory_equals_sequential() -> None:
    operators = GeneticOperators(selection=TruncationSelection(0.8), mutation=bump_score, crossover=keep_all)
    scores = [0.3, 0.1, 0.7, 0.2, 0.5, 0.4, 0.6]

    sequential = GeneticExplorer(make_config(generation_cap=4), scripted_fitness, scripted_population(scores), operators).run()
    distributed = launch_local(3, _explore, scores, operators, generation_cap=4)[0]

    assert best_per_generation(distributed.ledger) == best_per_generation(sequential.ledger)


def test_all_ranks_stop_on_population_collapse() -> None:
    operators = GeneticOperators(selection=TruncationSelection(0.5), mutation=bump_score, crossover=keep_all)

    results = launch_local(3, _explore, [0.1, 0.2, 0.3, 0.4], operators)

    assert {result.state for result in results} == {ConvergenceState.POPULATION_COLLAPSED}
    assert {result.generations for result in results} == {2}


def test_peer_failure_aborts_group_and_reraises() -> None:
    def program(comm: Communicator):
        evaluator = IndividualEvaluator(ScriptedIndividual, scripted_fitness, max_steps=2)
        strategy = DistributedStrategy(evaluator, comm)
        population = []
        if comm.rank == 0:
            population = scripted_population([0.1] * 6) + [ScriptedIndividual(score=0.2, fail=True)]
        strategy.evaluate_generation(population, generation=1)
        return strategy.synchronize_decision(ConvergenceState.RUNNING if comm.rank == 0 else None)

    with pytest.raises(SimulationError):
        launch_local(3, program)


class _DroppingCommunicator(Communicator):
    """Loses the last task of every chunk it receives."""

    def __init__(self, inner: Communicator) -> None:
        self.inner = inner

    @property
    def rank(self) -> int:
        return self.inner.rank

    @property
    def size(self) -> int:
        return self.inner.size

    def send(self, dest, payload, tag=0) -> None:
        self.inner.send(dest, payload, tag)

    def receive(self, source=ANY_SOURCE, tag=ANY_TAG):
        sender, payload = self.inner.receive(source, tag)
        if tag == SCATTER_TAG and payload:
            payload = payload[:-1]
        return sender, payload

    def gatherv(self, sendbuf, counts, root=0):
        return self.inner.gatherv(sendbuf, counts, root)

    def abort(self, reason: str) -> None:
        self.inner.abort(reason)


def test_chunk_mismatch_detected_before_evaluation() -> None:
    def program(comm: Communicator):
        if comm.rank == 1:
            comm = _DroppingCommunicator(comm)
        return _evaluate_once(comm, [0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7])

    with pytest.raises(PartitionMismatchError, match="rank 1"):
        launch_local(3, program)


def _labelled(comm: Communicator | None, labels: list[str], echo_parameters: dict[str, str]):
    config = make_config(
        generation_cap=1,
        execution_mode="sequential" if comm is None else "distributed",
        echo_parameters=echo_parameters,
    )
    population: list[LabelledIndividual] = []
    if comm is None or comm.rank == 0:
        population = [LabelledIndividual(score=float(i + 1), label=label) for i, label in enumerate(labels)]
    explorer = GeneticExplorer(
        config,
        scripted_fitness,
        population,
        state_type=LabelledIndividual,
        communicator=comm,
    )
    return explorer.run()


def test_echoed_rows_match_sequential_run() -> None:
    labels = ["ab", "cd", "ef"]
    echo = {"label": "str[8]", "score": "int", "ticks": "int"}

    sequential = _labelled(None, labels, echo)
    distributed = launch_local(2, _labelled, labels, echo)[0]

    assert distributed.ledger.rows() == sequential.ledger.rows()
    first = sequential.ledger.rows()[0]
    assert first[3:5] == ("ab", 1)
    assert type(first[4]) is int


def test_overlong_string_echo_fails_in_every_strategy() -> None:
    labels = ["x" * 80, "short"]
    echo = {"label": "str"}

    with pytest.raises(LedgerError, match="at most 64 characters"):
        _labelled(None, labels, echo)
    with pytest.raises(LedgerError, match="at most 64 characters"):
        launch_local(2, _labelled, labels, echo)


def test_fractional_value_in_int_echo_fails() -> None:
    with pytest.raises(LedgerError, match="non-integral"):
        launch_local(2, _explore, [0.7, 0.2], BUMP_OPERATORS, generation_cap=1, echo_parameters={"score": "int"})
