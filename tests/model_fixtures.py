"""Small deterministic models shared by the exploration tests."""

from __future__ import annotations

from typing import Any

from configs.loader import ExplorationConfig
from engine.schedule import Schedule
from evolution.base import GeneticOperators, keep_all, no_crossover
from individuals.base import Individual


class Ticker:
    """Agent counting how many times it was stepped."""

    def step(self, state: "ScriptedIndividual") -> None:
        state.ticks += 1


class ScriptedIndividual(Individual):
    """Individual whose fitness is its own ``score`` parameter."""

    parameter_names = ("score", "fail", "stop_after")

    def __init__(self, score: float = 0.0, fail: bool = False, stop_after: int = 0) -> None:
        self.score = float(score)
        self.fail = bool(fail)
        self.stop_after = int(stop_after)
        self.fitness = 0.0
        self.ticks = 0

    def init(self, schedule: Schedule) -> None:
        if self.fail:
            raise RuntimeError(f"scripted failure for score {self.score}")
        self.ticks = 0
        schedule.schedule_repeating(Ticker())

    def end_condition(self, schedule: Schedule) -> bool:
        return self.stop_after > 0 and self.ticks >= self.stop_after


class LabelledIndividual(ScriptedIndividual):
    """Scripted individual carrying a free-text ``label``."""

    parameter_names = ("score", "fail", "stop_after", "label")

    def __init__(self, score: float = 0.0, fail: bool = False, stop_after: int = 0, label: str = "") -> None:
        super().__init__(score, fail, stop_after)
        self.label = str(label)


def scripted_fitness(individual: ScriptedIndividual, schedule: Schedule) -> float:
    _ = schedule
    return individual.score


def bump_score(individual: ScriptedIndividual) -> None:
    individual.score += 0.25


BUMP_OPERATORS = GeneticOperators(selection=keep_all, mutation=bump_score, crossover=no_crossover)

# Nine weak individuals and one that reaches 0.95 after two bumps.
SCENARIO_SCORES = [0.04 * i for i in range(9)] + [0.45]


def scripted_population(scores: list[float], **overrides: Any) -> list[ScriptedIndividual]:
    return [ScriptedIndividual(score=score, **overrides) for score in scores]


def make_config(**overrides: Any) -> ExplorationConfig:
    values: dict[str, Any] = {
        "step_count": 3,
        "state_type": "tests.model_fixtures:ScriptedIndividual",
        "execution_mode": "sequential",
    }
    values.update(overrides)
    return ExplorationConfig(**values)


def best_per_generation(ledger: Any) -> list[float]:
    return [max(record.fitness for record in ledger.generation(g)) for g in ledger.generations()]
