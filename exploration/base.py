"""Execution strategy contract shared by every evaluation topology."""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Sequence

from core.errors import ConfigurationError
from data.ledger import GenerationRecord
from individuals.base import Individual


class ExecutionMode(str, enum.Enum):
    """How the population of one generation is evaluated."""

    SEQUENTIAL = "sequential"
    SHARED_MEMORY_PARALLEL = "shared_memory_parallel"
    DISTRIBUTED = "distributed"

    @classmethod
    def parse(cls, value: "ExecutionMode | str") -> "ExecutionMode":
        if isinstance(value, ExecutionMode):
            return value
        normalized = str(value).strip().lower()
        if normalized == "parallel":
            return cls.SHARED_MEMORY_PARALLEL
        try:
            return cls(normalized)
        except ValueError as exc:
            available = ", ".join(mode.value for mode in cls)
            raise ConfigurationError(f"Unknown execution mode '{value}'. Available: {available}, parallel") from exc


@dataclass(frozen=True)
class GenerationBatch:
    """Ordered records of one evaluated generation.

    ``desired_fitness_met`` is set when any evaluated individual reached the
    desired fitness. Peers of a distributed run return an empty batch.
    """

    generation: int
    records: tuple[GenerationRecord, ...] = ()
    desired_fitness_met: bool = False

    def __len__(self) -> int:
        return len(self.records)

    @property
    def best_record(self) -> GenerationRecord | None:
        """Highest-fitness record; the lowest index wins ties."""
        if not self.records:
            return None
        return max(self.records, key=lambda record: record.fitness)

    @property
    def best_fitness(self) -> float:
        best = self.best_record
        return best.fitness if best is not None else float("-inf")

    @property
    def mean_fitness(self) -> float:
        if not self.records:
            return 0.0
        return sum(record.fitness for record in self.records) / len(self.records)


class ExecutionStrategy(ABC):
    """Evaluates a population and reports ordered, generation-tagged records.

    Strategies are interchangeable: with the same population, deterministic
    operators and a deterministic fitness function they produce the same best
    fitness in the same generation.
    """

    mode: ClassVar[ExecutionMode]

    def __init__(self, evaluator: Any, desired_fitness: float | None = None) -> None:
        self.evaluator = evaluator
        self.desired_fitness = None if desired_fitness is None else float(desired_fitness)

    @property
    def is_root(self) -> bool:
        """Whether this process owns the population and the ledger."""
        return True

    @abstractmethod
    def evaluate_generation(self, population: Sequence[Individual], generation: int) -> GenerationBatch:
        """Evaluate ``population`` and write every fitness back to it."""

    @abstractmethod
    def evaluate_tasks(self, tasks: Sequence[Any]) -> list[Any]:
        """Evaluate independent tasks; records come back in task order."""

    def best_fitness_in_batch(self, batch: GenerationBatch) -> float:
        return batch.best_fitness

    def synchronize_decision(self, state: Any) -> Any:
        """Make every process agree on the convergence decision."""
        return state

    def meets_desired(self, fitness: float) -> bool:
        return self.desired_fitness is not None and fitness >= self.desired_fitness

    def abort(self, reason: str) -> None:
        """Tear down any peers after a failure outside evaluation."""
