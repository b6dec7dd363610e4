"""Single-threaded in-place evaluation."""

from __future__ import annotations

import logging
from typing import Any, Sequence

from exploration.base import ExecutionMode, ExecutionStrategy, GenerationBatch
from individuals.base import Individual

LOGGER = logging.getLogger(__name__)


class SequentialStrategy(ExecutionStrategy):
    """Evaluate individuals one after another in index order.

    With ``short_circuit`` the rest of a generation is skipped as soon as an
    individual reaches the desired fitness, so that generation may hold fewer
    records than the population.
    """

    mode = ExecutionMode.SEQUENTIAL

    def __init__(self, evaluator: Any, desired_fitness: float | None = None, short_circuit: bool = True) -> None:
        super().__init__(evaluator, desired_fitness)
        self.short_circuit = short_circuit

    def evaluate_generation(self, population: Sequence[Individual], generation: int) -> GenerationBatch:
        records = []
        met = False
        for index, individual in enumerate(population):
            record = self.evaluator.evaluate_individual(individual, generation, index)
            records.append(record)
            if self.meets_desired(record.fitness):
                met = True
                if self.short_circuit:
                    LOGGER.info(
                        "Desired fitness reached by individual %d; skipping %d remaining",
                        index,
                        len(population) - index - 1,
                    )
                    break
        return GenerationBatch(generation=generation, records=tuple(records), desired_fitness_met=met)

    def evaluate_tasks(self, tasks: Sequence[Any]) -> list[Any]:
        return [self.evaluator.evaluate(task) for task in tasks]
