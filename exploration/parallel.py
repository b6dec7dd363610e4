"""Shared-memory parallel evaluation on a bounded worker pool."""

from __future__ import annotations

import logging
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from typing import Any, Sequence

from core.errors import ConfigurationError, SimulationError
from exploration.base import ExecutionMode, ExecutionStrategy, GenerationBatch
from individuals.base import Individual
from workers.evaluation_worker import evaluate_task

LOGGER = logging.getLogger(__name__)

EXECUTORS = ("thread", "process")


class SharedMemoryParallelStrategy(ExecutionStrategy):
    """Evaluate every individual of a generation concurrently.

    Each task receives a by-value snapshot of one individual's parameters
    taken before any task starts. Records are merged by the coordinating
    thread only and returned ordered by index; fitness is written back to the
    population after all tasks have finished. The desired-fitness flag is
    computed once per completed batch.
    """

    mode = ExecutionMode.SHARED_MEMORY_PARALLEL

    def __init__(
        self,
        evaluator: Any,
        desired_fitness: float | None = None,
        max_workers: int | None = None,
        executor: str = "thread",
    ) -> None:
        super().__init__(evaluator, desired_fitness)
        if max_workers is not None and int(max_workers) < 1:
            raise ConfigurationError(f"max_workers must be > 0, got {max_workers}")
        if executor not in EXECUTORS:
            raise ConfigurationError(f"Unknown executor '{executor}'. Available: {', '.join(EXECUTORS)}")
        self.max_workers = None if max_workers is None else int(max_workers)
        self.executor = executor

    def evaluate_generation(self, population: Sequence[Individual], generation: int) -> GenerationBatch:
        tasks = self.evaluator.tasks_for(population, generation)
        records = self._run(tasks)
        for individual, record in zip(population, records):
            individual.fitness = record.fitness
        met = any(self.meets_desired(record.fitness) for record in records)
        return GenerationBatch(generation=generation, records=tuple(records), desired_fitness_met=met)

    def evaluate_tasks(self, tasks: Sequence[Any]) -> list[Any]:
        return self._run(list(tasks))

    def _pool(self) -> Executor:
        if self.executor == "process":
            return ProcessPoolExecutor(max_workers=self.max_workers)
        return ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="evaluation")

    def _run(self, tasks: list[Any]) -> list[Any]:
        if not tasks:
            return []
        results: list[Any] = [None] * len(tasks)
        with self._pool() as pool:
            futures = {pool.submit(evaluate_task, self.evaluator, task): position for position, task in enumerate(tasks)}
            for future in as_completed(futures):
                position = futures[future]
                try:
                    results[position] = future.result()
                except Exception as exc:
                    for pending in futures:
                        pending.cancel()
                    if isinstance(exc, SimulationError):
                        raise
                    raise SimulationError(f"evaluation task {tasks[position].key} failed: {exc}") from exc
        LOGGER.debug("Evaluated %d tasks on %s pool", len(tasks), self.executor)
        return results
