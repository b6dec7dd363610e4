"""Distributed SPMD evaluation over a message-passing communicator.

Every rank runs the same program. Rank 0 (root) owns the population and the
ledger. Per evaluation phase:

1. root partitions the task list and sends every peer its contiguous chunk;
2. every peer echoes ``(rank, count, checksum)`` and root verifies them;
3. all ranks evaluate their chunk locally;
4. a variable-count gather places each rank's records at its offset;
5. root verifies the gathered keys and rebuilds the records.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

import numpy as np

from core.errors import GroupAbortedError, PartitionMismatchError
from exploration.base import ExecutionMode, ExecutionStrategy, GenerationBatch
from exploration.evaluation import chunk_checksum
from exploration.partition import ExecutionContext, Partition, compute_partition
from individuals.base import Individual
from transport.base import Communicator

LOGGER = logging.getLogger(__name__)

ROOT = 0
SCATTER_TAG = 101
ACK_TAG = 102


class DistributedStrategy(ExecutionStrategy):
    """Scatter, evaluate, gather across every rank of ``communicator``.

    Peers evaluate their whole chunk without short-circuiting so the gather
    counts root expects always match. Any failure on a rank aborts the group.
    """

    mode = ExecutionMode.DISTRIBUTED

    def __init__(self, evaluator: Any, communicator: Communicator, desired_fitness: float | None = None) -> None:
        super().__init__(evaluator, desired_fitness)
        self.communicator = communicator

    @property
    def is_root(self) -> bool:
        return self.communicator.rank == ROOT

    def context(self, total: int) -> ExecutionContext:
        return ExecutionContext(
            rank=self.communicator.rank,
            world_size=self.communicator.size,
            partition=compute_partition(total, self.communicator.size),
        )

    def evaluate_generation(self, population: Sequence[Individual], generation: int) -> GenerationBatch:
        tasks = self.evaluator.tasks_for(population, generation) if self.is_root else None
        records = self._collective(self._scatter_evaluate_gather, tasks)
        if not self.is_root:
            return GenerationBatch(generation=generation)
        for individual, record in zip(population, records):
            individual.fitness = record.fitness
        met = any(self.meets_desired(record.fitness) for record in records)
        return GenerationBatch(generation=generation, records=tuple(records), desired_fitness_met=met)

    def evaluate_tasks(self, tasks: Sequence[Any]) -> list[Any]:
        return self._collective(self._scatter_evaluate_gather, list(tasks) if self.is_root else None)

    def synchronize_decision(self, state: Any) -> Any:
        """Root broadcasts its decision; every rank returns the same value."""
        return self._collective(self.communicator.broadcast, state if self.is_root else None, ROOT)

    def _collective(self, fn: Any, *args: Any) -> Any:
        try:
            return fn(*args)
        except GroupAbortedError:
            raise
        except Exception as exc:
            LOGGER.error("Rank %d failed: %s", self.communicator.rank, exc)
            self.communicator.abort(f"{type(exc).__name__}: {exc}")
            raise

    def _scatter_evaluate_gather(self, tasks: list[Any] | None) -> list[Any]:
        """Root passes the full task list; peers pass ``None`` and get ``[]`` back."""
        if tasks is None:
            self._evaluate_peer_chunk()
            return []
        return self._evaluate_root(tasks)

    def _evaluate_root(self, tasks: list[Any]) -> list[Any]:
        comm = self.communicator
        partition = self.context(len(tasks)).partition
        for rank in range(comm.size):
            if rank == ROOT:
                continue
            start, stop = partition.bounds(rank)
            LOGGER.debug("Rank %d assigned [%d, %d)", rank, start, stop)
            comm.send(rank, tasks[start:stop], tag=SCATTER_TAG)
        self._verify_chunks(partition, tasks)

        start, stop = partition.bounds(ROOT)
        gathered = comm.gatherv(self._evaluate_block(tasks[start:stop]), partition.counts, root=ROOT)
        rows = self.evaluator.schema.unpack(gathered)
        results = [self.evaluator.record_type.from_row(row) for row in rows]
        expected = [task.key for task in tasks]
        if [record.key for record in results] != expected:
            raise PartitionMismatchError(f"gathered keys {[r.key for r in results]} differ from assigned {expected}")
        return results

    def _evaluate_peer_chunk(self) -> None:
        comm = self.communicator
        _, local = comm.receive(source=ROOT, tag=SCATTER_TAG)
        comm.send(ROOT, (comm.rank, len(local), chunk_checksum(local)), tag=ACK_TAG)
        comm.gatherv(self._evaluate_block(local), None, root=ROOT)

    def _evaluate_block(self, tasks: Sequence[Any]) -> np.ndarray:
        records = [self.evaluator.evaluate(task) for task in tasks]
        return self.evaluator.schema.pack([record.to_row() for record in records])

    def _verify_chunks(self, partition: Partition, tasks: list[Any]) -> None:
        pending = set(range(self.communicator.size)) - {ROOT}
        while pending:
            _, (rank, count, checksum) = self.communicator.receive(tag=ACK_TAG)
            if rank not in pending:
                raise PartitionMismatchError(f"unexpected chunk acknowledgement from rank {rank}")
            start, stop = partition.bounds(rank)
            if count != partition.counts[rank] or checksum != chunk_checksum(tasks[start:stop]):
                raise PartitionMismatchError(
                    f"rank {rank} holds {count} tasks (checksum {checksum[:12]}), "
                    f"root assigned {partition.counts[rank]} starting at {start}"
                )
            pending.discard(rank)

    def abort(self, reason: str) -> None:
        self.communicator.abort(reason)
