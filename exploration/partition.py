"""Contiguous partitioning of an index range across ranks."""

from __future__ import annotations

from dataclasses import dataclass

from transport.base import displacements


@dataclass(frozen=True)
class Partition:
    """Per-rank chunk sizes and start offsets over ``[0, total)``.

    Invariants:
        - Chunks are contiguous, non-overlapping and gap-free.
        - Sizes differ by at most one; larger chunks go to lower ranks.
    """

    counts: tuple[int, ...]
    offsets: tuple[int, ...]

    @property
    def total(self) -> int:
        return sum(self.counts)

    @property
    def world_size(self) -> int:
        return len(self.counts)

    def bounds(self, rank: int) -> tuple[int, int]:
        """Return the half-open ``[start, stop)`` of ``rank``'s chunk."""
        start = self.offsets[rank]
        return start, start + self.counts[rank]

    def ranges(self) -> list[range]:
        return [range(*self.bounds(rank)) for rank in range(self.world_size)]


def compute_partition(total: int, world_size: int) -> Partition:
    """Split ``total`` items into ``world_size`` contiguous chunks.

    ``counts[r] = total // world_size + (1 if r < total % world_size else 0)``,
    so rank 0 always holds a largest chunk and trailing ranks may be empty when
    ``total < world_size``.
    """
    if world_size < 1:
        raise ValueError(f"world_size must be >= 1, got {world_size}")
    if total < 0:
        raise ValueError(f"total must be >= 0, got {total}")
    base, remainder = divmod(int(total), int(world_size))
    counts = tuple(base + (1 if rank < remainder else 0) for rank in range(world_size))
    return Partition(counts=counts, offsets=tuple(displacements(counts)))


@dataclass(frozen=True)
class ExecutionContext:
    """One rank's view of an evaluation phase."""

    rank: int
    world_size: int
    partition: Partition

    @property
    def chunk(self) -> range:
        return range(*self.partition.bounds(self.rank))
