"""Message-passing contract used by the distributed execution strategy."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Sequence

import numpy as np

ANY_SOURCE = -1
ANY_TAG = -1

BROADCAST_TAG = 9001
GATHER_TAG = 9002


def displacements(counts: Sequence[int]) -> list[int]:
    """Prefix sums of ``counts``: the offset of each rank's block."""
    offsets: list[int] = []
    total = 0
    for count in counts:
        offsets.append(total)
        total += int(count)
    return offsets


class Communicator(ABC):
    """Process group handle for one rank.

    Implementations must deliver point-to-point messages between a given
    source and destination in send order, and must treat any failure as fatal
    for the whole group.
    """

    @property
    @abstractmethod
    def rank(self) -> int:
        """This process's rank in ``[0, size)``."""

    @property
    @abstractmethod
    def size(self) -> int:
        """Number of ranks in the group."""

    @abstractmethod
    def send(self, dest: int, payload: Any, tag: int = 0) -> None:
        """Send ``payload`` by value to rank ``dest``."""

    @abstractmethod
    def receive(self, source: int = ANY_SOURCE, tag: int = ANY_TAG) -> tuple[int, Any]:
        """Block until a matching message arrives; return ``(source, payload)``."""

    @abstractmethod
    def gatherv(self, sendbuf: np.ndarray, counts: Sequence[int] | None, root: int = 0) -> np.ndarray | None:
        """Variable-count gather of structured arrays to ``root``.

        Root passes the expected element count of every rank and receives one
        array where rank ``r``'s block starts at ``displacements(counts)[r]``.
        Other ranks pass ``counts=None`` and receive ``None``.
        """

    @abstractmethod
    def abort(self, reason: str) -> None:
        """Tear down the whole group after an unrecoverable failure."""

    def broadcast(self, payload: Any, root: int = 0) -> Any:
        """Point-to-point broadcast from ``root``; every rank returns the value."""
        if self.rank == root:
            for dest in range(self.size):
                if dest != root:
                    self.send(dest, payload, tag=BROADCAST_TAG)
            return payload
        _, value = self.receive(source=root, tag=BROADCAST_TAG)
        return value
