"""mpi4py adapter for running the distributed strategy under ``mpirun``."""

from __future__ import annotations

import logging
from typing import Any, Sequence

import numpy as np
from mpi4py import MPI

from core.errors import PartitionMismatchError, TransportError
from transport.base import ANY_SOURCE, ANY_TAG, Communicator, displacements

LOGGER = logging.getLogger(__name__)


class MPICommunicator(Communicator):
    """Communicator over an ``mpi4py`` intracommunicator (``COMM_WORLD`` by default)."""

    def __init__(self, comm: Any | None = None) -> None:
        self._comm = comm if comm is not None else MPI.COMM_WORLD

    @property
    def rank(self) -> int:
        return int(self._comm.Get_rank())

    @property
    def size(self) -> int:
        return int(self._comm.Get_size())

    def send(self, dest: int, payload: Any, tag: int = 0) -> None:
        try:
            self._comm.send(payload, dest=dest, tag=tag)
        except MPI.Exception as exc:
            raise TransportError(f"rank {self.rank} failed to send to rank {dest}: {exc}") from exc

    def receive(self, source: int = ANY_SOURCE, tag: int = ANY_TAG) -> tuple[int, Any]:
        status = MPI.Status()
        mpi_source = MPI.ANY_SOURCE if source == ANY_SOURCE else source
        mpi_tag = MPI.ANY_TAG if tag == ANY_TAG else tag
        try:
            payload = self._comm.recv(source=mpi_source, tag=mpi_tag, status=status)
        except MPI.Exception as exc:
            raise TransportError(f"rank {self.rank} failed to receive: {exc}") from exc
        return int(status.Get_source()), payload

    def gatherv(self, sendbuf: np.ndarray, counts: Sequence[int] | None, root: int = 0) -> np.ndarray | None:
        block = np.ascontiguousarray(sendbuf)
        itemsize = block.dtype.itemsize
        # Structured records go over the wire as raw bytes; counts scale by record size.
        raw = block.view(np.uint8).reshape(-1) if block.size else np.empty(0, dtype=np.uint8)

        if self.rank != root:
            self._comm.Gatherv(sendbuf=raw, recvbuf=None, root=root)
            return None

        if counts is None or len(counts) != self.size:
            raise TransportError(f"root needs one count per rank, got {counts!r}")
        if len(block) != int(counts[root]):
            raise PartitionMismatchError(f"root block holds {len(block)} records, expected {counts[root]}")

        byte_counts = [int(count) * itemsize for count in counts]
        byte_offsets = displacements(byte_counts)
        received = np.empty(sum(byte_counts), dtype=np.uint8)
        try:
            self._comm.Gatherv(
                sendbuf=raw,
                recvbuf=[received, byte_counts, byte_offsets, MPI.BYTE],
                root=root,
            )
        except MPI.Exception as exc:
            raise TransportError(f"gather at rank {root} failed: {exc}") from exc
        return received.view(block.dtype)

    def abort(self, reason: str) -> None:
        LOGGER.error("Aborting MPI group from rank %d: %s", self.rank, reason)
        self._comm.Abort(1)
