"""Queue-backed process group for running SPMD programs on one machine.

Every rank owns an inbox queue. With the ``thread`` backend all ranks share
one interpreter and payloads are deep-copied on send so no object is ever
visible to two ranks; with the ``process`` backend ranks are separate
processes and payloads are pickled by ``multiprocessing``.
"""

from __future__ import annotations

import copy
import logging
import multiprocessing
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, Sequence

import numpy as np

from core.errors import GroupAbortedError, PartitionMismatchError, TransportError
from transport.base import ANY_SOURCE, ANY_TAG, GATHER_TAG, Communicator, displacements

LOGGER = logging.getLogger(__name__)

RankProgram = Callable[..., Any]


@dataclass(frozen=True)
class Envelope:
    source: int
    tag: int
    payload: Any


@dataclass(frozen=True)
class _Abort:
    origin: int
    reason: str


class QueueCommunicator(Communicator):
    """Communicator over one inbox queue per rank."""

    def __init__(self, rank: int, inboxes: Sequence[Any], copy_payloads: bool = True) -> None:
        if not 0 <= rank < len(inboxes):
            raise ValueError(f"rank {rank} outside group of size {len(inboxes)}")
        self._rank = int(rank)
        self._inboxes = list(inboxes)
        self._copy_payloads = copy_payloads
        self._pending: list[Envelope] = []

    @property
    def rank(self) -> int:
        return self._rank

    @property
    def size(self) -> int:
        return len(self._inboxes)

    def send(self, dest: int, payload: Any, tag: int = 0) -> None:
        if not 0 <= dest < self.size:
            raise TransportError(f"rank {self._rank} cannot send to rank {dest}: group size is {self.size}")
        if self._copy_payloads:
            payload = copy.deepcopy(payload)
        self._inboxes[dest].put(Envelope(self._rank, int(tag), payload))

    def receive(self, source: int = ANY_SOURCE, tag: int = ANY_TAG) -> tuple[int, Any]:
        for position, envelope in enumerate(self._pending):
            if _matches(envelope, source, tag):
                del self._pending[position]
                return envelope.source, envelope.payload

        inbox = self._inboxes[self._rank]
        while True:
            item = inbox.get()
            if isinstance(item, _Abort):
                raise GroupAbortedError(f"rank {self._rank}: group aborted by rank {item.origin}: {item.reason}")
            if _matches(item, source, tag):
                return item.source, item.payload
            self._pending.append(item)

    def gatherv(self, sendbuf: np.ndarray, counts: Sequence[int] | None, root: int = 0) -> np.ndarray | None:
        block = np.ascontiguousarray(sendbuf)
        if self._rank != root:
            self.send(root, block, tag=GATHER_TAG)
            return None

        if counts is None or len(counts) != self.size:
            raise TransportError(f"root needs one count per rank, got {counts!r}")

        blocks: dict[int, np.ndarray] = {root: block}
        while len(blocks) < self.size:
            source, payload = self.receive(tag=GATHER_TAG)
            if source in blocks:
                raise TransportError(f"rank {source} contributed twice to one gather")
            blocks[source] = payload

        offsets = displacements(counts)
        gathered = np.empty(sum(int(c) for c in counts), dtype=block.dtype)
        for rank in range(self.size):
            part = blocks[rank]
            if part.dtype != block.dtype:
                raise TransportError(f"rank {rank} sent dtype {part.dtype}, root expects {block.dtype}")
            if len(part) != int(counts[rank]):
                raise PartitionMismatchError(
                    f"rank {rank} sent {len(part)} records, root expected {counts[rank]}"
                )
            gathered[offsets[rank]:offsets[rank] + len(part)] = part
        return gathered

    def abort(self, reason: str) -> None:
        for dest, inbox in enumerate(self._inboxes):
            if dest != self._rank:
                inbox.put(_Abort(self._rank, reason))


def _matches(envelope: Envelope, source: int, tag: int) -> bool:
    return (source == ANY_SOURCE or envelope.source == source) and (tag == ANY_TAG or envelope.tag == tag)


def launch_local(
    world_size: int,
    program: RankProgram,
    *args: Any,
    backend: str = "thread",
    **kwargs: Any,
) -> list[Any]:
    """Run ``program(communicator, *args, **kwargs)`` once per rank.

    Returns the per-rank return values ordered by rank. If any rank raises,
    the group is aborted and the originating exception is re-raised (thread
    backend) or reported as ``TransportError`` (process backend).
    """
    if int(world_size) < 1:
        raise ValueError("world_size must be >= 1")
    if backend == "thread":
        return _launch_threads(int(world_size), program, args, kwargs)
    if backend == "process":
        return _launch_processes(int(world_size), program, args, kwargs)
    raise ValueError(f"Unknown local transport backend '{backend}'. Available: process, thread")


def _launch_threads(world_size: int, program: RankProgram, args: tuple, kwargs: dict) -> list[Any]:
    inboxes: list[queue.Queue] = [queue.Queue() for _ in range(world_size)]
    results: list[Any] = [None] * world_size
    errors: list[Exception | None] = [None] * world_size

    def run_rank(rank: int) -> None:
        communicator = QueueCommunicator(rank, inboxes, copy_payloads=True)
        try:
            results[rank] = program(communicator, *args, **kwargs)
        except Exception as exc:
            errors[rank] = exc
            LOGGER.error("Rank %d failed: %s", rank, exc)
            communicator.abort(f"{type(exc).__name__}: {exc}")

    threads = [threading.Thread(target=run_rank, args=(rank,), name=f"rank-{rank}", daemon=True) for rank in range(world_size)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    failures = [exc for exc in errors if exc is not None]
    if failures:
        originating = [exc for exc in failures if not isinstance(exc, GroupAbortedError)]
        raise (originating or failures)[0]
    return results


def _process_rank(
    rank: int,
    inboxes: Sequence[Any],
    outcomes: Any,
    program: RankProgram,
    args: tuple,
    kwargs: dict,
) -> None:
    communicator = QueueCommunicator(rank, inboxes, copy_payloads=False)
    try:
        value = program(communicator, *args, **kwargs)
    except Exception as exc:
        communicator.abort(f"{type(exc).__name__}: {exc}")
        outcomes.put((rank, False, f"{type(exc).__name__}: {exc}", isinstance(exc, GroupAbortedError)))
        return
    outcomes.put((rank, True, value, False))


def _launch_processes(world_size: int, program: RankProgram, args: tuple, kwargs: dict) -> list[Any]:
    ctx = multiprocessing.get_context("spawn")
    inboxes = [ctx.Queue() for _ in range(world_size)]
    outcomes = ctx.Queue()
    processes = [
        ctx.Process(
            target=_process_rank,
            args=(rank, inboxes, outcomes, program, args, kwargs),
            name=f"rank-{rank}",
        )
        for rank in range(world_size)
    ]
    for process in processes:
        process.start()

    results: dict[int, Any] = {}
    failures: dict[int, tuple[str, bool]] = {}
    while len(results) + len(failures) < world_size:
        try:
            rank, ok, value, aborted = outcomes.get(timeout=0.5)
        except queue.Empty:
            crashed = [
                rank
                for rank, process in enumerate(processes)
                if process.exitcode not in (None, 0) and rank not in results and rank not in failures
            ]
            if crashed:
                for inbox in inboxes:
                    inbox.put(_Abort(crashed[0], "process exited without reporting"))
                failures[crashed[0]] = (f"exit code {processes[crashed[0]].exitcode}", False)
            continue
        if ok:
            results[rank] = value
        else:
            failures[rank] = (str(value), bool(aborted))

    for process in processes:
        process.join()

    if failures:
        originating = sorted(rank for rank, (_, aborted) in failures.items() if not aborted)
        first = originating[0] if originating else min(failures)
        raise TransportError(f"rank {first} failed: {failures[first][0]}")
    return [results[rank] for rank in range(world_size)]
