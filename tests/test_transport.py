"""Tests for the queue-backed communicator and local launcher."""

from __future__ import annotations

import numpy as np
import pytest

from core.errors import GroupAbortedError, PartitionMismatchError
from data.schema import FieldSpec, RecordSchema
from transport.base import Communicator, displacements
from transport.local import launch_local

SCHEMA = RecordSchema([FieldSpec("index", "uint"), FieldSpec("value", "float")])


def test_displacements_are_prefix_sums() -> None:
    assert displacements([3, 2, 2]) == [0, 3, 5]
    assert displacements([]) == []


def test_point_to_point_and_selective_receive() -> None:
    def program(comm: Communicator):
        if comm.rank == 1:
            comm.send(0, "first", tag=1)
            comm.send(0, "second", tag=2)
            return None
        # Ask for tag 2 first; tag 1 must be kept for the next receive.
        second = comm.receive(source=1, tag=2)
        first = comm.receive(source=1, tag=1)
        return first, second

    results = launch_local(2, program)

    assert results[0] == ((1, "first"), (1, "second"))


def test_payloads_are_copied_between_ranks() -> None:
    def program(comm: Communicator):
        if comm.rank == 0:
            payload = {"values": [1, 2]}
            comm.send(1, payload)
            payload["values"].append(3)
            return payload
        _, received = comm.receive(source=0)
        return received

    results = launch_local(2, program)

    assert results[1] == {"values": [1, 2]}


def test_broadcast_reaches_every_rank() -> None:
    def program(comm: Communicator):
        return comm.broadcast("stop" if comm.rank == 0 else None, root=0)

    assert launch_local(4, program) == ["stop"] * 4


def test_gatherv_places_blocks_at_offsets() -> None:
    counts = [3, 2, 2]

    def program(comm: Communicator):
        start = displacements(counts)[comm.rank]
        rows = [(start + i, float(comm.rank)) for i in range(counts[comm.rank])]
        return comm.gatherv(SCHEMA.pack(rows), counts if comm.rank == 0 else None, root=0)

    results = launch_local(3, program)

    gathered = results[0]
    assert gathered["index"].tolist() == list(range(7))
    assert gathered["value"].tolist() == [0.0, 0.0, 0.0, 1.0, 1.0, 2.0, 2.0]
    assert results[1] is None and results[2] is None


def test_gatherv_rejects_wrong_counts() -> None:
    def program(comm: Communicator):
        rows = [(comm.rank, 0.0)]
        return comm.gatherv(SCHEMA.pack(rows), [1, 2] if comm.rank == 0 else None, root=0)

    with pytest.raises(PartitionMismatchError, match="rank 1"):
        launch_local(2, program)


def test_failing_rank_unblocks_waiting_ranks() -> None:
    def program(comm: Communicator):
        if comm.rank == 2:
            raise KeyError("boom")
        comm.receive(source=2)

    with pytest.raises(KeyError, match="boom"):
        launch_local(3, program)


def test_blocked_receive_raises_group_aborted() -> None:
    seen: list[BaseException] = []

    def program(comm: Communicator):
        if comm.rank == 1:
            comm.abort("stopping")
            return None
        try:
            comm.receive()
        except GroupAbortedError as exc:
            seen.append(exc)
        return "done"

    assert launch_local(2, program) == ["done", None]
    assert "stopping" in str(seen[0])


def test_launcher_validates_arguments() -> None:
    with pytest.raises(ValueError):
        launch_local(0, lambda comm: None)
    with pytest.raises(ValueError, match="backend"):
        launch_local(1, lambda comm: None, backend="carrier-pigeon")


def test_single_rank_gather_is_identity() -> None:
    def program(comm: Communicator):
        block = SCHEMA.pack([(0, 1.5), (1, 2.5)])
        return comm.gatherv(block, [2], root=0)

    gathered = launch_local(1, program)[0]

    assert np.array_equal(gathered, SCHEMA.pack([(0, 1.5), (1, 2.5)]))
