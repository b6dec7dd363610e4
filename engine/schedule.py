"""Minimal discrete-event schedule driving one simulation instance."""

from __future__ import annotations

import heapq
import itertools
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from individuals.base import Individual


class Schedulable(Protocol):
    """Anything the schedule can step."""

    def step(self, state: Any) -> None: ...


@dataclass(order=True)
class _Event:
    time: float
    ordering: int
    sequence: int
    agent: Schedulable = field(compare=False)
    repeating: bool = field(default=True, compare=False)


class Schedule:
    """Priority-ordered event queue with a step counter.

    Each call to ``step`` advances to the earliest scheduled time and runs
    every agent registered for that time, lowest ``ordering`` first and then
    in registration order. Repeating agents are re-queued one time unit later.
    """

    def __init__(self) -> None:
        self.steps: int = 0
        self.time: float = 0.0
        self._queue: list[_Event] = []
        self._sequence = itertools.count()

    def __len__(self) -> int:
        return len(self._queue)

    def schedule_repeating(self, agent: Schedulable, time: float = 0.0, ordering: int = 0) -> None:
        heapq.heappush(self._queue, _Event(float(time), int(ordering), next(self._sequence), agent, True))

    def schedule_once(self, agent: Schedulable, time: float, ordering: int = 0) -> None:
        heapq.heappush(self._queue, _Event(float(time), int(ordering), next(self._sequence), agent, False))

    def step(self, state: "Individual") -> None:
        """Advance the simulation by one step and run the state's update hook."""
        self.steps += 1
        if self._queue:
            self.time = self._queue[0].time
            due: list[_Event] = []
            while self._queue and self._queue[0].time == self.time:
                due.append(heapq.heappop(self._queue))
            for event in due:
                event.agent.step(state)
                if event.repeating:
                    self.schedule_repeating(event.agent, self.time + 1.0, event.ordering)
        state.update(self)
