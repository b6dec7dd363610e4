"""Drives one individual's simulation to completion."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable

from core.errors import ConfigurationError, SimulationError
from engine.schedule import Schedule
from individuals.base import Individual


@dataclass(frozen=True)
class RunOutcome:
    """Terminal state of one simulation run."""

    individual: Individual
    schedule: Schedule
    steps: int
    run_duration: float
    ended_early: bool

    @property
    def steps_per_second(self) -> float:
        if self.run_duration <= 0.0:
            return 0.0
        return float(self.steps) / self.run_duration


class SimulationRunner:
    """Builds a fresh schedule per run and steps it until done.

    The runner never retries. Errors raised by caller code are wrapped in
    ``SimulationError`` and propagate to abort the exploration.
    """

    def __init__(self, schedule_factory: Callable[[], Schedule] = Schedule) -> None:
        self.schedule_factory = schedule_factory

    def run(self, individual: Individual, max_steps: int) -> RunOutcome:
        """Run ``individual`` for up to ``max_steps`` steps.

        The schedule is exclusively owned by this call and is only handed back
        inside the outcome for fitness extraction.
        """
        if int(max_steps) <= 0:
            raise ConfigurationError(f"max_steps must be > 0, got {max_steps}")

        schedule = self.schedule_factory()
        _guard("init", individual.init, schedule)

        ended_early = False
        start = time.perf_counter()
        for _ in range(int(max_steps)):
            _guard("step", schedule.step, individual)
            if _guard("end_condition", individual.end_condition, schedule):
                ended_early = True
                break
        run_duration = time.perf_counter() - start

        return RunOutcome(
            individual=individual,
            schedule=schedule,
            steps=schedule.steps,
            run_duration=run_duration,
            ended_early=ended_early,
        )


def _guard(label: str, fn: Callable[..., Any], *args: Any) -> Any:
    try:
        return fn(*args)
    except SimulationError:
        raise
    except Exception as exc:
        raise SimulationError(f"simulation {label} failed: {exc}") from exc
