"""Fitness evaluation wrapper around caller scoring logic."""

from __future__ import annotations

import math
from typing import Callable

from core.errors import SimulationError
from engine.schedule import Schedule
from individuals.base import Individual

FitnessFunction = Callable[[Individual, Schedule], float]


class FitnessEvaluator:
    """Stateless adapter turning a caller function into a float score.

    Holds no state besides the function itself, so it may be shared across
    worker threads or pickled to worker processes when ``fn`` is importable.
    """

    def __init__(self, fn: FitnessFunction) -> None:
        self.fn = fn

    def score(self, individual: Individual, schedule: Schedule) -> float:
        try:
            value = float(self.fn(individual, schedule))
        except Exception as exc:
            raise SimulationError(f"fitness function failed: {exc}") from exc
        if not math.isfinite(value):
            raise SimulationError(f"fitness function returned non-finite value {value}")
        return value
