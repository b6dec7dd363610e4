"""Convergence decisions and best-fitness bookkeeping."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any

from data.ledger import GenerationRecord
from exploration.base import GenerationBatch

LOGGER = logging.getLogger(__name__)


class ConvergenceState(str, enum.Enum):
    RUNNING = "running"
    DESIRED_FITNESS_MET = "desired_fitness_met"
    GENERATION_CAP_REACHED = "generation_cap_reached"
    POPULATION_COLLAPSED = "population_collapsed"

    @property
    def terminal(self) -> bool:
        return self is not ConvergenceState.RUNNING


class ConvergenceController:
    """Decides after each generation whether the exploration stops.

    Checks run in a fixed order: desired fitness, then generation cap (after
    evaluation), then population collapse (after selection). The first
    terminal state wins and sticks.
    """

    def __init__(self, desired_fitness: float | None = None, generation_cap: int = 0) -> None:
        self.desired_fitness = None if desired_fitness is None else float(desired_fitness)
        self.generation_cap = int(generation_cap)
        self.state = ConvergenceState.RUNNING

    def check_generation(self, generation: int, batch: GenerationBatch) -> ConvergenceState:
        if self.state.terminal:
            return self.state
        if self.desired_fitness is not None and (
            batch.desired_fitness_met or batch.best_fitness >= self.desired_fitness
        ):
            self.state = ConvergenceState.DESIRED_FITNESS_MET
        elif self.generation_cap > 0 and generation >= self.generation_cap:
            self.state = ConvergenceState.GENERATION_CAP_REACHED
        return self.state

    def check_population(self, population_size: int) -> ConvergenceState:
        if self.state.terminal:
            return self.state
        if population_size <= 1:
            self.state = ConvergenceState.POPULATION_COLLAPSED
        return self.state

    def adopt(self, state: ConvergenceState | str) -> ConvergenceState:
        """Take over a decision made elsewhere (peers of a distributed run)."""
        self.state = ConvergenceState(state)
        return self.state


@dataclass
class BestFitnessTracker:
    """Best fitness seen so far; replaced only by a strictly greater value."""

    best_fitness: float = float("-inf")
    best_generation: int = 0
    best_record: GenerationRecord | None = None
    best_parameters: dict[str, Any] = field(default_factory=dict)

    def update(self, batch: GenerationBatch, parameters: dict[str, Any] | None = None) -> bool:
        """Fold one generation in; returns whether the best improved."""
        record = batch.best_record
        if record is None or record.fitness <= self.best_fitness:
            return False
        self.best_fitness = record.fitness
        self.best_generation = batch.generation
        self.best_record = record
        self.best_parameters = dict(parameters or {})
        return True
