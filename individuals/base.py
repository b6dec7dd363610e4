"""Individual interface definitions."""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar, Mapping

if TYPE_CHECKING:
    from engine.schedule import Schedule


class Individual(ABC):
    """One candidate simulation configuration plus its fitness.

    An individual is both the configuration record explored by the genetic
    algorithm and the state of the simulation it parameterizes. The engine
    manages nothing about it except the ``fitness`` slot.

    Subclasses list their configuration fields in ``parameter_names``. The
    default ``from_parameters`` passes those fields to the constructor as
    keyword arguments, so the constructor must accept them by name.
    """

    parameter_names: ClassVar[tuple[str, ...]] = ()

    fitness: float = 0.0

    @classmethod
    def from_parameters(cls, parameters: Mapping[str, Any]) -> "Individual":
        """Build a fresh individual from a ``parameters()`` snapshot.

        Args:
            parameters (Mapping[str, Any]): Configuration values keyed by name.

        Returns:
            Individual: New instance with default fitness.

        Invariants:
            - Must not alias mutable values held by ``parameters``.
        """
        return cls(**{name: copy.deepcopy(value) for name, value in parameters.items()})

    def parameters(self) -> dict[str, Any]:
        """Return a by-value snapshot of the configuration fields."""
        return {name: copy.deepcopy(getattr(self, name)) for name in self.parameter_names}

    def clone(self) -> "Individual":
        """Return an independent copy carrying the same configuration and fitness."""
        twin = type(self).from_parameters(self.parameters())
        twin.fitness = self.fitness
        return twin

    @abstractmethod
    def init(self, schedule: "Schedule") -> None:
        """Reset simulation state and register agents on ``schedule``.

        Invariants:
            - Must fully reset state left over from a previous run so that
              re-running the same configuration is deterministic.
        """

    def update(self, schedule: "Schedule") -> None:
        """Hook called by the schedule after every step. Default does nothing."""

    def end_condition(self, schedule: "Schedule") -> bool:
        """Return ``True`` to stop the run before the step budget is used."""
        _ = schedule
        return False
