"""Exception hierarchy shared by the exploration engine."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Raised when an exploration is configured in a way that cannot run.

    Always raised before any simulation executes.
    """


class SimulationError(RuntimeError):
    """Raised when evaluating one individual fails inside caller code."""


class OperatorContractError(ValueError):
    """Raised when genetic operators grow the population."""


class LedgerError(ValueError):
    """Raised when a record cannot be stored: a duplicate key or a value its field cannot hold."""


class TransportError(RuntimeError):
    """Raised when a message-passing operation fails or the group aborts."""


class PartitionMismatchError(TransportError):
    """Raised when a rank holds a different chunk than root assigned to it."""


class GroupAbortedError(TransportError):
    """Raised in a rank blocked on the group after another rank failed."""
