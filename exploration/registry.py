"""Strategy factories keyed by execution mode."""

from __future__ import annotations

from typing import Any, Callable

from exploration.base import ExecutionMode, ExecutionStrategy
from exploration.distributed import DistributedStrategy
from exploration.parallel import SharedMemoryParallelStrategy
from exploration.sequential import SequentialStrategy
from transport.base import Communicator

StrategyFactory = Callable[..., ExecutionStrategy]

_STRATEGY_FACTORIES: dict[ExecutionMode, StrategyFactory] = {}


def register_strategy_factory(mode: ExecutionMode | str, factory: StrategyFactory) -> None:
    _STRATEGY_FACTORIES[ExecutionMode.parse(mode)] = factory


def available_strategies() -> list[str]:
    return sorted(mode.value for mode in _STRATEGY_FACTORIES)


def create_strategy(
    mode: ExecutionMode | str,
    evaluator: Any,
    desired_fitness: float | None = None,
    max_workers: int | None = None,
    executor: str = "thread",
    communicator: Communicator | None = None,
) -> ExecutionStrategy:
    """Build the strategy for ``mode``.

    Factories are called with keyword arguments ``evaluator``,
    ``desired_fitness``, ``max_workers``, ``executor`` and ``communicator``
    and may ignore the ones they do not need.
    """
    resolved = ExecutionMode.parse(mode)
    factory = _STRATEGY_FACTORIES.get(resolved)
    if factory is None:
        available = ", ".join(available_strategies()) or "<none>"
        raise ValueError(f"Unknown execution strategy '{resolved.value}'. Available: {available}")
    return factory(
        evaluator=evaluator,
        desired_fitness=desired_fitness,
        max_workers=max_workers,
        executor=executor,
        communicator=communicator,
    )


def _build_sequential(evaluator: Any, desired_fitness: float | None, **_: Any) -> ExecutionStrategy:
    return SequentialStrategy(evaluator, desired_fitness=desired_fitness)


def _build_parallel(
    evaluator: Any,
    desired_fitness: float | None,
    max_workers: int | None,
    executor: str,
    **_: Any,
) -> ExecutionStrategy:
    return SharedMemoryParallelStrategy(
        evaluator,
        desired_fitness=desired_fitness,
        max_workers=max_workers,
        executor=executor,
    )


def _build_distributed(
    evaluator: Any,
    desired_fitness: float | None,
    communicator: Communicator | None,
    **_: Any,
) -> ExecutionStrategy:
    if communicator is None:
        # Only needed when launched under mpirun without an explicit communicator.
        from transport.mpi import MPICommunicator

        communicator = MPICommunicator()
    return DistributedStrategy(evaluator, communicator=communicator, desired_fitness=desired_fitness)


def register_builtin_strategies() -> None:
    register_strategy_factory(ExecutionMode.SEQUENTIAL, _build_sequential)
    register_strategy_factory(ExecutionMode.SHARED_MEMORY_PARALLEL, _build_parallel)
    register_strategy_factory(ExecutionMode.DISTRIBUTED, _build_distributed)


register_builtin_strategies()
