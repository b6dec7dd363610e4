"""Run a model exploration described by a config file.

Under ``mpirun`` with ``execution_mode: distributed`` every rank runs this
module; only rank 0 writes the CSV table and the run log.
"""

from __future__ import annotations

import logging
from pathlib import Path

from configs.loader import ConfigLoader, ExplorationConfig
from core.deterministic_rng import DeterministicRNG
from data.ledger import ResultLedger
from data.logger import ExplorationLogger
from evolution.ga import build_default_operators
from exploration.base import ExecutionMode
from exploration.explorer import ExplorationResult, GeneticExplorer
from exploration.sweep import ParameterSweep
from simulations.foraging.model import BOUNDS, ForagingModel, foraging_fitness, random_population
from transport.base import Communicator


def build_explorer(
    config: ExplorationConfig,
    run_logger: ExplorationLogger | None = None,
    communicator: Communicator | None = None,
) -> GeneticExplorer:
    """Build a foraging GA exploration from configuration."""
    streams = DeterministicRNG(config.seed)
    population_size = int(config.get("population_size", 10))
    fixed = {
        "forager_count": int(config.get("forager_count", 5)),
        "seed": config.seed,
        "food_count": int(config.get("food_count", 30)),
    }
    operators = build_default_operators(
        streams,
        bounds=BOUNDS,
        population_size=population_size,
        keep_fraction=float(config.get("keep_fraction", 0.5)),
        mutation_rate=float(config.get("mutation_rate", 0.2)),
        mutation_sigma=float(config.get("mutation_sigma", 0.1)),
    )
    is_peer = communicator is not None and communicator.rank != 0
    population = [] if is_peer else random_population(streams.stream("population"), population_size, **fixed)
    return GeneticExplorer(
        config=config,
        fitness=foraging_fitness,
        init_population=population,
        operators=operators,
        state_type=ForagingModel,
        communicator=communicator,
        run_logger=run_logger,
    )


def run_exploration(
    config: ExplorationConfig,
    db_path: str | Path | None = None,
    communicator: Communicator | None = None,
) -> ExplorationResult:
    run_logger = ExplorationLogger(db_path) if db_path is not None else None
    try:
        return build_explorer(config, run_logger=run_logger, communicator=communicator).run()
    finally:
        if run_logger is not None:
            run_logger.close()


def run_sweep(config: ExplorationConfig, communicator: Communicator | None = None) -> ResultLedger:
    return ParameterSweep(config, communicator=communicator).run()


def main(
    config_path: str = "configs/example_exploration.yaml",
    output_path: str = "exploration_results.csv",
    db_path: str | None = "exploration_runs.db",
) -> Path | None:
    """Load config, run the exploration or sweep, and export the result table."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    config = ConfigLoader.load(config_path)

    communicator: Communicator | None = None
    if config.mode is ExecutionMode.DISTRIBUTED:
        from transport.mpi import MPICommunicator

        communicator = MPICommunicator()
    is_root = communicator is None or communicator.rank == 0

    if str(config.get("exploration", "genetic")) == "sweep":
        ledger = run_sweep(config, communicator=communicator)
    else:
        ledger = run_exploration(config, db_path=db_path if is_root else None, communicator=communicator).ledger

    if not is_root:
        return None
    return ledger.export_csv(output_path)


if __name__ == "__main__":
    main()
