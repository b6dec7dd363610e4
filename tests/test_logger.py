"""Tests for the SQLite exploration logger and its explorer integration."""

from __future__ import annotations

import sqlite3

from data.logger import ExplorationLogger, GenerationSummary
from exploration.explorer import GeneticExplorer
from tests.model_fixtures import BUMP_OPERATORS, SCENARIO_SCORES, make_config, scripted_fitness, scripted_population


def test_logger_persists_run_and_generations(tmp_path) -> None:
    db_path = tmp_path / "runs.db"
    logger = ExplorationLogger(db_path)

    run_id = logger.start_run(config={"step_count": 10, "seed": 4}, seed=4)
    logger.log_generation(run_id, GenerationSummary(generation=1, evaluated=3, best_fitness=0.5, mean_fitness=0.2))
    logger.finish_run(run_id, "generation_cap_reached", 0.5, 1)
    logger.close()

    conn = sqlite3.connect(db_path)
    run_count = conn.execute("SELECT COUNT(*) FROM exploration_runs").fetchone()[0]
    generation_count = conn.execute("SELECT COUNT(*) FROM generation_summaries").fetchone()[0]
    final_state = conn.execute("SELECT final_state FROM exploration_runs").fetchone()[0]
    conn.close()

    assert run_count == 1
    assert generation_count == 1
    assert final_state == "generation_cap_reached"


def test_explorer_logs_every_generation(tmp_path) -> None:
    logger = ExplorationLogger(tmp_path / "runs.db")
    config = make_config(generation_cap=5, desired_fitness=0.9, seed=11)

    result = GeneticExplorer(
        config,
        scripted_fitness,
        scripted_population(SCENARIO_SCORES),
        BUMP_OPERATORS,
        run_logger=logger,
    ).run()

    assert result.run_id == logger.latest_run_id()
    rows = logger.fetch_generations(result.run_id)
    assert [row["generation"] for row in rows] == [1, 2, 3]
    assert rows[-1]["state"] == "desired_fitness_met"
    assert rows[0]["population_size"] == 10
    run = logger.fetch_run(result.run_id)
    assert run is not None
    assert run["final_state"] == "desired_fitness_met"
    assert run["best_generation"] == 3
    assert run["seed"] == 11
    logger.close()
