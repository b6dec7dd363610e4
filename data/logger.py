"""SQLite-backed exploration run metadata and per-generation summaries."""

from __future__ import annotations

import hashlib
import json
import platform
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping


@dataclass(frozen=True)
class GenerationSummary:
    """Structured per-generation summary row."""

    generation: int
    evaluated: int = 0
    best_fitness: float = 0.0
    mean_fitness: float = 0.0
    population_size: int = 0
    state: str = "running"


class ExplorationLogger:
    """Persist exploration metadata and per-generation summaries in SQLite."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.connection = sqlite3.connect(self.db_path)
        self.connection.row_factory = sqlite3.Row
        self._ensure_schema()

    def close(self) -> None:
        self.connection.close()

    def _ensure_schema(self) -> None:
        self.connection.executescript(
            """
            CREATE TABLE IF NOT EXISTS exploration_runs (
                run_id TEXT PRIMARY KEY,
                config_hash TEXT NOT NULL,
                seed INTEGER NOT NULL,
                config_json TEXT NOT NULL,
                runtime_metadata TEXT NOT NULL,
                final_state TEXT,
                best_fitness REAL,
                best_generation INTEGER,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS generation_summaries (
                run_id TEXT NOT NULL,
                generation INTEGER NOT NULL,
                evaluated INTEGER NOT NULL,
                best_fitness REAL NOT NULL,
                mean_fitness REAL NOT NULL,
                population_size INTEGER NOT NULL,
                state TEXT NOT NULL,
                PRIMARY KEY (run_id, generation),
                FOREIGN KEY (run_id)
                    REFERENCES exploration_runs (run_id)
                    ON DELETE CASCADE
            );
            """
        )
        self.connection.commit()

    def start_run(self, config: Mapping[str, Any], seed: int, metadata: Mapping[str, Any] | None = None) -> str:
        config_json = json.dumps(dict(config), sort_keys=True, default=str)
        config_hash = hashlib.sha256(config_json.encode("utf-8")).hexdigest()
        deterministic_key = hashlib.sha256(f"{config_hash}:{seed}".encode("utf-8")).hexdigest()
        run_id = hashlib.sha256(f"{deterministic_key}:{time.time_ns()}".encode("utf-8")).hexdigest()[:16]

        runtime_metadata = {"python_version": platform.python_version(), "platform": platform.platform()}
        if metadata:
            runtime_metadata.update(dict(metadata))
        runtime_metadata["deterministic_key"] = deterministic_key

        self.connection.execute(
            """
            INSERT OR IGNORE INTO exploration_runs (
                run_id, config_hash, seed, config_json, runtime_metadata
            ) VALUES (?, ?, ?, ?, ?)
            """,
            (run_id, config_hash, int(seed), config_json, json.dumps(runtime_metadata, sort_keys=True, default=str)),
        )
        self.connection.commit()
        return run_id

    def log_generation(self, run_id: str, summary: GenerationSummary) -> None:
        self.connection.execute(
            """
            INSERT INTO generation_summaries (
                run_id, generation, evaluated, best_fitness, mean_fitness, population_size, state
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                run_id,
                summary.generation,
                summary.evaluated,
                summary.best_fitness,
                summary.mean_fitness,
                summary.population_size,
                summary.state,
            ),
        )
        self.connection.commit()

    def finish_run(self, run_id: str, final_state: str, best_fitness: float, best_generation: int) -> None:
        self.connection.execute(
            """
            UPDATE exploration_runs
            SET final_state = ?, best_fitness = ?, best_generation = ?
            WHERE run_id = ?
            """,
            (final_state, best_fitness, best_generation, run_id),
        )
        self.connection.commit()

    def fetch_generations(self, run_id: str) -> list[dict[str, Any]]:
        """Return ordered per-generation summaries of one run."""
        rows = self.connection.execute(
            """
            SELECT generation, evaluated, best_fitness, mean_fitness, population_size, state
            FROM generation_summaries
            WHERE run_id = ?
            ORDER BY generation ASC
            """,
            (run_id,),
        ).fetchall()
        return [dict(row) for row in rows]

    def fetch_run(self, run_id: str) -> dict[str, Any] | None:
        row = self.connection.execute(
            """
            SELECT run_id, config_hash, seed, final_state, best_fitness, best_generation
            FROM exploration_runs
            WHERE run_id = ?
            """,
            (run_id,),
        ).fetchone()
        return dict(row) if row is not None else None

    def latest_run_id(self) -> str | None:
        """Return most recently created run id, if any."""
        row = self.connection.execute(
            """
            SELECT run_id
            FROM exploration_runs
            ORDER BY created_at DESC, rowid DESC
            LIMIT 1
            """
        ).fetchone()
        return str(row[0]) if row is not None else None
