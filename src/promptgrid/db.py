# Copyright (c) Syntropy Systems
"""SQLite experiment store with WAL mode and atomic writes."""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
from typing import TYPE_CHECKING, Optional

from typing_extensions import Self

from promptgrid.models.db import ExperimentRow, ResponseRow, format_timestamp
from promptgrid.models.experiment import Experiment, ExperimentSummary, ScoredResponse

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime
    from pathlib import Path
    from types import TracebackType

logger = logging.getLogger(__name__)

# SQL schema for the promptgrid database
SCHEMA = """
-- Experiments table (one row per generation run)
CREATE TABLE IF NOT EXISTS experiments (
    id TEXT PRIMARY KEY,
    name TEXT,
    prompt TEXT NOT NULL,
    model TEXT NOT NULL,
    parameters TEXT NOT NULL,  -- JSON array of parameter sets, grid order
    variations INTEGER NOT NULL,
    created_at TEXT NOT NULL
);

-- Responses table (owned by an experiment, removed with it)
CREATE TABLE IF NOT EXISTS responses (
    id TEXT PRIMARY KEY,
    experiment_id TEXT NOT NULL REFERENCES experiments(id) ON DELETE CASCADE,
    temperature REAL NOT NULL,
    top_p REAL NOT NULL,
    variation INTEGER NOT NULL,
    content TEXT NOT NULL,
    metrics TEXT NOT NULL,  -- JSON object
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_responses_experiment ON responses(experiment_id);
CREATE INDEX IF NOT EXISTS idx_experiments_created ON experiments(created_at);
"""

_EXPERIMENT_COLUMNS = "id, name, prompt, model, parameters, variations, created_at"
_RESPONSE_COLUMNS = (
    "id, experiment_id, temperature, top_p, variation, content, metrics, created_at"
)


class ExperimentNotFoundError(LookupError):
    """Raised when an operation targets an experiment id that does not exist."""

    def __init__(self, experiment_id: str) -> None:
        super().__init__(f"Experiment {experiment_id} not found")
        self.experiment_id = experiment_id


def get_connection(db_path: Path | str) -> sqlite3.Connection:
    """
    Get a database connection with proper settings for concurrent access.

    - isolation_level=None for explicit transaction control
    - WAL mode so readers see only committed experiments
    - foreign_keys=ON so deleting an experiment cascades to its responses
    - busy_timeout to wait for locks instead of failing immediately
    - Row factory for dict-like access
    """
    conn = sqlite3.connect(
        str(db_path),
        timeout=5.0,
        isolation_level=None,
        check_same_thread=False,
    )
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=5000")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: Path | str) -> None:
    """Initialize the database with the schema."""
    conn = get_connection(db_path)
    try:
        conn.executescript(SCHEMA)
    finally:
        conn.close()


def default_experiment_name(created_at: datetime) -> str:
    """Human readable label used when an experiment is saved without a name."""
    return f"New Experiment {created_at.strftime('%Y-%m-%d %H:%M:%S')}"


def _check_ownership(experiment: ExperimentSummary, responses: Sequence[ScoredResponse]) -> None:
    allowed = set(experiment.parameter_sets)
    for response in responses:
        if response.parameter_set not in allowed:
            msg = (
                f"Response {response.id} uses parameters "
                f"temperature={response.parameter_set.temperature}, "
                f"top_p={response.parameter_set.top_p} which are not in the experiment grid"
            )
            raise ValueError(msg)


# --- Experiment Operations ---

def save_experiment(
    conn: sqlite3.Connection,
    experiment: ExperimentSummary,
    responses: Sequence[ScoredResponse],
) -> Experiment:
    """
    Store an experiment and all of its responses in one transaction.

    Either every row is written or none is. A missing name is replaced by a
    timestamp label. Returns the experiment as stored.
    """
    _check_ownership(experiment, responses)

    name = experiment.name or default_experiment_name(experiment.created_at.astimezone())
    stored = [r.model_copy(update={"experiment_id": experiment.id}) for r in responses]

    try:
        conn.execute("BEGIN IMMEDIATE")
        conn.execute(
            f"""
            INSERT INTO experiments ({_EXPERIMENT_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                experiment.id,
                name,
                experiment.prompt,
                experiment.model,
                json.dumps(
                    [p.model_dump(mode="json") for p in experiment.parameter_sets]
                ),
                experiment.variations,
                format_timestamp(experiment.created_at),
            ),
        )
        conn.executemany(
            f"""
            INSERT INTO responses ({_RESPONSE_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    response.id,
                    experiment.id,
                    response.parameter_set.temperature,
                    response.parameter_set.top_p,
                    response.variation_index,
                    response.text,
                    response.metrics.model_dump_json(),
                    format_timestamp(response.created_at),
                )
                for response in stored
            ],
        )
        conn.execute("COMMIT")
    except Exception:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise

    logger.info("Saved experiment %s with %d responses", experiment.id, len(stored))

    return Experiment(
        **experiment.model_dump(exclude={"name", "responses"}),
        name=name,
        responses=stored,
    )


def _get_experiment_row(conn: sqlite3.Connection, experiment_id: str) -> Optional[ExperimentRow]:
    row = conn.execute(
        f"SELECT {_EXPERIMENT_COLUMNS} FROM experiments WHERE id = ?",
        (experiment_id,),
    ).fetchone()

    if row is None:
        return None

    return ExperimentRow.model_validate(dict(row))


def list_experiments(conn: sqlite3.Connection, limit: int = 10) -> list[ExperimentSummary]:
    """Get experiment summaries, most recent first."""
    rows = conn.execute(
        f"""
        SELECT {_EXPERIMENT_COLUMNS} FROM experiments
        ORDER BY created_at DESC, rowid DESC
        LIMIT ?
        """,
        (limit,),
    ).fetchall()

    return [ExperimentRow.model_validate(dict(row)).to_summary() for row in rows]


def get_experiment(conn: sqlite3.Connection, experiment_id: str) -> Optional[Experiment]:
    """Get an experiment with its responses in creation order, or None."""
    # Both reads share one snapshot so a concurrent save is seen whole or not at all
    conn.execute("BEGIN")
    try:
        experiment_row = _get_experiment_row(conn, experiment_id)
        response_rows = []
        if experiment_row is not None:
            response_rows = conn.execute(
                f"""
                SELECT {_RESPONSE_COLUMNS} FROM responses
                WHERE experiment_id = ?
                ORDER BY created_at ASC, rowid ASC
                """,
                (experiment_id,),
            ).fetchall()
    finally:
        conn.execute("COMMIT")

    if experiment_row is None:
        return None

    responses = [
        ResponseRow.model_validate(dict(row)).to_response(experiment_row.variations)
        for row in response_rows
    ]
    return experiment_row.to_experiment(responses)


def find_experiments(conn: sqlite3.Connection, id_prefix: str, limit: int = 10) -> list[ExperimentSummary]:
    """Get experiments whose id starts with the given prefix."""
    escaped = id_prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    rows = conn.execute(
        f"""
        SELECT {_EXPERIMENT_COLUMNS} FROM experiments
        WHERE id LIKE ? ESCAPE '\\'
        ORDER BY created_at DESC, rowid DESC
        LIMIT ?
        """,
        (f"{escaped}%", limit),
    ).fetchall()

    return [ExperimentRow.model_validate(dict(row)).to_summary() for row in rows]


def rename_experiment(conn: sqlite3.Connection, experiment_id: str, name: str) -> ExperimentSummary:
    """
    Rename an experiment and return the refreshed summary.

    Raises ExperimentNotFoundError if the id does not exist.
    """
    conn.execute(
        "UPDATE experiments SET name = ? WHERE id = ?",
        (name, experiment_id),
    )

    row = _get_experiment_row(conn, experiment_id)
    if row is None:
        raise ExperimentNotFoundError(experiment_id)

    logger.info("Renamed experiment %s to %r", experiment_id, name)
    return row.to_summary()


def delete_experiment(conn: sqlite3.Connection, experiment_id: str) -> bool:
    """
    Delete an experiment and, by cascade, its responses.

    Deleting an unknown id is a no-op. Returns whether a row was removed.
    """
    cursor = conn.execute(
        "DELETE FROM experiments WHERE id = ?",
        (experiment_id,),
    )
    return cursor.rowcount > 0


class ExperimentStore:
    """Experiment persistence over a single SQLite connection.

    Calls are serialized with a lock so one store can be shared by the
    request threads of the HTTP server.
    """

    db_path: Path | str
    conn: sqlite3.Connection
    _lock: threading.Lock

    def __init__(self, db_path: Path | str) -> None:
        """Open the database at ``db_path`` (``":memory:"`` is allowed)."""
        self.db_path = db_path
        self.conn = get_connection(db_path)
        self._lock = threading.Lock()

    def init_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        with self._lock:
            self.conn.executescript(SCHEMA)

    def close(self) -> None:
        """Close the underlying connection."""
        self.conn.close()

    def __enter__(self) -> Self:
        """Enter the store context and return self."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit the store context and close the connection."""
        self.close()

    def save_experiment(
        self,
        experiment: ExperimentSummary,
        responses: Sequence[ScoredResponse],
    ) -> Experiment:
        """Atomically store an experiment and its responses."""
        with self._lock:
            return save_experiment(self.conn, experiment, responses)

    def list_experiments(self, limit: int = 10) -> list[ExperimentSummary]:
        """Get experiment summaries, most recent first."""
        with self._lock:
            return list_experiments(self.conn, limit)

    def get_experiment(self, experiment_id: str) -> Optional[Experiment]:
        """Get an experiment with its responses, or None."""
        with self._lock:
            return get_experiment(self.conn, experiment_id)

    def find_experiments(self, id_prefix: str, limit: int = 10) -> list[ExperimentSummary]:
        """Get experiments whose id starts with ``id_prefix``."""
        with self._lock:
            return find_experiments(self.conn, id_prefix, limit)

    def rename_experiment(self, experiment_id: str, name: str) -> ExperimentSummary:
        """Rename an experiment; raises ExperimentNotFoundError if unknown."""
        with self._lock:
            return rename_experiment(self.conn, experiment_id, name)

    def delete_experiment(self, experiment_id: str) -> bool:
        """Delete an experiment and its responses; unknown ids are ignored."""
        with self._lock:
            return delete_experiment(self.conn, experiment_id)
