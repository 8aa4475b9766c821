"""SQLite-backed release store.

One table holds the latest snapshot of every release:

    build_readiness
    ├── release_id           TEXT     (key part 1)
    ├── work_item_id         INTEGER  (key part 2)
    ├── wi_type, title, state
    ├── severity, tags, acceptance_criteria, description,
    │   dev_notes, qa_notes, score, missing, review_evidence
    └── created_at           TEXT     (defaults to datetime('now'))

A release is only ever written as a whole: ``replace()`` deletes the old
rows and inserts the new ones in a single transaction, so readers observe
either the previous snapshot or the new one, never a mix.

Usage:
    store = ReleaseStore("data/build_readiness.db")
    store.replace("2024.11", rows)
    counts = store.get_counts("2024.11")
"""

from __future__ import annotations

import sqlite3
from collections.abc import Generator, Iterable, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from build_readiness.errors import InvalidRow, StorageUnavailable
from build_readiness.logging_config import get_logger
from build_readiness.schemas import ReleaseCounts, WorkItemRow
from build_readiness.stats import compute_counts

logger = get_logger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS build_readiness (
    release_id           TEXT NOT NULL,
    work_item_id         INTEGER NOT NULL,
    wi_type              TEXT NOT NULL,
    title                TEXT NOT NULL,
    state                TEXT NOT NULL,
    severity             TEXT,
    tags                 TEXT,
    acceptance_criteria  TEXT,
    description          TEXT,
    dev_notes            TEXT,
    qa_notes             TEXT,
    score                TEXT,
    missing              TEXT,
    review_evidence      TEXT,
    created_at           TEXT NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (release_id, work_item_id)
);

CREATE INDEX IF NOT EXISTS idx_release ON build_readiness(release_id);
"""

_INSERT = """
INSERT INTO build_readiness (
    release_id, work_item_id, wi_type, title, state, severity, tags,
    acceptance_criteria, description, dev_notes, qa_notes,
    score, missing, review_evidence
)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(release_id, work_item_id) DO UPDATE SET
    wi_type = excluded.wi_type,
    title = excluded.title,
    state = excluded.state,
    severity = excluded.severity,
    tags = excluded.tags,
    acceptance_criteria = excluded.acceptance_criteria,
    description = excluded.description,
    dev_notes = excluded.dev_notes,
    qa_notes = excluded.qa_notes,
    score = excluded.score,
    missing = excluded.missing,
    review_evidence = excluded.review_evidence,
    created_at = datetime('now')
"""

RowLike = WorkItemRow | Mapping[str, Any]


class ReleaseStore:
    """SQLite storage for per-release work item snapshots.

    Each operation opens its own connection, so a single store can be shared
    across worker threads.
    """

    def __init__(self, db_path: str | Path, timeout: float = 5.0) -> None:
        self.db_path = Path(db_path)
        self._timeout = timeout
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with self._connect() as conn:
                conn.execute("PRAGMA journal_mode = WAL")
                conn.executescript(SCHEMA)
        except (OSError, sqlite3.Error) as exc:
            raise StorageUnavailable(f"Cannot initialize database at {self.db_path}: {exc}") from exc
        logger.info("database_initialized", path=str(self.db_path))

    @contextmanager
    def _connect(self) -> Generator[sqlite3.Connection, None, None]:
        """Autocommit connection; callers open transactions explicitly."""
        conn = sqlite3.connect(self.db_path, timeout=self._timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    # =========================================================================
    # Writes
    # =========================================================================

    def replace(self, release_id: str, rows: Iterable[RowLike]) -> int:
        """Atomically replace every row of ``release_id`` with ``rows``.

        Rows missing from the new set are removed. Duplicate work item IDs
        within ``rows`` collapse to one stored row, the last one winning.

        Returns:
            Number of rows written (before duplicate collapse).

        Raises:
            InvalidRow: If a row is malformed or belongs to another release.
                Nothing is written in that case.
            StorageUnavailable: If the database cannot be written. The prior
                snapshot is left intact.
        """
        validated = [self._validate_row(release_id, row) for row in rows]

        try:
            with self._connect() as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    conn.execute("DELETE FROM build_readiness WHERE release_id = ?", (release_id,))
                    conn.executemany(_INSERT, [self._row_params(row) for row in validated])
                except BaseException:
                    conn.execute("ROLLBACK")
                    raise
                conn.execute("COMMIT")
        except sqlite3.Error as exc:
            logger.error("replace_failed", release_id=release_id, error=str(exc))
            raise StorageUnavailable(f"Failed to replace release {release_id!r}: {exc}") from exc

        logger.info("release_replaced", release_id=release_id, rows=len(validated))
        return len(validated)

    @staticmethod
    def _validate_row(release_id: str, row: RowLike) -> WorkItemRow:
        if not isinstance(row, WorkItemRow):
            try:
                row = WorkItemRow.model_validate(row)
            except ValidationError as exc:
                raise InvalidRow(f"Malformed row for release {release_id!r}: {exc}") from exc
        if row.release_id != release_id:
            raise InvalidRow(
                f"Row {row.work_item_id} belongs to release {row.release_id!r}, "
                f"not {release_id!r}"
            )
        return row

    @staticmethod
    def _row_params(row: WorkItemRow) -> tuple[Any, ...]:
        return (
            row.release_id,
            row.work_item_id,
            row.type,
            row.title,
            row.state,
            row.severity,
            row.tags,
            row.acceptance_criteria,
            row.description,
            row.dev_notes,
            row.qa_notes,
            row.score,
            row.missing,
            row.review_evidence,
        )

    # =========================================================================
    # Reads
    # =========================================================================

    def get_snapshot(self, release_id: str) -> list[WorkItemRow]:
        """All rows of a release ordered by type, then work item ID.

        An unknown release yields an empty list.
        """
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    """
                    SELECT * FROM build_readiness
                    WHERE release_id = ?
                    ORDER BY wi_type, work_item_id
                    """,
                    (release_id,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StorageUnavailable(f"Failed to read release {release_id!r}: {exc}") from exc
        return [self._to_row(row) for row in rows]

    def get_counts(self, release_id: str) -> ReleaseCounts:
        return compute_counts(self.get_snapshot(release_id))

    @staticmethod
    def _to_row(row: sqlite3.Row) -> WorkItemRow:
        data = dict(row)
        data["type"] = data.pop("wi_type")
        return WorkItemRow(**data)
