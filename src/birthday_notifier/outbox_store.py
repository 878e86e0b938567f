from __future__ import annotations

import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator

from birthday_notifier.models import MarkResult, Occurrence, RegisterResult

LOGGER = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS outbox (
  id TEXT PRIMARY KEY,
  person_id TEXT NOT NULL,
  scheduled_at_ms INTEGER NOT NULL,
  payload TEXT NOT NULL,
  delivered_at_ms INTEGER,
  created_at_ms INTEGER NOT NULL,
  UNIQUE (person_id, scheduled_at_ms)
);

CREATE INDEX IF NOT EXISTS idx_outbox_due ON outbox(delivered_at_ms, scheduled_at_ms);
CREATE INDEX IF NOT EXISTS idx_outbox_person ON outbox(person_id);
"""


def to_epoch_ms(value: datetime) -> int:
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError("datetime must be timezone-aware")
    return (value - _EPOCH) // timedelta(milliseconds=1)


def from_epoch_ms(value: int) -> datetime:
    return _EPOCH + timedelta(milliseconds=value)


class OutboxStore:
    """Durable queue of birthday occurrences keyed by (person, scheduled instant).

    The UNIQUE constraint on (person_id, scheduled_at_ms) is the only
    concurrency control: registering the same occurrence twice, from any
    caller, leaves exactly one row.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), isolation_level=None)
        conn.row_factory = sqlite3.Row
        # Set before journal_mode so concurrent openers wait instead of failing.
        conn.execute("PRAGMA busy_timeout=5000;")
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        return conn

    def _init_db(self) -> None:
        conn = self._connect()
        try:
            conn.executescript(SCHEMA_SQL)
        finally:
            conn.close()

    @contextmanager
    def _tx(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE;")
            yield conn
            conn.execute("COMMIT;")
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK;")
            raise
        finally:
            conn.close()

    @contextmanager
    def _read(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    @staticmethod
    def _row_to_occurrence(row: sqlite3.Row) -> Occurrence:
        delivered_ms = row["delivered_at_ms"]
        return Occurrence(
            occurrence_id=row["id"],
            person_id=row["person_id"],
            scheduled_at=from_epoch_ms(row["scheduled_at_ms"]),
            payload=row["payload"],
            delivered_at=from_epoch_ms(delivered_ms) if delivered_ms is not None else None,
            created_at=from_epoch_ms(row["created_at_ms"]),
        )

    def register(self, person_id: str, scheduled_at: datetime, payload: str) -> RegisterResult:
        scheduled_ms = to_epoch_ms(scheduled_at)
        created_ms = to_epoch_ms(datetime.now(timezone.utc))
        with self._tx() as conn:
            cur = conn.execute(
                """
                INSERT INTO outbox (id, person_id, scheduled_at_ms, payload, delivered_at_ms, created_at_ms)
                VALUES (?, ?, ?, ?, NULL, ?)
                ON CONFLICT (person_id, scheduled_at_ms) DO NOTHING
                """,
                (uuid.uuid4().hex, person_id, scheduled_ms, payload, created_ms),
            )
            inserted = cur.rowcount == 1

        if inserted:
            LOGGER.info("Registered occurrence for %s at %s", person_id, scheduled_at.isoformat())
            return RegisterResult.CREATED
        return RegisterResult.ALREADY_EXISTS

    def list_due(self, now: datetime, limit: int) -> list[Occurrence]:
        if limit < 1:
            raise ValueError("limit must be a positive integer")

        with self._read() as conn:
            rows = conn.execute(
                """
                SELECT * FROM outbox
                WHERE delivered_at_ms IS NULL AND scheduled_at_ms <= ?
                ORDER BY scheduled_at_ms ASC, id ASC
                LIMIT ?
                """,
                (to_epoch_ms(now), limit),
            ).fetchall()
        return [self._row_to_occurrence(row) for row in rows]

    def mark_delivered(self, occurrence_id: str, delivered_at: datetime) -> MarkResult:
        delivered_ms = to_epoch_ms(delivered_at)
        with self._tx() as conn:
            cur = conn.execute(
                "UPDATE outbox SET delivered_at_ms=? WHERE id=? AND delivered_at_ms IS NULL",
                (delivered_ms, occurrence_id),
            )
            if cur.rowcount == 1:
                return MarkResult.DELIVERED

            existing = conn.execute("SELECT 1 FROM outbox WHERE id=?", (occurrence_id,)).fetchone()

        if existing is None:
            return MarkResult.NOT_FOUND
        LOGGER.debug("Occurrence %s was already delivered", occurrence_id)
        return MarkResult.DELIVERED

    def clear_pending_for(self, person_id: str) -> int:
        with self._tx() as conn:
            cur = conn.execute(
                "DELETE FROM outbox WHERE person_id=? AND delivered_at_ms IS NULL",
                (person_id,),
            )
            removed = cur.rowcount

        if removed:
            LOGGER.info("Cleared %s pending occurrence(s) for %s", removed, person_id)
        return removed

    def purge_person(self, person_id: str) -> int:
        with self._tx() as conn:
            cur = conn.execute("DELETE FROM outbox WHERE person_id=?", (person_id,))
            removed = cur.rowcount

        LOGGER.info("Purged %s occurrence(s) for %s", removed, person_id)
        return removed

    def list_for_person(self, person_id: str) -> list[Occurrence]:
        with self._read() as conn:
            rows = conn.execute(
                "SELECT * FROM outbox WHERE person_id=? ORDER BY scheduled_at_ms ASC",
                (person_id,),
            ).fetchall()
        return [self._row_to_occurrence(row) for row in rows]

    def pending_for(self, person_id: str) -> Occurrence | None:
        with self._read() as conn:
            row = conn.execute(
                """
                SELECT * FROM outbox
                WHERE person_id=? AND delivered_at_ms IS NULL
                ORDER BY scheduled_at_ms ASC
                LIMIT 1
                """,
                (person_id,),
            ).fetchone()
        return self._row_to_occurrence(row) if row is not None else None
