"""SQLite storage layer for imported weight entries."""

from __future__ import annotations

import sqlite3
import uuid
from pathlib import Path
from typing import Optional

from .models import WeightObservation


def _dict_factory(cursor: sqlite3.Cursor, row: tuple) -> dict:
    return {col[0]: row[i] for i, col in enumerate(cursor.description)}


class Storage:
    """SQLite-backed storage for weight entries, keyed by owning profile."""

    def __init__(self, db_path: str | Path = "weightlog.db"):
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None

    def connect(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path))
            self._conn.row_factory = _dict_factory
            self._ensure_schema()
        return self._conn

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    def _ensure_schema(self) -> None:
        conn = self.connect()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS weight_entries (
                id TEXT PRIMARY KEY,
                profile_id TEXT NOT NULL,
                weight REAL NOT NULL CHECK (weight > 0),
                unit TEXT NOT NULL DEFAULT 'lb',
                recorded_at TEXT NOT NULL,
                created_at TEXT NOT NULL DEFAULT (datetime('now'))
            );
            CREATE INDEX IF NOT EXISTS idx_weight_entries_profile
                ON weight_entries(profile_id, recorded_at);
        """)
        conn.commit()

    def store_observations(self, profile_id: str, observations: list[WeightObservation]) -> int:
        """Insert all observations in one transaction; returns the number stored."""
        if not observations:
            return 0
        conn = self.connect()
        rows = [
            (generate_id("wt"), profile_id, o.weight, o.unit, o.recorded_at)
            for o in observations
        ]
        with conn:
            conn.executemany(
                """
                INSERT INTO weight_entries (id, profile_id, weight, unit, recorded_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                rows,
            )
        return len(rows)

    def list_entries(self, profile_id: str, limit: int = 50) -> list[dict]:
        """Newest first: id, profile_id, weight, unit, recorded_at."""
        conn = self.connect()
        return conn.execute(
            """
            SELECT id, profile_id, weight, unit, recorded_at
            FROM weight_entries WHERE profile_id = ?
            ORDER BY recorded_at DESC
            LIMIT ?
            """,
            (profile_id, max(0, limit)),
        ).fetchall()

    def remove_entry(self, profile_id: str, entry_id: str) -> bool:
        """Delete one entry owned by profile_id; False when nothing matched."""
        conn = self.connect()
        with conn:
            cur = conn.execute(
                "DELETE FROM weight_entries WHERE id = ? AND profile_id = ?",
                (entry_id, profile_id),
            )
        return cur.rowcount > 0


def generate_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"
