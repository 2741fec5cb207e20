"""SQLite store for stage-completion markers of deployment runs."""

from __future__ import annotations

import json
import sqlite3
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

from subnet_deployer.utils.time import utc_now_iso

_SqlValue = str | bytes | int | float | None
_SqlParams = Sequence[_SqlValue] | Mapping[str, _SqlValue]


@dataclass
class StageMarker:
    fingerprint: str
    marker: str
    value: dict[str, object]
    completed_at: str


class RunStateStore:
    """Markers keyed by request fingerprint.

    A marker records that a non-idempotent stage (for example create-subnet)
    completed, together with the ids it produced.
    """

    def __init__(self, path: str, wal: bool = True) -> None:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._closed = False
        if wal:
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS runs (
                fingerprint TEXT PRIMARY KEY,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS stage_markers (
                fingerprint TEXT NOT NULL,
                marker TEXT NOT NULL,
                value TEXT NOT NULL,
                completed_at TEXT NOT NULL,
                PRIMARY KEY (fingerprint, marker),
                FOREIGN KEY(fingerprint) REFERENCES runs(fingerprint)
            );
            """
        )
        self._conn.commit()

    def execute(self, query: str, params: _SqlParams) -> None:
        with self._lock:
            self._conn.execute(query, params)
            self._conn.commit()

    def fetch_one(self, query: str, params: _SqlParams) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.execute(query, params)
            return cur.fetchone()

    def fetch_all(self, query: str, params: _SqlParams) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.execute(query, params)
            return cur.fetchall()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._conn.close()
            self._closed = True

    def ensure_run(self, fingerprint: str) -> None:
        now = utc_now_iso()
        self.execute(
            """
            INSERT INTO runs (fingerprint, created_at, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(fingerprint) DO UPDATE SET updated_at = excluded.updated_at
            """,
            (fingerprint, now, now),
        )

    def get_marker(self, fingerprint: str, marker: str) -> StageMarker | None:
        row = self.fetch_one(
            "SELECT * FROM stage_markers WHERE fingerprint = ? AND marker = ?",
            (fingerprint, marker),
        )
        if row is None:
            return None
        return StageMarker(
            fingerprint=row["fingerprint"],
            marker=row["marker"],
            value=json.loads(row["value"]),
            completed_at=row["completed_at"],
        )

    def mark_completed(
        self,
        fingerprint: str,
        marker: str,
        value: dict[str, object] | None = None,
    ) -> None:
        self.ensure_run(fingerprint)
        self.execute(
            """
            INSERT OR REPLACE INTO stage_markers (fingerprint, marker, value, completed_at)
            VALUES (?, ?, ?, ?)
            """,
            (fingerprint, marker, json.dumps(value or {}, sort_keys=True), utc_now_iso()),
        )

    def list_markers(self, fingerprint: str) -> list[StageMarker]:
        rows = self.fetch_all(
            "SELECT * FROM stage_markers WHERE fingerprint = ? ORDER BY completed_at, marker",
            (fingerprint,),
        )
        return [
            StageMarker(
                fingerprint=row["fingerprint"],
                marker=row["marker"],
                value=json.loads(row["value"]),
                completed_at=row["completed_at"],
            )
            for row in rows
        ]
