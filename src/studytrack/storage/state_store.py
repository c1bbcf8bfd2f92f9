# src/studytrack/storage/state_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any

from ..core.ports import StateDocument

logger = logging.getLogger(__name__)

# Document keys stored as rows; everything else goes into `meta` as JSON.
_ROW_KEYS = ("tasks", "sessions")


class SqliteStateStore:
    """
    SQLite-backed StateRepo.

    Layout:
    - tasks(id, payload, updated_at): one JSON task record per row
    - sessions(id, day_key, start_time, payload): one JSON session per row
    - meta(key, value): the remaining top-level document keys, JSON-encoded

    save() rewrites all three tables inside one transaction, so a reader never
    observes a half-written document. load() returns None for a fresh database.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "studytrack.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except sqlite3.Error:
            total = -1
        logger.info("SqliteStateStore ready db=%s tasks=%s", self._db_path, total)

    @property
    def db_path(self) -> Path:
        return self._db_path

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    payload TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    day_key TEXT NOT NULL,
                    start_time TEXT NOT NULL DEFAULT '',
                    payload TEXT NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS meta (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )

            cur.execute("CREATE INDEX IF NOT EXISTS idx_sessions_day ON sessions(day_key)")
            conn.commit()
        finally:
            conn.close()

    # ---- public API ----

    def count_tasks(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)
        finally:
            conn.close()

    def load(self) -> StateDocument | None:
        conn = self._get_conn()
        try:
            meta_rows = conn.execute("SELECT key, value FROM meta").fetchall()
            if not meta_rows:
                return None
            doc: dict[str, Any] = {row["key"]: json.loads(row["value"]) for row in meta_rows}
            doc["tasks"] = [
                json.loads(row["payload"])
                for row in conn.execute("SELECT payload FROM tasks ORDER BY rowid")
            ]
            doc["sessions"] = [
                json.loads(row["payload"])
                for row in conn.execute("SELECT payload FROM sessions ORDER BY start_time, id")
            ]
        finally:
            conn.close()

        logger.debug(
            "State loaded db=%s tasks=%d sessions=%d", self._db_path, len(doc["tasks"]), len(doc["sessions"])
        )
        return doc

    def save(self, document: StateDocument) -> None:
        now = time.time()
        tasks = document.get("tasks") or []
        sessions = document.get("sessions") or []
        meta = {k: v for k, v in document.items() if k not in _ROW_KEYS}

        conn = self._get_conn()
        try:
            with conn:
                conn.execute("DELETE FROM tasks")
                conn.execute("DELETE FROM sessions")
                conn.execute("DELETE FROM meta")
                conn.executemany(
                    "INSERT INTO tasks (id, payload, updated_at) VALUES (?, ?, ?)",
                    [(t["id"], json.dumps(t, ensure_ascii=False), now) for t in tasks],
                )
                conn.executemany(
                    "INSERT INTO sessions (id, day_key, start_time, payload) VALUES (?, ?, ?, ?)",
                    [
                        (s["id"], s.get("dayKey") or "", s.get("startTime") or "", json.dumps(s, ensure_ascii=False))
                        for s in sessions
                    ],
                )
                conn.executemany(
                    "INSERT INTO meta (key, value) VALUES (?, ?)",
                    [(k, json.dumps(v, ensure_ascii=False)) for k, v in sorted(meta.items())],
                )
        finally:
            conn.close()

        logger.debug("State saved db=%s tasks=%d sessions=%d", self._db_path, len(tasks), len(sessions))
