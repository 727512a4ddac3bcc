#!/usr/bin/env python3
"""
db_logger.py — SQLite decode log for clipdecode.

One clipdecode.db per db_dir. A writing logger opens a session and owns a
writer thread fed through a queue, so log() is safe from any thread. A
reading logger (start_session=False) opens no session and cannot log; it
is what `history` uses.

Tables:
    sessions     id, started_at, transforms_folder
    log_entries  id, session_id, timestamp, tag, message, transform_name

Tags: ok, err, warn, info, chain, preview.
Entries older than RETAIN_DAYS are dropped whenever a log is opened.
"""

import queue
import sqlite3
import threading
import uuid
from contextlib import closing
from datetime import datetime, timedelta
from pathlib import Path

RETAIN_DAYS = 30
DB_NAME     = "clipdecode.db"
TAGS        = ("ok", "err", "warn", "info", "chain", "preview")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY, started_at TEXT NOT NULL, transforms_folder TEXT
);
CREATE TABLE IF NOT EXISTS log_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL, timestamp TEXT NOT NULL,
    tag TEXT NOT NULL, message TEXT NOT NULL, transform_name TEXT
);
CREATE INDEX IF NOT EXISTS idx_log_session ON log_entries(session_id);
CREATE INDEX IF NOT EXISTS idx_log_tag ON log_entries(tag);
"""

_INSERT_ENTRY = (
    "INSERT INTO log_entries(session_id, timestamp, tag, message, transform_name)"
    " VALUES(?,?,?,?,?)"
)
_ENTRY_COLUMNS = "id, session_id, timestamp, tag, message, transform_name"


def result_entry(result) -> tuple:
    """(tag, message) describing a text_decoder.DecodeResult."""
    if not result.ok:
        return "err", result.error
    if result.lossy:
        return "warn", f"Decoded {result.byte_count} bytes (invalid UTF-8 replaced)"
    return "ok", f"Decoded {result.byte_count} bytes"


class DBLogger:
    def __init__(self, db_dir: str, transforms_folder: str = "",
                 start_session: bool = True):
        self._db_path     = str(Path(db_dir) / DB_NAME)
        self._queue       = queue.Queue()
        self._session     = None
        self._writer      = None
        self.write_errors = 0

        with closing(self._connect()) as conn, conn:
            conn.executescript(_SCHEMA)
            cutoff = (datetime.now() - timedelta(days=RETAIN_DAYS)).isoformat()
            conn.execute("DELETE FROM log_entries WHERE timestamp < ?", (cutoff,))
            conn.execute(
                "DELETE FROM sessions WHERE started_at < ? "
                "AND id NOT IN (SELECT DISTINCT session_id FROM log_entries)",
                (cutoff,)
            )
            if start_session:
                self._session = uuid.uuid4().hex[:8]
                conn.execute(
                    "INSERT INTO sessions VALUES(?,?,?)",
                    (self._session, datetime.now().isoformat(), transforms_folder)
                )

        if start_session:
            self._writer = threading.Thread(target=self._writer_loop, daemon=True)
            self._writer.start()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=10)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.row_factory = sqlite3.Row
        return conn

    def _fetch(self, sql: str, params=()) -> list:
        with closing(self._connect()) as conn:
            return [dict(r) for r in conn.execute(sql, params).fetchall()]

    # ── Writer thread ─────────────────────────────────────────────────────────

    def _writer_loop(self):
        with closing(self._connect()) as conn:
            while True:
                row = self._queue.get()
                try:
                    if row is None:
                        return
                    with conn:
                        conn.execute(_INSERT_ENTRY, row)
                except sqlite3.Error:
                    self.write_errors += 1
                finally:
                    self._queue.task_done()

    # ── Writing ───────────────────────────────────────────────────────────────

    def log(self, message: str, tag: str = "info", transform_name: str = ""):
        if self._writer is None:
            raise RuntimeError(f"{self._db_path} was opened read-only (no session)")
        self._queue.put((
            self._session, datetime.now().isoformat(), tag, message, transform_name,
        ))

    def log_result(self, result, transform_name: str = ""):
        tag, message = result_entry(result)
        self.log(message, tag, transform_name)

    def flush(self):
        """Block until every queued entry has been written."""
        self._queue.join()

    def clear_session(self, session_id: str):
        self.flush()
        with closing(self._connect()) as conn, conn:
            conn.execute("DELETE FROM log_entries WHERE session_id = ?", (session_id,))

    # ── Reading ───────────────────────────────────────────────────────────────

    def get_entries(self, session_id: str = None, tag: str = None,
                    limit: int = 500) -> list:
        """The newest `limit` entries matching the filters, oldest first."""
        filters = {"session_id": session_id, "tag": tag}
        used = {k: v for k, v in filters.items() if v}
        where = " AND ".join(f"{k} = ?" for k in used)
        rows = self._fetch(
            f"SELECT {_ENTRY_COLUMNS} FROM log_entries"
            f"{' WHERE ' + where if where else ''} ORDER BY id DESC LIMIT ?",
            (*used.values(), limit),
        )
        rows.reverse()
        return rows

    def get_sessions(self, limit: int = 50) -> list:
        return self._fetch(
            "SELECT * FROM sessions ORDER BY started_at DESC LIMIT ?", (limit,)
        )

    def latest_session_id(self):
        """Session of the newest log entry, or None for an empty log."""
        rows = self._fetch("SELECT session_id FROM log_entries ORDER BY id DESC LIMIT 1")
        return rows[0]["session_id"] if rows else None

    def get_counts(self, session_id: str = None) -> dict:
        """Entry count per tag, e.g. {"ok": 3, "err": 1}."""
        where = " WHERE session_id = ?" if session_id else ""
        rows = self._fetch(
            f"SELECT tag, COUNT(*) AS n FROM log_entries{where} GROUP BY tag",
            (session_id,) if session_id else (),
        )
        return {r["tag"]: r["n"] for r in rows}

    @property
    def session_id(self):
        return self._session

    @property
    def db_path(self) -> str:
        return self._db_path

    def stop(self):
        if self._writer is None:
            return
        self._queue.put(None)
        self._writer.join(timeout=3)
        self._writer = None
