"""Content-addressed cache of file-level verdicts.

Key: SHA-256 of the exact source bytes. A hit is valid only for an exact hash
match; there is no TTL and no partial invalidation. Any storage error is
logged and treated as a miss (``get``) or a no-op (``put``), so a broken cache
never fails a run.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from pathlib import Path

from loguru import logger

from archfix.db.connection import Database
from archfix.db.migrations import run_migrations
from archfix.models import FileVerdict


class ContentCache:
    """Thread-safe verdict cache over one SQLite connection.

    Pass ``enabled=False`` (or no path) for a cache where every lookup misses.
    """

    def __init__(self, db_path: Path | str | None, enabled: bool = True) -> None:
        self.enabled = enabled and db_path is not None
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None
        if self.enabled:
            try:
                self._conn = Database(db_path).connect()
                run_migrations(self._conn)
            except (sqlite3.Error, OSError) as exc:
                logger.warning("Verdict cache unavailable ({}); continuing without it", exc)
                self._conn = None
                self.enabled = False

    def get(self, content_hash: str) -> FileVerdict | None:
        if not self.enabled or self._conn is None:
            return None
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT verdict FROM verdict_cache WHERE content_hash = ?",
                    (content_hash,),
                ).fetchone()
            if row is None:
                return None
            return FileVerdict.from_dict(json.loads(row["verdict"]))
        except (sqlite3.Error, ValueError, KeyError, TypeError) as exc:
            logger.warning("Cache read for {} failed: {}; treating as miss", content_hash[:12], exc)
            return None

    def put(self, content_hash: str, verdict: FileVerdict) -> None:
        if not self.enabled or self._conn is None:
            return
        try:
            payload = json.dumps(verdict.to_dict())
            with self._lock:
                self._conn.execute(
                    "INSERT OR REPLACE INTO verdict_cache (content_hash, unit_id, verdict) "
                    "VALUES (?, ?, ?)",
                    (content_hash, verdict.unit_id, payload),
                )
                self._conn.commit()
        except (sqlite3.Error, TypeError, ValueError) as exc:
            logger.warning("Cache write for {} failed: {}", verdict.unit_id, exc)

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
        self.enabled = False

    def __enter__(self) -> ContentCache:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
