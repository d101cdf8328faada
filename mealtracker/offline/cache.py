# -*- coding: utf-8 -*-
"""Offline: named response caches persisted in SQLite.

Kept in its own database file so that deleting stale caches never touches the
meal log.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from ..app_db import connect, init_cache_db, transaction
from ..config import settings
from .models import CachedResponse, replayable_headers


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class CacheStorage:
    def __init__(self, db_path: Path | str | None = None) -> None:
        self.db_path = Path(db_path) if db_path else settings.cache_db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    def _connection(self) -> sqlite3.Connection:
        with self._lock:
            if self._conn is None:
                conn = connect(self.db_path)
                init_cache_db(conn)
                self._conn = conn
            return self._conn

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def keys(self) -> List[str]:
        conn = self._connection()
        rows = conn.execute("SELECT name FROM caches ORDER BY created_at, name").fetchall()
        return [r["name"] for r in rows]

    def has(self, cache_name: str) -> bool:
        conn = self._connection()
        row = conn.execute("SELECT 1 FROM caches WHERE name = ?", (cache_name,)).fetchone()
        return row is not None

    def delete(self, cache_name: str) -> bool:
        conn = self._connection()
        with transaction(conn) as cur:
            cur.execute("DELETE FROM caches WHERE name = ?", (cache_name,))
            return cur.rowcount > 0

    def match(self, url: str, cache_name: Optional[str] = None) -> Optional[CachedResponse]:
        """Look ``url`` up in one cache, or in every cache (oldest first) when no name is given."""
        conn = self._connection()
        if cache_name is not None:
            row = conn.execute(
                "SELECT * FROM cache_entries WHERE cache_name = ? AND url = ?",
                (cache_name, url),
            ).fetchone()
        else:
            row = conn.execute(
                """
                SELECT e.* FROM cache_entries e
                JOIN caches c ON c.name = e.cache_name
                WHERE e.url = ?
                ORDER BY c.created_at, c.name
                LIMIT 1
                """,
                (url,),
            ).fetchone()
        if row is None:
            return None
        return CachedResponse(
            status=int(row["status"]),
            body=bytes(row["body"]),
            headers=json.loads(row["headers_json"]),
            url=row["url"],
            from_cache=True,
        )

    def put(self, cache_name: str, url: str, response: CachedResponse) -> None:
        self.add_all(cache_name, [(url, response)])

    def add_all(self, cache_name: str, entries: Iterable[Tuple[str, CachedResponse]]) -> None:
        """Store several responses atomically, creating the cache if needed."""
        conn = self._connection()
        now = _utc_now()
        rows = [
            (
                cache_name,
                url,
                int(resp.status),
                json.dumps(replayable_headers(resp.headers)),
                sqlite3.Binary(resp.body),
                now,
            )
            for url, resp in entries
        ]
        with transaction(conn) as cur:
            cur.execute(
                "INSERT OR IGNORE INTO caches (name, created_at) VALUES (?, ?)",
                (cache_name, now),
            )
            cur.executemany(
                """
                INSERT OR REPLACE INTO cache_entries (cache_name, url, status, headers_json, body, stored_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                rows,
            )

    def entry_count(self, cache_name: str) -> int:
        conn = self._connection()
        row = conn.execute(
            "SELECT COUNT(1) AS n FROM cache_entries WHERE cache_name = ?", (cache_name,)
        ).fetchone()
        return int(row["n"]) if row else 0
