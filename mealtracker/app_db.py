# -*- coding: utf-8 -*-
"""App database: SQLite helpers for the meal log.

The shell cache keeps its own file (see offline/cache.py) so cache garbage
collection can never touch meal data.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


def connect(db_path: Path) -> sqlite3.Connection:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    # isolation_level=None: transactions are opened explicitly by `transaction`.
    conn = sqlite3.connect(str(db_path), check_same_thread=False, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute("PRAGMA journal_mode = WAL;")
    return conn


def init_app_db(conn: sqlite3.Connection) -> None:
    with transaction(conn) as cur:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS meals (
                id TEXT PRIMARY KEY,
                type TEXT NOT NULL,
                notes TEXT NOT NULL DEFAULT '',
                timestamp INTEGER NOT NULL,
                date TEXT NOT NULL
            );
            """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS idx_meals_date ON meals(date);")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_meals_timestamp ON meals(timestamp DESC);")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_meals_type ON meals(type);")
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS meal_images (
                meal_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                data BLOB NOT NULL,
                PRIMARY KEY (meal_id, position),
                FOREIGN KEY(meal_id) REFERENCES meals(id) ON DELETE CASCADE
            );
            """
        )


def init_cache_db(conn: sqlite3.Connection) -> None:
    with transaction(conn) as cur:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS caches (
                name TEXT PRIMARY KEY,
                created_at TEXT NOT NULL
            );
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS cache_entries (
                cache_name TEXT NOT NULL,
                url TEXT NOT NULL,
                status INTEGER NOT NULL,
                headers_json TEXT NOT NULL,
                body BLOB NOT NULL,
                stored_at TEXT NOT NULL,
                PRIMARY KEY (cache_name, url),
                FOREIGN KEY(cache_name) REFERENCES caches(name) ON DELETE CASCADE
            );
            """
        )


@contextmanager
def transaction(conn: sqlite3.Connection, *, write: bool = True) -> Iterator[sqlite3.Cursor]:
    """Run a block inside one SQLite transaction; roll back on any error."""
    cur = conn.cursor()
    cur.execute("BEGIN IMMEDIATE;" if write else "BEGIN;")
    try:
        yield cur
        cur.execute("COMMIT;")
    except BaseException:
        # A failed COMMIT can leave the transaction open.
        if conn.in_transaction:
            cur.execute("ROLLBACK;")
        raise
    finally:
        cur.close()

