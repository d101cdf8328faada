# -*- coding: utf-8 -*-
"""Meals: SQLite record store.

One ``MealStore`` owns one connection. Every public operation is a coroutine:
image compression is awaited before a transaction starts, and the SQL work
for a call runs inside a single transaction with no ``await`` in between, so
a record becomes visible only once it is fully written.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union
from uuid import uuid4

from ..app_db import connect, init_app_db, transaction
from ..config import settings
from ..dates import today_str
from ..errors import NotFoundError, ReadError, StoreOpenError, TooManyImagesError, WriteError
from .codec import ImageCodec
from .models import MealCreate, MealRecord, MealType, MealUpdate, RawImage, StoredImage

logger = logging.getLogger(__name__)


def generate_id() -> str:
    return uuid4().hex


class MealStore:
    def __init__(
        self,
        db_path: Path | str | None = None,
        *,
        codec: Optional[ImageCodec] = None,
        max_images: Optional[int] = None,
    ) -> None:
        self.db_path = Path(db_path) if db_path else settings.db_path
        self.codec = codec or ImageCodec()
        self.max_images = int(max_images or settings.max_images_per_meal)
        self._conn: Optional[sqlite3.Connection] = None
        self._open_lock = asyncio.Lock()
        self._last_timestamp = 0

    # ---- lifecycle ----

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self) -> "MealStore":
        """Open (and on first use initialise) the database. Safe to call repeatedly."""
        if self._conn is not None:
            return self
        async with self._open_lock:
            if self._conn is not None:
                return self
            try:
                conn = connect(self.db_path)
                init_app_db(conn)
                row = conn.execute("SELECT MAX(timestamp) AS ts FROM meals").fetchone()
            except (sqlite3.Error, OSError) as exc:
                raise StoreOpenError(f"Failed to open database {self.db_path}: {exc}") from exc
            self._last_timestamp = int(row["ts"] or 0)
            self._conn = conn
            logger.info("Meal store opened: %s", self.db_path)
        return self

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    async def _connection(self) -> sqlite3.Connection:
        await self.open()
        assert self._conn is not None
        return self._conn

    def _next_timestamp(self) -> int:
        now = int(time.time() * 1000)
        if now <= self._last_timestamp:
            now = self._last_timestamp + 1
        self._last_timestamp = now
        return now

    def _check_image_count(self, count: int) -> None:
        if count > self.max_images:
            raise TooManyImagesError(count, self.max_images)

    # ---- writes ----

    async def create(self, meal: Union[MealCreate, Dict[str, Any]]) -> MealRecord:
        if not isinstance(meal, MealCreate):
            meal = MealCreate.model_validate(meal)
        self._check_image_count(len(meal.images))
        conn = await self._connection()

        # All-or-nothing: a bad image aborts before anything is written.
        compressed: List[bytes] = []
        for raw in meal.images:
            compressed.append(await self.codec.compress_async(raw))

        record = MealRecord(
            id=generate_id(),
            type=meal.type or MealType.snack,
            notes=meal.notes or "",
            images=compressed,
            timestamp=self._next_timestamp(),
            date=meal.date or today_str(),
        )
        try:
            with transaction(conn) as cur:
                cur.execute(
                    "INSERT INTO meals (id, type, notes, timestamp, date) VALUES (?, ?, ?, ?, ?)",
                    (record.id, record.type.value, record.notes, record.timestamp, record.date),
                )
                _insert_images(cur, record.id, record.images)
        except sqlite3.Error as exc:
            raise WriteError(f"Failed to add meal: {exc}") from exc
        logger.info("Meal created: %s (%s, %d images)", record.id, record.date, len(record.images))
        return record

    async def update(self, meal: Union[MealUpdate, Dict[str, Any]]) -> MealRecord:
        if not isinstance(meal, MealUpdate):
            meal = MealUpdate.model_validate(meal)
        if meal.images is not None:
            self._check_image_count(len(meal.images))

        existing = await self.get(meal.id)
        if existing is None:
            raise NotFoundError(f"Meal not found: {meal.id}")
        conn = await self._connection()

        images = existing.images
        if meal.images is not None:
            images = []
            for item in meal.images:
                if isinstance(item, RawImage):
                    images.append(await self.codec.compress_async(item.data))
                elif isinstance(item, StoredImage):
                    images.append(item.data)
                else:
                    raise TypeError(f"Unsupported image item: {type(item).__name__}")

        updated = existing.model_copy(
            update={
                "type": meal.type if meal.type is not None else existing.type,
                "notes": meal.notes if meal.notes is not None else existing.notes,
                "images": images,
                "date": meal.date or existing.date,
            }
        )
        try:
            with transaction(conn) as cur:
                cur.execute(
                    "UPDATE meals SET type = ?, notes = ?, date = ? WHERE id = ?",
                    (updated.type.value, updated.notes, updated.date, updated.id),
                )
                if cur.rowcount == 0:
                    # Deleted while the new images were being compressed.
                    raise NotFoundError(f"Meal not found: {meal.id}")
                if meal.images is not None:
                    cur.execute("DELETE FROM meal_images WHERE meal_id = ?", (updated.id,))
                    _insert_images(cur, updated.id, updated.images)
        except sqlite3.Error as exc:
            raise WriteError(f"Failed to update meal: {exc}") from exc
        logger.info("Meal updated: %s", updated.id)
        return updated

    async def remove(self, meal_id: str) -> bool:
        conn = await self._connection()
        try:
            with transaction(conn) as cur:
                cur.execute("DELETE FROM meals WHERE id = ?", (meal_id,))
                deleted = cur.rowcount > 0
        except sqlite3.Error as exc:
            raise WriteError(f"Failed to delete meal: {exc}") from exc
        if deleted:
            logger.info("Meal deleted: %s", meal_id)
        return deleted

    # ---- reads ----

    async def get(self, meal_id: str) -> Optional[MealRecord]:
        records = await self._select("id = ?", (meal_id,), what="meal")
        return records[0] if records else None

    async def get_by_date(self, date: str) -> List[MealRecord]:
        return await self._select("date = ?", (date,), what="meals")

    async def get_range(self, start_date: str, end_date: str) -> List[MealRecord]:
        return await self._select("date BETWEEN ? AND ?", (start_date, end_date), what="meals")

    async def get_all(self) -> List[MealRecord]:
        return await self._select(None, (), what="all meals")

    async def dates_with_records(self, start_date: str, end_date: str) -> Set[str]:
        conn = await self._connection()
        try:
            with transaction(conn, write=False) as cur:
                rows = cur.execute(
                    "SELECT DISTINCT date FROM meals WHERE date BETWEEN ? AND ?",
                    (start_date, end_date),
                ).fetchall()
        except sqlite3.Error as exc:
            raise ReadError(f"Failed to get meal dates: {exc}") from exc
        return {r["date"] for r in rows}

    async def history(self) -> List[Tuple[str, List[MealRecord]]]:
        """All meals grouped by day, newest day first."""
        records = await self.get_all()
        by_day: Dict[str, List[MealRecord]] = {}
        for record in records:
            by_day.setdefault(record.date, []).append(record)
        return [
            (day, sorted(by_day[day], key=lambda r: r.timestamp, reverse=True))
            for day in sorted(by_day.keys(), reverse=True)
        ]

    async def _select(self, where: Optional[str], params: Tuple[Any, ...], *, what: str) -> List[MealRecord]:
        conn = await self._connection()
        clause = f" WHERE {where}" if where else ""
        try:
            with transaction(conn, write=False) as cur:
                rows = cur.execute(
                    f"SELECT * FROM meals{clause} ORDER BY timestamp DESC", params
                ).fetchall()
                image_rows = cur.execute(
                    f"""
                    SELECT meal_id, position, data FROM meal_images
                    WHERE meal_id IN (SELECT id FROM meals{clause})
                    ORDER BY meal_id, position
                    """,
                    params,
                ).fetchall()
        except sqlite3.Error as exc:
            raise ReadError(f"Failed to get {what}: {exc}") from exc

        images: Dict[str, List[bytes]] = {}
        for r in image_rows:
            images.setdefault(r["meal_id"], []).append(bytes(r["data"]))
        return [
            MealRecord(
                id=r["id"],
                type=MealType(r["type"]),
                notes=r["notes"],
                images=images.get(r["id"], []),
                timestamp=int(r["timestamp"]),
                date=r["date"],
            )
            for r in rows
        ]


def _insert_images(cur: sqlite3.Cursor, meal_id: str, images: Iterable[bytes]) -> None:
    cur.executemany(
        "INSERT INTO meal_images (meal_id, position, data) VALUES (?, ?, ?)",
        [(meal_id, position, sqlite3.Binary(data)) for position, data in enumerate(images)],
    )
