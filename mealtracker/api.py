# -*- coding: utf-8 -*-
"""Meal tracker API.

Wires the record store, the handle table and the shell cache into one FastAPI
app. Every component is created here and reached through ``app.state``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config import settings
from .errors import CacheInstallError
from .meals.api import handles_router
from .meals.api import router as meals_router
from .meals.handles import HandleTable
from .meals.storage import MealStore
from .offline.api import router as shell_router
from .offline.cache import CacheStorage
from .offline.worker import OfflineCache

logger = logging.getLogger(__name__)


def create_app(
    *,
    store: Optional[MealStore] = None,
    handles: Optional[HandleTable] = None,
    shell_cache: Optional[OfflineCache] = None,
    enable_shell: bool = True,
) -> FastAPI:
    store = store or MealStore(settings.db_path)
    handles = handles or HandleTable()
    if enable_shell and shell_cache is None:
        shell_cache = OfflineCache(CacheStorage(settings.cache_db_path))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # StoreOpenError is fatal: let startup fail.
        await store.open()
        if shell_cache is not None:
            try:
                await shell_cache.start()
            except CacheInstallError as exc:
                logger.warning("Shell cache upgrade failed: %s", exc)
        try:
            yield
        finally:
            released = handles.release_all()
            if released:
                logger.info("Released %d display handles on shutdown", released)
            if shell_cache is not None:
                await shell_cache.aclose()
                shell_cache.storage.close()
            store.close()

    app = FastAPI(
        title="Meal Tracker",
        description="On-device meal log with photo compression and an offline app shell.",
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )
    app.state.meal_store = store
    app.state.handles = handles
    app.state.shell_cache = shell_cache

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/api/health")
    def health() -> dict:
        return {
            "status": "ok",
            "store_open": store.is_open,
            "live_handles": handles.live_count,
            "shell_cache": shell_cache.state.value if shell_cache is not None else None,
            "shell_cache_serving": shell_cache.serving_version if shell_cache is not None else None,
        }

    app.include_router(meals_router)
    app.include_router(handles_router)
    # Catch-all, must stay last.
    if shell_cache is not None:
        app.include_router(shell_router)
    return app


app = create_app()
