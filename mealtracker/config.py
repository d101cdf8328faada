from __future__ import annotations

import os
from pathlib import Path
from typing import List


class Settings:
    """Centralized configuration for the meal tracker backend."""

    def __init__(self) -> None:
        base_dir = Path(__file__).resolve().parent
        repo_root = base_dir.parent
        data_root_default = repo_root / "data"

        self.data_root: Path = Path(
            os.environ.get("MEALTRACKER_DATA_ROOT") or data_root_default
        ).expanduser()
        self.db_path: Path = Path(
            os.environ.get("MEALTRACKER_DB_PATH") or (self.data_root / "meals.db")
        ).expanduser()
        self.cache_db_path: Path = Path(
            os.environ.get("MEALTRACKER_CACHE_DB_PATH") or (self.data_root / "shell_cache.db")
        ).expanduser()

        # ---- Image codec ----
        self.image_max_width: int = int(os.environ.get("MEALTRACKER_IMAGE_MAX_WIDTH") or "800")
        self.image_quality: float = float(os.environ.get("MEALTRACKER_IMAGE_QUALITY") or "0.7")
        self.max_images_per_meal: int = int(os.environ.get("MEALTRACKER_MAX_IMAGES") or "5")
        self.max_upload_mb: int = int(os.environ.get("MEALTRACKER_MAX_UPLOAD_MB") or "20")

        # ---- Offline shell cache ----
        self.shell_origin: str = os.environ.get(
            "MEALTRACKER_SHELL_ORIGIN", "http://127.0.0.1:5173"
        ).rstrip("/")
        self.cache_version: str = os.environ.get("MEALTRACKER_CACHE_VERSION") or "meal-tracker-v2"
        self.shell_timeout: float = float(os.environ.get("MEALTRACKER_SHELL_TIMEOUT") or "10")
        self.precache_urls: List[str] = [
            "./",
            "./index.html",
            "./manifest.json",
            "./icon-192.png",
            "./icon-512.png",
        ]

        cors = os.environ.get("MEALTRACKER_CORS_ORIGINS", "*")
        if cors.strip() == "*":
            self.cors_origins: List[str] = ["*"]
        else:
            self.cors_origins = [
                origin.strip() for origin in cors.split(",") if origin.strip()
            ]


settings = Settings()
