# -*- coding: utf-8 -*-
"""Error taxonomy shared by the record store, image codec and shell cache."""

from __future__ import annotations


class MealTrackerError(Exception):
    """Base class for every error raised by the meal tracker core."""


class StoreOpenError(MealTrackerError):
    """The durable backend could not be opened or initialised. Fatal."""


class NotFoundError(MealTrackerError, LookupError):
    """The requested record (or handle) does not exist."""


class ImageError(MealTrackerError, ValueError):
    pass


class DecodeError(ImageError):
    """Input bytes could not be decoded as an image."""


class EncodeError(ImageError):
    """Re-encoding an image produced no output."""


class TooManyImagesError(MealTrackerError, ValueError):
    def __init__(self, count: int, limit: int) -> None:
        super().__init__(f"A meal can hold at most {limit} images (got {count})")
        self.count = count
        self.limit = limit


class WriteError(MealTrackerError):
    """Backend failure inside a write transaction."""


class ReadError(MealTrackerError):
    """Backend failure inside a read transaction."""


class CacheInstallError(MealTrackerError):
    """Precaching the application shell failed; the new version was not installed."""
