# -*- coding: utf-8 -*-
"""Meals: image codec (downscale + JPEG recompression via Pillow)."""

from __future__ import annotations

import asyncio
import io
import logging

from PIL import Image, ImageOps, UnidentifiedImageError

from ..config import settings
from ..errors import DecodeError, EncodeError

logger = logging.getLogger(__name__)

JPEG_SOI = b"\xff\xd8"


class ImageCodec:
    """Turn arbitrary image uploads into bounded JPEG payloads.

    Images wider than ``max_width`` are scaled down proportionally; smaller
    images keep their size. ``quality`` is a 0..1 factor like the browser
    canvas API and is mapped onto Pillow's 1..95 JPEG quality scale.
    """

    def __init__(self, max_width: int | None = None, quality: float | None = None) -> None:
        self.max_width = int(max_width or settings.image_max_width)
        q = settings.image_quality if quality is None else float(quality)
        if not 0 < q <= 1:
            raise ValueError(f"quality must be in (0, 1], got {q}")
        self.quality = q

    @property
    def jpeg_quality(self) -> int:
        return max(1, min(95, round(self.quality * 100)))

    def target_size(self, width: int, height: int) -> tuple[int, int]:
        if width <= self.max_width:
            return width, height
        new_height = max(1, round(height * self.max_width / width))
        return self.max_width, new_height

    def _decode(self, raw: bytes) -> Image.Image:
        if not raw:
            raise DecodeError("Empty image payload")
        try:
            img = Image.open(io.BytesIO(raw))
            img.load()
            # Phone cameras store rotation in EXIF; bake it in before resizing.
            img = ImageOps.exif_transpose(img)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
            raise DecodeError(f"Failed to load image: {exc}") from exc
        if img.mode in ("RGBA", "LA", "P"):
            img = img.convert("RGBA")
            background = Image.new("RGB", img.size, (255, 255, 255))
            background.paste(img, mask=img.getchannel("A"))
            return background
        if img.mode != "RGB":
            img = img.convert("RGB")
        return img

    def compress(self, raw: bytes) -> bytes:
        img = self._decode(raw)
        width, height = img.size
        target = self.target_size(width, height)
        if target != (width, height):
            img = img.resize(target, Image.Resampling.LANCZOS)

        out = io.BytesIO()
        try:
            img.save(out, format="JPEG", quality=self.jpeg_quality, optimize=True)
        except (OSError, ValueError) as exc:
            raise EncodeError(f"Failed to compress image: {exc}") from exc
        data = out.getvalue()
        if not data:
            raise EncodeError("Failed to compress image: encoder produced no output")

        logger.debug(
            "Compressed image %dx%d -> %dx%d (%d -> %d bytes)",
            width, height, target[0], target[1], len(raw), len(data),
        )
        return data

    async def compress_async(self, raw: bytes) -> bytes:
        return await asyncio.to_thread(self.compress, raw)


def is_jpeg(payload: bytes) -> bool:
    return payload[:2] == JPEG_SOI


def guess_image_mime(payload: bytes) -> str:
    if is_jpeg(payload):
        return "image/jpeg"
    try:
        with Image.open(io.BytesIO(payload)) as img:
            return img.get_format_mimetype() or "application/octet-stream"
    except (UnidentifiedImageError, OSError, ValueError):
        return "application/octet-stream"
