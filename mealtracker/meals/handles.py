# -*- coding: utf-8 -*-
"""Meals: transient display handles.

A handle is an opaque token that lets the UI fetch an image payload without
the payload being copied into every response. Handles live only in this
process and must be released when the image is no longer shown.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional
from uuid import uuid4

from ..errors import NotFoundError
from .models import HandleOrigin

logger = logging.getLogger(__name__)

HANDLE_PREFIX = "blob:"


@dataclass
class HandleEntry:
    token: str
    payload: bytes
    origin: HandleOrigin
    owner: Optional[str] = None

    @property
    def size_bytes(self) -> int:
        return len(self.payload)


class HandleTable:
    """Arena of live handles keyed by token."""

    def __init__(self) -> None:
        self._entries: Dict[str, HandleEntry] = {}
        self._lock = threading.Lock()

    def acquire(
        self,
        payload: bytes,
        *,
        origin: HandleOrigin = HandleOrigin.persisted,
        owner: Optional[str] = None,
    ) -> str:
        if not isinstance(payload, (bytes, bytearray, memoryview)):
            raise TypeError(f"payload must be bytes, got {type(payload).__name__}")
        token = f"{HANDLE_PREFIX}{uuid4().hex}"
        entry = HandleEntry(token=token, payload=bytes(payload), origin=HandleOrigin(origin), owner=owner)
        with self._lock:
            self._entries[token] = entry
        return token

    to_handle = acquire

    def get(self, token: str) -> Optional[HandleEntry]:
        with self._lock:
            return self._entries.get(token)

    def resolve(self, token: str) -> bytes:
        entry = self.get(token)
        if entry is None:
            raise NotFoundError(f"Unknown or released handle: {token}")
        return entry.payload

    def release(self, token: str) -> bool:
        """Free a handle. Releasing twice (or an unknown token) is a no-op."""
        with self._lock:
            return self._entries.pop(token, None) is not None

    def release_owner(self, owner: str) -> int:
        """Release every handle held by an edit buffer, e.g. when the edit is cancelled."""
        with self._lock:
            tokens = [t for t, e in self._entries.items() if e.owner == owner]
            for token in tokens:
                del self._entries[token]
        if tokens:
            logger.info("Released %d handles for owner %s", len(tokens), owner)
        return len(tokens)

    def release_all(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        return count

    @property
    def live_count(self) -> int:
        with self._lock:
            return len(self._entries)

    def live_handles(self, origin: Optional[HandleOrigin] = None) -> List[HandleEntry]:
        with self._lock:
            entries = list(self._entries.values())
        if origin is None:
            return entries
        return [e for e in entries if e.origin == origin]

    def __contains__(self, token: object) -> bool:
        with self._lock:
            return token in self._entries

    def __len__(self) -> int:
        return self.live_count
