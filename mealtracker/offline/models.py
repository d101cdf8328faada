# -*- coding: utf-8 -*-
"""Offline: request/response and state types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict

# Headers that describe the transfer rather than the content; never replayed from cache.
HOP_BY_HOP_HEADERS = {
    "connection",
    "content-encoding",
    "content-length",
    "keep-alive",
    "transfer-encoding",
    "upgrade",
}


class CacheState(str, Enum):
    absent = "absent"
    installing = "installing"
    active = "active"
    superseded = "superseded"


@dataclass
class AssetRequest:
    url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)

    def header(self, name: str) -> str:
        lname = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lname:
                return value
        return ""

    @property
    def is_navigation(self) -> bool:
        mode = self.header("sec-fetch-mode").strip().lower()
        if mode:
            return mode == "navigate"
        if self.method.upper() != "GET":
            return False
        accept = self.header("accept").lower()
        return accept.startswith("text/html")


@dataclass
class CachedResponse:
    status: int
    body: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)
    url: str = ""
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @classmethod
    def offline(cls, url: str = "") -> "CachedResponse":
        return cls(
            status=503,
            body=b"Offline",
            headers={"content-type": "text/plain; charset=utf-8"},
            url=url,
        )


def replayable_headers(headers: Dict[str, str]) -> Dict[str, str]:
    return {k.lower(): v for k, v in headers.items() if k.lower() not in HOP_BY_HOP_HEADERS}
