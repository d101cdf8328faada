# -*- coding: utf-8 -*-
"""Offline: versioned shell cache with network-first / cache-first policies.

Lifecycle of one version tag::

    absent -> installing -> active -> superseded

``install`` precaches the shell (all or nothing), ``activate`` makes the
version serve requests right away and deletes every cache with another name.
Live fetch failures are normal when offline: they become cache hits or a
synthetic 503, never exceptions.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional
from urllib.parse import urldefrag, urljoin

import httpx

from ..config import settings
from ..errors import CacheInstallError
from .cache import CacheStorage
from .models import AssetRequest, CachedResponse, CacheState

logger = logging.getLogger(__name__)

# Request headers forwarded to the shell origin.
_FORWARD_HEADERS = ("accept", "accept-language", "user-agent", "if-none-match", "if-modified-since")

SHELL_FALLBACKS = ("./index.html", "./")


class OfflineCache:
    def __init__(
        self,
        storage: CacheStorage,
        *,
        version: Optional[str] = None,
        origin: Optional[str] = None,
        precache_urls: Optional[List[str]] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.storage = storage
        self.version = version or settings.cache_version
        self.origin = (origin or settings.shell_origin).rstrip("/") + "/"
        self.precache_urls = list(precache_urls if precache_urls is not None else settings.precache_urls)
        self.timeout = float(timeout if timeout is not None else settings.shell_timeout)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._states: Dict[str, CacheState] = {}
        # Cache answering requests; an older version while an upgrade has not installed.
        self.serving_version: Optional[str] = None

    # ---- state ----

    def state_of(self, version: str) -> CacheState:
        if version in self._states:
            return self._states[version]
        if not self.storage.has(version):
            return CacheState.absent
        # Stored but not activated here: our own pending install, or a leftover.
        return CacheState.installing if version == self.version else CacheState.superseded

    @property
    def state(self) -> CacheState:
        return self.state_of(self.version)

    @property
    def is_active(self) -> bool:
        return self.serving_version is not None

    def resolve_url(self, url: str) -> str:
        absolute, _fragment = urldefrag(urljoin(self.origin, url))
        return absolute

    # ---- network ----

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _fetch(self, request: AssetRequest) -> CachedResponse:
        url = self.resolve_url(request.url)
        headers = {}
        for name in _FORWARD_HEADERS:
            value = request.header(name)
            if value:
                headers[name] = value
        resp = await self._http().request(request.method.upper(), url, headers=headers)
        return CachedResponse(
            status=resp.status_code,
            body=resp.content,
            headers=dict(resp.headers),
            url=url,
        )

    # ---- lifecycle ----

    async def install(self) -> None:
        """Precache every shell asset for this version; nothing is stored unless all succeed."""
        version = self.version
        self._states[version] = CacheState.installing
        logger.info("Installing shell cache %s (%d assets)", version, len(self.precache_urls))
        entries = []
        try:
            for url in self.precache_urls:
                resp = await self._fetch(AssetRequest(url=url))
                if not resp.ok:
                    raise CacheInstallError(f"Precache of {resp.url} failed with HTTP {resp.status}")
                entries.append((resp.url, resp))
        except httpx.HTTPError as exc:
            self._states[version] = CacheState.absent
            raise CacheInstallError(f"Precache of {version} failed: {exc}") from exc
        except CacheInstallError:
            self._states[version] = CacheState.absent
            raise
        self.storage.add_all(version, entries)
        logger.info("Shell cache %s installed", version)

    async def activate(self) -> List[str]:
        """Serve from this version now and delete every other cache. Returns the deleted names."""
        version = self.version
        if self.state_of(version) == CacheState.absent:
            raise CacheInstallError(f"Cannot activate {version}: not installed")
        deleted = []
        for name in self.storage.keys():
            if name != version:
                self.storage.delete(name)
                self._states[name] = CacheState.superseded
                deleted.append(name)
        for name, state in list(self._states.items()):
            if name != version and state == CacheState.active:
                self._states[name] = CacheState.superseded
        self._states[version] = CacheState.active
        self.serving_version = version
        if deleted:
            logger.info("Deleted superseded shell caches: %s", ", ".join(deleted))
        logger.info("Shell cache %s active", version)
        return deleted

    async def start(self) -> List[str]:
        """Install if needed, then activate. Returns the names of deleted caches.

        If the install fails, the newest cache already on disk keeps serving
        requests until a later start succeeds, and the error is re-raised.
        """
        if not self.storage.has(self.version):
            try:
                await self.install()
            except CacheInstallError:
                self._serve_previous()
                raise
        return await self.activate()

    def _serve_previous(self) -> None:
        previous = [name for name in self.storage.keys() if name != self.version]
        if not previous:
            return
        name = previous[-1]
        self._states[name] = CacheState.active
        self.serving_version = name
        logger.warning("Shell cache %s not installed, still serving %s", self.version, name)

    # ---- request handling ----

    async def handle(self, request: AssetRequest) -> CachedResponse:
        if request.method.upper() != "GET":
            return await self._network_only(request)
        if request.is_navigation:
            return await self._network_first(request)
        return await self._cache_first(request)

    def _cache_put(self, url: str, response: CachedResponse) -> None:
        if self.serving_version is not None and response.ok:
            self.storage.put(self.serving_version, url, response)

    def _cache_match(self, url: str) -> Optional[CachedResponse]:
        if self.serving_version is None:
            return None
        return self.storage.match(url, self.serving_version)

    async def _network_only(self, request: AssetRequest) -> CachedResponse:
        try:
            return await self._fetch(request)
        except httpx.HTTPError as exc:
            logger.warning("Network unavailable for %s %s: %s", request.method, request.url, exc)
            return CachedResponse.offline(self.resolve_url(request.url))

    async def _network_first(self, request: AssetRequest) -> CachedResponse:
        url = self.resolve_url(request.url)
        try:
            resp = await self._fetch(request)
        except httpx.HTTPError as exc:
            logger.warning("Navigation to %s failed, serving cached shell: %s", url, exc)
        else:
            self._cache_put(url, resp)
            return resp

        for candidate in (url,) + tuple(self.resolve_url(u) for u in SHELL_FALLBACKS):
            cached = self._cache_match(candidate)
            if cached is not None:
                return cached
        return CachedResponse.offline(url)

    async def _cache_first(self, request: AssetRequest) -> CachedResponse:
        url = self.resolve_url(request.url)
        cached = self._cache_match(url)
        if cached is not None:
            return cached
        try:
            resp = await self._fetch(request)
        except httpx.HTTPError as exc:
            logger.warning("Asset %s unavailable offline: %s", url, exc)
            return CachedResponse.offline(url)
        self._cache_put(url, resp)
        return resp
