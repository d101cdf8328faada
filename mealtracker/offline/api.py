# -*- coding: utf-8 -*-
"""Offline: serve the application shell through the shell cache."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response

from .models import AssetRequest
from .worker import OfflineCache

router = APIRouter(tags=["Shell"])


def get_shell_cache(request: Request) -> OfflineCache:
    shell = getattr(request.app.state, "shell_cache", None)
    if shell is None:
        raise HTTPException(status_code=404, detail="Shell cache disabled")
    return shell


@router.get("/{path:path}", include_in_schema=False)
async def serve_shell(path: str, request: Request, shell: OfflineCache = Depends(get_shell_cache)):
    if path == "api" or path.startswith("api/"):
        raise HTTPException(status_code=404, detail="Not Found")
    url = f"./{path}"
    if request.url.query:
        url = f"{url}?{request.url.query}"
    asset = AssetRequest(url=url, method=request.method, headers=dict(request.headers))
    resp = await shell.handle(asset)
    headers = dict(resp.headers)
    for name in ("content-length", "content-encoding", "transfer-encoding", "connection"):
        headers.pop(name, None)
    headers["x-shell-cache"] = "hit" if resp.from_cache else "miss"
    return Response(content=resp.body, status_code=resp.status, headers=headers)
