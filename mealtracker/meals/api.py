# -*- coding: utf-8 -*-
"""Meals: API endpoints (record store + display handles)."""

from __future__ import annotations

import base64
import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import Response

from ..config import settings
from ..dates import today_str, week_dates
from ..errors import (
    ImageError,
    NotFoundError,
    ReadError,
    StoreOpenError,
    TooManyImagesError,
    WriteError,
)
from .codec import guess_image_mime
from .handles import HandleTable
from .models import (
    HandleCreateRequest,
    HandleListResponse,
    HandleOrigin,
    HandleReleaseResponse,
    HandleResponse,
    ImageItem,
    MealCreate,
    MealCreateRequest,
    MealDatesResponse,
    MealDeleteResponse,
    MealHistoryDay,
    MealHistoryResponse,
    MealListResponse,
    MealPatchRequest,
    MealResponse,
    MealUpdate,
    MealWeekResponse,
    PendingImagePatch,
    RawImage,
    RawImagePatch,
    StoredImage,
    StoredImagePatch,
)
from .storage import MealStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/meals", tags=["Meals"])
handles_router = APIRouter(prefix="/api/handles", tags=["Handles"])

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


def get_store(request: Request) -> MealStore:
    return request.app.state.meal_store


def get_handles(request: Request) -> HandleTable:
    return request.app.state.handles


@contextmanager
def _store_errors() -> Iterator[None]:
    try:
        yield
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (ImageError, TooManyImagesError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StoreOpenError as exc:
        logger.error("Meal store unavailable: %s", exc)
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except (WriteError, ReadError) as exc:
        logger.error("Meal store failure: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc


def _decode_image_or_400(image_base64: str, max_bytes: int) -> bytes:
    try:
        data = base64.b64decode(image_base64, validate=True)
    except Exception as exc:
        raise HTTPException(status_code=400, detail=f"Invalid base64 image: {exc}") from exc
    if len(data) > max_bytes:
        raise HTTPException(status_code=400, detail=f"Image too large: {len(data)} bytes > {max_bytes}")
    return data


def _max_upload_bytes() -> int:
    return int(settings.max_upload_mb) * 1024 * 1024


def _raw_image_bytes(item: RawImagePatch | PendingImagePatch, handles: HandleTable) -> bytes:
    if isinstance(item, RawImagePatch):
        return _decode_image_or_400(item.data_base64, max_bytes=_max_upload_bytes())
    try:
        return handles.resolve(item.handle)
    except NotFoundError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _check_date_range(start: str, end: str) -> None:
    if start > end:
        raise HTTPException(status_code=400, detail=f"start ({start}) must not be after end ({end})")


@router.post("", response_model=MealResponse, summary="Log a meal")
async def create_meal(
    request: MealCreateRequest,
    store: MealStore = Depends(get_store),
    handles: HandleTable = Depends(get_handles),
):
    images = [_raw_image_bytes(item, handles) for item in request.images]
    with _store_errors():
        record = await store.create(
            MealCreate(type=request.type, notes=request.notes, images=images, date=request.date)
        )
    return MealResponse.from_record(record)


@router.get("", response_model=MealListResponse, summary="Meals logged on one day")
async def list_meals_for_date(
    date: Optional[str] = Query(default=None, pattern=DATE_PATTERN, description="YYYY-MM-DD, defaults to today"),
    store: MealStore = Depends(get_store),
):
    with _store_errors():
        records = await store.get_by_date(date or today_str())
    return MealListResponse(count=len(records), meals=[MealResponse.from_record(r) for r in records])


@router.get("/range", response_model=MealListResponse, summary="Meals within a date range (inclusive)")
async def list_meals_in_range(
    start: str = Query(..., pattern=DATE_PATTERN),
    end: str = Query(..., pattern=DATE_PATTERN),
    store: MealStore = Depends(get_store),
):
    _check_date_range(start, end)
    with _store_errors():
        records = await store.get_range(start, end)
    return MealListResponse(count=len(records), meals=[MealResponse.from_record(r) for r in records])


@router.get("/all", response_model=MealListResponse, summary="Every logged meal, newest first")
async def list_all_meals(store: MealStore = Depends(get_store)):
    with _store_errors():
        records = await store.get_all()
    records.sort(key=lambda r: r.timestamp, reverse=True)
    return MealListResponse(count=len(records), meals=[MealResponse.from_record(r) for r in records])


@router.get("/history", response_model=MealHistoryResponse, summary="Full history grouped by day")
async def meal_history(store: MealStore = Depends(get_store)):
    with _store_errors():
        groups = await store.history()
    days = [
        MealHistoryDay(date=day, meals=[MealResponse.from_record(r) for r in records])
        for day, records in groups
    ]
    return MealHistoryResponse(count=sum(len(d.meals) for d in days), days=days)


@router.get("/week", response_model=MealWeekResponse, summary="Week view (Monday start) containing a date")
async def meal_week(
    date: Optional[str] = Query(default=None, pattern=DATE_PATTERN),
    store: MealStore = Depends(get_store),
):
    try:
        days = week_dates(date or today_str())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    start, end = days[0], days[-1]
    with _store_errors():
        records = await store.get_range(start, end)
        marked = await store.dates_with_records(start, end)
    return MealWeekResponse(
        start=start,
        end=end,
        days=days,
        dates_with_meals=sorted(marked),
        meals=[MealResponse.from_record(r) for r in records],
    )


@router.get("/dates", response_model=MealDatesResponse, summary="Days with at least one meal")
async def meal_dates(
    start: str = Query(..., pattern=DATE_PATTERN),
    end: str = Query(..., pattern=DATE_PATTERN),
    store: MealStore = Depends(get_store),
):
    _check_date_range(start, end)
    with _store_errors():
        dates = await store.dates_with_records(start, end)
    return MealDatesResponse(start=start, end=end, dates=sorted(dates))


@router.get("/{meal_id}", response_model=MealResponse, summary="Get one meal")
async def get_meal(meal_id: str, store: MealStore = Depends(get_store)):
    with _store_errors():
        record = await store.get(meal_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Meal not found")
    return MealResponse.from_record(record)


@router.patch("/{meal_id}", response_model=MealResponse, summary="Edit a meal")
async def update_meal(
    meal_id: str,
    request: MealPatchRequest,
    store: MealStore = Depends(get_store),
    handles: HandleTable = Depends(get_handles),
):
    images: Optional[List[ImageItem]] = None
    if request.images is not None:
        current = None
        if any(isinstance(item, StoredImagePatch) for item in request.images):
            with _store_errors():
                current = await store.get(meal_id)
            if current is None:
                raise HTTPException(status_code=404, detail="Meal not found")
        images = []
        for item in request.images:
            if isinstance(item, StoredImagePatch):
                if item.index >= len(current.images):
                    raise HTTPException(status_code=400, detail=f"No stored image at index {item.index}")
                images.append(StoredImage(data=current.images[item.index]))
            else:
                images.append(RawImage(data=_raw_image_bytes(item, handles)))

    with _store_errors():
        record = await store.update(
            MealUpdate(id=meal_id, type=request.type, notes=request.notes, images=images, date=request.date)
        )
    return MealResponse.from_record(record)


@router.delete("/{meal_id}", response_model=MealDeleteResponse, summary="Delete a meal")
async def delete_meal(meal_id: str, store: MealStore = Depends(get_store)):
    with _store_errors():
        deleted = await store.remove(meal_id)
    return MealDeleteResponse(id=meal_id, deleted=deleted)


@router.post("/{meal_id}/handles", response_model=HandleListResponse, summary="Create display handles for a meal's images")
async def create_meal_handles(
    meal_id: str,
    store: MealStore = Depends(get_store),
    handles: HandleTable = Depends(get_handles),
):
    with _store_errors():
        record = await store.get(meal_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Meal not found")
    items = []
    for payload in record.images:
        token = handles.acquire(payload, origin=HandleOrigin.persisted, owner=meal_id)
        items.append(HandleResponse(handle=token, origin=HandleOrigin.persisted, size_bytes=len(payload), owner=meal_id))
    return HandleListResponse(meal_id=meal_id, handles=items)


# ---- handles ----


@handles_router.post("", response_model=HandleResponse, summary="Hold a freshly selected image for preview")
def create_pending_handle(request: HandleCreateRequest, handles: HandleTable = Depends(get_handles)):
    data = _decode_image_or_400(request.data_base64, max_bytes=_max_upload_bytes())
    token = handles.acquire(data, origin=HandleOrigin.pending, owner=request.owner)
    return HandleResponse(handle=token, origin=HandleOrigin.pending, size_bytes=len(data), owner=request.owner)


@handles_router.get("/{token}", summary="Image bytes behind a handle")
def read_handle(token: str, handles: HandleTable = Depends(get_handles)):
    entry = handles.get(token)
    if entry is None:
        raise HTTPException(status_code=404, detail="Handle not found or released")
    return Response(
        content=entry.payload,
        media_type=guess_image_mime(entry.payload),
        headers={"Cache-Control": "no-store"},
    )


@handles_router.delete("/{token}", response_model=HandleReleaseResponse, summary="Release a handle")
def release_handle(token: str, handles: HandleTable = Depends(get_handles)):
    return HandleReleaseResponse(released=1 if handles.release(token) else 0)


@handles_router.delete("", response_model=HandleReleaseResponse, summary="Release every handle of an owner")
def release_owner_handles(
    owner: str = Query(..., min_length=1),
    handles: HandleTable = Depends(get_handles),
):
    return HandleReleaseResponse(released=handles.release_owner(owner))
