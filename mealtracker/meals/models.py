# -*- coding: utf-8 -*-
"""Meals: Pydantic models."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import AfterValidator, BaseModel, Field

from ..dates import is_valid_date


class MealType(str, Enum):
    breakfast = "breakfast"
    lunch = "lunch"
    dinner = "dinner"
    snack = "snack"


def _check_date(value: str) -> str:
    value = value.strip()
    if not is_valid_date(value):
        raise ValueError(f"date must be a calendar date in YYYY-MM-DD form, got {value!r}")
    return value


DateStr = Annotated[str, AfterValidator(_check_date)]


class MealRecord(BaseModel):
    """The persisted meal entry. ``images`` hold compressed JPEG payloads in display order."""

    id: str
    type: MealType = MealType.snack
    notes: str = ""
    images: List[bytes] = Field(default_factory=list)
    timestamp: int = Field(..., description="Creation instant, ms since epoch")
    date: DateStr = Field(..., description="YYYY-MM-DD")


class RawImage(BaseModel):
    """A freshly selected image that still has to go through the codec."""

    kind: Literal["raw"] = "raw"
    data: bytes


class StoredImage(BaseModel):
    """A payload previously returned by the store; persisted byte-for-byte."""

    kind: Literal["stored"] = "stored"
    data: bytes


ImageItem = Annotated[Union[RawImage, StoredImage], Field(discriminator="kind")]


class MealCreate(BaseModel):
    type: Optional[MealType] = None
    notes: Optional[str] = None
    images: List[bytes] = Field(default_factory=list, description="Raw image files")
    date: Optional[DateStr] = Field(None, description="YYYY-MM-DD, defaults to today")


class MealUpdate(BaseModel):
    """Partial update. ``None`` means "keep the stored value"."""

    id: str = Field(..., min_length=1)
    type: Optional[MealType] = None
    notes: Optional[str] = None
    images: Optional[List[ImageItem]] = None
    date: Optional[DateStr] = None


# ---- HTTP request/response models ----


class RawImagePatch(BaseModel):
    kind: Literal["raw"] = "raw"
    data_base64: str = Field(..., min_length=4, description="Raw base64 without data-url prefix")


class PendingImagePatch(BaseModel):
    kind: Literal["handle"] = "handle"
    handle: str = Field(..., description="Pending handle created via POST /api/handles")


class StoredImagePatch(BaseModel):
    kind: Literal["stored"] = "stored"
    index: int = Field(..., ge=0, description="Position of the image in the current record")


NewImagePatch = Annotated[Union[RawImagePatch, PendingImagePatch], Field(discriminator="kind")]
ImagePatch = Annotated[Union[RawImagePatch, PendingImagePatch, StoredImagePatch], Field(discriminator="kind")]


class MealCreateRequest(BaseModel):
    type: Optional[MealType] = None
    notes: Optional[str] = Field(None, max_length=2000)
    date: Optional[DateStr] = Field(None, description="YYYY-MM-DD")
    images: List[NewImagePatch] = Field(default_factory=list)


class MealPatchRequest(BaseModel):
    type: Optional[MealType] = None
    notes: Optional[str] = Field(None, max_length=2000)
    date: Optional[DateStr] = None
    images: Optional[List[ImagePatch]] = None


class MealImageInfo(BaseModel):
    index: int
    size_bytes: int


class MealResponse(BaseModel):
    id: str
    type: MealType
    notes: str
    timestamp: int
    date: str
    image_count: int = 0
    images: List[MealImageInfo] = []

    @classmethod
    def from_record(cls, record: MealRecord) -> "MealResponse":
        return cls(
            id=record.id,
            type=record.type,
            notes=record.notes,
            timestamp=record.timestamp,
            date=record.date,
            image_count=len(record.images),
            images=[MealImageInfo(index=i, size_bytes=len(data)) for i, data in enumerate(record.images)],
        )


class MealListResponse(BaseModel):
    count: int
    meals: List[MealResponse]


class MealDatesResponse(BaseModel):
    start: str
    end: str
    dates: List[str]


class MealWeekResponse(BaseModel):
    start: str
    end: str
    days: List[str]
    dates_with_meals: List[str]
    meals: List[MealResponse]


class MealHistoryDay(BaseModel):
    date: str
    meals: List[MealResponse]


class MealHistoryResponse(BaseModel):
    count: int
    days: List[MealHistoryDay]


class MealDeleteResponse(BaseModel):
    id: str
    deleted: bool


class HandleOrigin(str, Enum):
    pending = "pending"  # selected in an edit buffer, not saved yet
    persisted = "persisted"  # loaded from the record store for display


class HandleCreateRequest(BaseModel):
    owner: str = Field(..., min_length=1, description="Edit buffer that owns the pending image")
    data_base64: str = Field(..., min_length=4)


class HandleResponse(BaseModel):
    handle: str
    origin: HandleOrigin
    size_bytes: int
    owner: Optional[str] = None


class HandleListResponse(BaseModel):
    meal_id: str
    handles: List[HandleResponse]


class HandleReleaseResponse(BaseModel):
    released: int
