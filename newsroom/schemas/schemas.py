"""
Pydantic v2 schemas: domain records returned by the storage layer and the
request/response bodies of the HTTP API.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from newsroom.models.models import ItemStatus, RundownStatus, SegmentType


def format_duration(seconds: int) -> str:
    """Render seconds as M:SS, the way the rundown editor shows durations."""
    minutes, secs = divmod(seconds, 60)
    return f"{minutes}:{secs:02d}"


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower())


class _Record(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ── Stories (reference only) ────────────────────────────────
class StorySummary(_Record):
    id: str
    title: str
    word_count: int = 0


class StoryCreate(BaseModel):
    station_id: str
    title: str = Field(min_length=1, max_length=500)
    word_count: int = Field(default=0, ge=0)
    status: str = "DRAFT"


# ── Rundown items ───────────────────────────────────────────
class SegmentSpec(BaseModel):
    """Fields accepted when appending a segment to a rundown."""

    model_config = ConfigDict(extra="forbid")

    type: SegmentType
    title: str = Field(min_length=1, max_length=500)
    planned_duration: int = Field(ge=0)
    story_id: str | None = None
    script: str | None = None
    notes: str | None = None


class ItemUpdate(BaseModel):
    """Editable item fields. Position and type are deliberately absent."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, min_length=1, max_length=500)
    planned_duration: int | None = Field(default=None, ge=0)
    actual_duration: int | None = Field(default=None, ge=0)
    script: str | None = None
    notes: str | None = None
    status: ItemStatus | None = None

    @model_validator(mode="after")
    def _no_null_required_fields(self) -> ItemUpdate:
        for name in ("title", "planned_duration", "status"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class NewItem(BaseModel):
    """Storage-level insert payload: a validated spec plus its assigned position."""

    id: str
    rundown_id: str
    position: int = Field(ge=0)
    type: SegmentType
    title: str
    planned_duration: int = Field(ge=0)
    story_id: str | None = None
    script: str | None = None
    notes: str | None = None
    status: ItemStatus = ItemStatus.PENDING


class RundownItem(_Record):
    id: str
    rundown_id: str
    type: SegmentType
    title: str
    position: int
    planned_duration: int
    actual_duration: int | None = None
    script: str | None = None
    notes: str | None = None
    status: ItemStatus = ItemStatus.PENDING
    story_id: str | None = None
    story: StorySummary | None = None


class ReorderRequest(BaseModel):
    item_ids: list[str]


# ── Rundowns ────────────────────────────────────────────────
class ShowInstanceSummary(_Record):
    id: str
    show_id: str
    show_name: str | None = None
    air_date: date
    start_time: datetime
    end_time: datetime


class RundownSummary(_Record):
    id: str
    status: RundownStatus
    total_duration: int = 0


class Rundown(_Record):
    id: str
    show_instance_id: str
    status: RundownStatus = RundownStatus.DRAFT
    total_duration: int = 0
    locked_by: str | None = None
    locked_at: datetime | None = None
    show_instance: ShowInstanceSummary | None = None
    items: list[RundownItem] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_duration_display(self) -> str:
        return format_duration(self.total_duration)


class RundownStatusUpdate(BaseModel):
    status: RundownStatus


# ── Shows ───────────────────────────────────────────────────
class ShowCreate(BaseModel):
    station_id: str = Field(min_length=1)
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    default_duration: int | None = Field(default=None, ge=0)


class ShowUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    default_duration: int | None = Field(default=None, ge=0)


class Show(_Record):
    id: str
    station_id: str
    name: str
    slug: str
    description: str | None = None
    default_duration: int
    is_active: bool = True


class ShowInstanceCreate(BaseModel):
    air_date: date
    start_time: datetime
    end_time: datetime
    notes: str | None = None


class ShowInstance(_Record):
    id: str
    show_id: str
    air_date: date
    start_time: datetime
    end_time: datetime
    status: str = "SCHEDULED"
    notes: str | None = None
    rundown: RundownSummary | None = None


# ── Health check ────────────────────────────────────────────
class HealthResponse(BaseModel):
    status: Literal["healthy", "degraded"] = "healthy"
    version: str = "0.1.0"
    environment: str
    database: Literal["connected", "unreachable"] = "connected"
