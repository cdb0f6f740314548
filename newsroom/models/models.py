"""
SQLAlchemy 2.0 ORM models.

Core entities: Show, ShowInstance, Rundown, RundownItem, plus the Story rows
that rundown items may reference. Uses mapped_column (SQLAlchemy 2.0 style).
"""

from __future__ import annotations

import enum
from datetime import UTC, date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ── Enums ───────────────────────────────────────────────────
class RundownStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    LIVE = "LIVE"
    COMPLETE = "COMPLETE"


class ItemStatus(str, enum.Enum):
    PENDING = "PENDING"
    READY = "READY"
    LIVE = "LIVE"
    COMPLETED = "COMPLETED"


class SegmentType(str, enum.Enum):
    STORY = "STORY"
    BREAK = "BREAK"
    LIVE = "LIVE"
    INTERVIEW = "INTERVIEW"
    PROMO = "PROMO"
    MUSIC = "MUSIC"
    AD = "AD"


# ── Models ──────────────────────────────────────────────────
class ShowModel(Base):
    __tablename__ = "shows"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    station_id: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str] = mapped_column(String(200))
    slug: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    default_duration: Mapped[int] = mapped_column(Integer, default=3600)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    instances: Mapped[list[ShowInstanceModel]] = relationship(
        back_populates="show", cascade="all, delete-orphan"
    )


class ShowInstanceModel(Base):
    __tablename__ = "show_instances"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    show_id: Mapped[str] = mapped_column(ForeignKey("shows.id", ondelete="CASCADE"), index=True)
    air_date: Mapped[date] = mapped_column(Date)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    status: Mapped[str] = mapped_column(String(20), default="SCHEDULED")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    show: Mapped[ShowModel] = relationship(back_populates="instances")
    rundown: Mapped[RundownModel | None] = relationship(
        back_populates="show_instance", cascade="all, delete-orphan", uselist=False
    )


class StoryModel(Base):
    __tablename__ = "stories"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    station_id: Mapped[str] = mapped_column(String(64), index=True)
    title: Mapped[str] = mapped_column(String(500))
    word_count: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(20), default="DRAFT")


class RundownModel(Base):
    __tablename__ = "rundowns"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    show_instance_id: Mapped[str] = mapped_column(
        ForeignKey("show_instances.id", ondelete="CASCADE"), unique=True
    )
    status: Mapped[RundownStatus] = mapped_column(Enum(RundownStatus), default=RundownStatus.DRAFT)
    total_duration: Mapped[int] = mapped_column(Integer, default=0)
    locked_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    show_instance: Mapped[ShowInstanceModel] = relationship(back_populates="rundown")
    items: Mapped[list[RundownItemModel]] = relationship(
        back_populates="rundown",
        cascade="all, delete-orphan",
        order_by="RundownItemModel.position",
    )


class RundownItemModel(Base):
    __tablename__ = "rundown_items"
    # Closes the read-max-then-insert race: a duplicate position fails the insert
    __table_args__ = (UniqueConstraint("rundown_id", "position", name="uq_rundown_items_position"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    rundown_id: Mapped[str] = mapped_column(
        ForeignKey("rundowns.id", ondelete="CASCADE"), index=True
    )
    story_id: Mapped[str | None] = mapped_column(
        ForeignKey("stories.id", ondelete="SET NULL"), nullable=True
    )
    type: Mapped[SegmentType] = mapped_column(Enum(SegmentType))
    title: Mapped[str] = mapped_column(String(500))
    position: Mapped[int] = mapped_column(Integer)
    planned_duration: Mapped[int] = mapped_column(Integer, default=0)
    actual_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    script: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[ItemStatus] = mapped_column(Enum(ItemStatus), default=ItemStatus.PENDING)

    rundown: Mapped[RundownModel] = relationship(back_populates="items")
    story: Mapped[StoryModel | None] = relationship()
