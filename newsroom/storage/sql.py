"""
SQLAlchemy implementation of the storage port.

One AsyncSession per transaction. Uniqueness of (rundown_id, position) is
enforced by the database; violations surface as ConflictError after rollback.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import func, select, text, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from newsroom.core.errors import ConflictError, NotFoundError, StorageUnavailableError
from newsroom.core.logging import get_logger
from newsroom.models.models import (
    RundownItemModel,
    RundownModel,
    ShowInstanceModel,
    ShowModel,
    StoryModel,
)
from newsroom.schemas.schemas import (
    NewItem,
    Rundown,
    RundownItem,
    Show,
    ShowInstance,
    ShowInstanceSummary,
    StoryCreate,
    StorySummary,
)
from newsroom.storage.base import RundownStore, StorageTransaction

logger = get_logger(__name__)

_UNAVAILABLE = (OperationalError, InterfaceError, OSError)


def _new_id() -> str:
    return str(uuid.uuid4())


def _to_rundown(row: RundownModel) -> Rundown:
    instance = row.show_instance
    summary = None
    if instance is not None:
        summary = ShowInstanceSummary(
            id=instance.id,
            show_id=instance.show_id,
            show_name=instance.show.name if instance.show is not None else None,
            air_date=instance.air_date,
            start_time=instance.start_time,
            end_time=instance.end_time,
        )
    return Rundown(
        id=row.id,
        show_instance_id=row.show_instance_id,
        status=row.status,
        total_duration=row.total_duration,
        locked_by=row.locked_by,
        locked_at=row.locked_at,
        show_instance=summary,
        items=[RundownItem.model_validate(item) for item in row.items],
    )


class SqlStorageTransaction(StorageTransaction):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # ── Rundowns ────────────────────────────────────────────
    async def get_rundown(self, rundown_id: str) -> Rundown | None:
        stmt = (
            select(RundownModel)
            .where(RundownModel.id == rundown_id)
            .options(
                selectinload(RundownModel.items).selectinload(RundownItemModel.story),
                selectinload(RundownModel.show_instance).selectinload(ShowInstanceModel.show),
            )
            .execution_options(populate_existing=True)
        )
        row = await self._session.scalar(stmt)
        return _to_rundown(row) if row is not None else None

    async def lock_rundown(self, rundown_id: str) -> None:
        # Row lock on the rundown; SQLite renders no FOR UPDATE and serialises writers itself
        await self._session.execute(
            select(RundownModel.id).where(RundownModel.id == rundown_id).with_for_update()
        )

    async def insert_rundown(self, show_instance_id: str) -> Rundown:
        row = RundownModel(id=_new_id(), show_instance_id=show_instance_id)
        self._session.add(row)
        await self._session.flush()
        return await self._require_rundown(row.id)

    async def update_rundown_fields(self, rundown_id: str, fields: Mapping[str, Any]) -> Rundown:
        row = await self._session.get(RundownModel, rundown_id)
        if row is None:
            raise NotFoundError("Rundown", rundown_id)
        for name, value in fields.items():
            setattr(row, name, value)
        await self._session.flush()
        return await self._require_rundown(rundown_id)

    async def update_rundown_total_duration(self, rundown_id: str, total: int) -> None:
        result = await self._session.execute(
            update(RundownModel).where(RundownModel.id == rundown_id).values(total_duration=total)
        )
        if result.rowcount == 0:
            raise NotFoundError("Rundown", rundown_id)

    async def _require_rundown(self, rundown_id: str) -> Rundown:
        rundown = await self.get_rundown(rundown_id)
        if rundown is None:
            raise NotFoundError("Rundown", rundown_id)
        return rundown

    # ── Rundown items ───────────────────────────────────────
    async def find_max_position(self, rundown_id: str) -> int | None:
        return await self._session.scalar(
            select(func.max(RundownItemModel.position)).where(RundownItemModel.rundown_id == rundown_id)
        )

    async def insert_item(self, item: NewItem) -> RundownItem:
        self._session.add(RundownItemModel(**item.model_dump()))
        await self._session.flush()
        return await self._require_item(item.id)

    async def get_item(self, item_id: str) -> RundownItem | None:
        row = await self._session.get(
            RundownItemModel,
            item_id,
            options=[selectinload(RundownItemModel.story)],
            populate_existing=True,
        )
        return RundownItem.model_validate(row) if row is not None else None

    async def update_item_fields(self, item_id: str, fields: Mapping[str, Any]) -> RundownItem:
        row = await self._session.get(RundownItemModel, item_id)
        if row is None:
            raise NotFoundError("RundownItem", item_id)
        for name, value in fields.items():
            setattr(row, name, value)
        await self._session.flush()
        return await self._require_item(item_id)

    async def delete_item(self, item_id: str) -> RundownItem:
        row = await self._session.get(
            RundownItemModel, item_id, options=[selectinload(RundownItemModel.story)]
        )
        if row is None:
            raise NotFoundError("RundownItem", item_id)
        deleted = RundownItem.model_validate(row)
        await self._session.delete(row)
        await self._session.flush()
        return deleted

    async def list_items(self, rundown_id: str) -> list[RundownItem]:
        rows = await self._session.scalars(
            select(RundownItemModel)
            .where(RundownItemModel.rundown_id == rundown_id)
            .options(selectinload(RundownItemModel.story))
            .order_by(RundownItemModel.position)
            .execution_options(populate_existing=True)
        )
        return [RundownItem.model_validate(row) for row in rows]

    async def batch_update_positions(self, positions: Sequence[tuple[str, int]]) -> None:
        # Park every row on a unique negative slot first so the unique
        # constraint never sees two rows on the same position mid-batch.
        for slot, (item_id, _) in enumerate(positions):
            result = await self._session.execute(
                update(RundownItemModel)
                .where(RundownItemModel.id == item_id)
                .values(position=-(slot + 1))
            )
            if result.rowcount == 0:
                raise NotFoundError("RundownItem", item_id)
        for item_id, position in positions:
            await self._session.execute(
                update(RundownItemModel).where(RundownItemModel.id == item_id).values(position=position)
            )

    async def _require_item(self, item_id: str) -> RundownItem:
        item = await self.get_item(item_id)
        if item is None:
            raise NotFoundError("RundownItem", item_id)
        return item

    # ── Stories ─────────────────────────────────────────────
    async def get_story(self, story_id: str) -> StorySummary | None:
        row = await self._session.get(StoryModel, story_id)
        return StorySummary.model_validate(row) if row is not None else None

    async def insert_story(self, story: StoryCreate) -> StorySummary:
        row = StoryModel(id=_new_id(), **story.model_dump())
        self._session.add(row)
        await self._session.flush()
        return StorySummary.model_validate(row)

    # ── Shows ───────────────────────────────────────────────
    async def insert_show(self, fields: Mapping[str, Any]) -> Show:
        row = ShowModel(id=_new_id(), **fields)
        self._session.add(row)
        await self._session.flush()
        return Show.model_validate(row)

    async def get_show(self, show_id: str) -> Show | None:
        row = await self._session.get(ShowModel, show_id)
        return Show.model_validate(row) if row is not None else None

    async def list_shows(self, station_id: str) -> list[Show]:
        rows = await self._session.scalars(
            select(ShowModel)
            .where(ShowModel.station_id == station_id, ShowModel.is_active.is_(True))
            .order_by(ShowModel.name)
        )
        return [Show.model_validate(row) for row in rows]

    async def update_show_fields(self, show_id: str, fields: Mapping[str, Any]) -> Show:
        row = await self._session.get(ShowModel, show_id)
        if row is None:
            raise NotFoundError("Show", show_id)
        for name, value in fields.items():
            setattr(row, name, value)
        await self._session.flush()
        return Show.model_validate(row)

    async def insert_show_instance(self, fields: Mapping[str, Any]) -> ShowInstance:
        row = ShowInstanceModel(id=_new_id(), **fields)
        self._session.add(row)
        await self._session.flush()
        return ShowInstance(
            id=row.id,
            show_id=row.show_id,
            air_date=row.air_date,
            start_time=row.start_time,
            end_time=row.end_time,
            status=row.status,
            notes=row.notes,
        )

    async def list_show_instances(self, show_id: str) -> list[ShowInstance]:
        rows = await self._session.scalars(
            select(ShowInstanceModel)
            .where(ShowInstanceModel.show_id == show_id)
            .options(selectinload(ShowInstanceModel.rundown))
            .order_by(ShowInstanceModel.air_date.desc(), ShowInstanceModel.start_time.desc())
        )
        return [ShowInstance.model_validate(row) for row in rows]


class SqlRundownStore(RundownStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StorageTransaction]:
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    yield SqlStorageTransaction(session)
            except IntegrityError as e:
                logger.warning("storage_conflict", error=str(e.orig))
                raise ConflictError(f"Concurrent modification rejected: {e.orig}") from e
            except _UNAVAILABLE as e:
                logger.error("storage_unavailable", error=str(e))
                raise StorageUnavailableError(f"Database unavailable: {e}") from e

    async def ping(self) -> bool:
        try:
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))
        except _UNAVAILABLE as e:
            logger.warning("database_ping_failed", error=str(e))
            return False
        return True

