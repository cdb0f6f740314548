"""
Show scheduling: shows, their airings, and the rundown each airing owns.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

from newsroom.core.config import get_settings
from newsroom.core.errors import NotFoundError, ValidationError
from newsroom.core.logging import get_logger
from newsroom.schemas.schemas import (
    RundownSummary,
    Show,
    ShowCreate,
    ShowInstance,
    ShowInstanceCreate,
    ShowUpdate,
    slugify,
)
from newsroom.services.rundown_service import RundownService, parse_payload
from newsroom.storage.base import RundownStore

logger = get_logger(__name__)


class ShowSchedulingService:
    def __init__(self, store: RundownStore, rundowns: RundownService) -> None:
        self._store = store
        self._rundowns = rundowns

    async def create_show(self, payload: ShowCreate | Mapping[str, Any]) -> Show:
        data = parse_payload(ShowCreate, payload)
        default_duration = data.default_duration
        if default_duration is None:
            default_duration = get_settings().default_show_duration

        async with self._store.transaction() as tx:
            show = await tx.insert_show(
                {
                    "station_id": data.station_id,
                    "name": data.name,
                    "slug": slugify(data.name),
                    "description": data.description,
                    "default_duration": default_duration,
                }
            )

        logger.info("show_created", show_id=show.id, station_id=show.station_id, slug=show.slug)
        return show

    async def list_shows(self, station_id: str) -> list[Show]:
        async with self._store.transaction() as tx:
            return await tx.list_shows(station_id)

    async def get_show(self, show_id: str) -> Show:
        async with self._store.transaction() as tx:
            show = await tx.get_show(show_id)
        if show is None:
            raise NotFoundError("Show", show_id)
        return show

    async def update_show(self, show_id: str, payload: ShowUpdate | Mapping[str, Any]) -> Show:
        changes = parse_payload(ShowUpdate, payload).model_dump(exclude_unset=True)
        for name in ("name", "default_duration"):
            if name in changes and changes[name] is None:
                raise ValidationError(f"{name} cannot be null")
        if "name" in changes:
            changes["slug"] = slugify(changes["name"])

        async with self._store.transaction() as tx:
            if await tx.get_show(show_id) is None:
                raise NotFoundError("Show", show_id)
            show = await tx.update_show_fields(show_id, changes)

        logger.info("show_updated", show_id=show_id, fields=sorted(changes))
        return show

    async def deactivate_show(self, show_id: str) -> Show:
        """Soft delete: the show disappears from listings, its airings stay."""
        async with self._store.transaction() as tx:
            if await tx.get_show(show_id) is None:
                raise NotFoundError("Show", show_id)
            show = await tx.update_show_fields(show_id, {"is_active": False})

        logger.info("show_deactivated", show_id=show_id)
        return show

    async def create_show_instance(
        self,
        show_id: str,
        air_date: date | str,
        start_time: datetime | str,
        end_time: datetime | str,
        notes: str | None = None,
    ) -> ShowInstance:
        """
        Schedule one airing of a show together with its empty DRAFT rundown.

        Both rows are written in the same transaction: if the rundown cannot
        be created the instance is rolled back too.
        """
        data = parse_payload(
            ShowInstanceCreate,
            {"air_date": air_date, "start_time": start_time, "end_time": end_time, "notes": notes},
        )
        if (data.start_time.tzinfo is None) != (data.end_time.tzinfo is None):
            raise ValidationError("start_time and end_time must both be timezone-aware or both naive")
        if data.end_time <= data.start_time:
            raise ValidationError("end_time must be after start_time")

        async with self._store.transaction() as tx:
            show = await tx.get_show(show_id)
            if show is None or not show.is_active:
                raise NotFoundError("Show", show_id)

            instance = await tx.insert_show_instance({"show_id": show_id, **data.model_dump()})
            rundown = await self._rundowns.create_empty_rundown(tx, instance.id)

        logger.info(
            "show_instance_created",
            show_id=show_id,
            instance_id=instance.id,
            rundown_id=rundown.id,
            air_date=data.air_date.isoformat(),
        )
        return instance.model_copy(
            update={
                "rundown": RundownSummary(
                    id=rundown.id, status=rundown.status, total_duration=rundown.total_duration
                )
            }
        )

    async def list_instances(self, show_id: str) -> list[ShowInstance]:
        async with self._store.transaction() as tx:
            if await tx.get_show(show_id) is None:
                raise NotFoundError("Show", show_id)
            return await tx.list_show_instances(show_id)
