"""
Storage port for rundowns, their items, and the shows that own them.

Every operation runs inside a transaction obtained from RundownStore.transaction():

    async with store.transaction() as tx:
        rundown = await tx.get_rundown(rundown_id)
        ...

The transaction commits when the block exits normally and rolls back on any
exception, so a multi-step mutation is either fully applied or not at all.
Implementations raise the typed errors from newsroom.core.errors:
ConflictError for uniqueness collisions and StorageUnavailableError for
transient backend failures.
"""

from __future__ import annotations

import abc
from collections.abc import Mapping, Sequence
from contextlib import AbstractAsyncContextManager
from typing import Any

from newsroom.schemas.schemas import (
    NewItem,
    Rundown,
    RundownItem,
    Show,
    ShowInstance,
    StoryCreate,
    StorySummary,
)


class StorageTransaction(abc.ABC):
    # ── Rundowns ────────────────────────────────────────────
    @abc.abstractmethod
    async def get_rundown(self, rundown_id: str) -> Rundown | None:
        """Rundown with its items (storage order is not guaranteed) or None."""

    @abc.abstractmethod
    async def lock_rundown(self, rundown_id: str) -> None:
        """
        Hold an exclusive lock on the rundown until the transaction ends.

        Every mutation of a rundown or its items takes this first, so two
        mutations of the same rundown never interleave. A missing rundown is
        not an error here; the caller's next read reports it.
        """

    @abc.abstractmethod
    async def insert_rundown(self, show_instance_id: str) -> Rundown: ...

    @abc.abstractmethod
    async def update_rundown_fields(self, rundown_id: str, fields: Mapping[str, Any]) -> Rundown: ...

    @abc.abstractmethod
    async def update_rundown_total_duration(self, rundown_id: str, total: int) -> None: ...

    # ── Rundown items ───────────────────────────────────────
    @abc.abstractmethod
    async def find_max_position(self, rundown_id: str) -> int | None: ...

    @abc.abstractmethod
    async def insert_item(self, item: NewItem) -> RundownItem:
        """Raises ConflictError if (rundown_id, position) is already taken."""

    @abc.abstractmethod
    async def get_item(self, item_id: str) -> RundownItem | None: ...

    @abc.abstractmethod
    async def update_item_fields(self, item_id: str, fields: Mapping[str, Any]) -> RundownItem: ...

    @abc.abstractmethod
    async def delete_item(self, item_id: str) -> RundownItem: ...

    @abc.abstractmethod
    async def list_items(self, rundown_id: str) -> list[RundownItem]: ...

    @abc.abstractmethod
    async def batch_update_positions(self, positions: Sequence[tuple[str, int]]) -> None:
        """Apply every (item_id, position) pair or none of them."""

    # ── Stories ─────────────────────────────────────────────
    @abc.abstractmethod
    async def get_story(self, story_id: str) -> StorySummary | None: ...

    @abc.abstractmethod
    async def insert_story(self, story: StoryCreate) -> StorySummary: ...

    # ── Shows ───────────────────────────────────────────────
    @abc.abstractmethod
    async def insert_show(self, fields: Mapping[str, Any]) -> Show: ...

    @abc.abstractmethod
    async def get_show(self, show_id: str) -> Show | None: ...

    @abc.abstractmethod
    async def list_shows(self, station_id: str) -> list[Show]:
        """Active shows of a station, ordered by name."""

    @abc.abstractmethod
    async def update_show_fields(self, show_id: str, fields: Mapping[str, Any]) -> Show: ...

    @abc.abstractmethod
    async def insert_show_instance(self, fields: Mapping[str, Any]) -> ShowInstance: ...

    @abc.abstractmethod
    async def list_show_instances(self, show_id: str) -> list[ShowInstance]:
        """Instances of a show, newest air date first, with rundown summaries."""


class RundownStore(abc.ABC):
    @abc.abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[StorageTransaction]: ...

    @abc.abstractmethod
    async def ping(self) -> bool:
        """True when the backend answers a trivial query."""
