"""
In-process implementation of the storage port.

Used by the test-suite and for running the API without a database. It keeps
the same contract as the SQL store: a unique (rundown_id, position) per item,
all-or-nothing transactions, typed errors. Writes are visible to concurrent
transactions as soon as they happen. On failure an undo log puts back only
the fields this transaction wrote, so a concurrent transaction's writes to
other fields of the same row survive the rollback. lock_rundown takes a
per-rundown asyncio.Lock that is held until the transaction ends.

Fault hooks let tests reproduce races and crashes deterministically:

- ``after_read_max``: awaited right after find_max_position reads, so a test
  can pause an add-item between reading the maximum and inserting.
- ``crash_batch_after``: batch_update_positions raises StorageUnavailableError
  after that many row writes.
- ``unavailable``: every new transaction fails with StorageUnavailableError.
"""

from __future__ import annotations

import asyncio
import uuid
from collections import defaultdict
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Any

from newsroom.core.errors import ConflictError, NotFoundError, StorageUnavailableError
from newsroom.core.logging import get_logger
from newsroom.models.models import RundownStatus
from newsroom.schemas.schemas import (
    NewItem,
    Rundown,
    RundownItem,
    RundownSummary,
    Show,
    ShowInstance,
    ShowInstanceSummary,
    StoryCreate,
    StorySummary,
)
from newsroom.storage.base import RundownStore, StorageTransaction

logger = get_logger(__name__)

Row = dict[str, Any]


class MemoryStorageTransaction(StorageTransaction):
    def __init__(self, store: MemoryRundownStore) -> None:
        self._store = store
        self._undo: list[Callable[[], None]] = []
        self._held: list[asyncio.Lock] = []

    def rollback(self) -> None:
        for undo in reversed(self._undo):
            undo()
        self._undo.clear()

    def release_locks(self) -> None:
        for lock in reversed(self._held):
            lock.release()
        self._held.clear()

    def _insert(self, table: dict[str, Row], key: str, row: Row) -> Row:
        table[key] = row
        self._undo.append(lambda: table.pop(key, None))
        return row

    def _update(self, table: dict[str, Row], key: str, fields: Mapping[str, Any]) -> Row:
        row = table[key]
        previous = {name: row.get(name) for name in fields}

        def undo() -> None:
            current = table.get(key)
            if current is not None:
                current.update(previous)

        row.update(fields)
        self._undo.append(undo)
        return row

    def _pop(self, table: dict[str, Row], key: str) -> Row:
        row = table.pop(key)
        self._undo.append(lambda: table.setdefault(key, row))
        return row

    # ── Row → record ────────────────────────────────────────
    def _item(self, row: Row) -> RundownItem:
        story = None
        if row.get("story_id") and row["story_id"] in self._store.stories:
            story = StorySummary.model_validate(self._store.stories[row["story_id"]])
        return RundownItem.model_validate({**row, "story": story})

    def _rundown(self, row: Row) -> Rundown:
        instance = self._store.show_instances.get(row["show_instance_id"])
        summary = None
        if instance is not None:
            show = self._store.shows.get(instance["show_id"])
            summary = ShowInstanceSummary.model_validate(
                {**instance, "show_name": show["name"] if show else None}
            )
        items = [self._item(i) for i in self._store.items.values() if i["rundown_id"] == row["id"]]
        return Rundown.model_validate({**row, "show_instance": summary, "items": items})

    # ── Rundowns ────────────────────────────────────────────
    async def lock_rundown(self, rundown_id: str) -> None:
        lock = self._store.rundown_locks[rundown_id]
        if lock in self._held:
            return
        await lock.acquire()
        self._held.append(lock)

    async def get_rundown(self, rundown_id: str) -> Rundown | None:
        row = self._store.rundowns.get(rundown_id)
        return self._rundown(row) if row is not None else None

    async def insert_rundown(self, show_instance_id: str) -> Rundown:
        if show_instance_id not in self._store.show_instances:
            raise ConflictError(f"Show instance does not exist: {show_instance_id}")
        if any(r["show_instance_id"] == show_instance_id for r in self._store.rundowns.values()):
            raise ConflictError(f"Show instance already has a rundown: {show_instance_id}")
        row = {
            "id": str(uuid.uuid4()),
            "show_instance_id": show_instance_id,
            "status": RundownStatus.DRAFT,
            "total_duration": 0,
            "locked_by": None,
            "locked_at": None,
        }
        self._insert(self._store.rundowns, row["id"], row)
        return self._rundown(row)

    async def update_rundown_fields(self, rundown_id: str, fields: Mapping[str, Any]) -> Rundown:
        row = self._store.rundowns.get(rundown_id)
        if row is None:
            raise NotFoundError("Rundown", rundown_id)
        return self._rundown(self._update(self._store.rundowns, rundown_id, fields))

    async def update_rundown_total_duration(self, rundown_id: str, total: int) -> None:
        await self.update_rundown_fields(rundown_id, {"total_duration": total})

    # ── Rundown items ───────────────────────────────────────
    async def find_max_position(self, rundown_id: str) -> int | None:
        positions = [i["position"] for i in self._store.items.values() if i["rundown_id"] == rundown_id]
        highest = max(positions) if positions else None
        if self._store.after_read_max is not None:
            await self._store.after_read_max()
        return highest

    async def insert_item(self, item: NewItem) -> RundownItem:
        if item.rundown_id not in self._store.rundowns:
            raise ConflictError(f"Rundown does not exist: {item.rundown_id}")
        if self._position_taken(item.rundown_id, item.position):
            raise ConflictError(
                f"Position {item.position} already taken in rundown {item.rundown_id}"
            )
        row = item.model_dump()
        row["actual_duration"] = None
        self._insert(self._store.items, item.id, row)
        return self._item(row)

    async def get_item(self, item_id: str) -> RundownItem | None:
        row = self._store.items.get(item_id)
        return self._item(row) if row is not None else None

    async def update_item_fields(self, item_id: str, fields: Mapping[str, Any]) -> RundownItem:
        row = self._store.items.get(item_id)
        if row is None:
            raise NotFoundError("RundownItem", item_id)
        return self._item(self._update(self._store.items, item_id, fields))

    async def delete_item(self, item_id: str) -> RundownItem:
        if item_id not in self._store.items:
            raise NotFoundError("RundownItem", item_id)
        return self._item(self._pop(self._store.items, item_id))

    async def list_items(self, rundown_id: str) -> list[RundownItem]:
        return [self._item(i) for i in self._store.items.values() if i["rundown_id"] == rundown_id]

    async def batch_update_positions(self, positions: Sequence[tuple[str, int]]) -> None:
        touched: set[str] = set()
        for written, (item_id, position) in enumerate(positions):
            if self._store.crash_batch_after is not None and written >= self._store.crash_batch_after:
                raise StorageUnavailableError("Simulated crash during position batch")
            row = self._store.items.get(item_id)
            if row is None:
                raise NotFoundError("RundownItem", item_id)
            self._update(self._store.items, item_id, {"position": position})
            touched.add(row["rundown_id"])
        # Uniqueness is checked once the whole batch has landed
        for rundown_id in touched:
            seen = [i["position"] for i in self._store.items.values() if i["rundown_id"] == rundown_id]
            if len(seen) != len(set(seen)):
                raise ConflictError(f"Duplicate positions in rundown {rundown_id}")

    def _position_taken(self, rundown_id: str, position: int) -> bool:
        return any(
            i["rundown_id"] == rundown_id and i["position"] == position
            for i in self._store.items.values()
        )

    # ── Stories ─────────────────────────────────────────────
    async def get_story(self, story_id: str) -> StorySummary | None:
        row = self._store.stories.get(story_id)
        return StorySummary.model_validate(row) if row is not None else None

    async def insert_story(self, story: StoryCreate) -> StorySummary:
        row = {"id": str(uuid.uuid4()), **story.model_dump()}
        self._insert(self._store.stories, row["id"], row)
        return StorySummary.model_validate(row)

    # ── Shows ───────────────────────────────────────────────
    async def insert_show(self, fields: Mapping[str, Any]) -> Show:
        row = {"id": str(uuid.uuid4()), "is_active": True, "description": None, **fields}
        self._insert(self._store.shows, row["id"], row)
        return Show.model_validate(row)

    async def get_show(self, show_id: str) -> Show | None:
        row = self._store.shows.get(show_id)
        return Show.model_validate(row) if row is not None else None

    async def list_shows(self, station_id: str) -> list[Show]:
        rows = [s for s in self._store.shows.values() if s["station_id"] == station_id and s["is_active"]]
        return [Show.model_validate(s) for s in sorted(rows, key=lambda s: s["name"])]

    async def update_show_fields(self, show_id: str, fields: Mapping[str, Any]) -> Show:
        row = self._store.shows.get(show_id)
        if row is None:
            raise NotFoundError("Show", show_id)
        return Show.model_validate(self._update(self._store.shows, show_id, fields))

    async def insert_show_instance(self, fields: Mapping[str, Any]) -> ShowInstance:
        if fields["show_id"] not in self._store.shows:
            raise ConflictError(f"Show does not exist: {fields['show_id']}")
        row = {"id": str(uuid.uuid4()), "status": "SCHEDULED", "notes": None, **fields}
        self._insert(self._store.show_instances, row["id"], row)
        return ShowInstance.model_validate(row)

    async def list_show_instances(self, show_id: str) -> list[ShowInstance]:
        rows = [i for i in self._store.show_instances.values() if i["show_id"] == show_id]
        rows.sort(key=lambda i: (i["air_date"], i["start_time"]), reverse=True)
        instances = []
        for row in rows:
            rundown = next(
                (r for r in self._store.rundowns.values() if r["show_instance_id"] == row["id"]),
                None,
            )
            summary = RundownSummary.model_validate(rundown) if rundown is not None else None
            instances.append(ShowInstance.model_validate({**row, "rundown": summary}))
        return instances


class MemoryRundownStore(RundownStore):
    def __init__(self) -> None:
        self.rundowns: dict[str, Row] = {}
        self.items: dict[str, Row] = {}
        self.stories: dict[str, Row] = {}
        self.shows: dict[str, Row] = {}
        self.show_instances: dict[str, Row] = {}
        self.rundown_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

        self.after_read_max: Callable[[], Awaitable[None]] | None = None
        self.crash_batch_after: int | None = None
        self.unavailable = False

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StorageTransaction]:
        if self.unavailable:
            raise StorageUnavailableError("In-memory store marked unavailable")
        tx = MemoryStorageTransaction(self)
        try:
            yield tx
        except BaseException:
            tx.rollback()
            logger.debug("memory_transaction_rolled_back")
            raise
        finally:
            tx.release_locks()

    async def ping(self) -> bool:
        return not self.unavailable
