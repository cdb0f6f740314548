"""Races, conflicts and partial failures in rundown mutations."""

from __future__ import annotations

import asyncio
import uuid

import pytest

from newsroom.core.errors import ConflictError, NotFoundError, StorageUnavailableError, ValidationError
from newsroom.models.models import SegmentType
from newsroom.schemas.schemas import NewItem
from newsroom.services.rundown_service import RundownService
from newsroom.services.show_service import ShowSchedulingService
from newsroom.storage.sql import SqlStorageTransaction


async def schedule_rundown(store, slot: dict) -> tuple[RundownService, str]:
    rundowns = RundownService(store, max_add_attempts=3)
    shows = ShowSchedulingService(store, rundowns)
    show = await shows.create_show({"station_id": "station-wxyz", "name": "Evening News"})
    instance = await shows.create_show_instance(show.id, **slot)
    return rundowns, instance.rundown.id


async def seed(rundowns: RundownService, rundown_id: str, count: int) -> list[str]:
    ids = []
    for n in range(count):
        item = await rundowns.add_item(
            rundown_id, {"type": "STORY", "title": f"Story {n}", "planned_duration": 30 * (n + 1)}
        )
        ids.append(item.id)
    return ids


def positions(rundown) -> list[tuple[str, int]]:
    return [(item.id, item.position) for item in rundown.items]


def assert_consistent(rundown) -> None:
    assert [item.position for item in rundown.items] == list(range(len(rundown.items)))
    assert rundown.total_duration == sum(item.planned_duration for item in rundown.items)


class PausedAdd:
    """after_read_max hook that parks the first add between reading the maximum and inserting."""

    def __init__(self) -> None:
        self.reached = asyncio.Event()
        self.release = asyncio.Event()
        self.reads = 0

    async def __call__(self) -> None:
        self.reads += 1
        if self.reads == 1:
            self.reached.set()
            await asyncio.wait_for(self.release.wait(), timeout=2)

    async def let_go(self, *blocked: asyncio.Task) -> None:
        for _ in range(5):
            await asyncio.sleep(0)
        assert not any(task.done() for task in blocked)
        self.release.set()


# ── Concurrent appends ──────────────────────────────────────
class TestConcurrentAdds:
    async def test_concurrent_adds_get_positions_zero_and_one(self, memory_store, morning_slot):
        rundowns, rundown_id = await schedule_rundown(memory_store, morning_slot)

        reads = 0

        async def yield_after_read() -> None:
            nonlocal reads
            reads += 1
            for _ in range(3):
                await asyncio.sleep(0)

        memory_store.after_read_max = yield_after_read

        first, second = await asyncio.gather(
            rundowns.add_item(rundown_id, {"type": "STORY", "title": "Lead", "planned_duration": 120}),
            rundowns.add_item(rundown_id, {"type": "LIVE", "title": "Live cross", "planned_duration": 60}),
        )

        assert sorted([first.position, second.position]) == [0, 1]
        # The second add waited for the rundown lock, so neither had to retry
        assert reads == 2

        rundown = await rundowns.get_rundown(rundown_id)
        assert_consistent(rundown)
        assert rundown.total_duration == 180

    async def test_conflict_surfaces_after_bounded_retries(self, memory_store, morning_slot):
        rundowns, rundown_id = await schedule_rundown(memory_store, morning_slot)

        async def another_editor_appends() -> None:
            taken = [i["position"] for i in memory_store.items.values() if i["rundown_id"] == rundown_id]
            async with memory_store.transaction() as tx:
                await tx.insert_item(
                    NewItem(
                        id=str(uuid.uuid4()),
                        rundown_id=rundown_id,
                        position=max(taken) + 1 if taken else 0,
                        type=SegmentType.BREAK,
                        title="Competing break",
                        planned_duration=10,
                    )
                )

        memory_store.after_read_max = another_editor_appends

        with pytest.raises(ConflictError, match="3 attempts"):
            await rundowns.add_item(rundown_id, {"type": "STORY", "title": "Mine", "planned_duration": 45})

        memory_store.after_read_max = None
        rundown = await rundowns.get_rundown(rundown_id)
        assert [item.title for item in rundown.items] == ["Competing break"] * 3
        assert [item.position for item in rundown.items] == [0, 1, 2]

    async def test_sql_stale_max_is_retried(self, sql_store, morning_slot, monkeypatch):
        rundowns, rundown_id = await schedule_rundown(sql_store, morning_slot)
        await seed(rundowns, rundown_id, 2)

        original = SqlStorageTransaction.find_max_position
        calls = 0

        async def stale_on_first_read(self, rid):
            nonlocal calls
            calls += 1
            actual = await original(self, rid)
            return 0 if calls == 1 else actual

        monkeypatch.setattr(SqlStorageTransaction, "find_max_position", stale_on_first_read)

        item = await rundowns.add_item(rundown_id, {"type": "AD", "title": "Spot", "planned_duration": 30})

        assert calls == 2
        assert item.position == 2
        rundown = await rundowns.get_rundown(rundown_id)
        assert [i.position for i in rundown.items] == [0, 1, 2]
        assert rundown.total_duration == 30 + 60 + 30


# ── Other edits landing while an add is in flight ───────────
class TestInterleavedMutations:
    async def test_delete_during_add_keeps_positions_contiguous(self, memory_store, morning_slot):
        rundowns, rundown_id = await schedule_rundown(memory_store, morning_slot)
        ids = await seed(rundowns, rundown_id, 2)

        pause = PausedAdd()
        memory_store.after_read_max = pause
        adding = asyncio.create_task(
            rundowns.add_item(rundown_id, {"type": "BREAK", "title": "Break", "planned_duration": 45})
        )
        await pause.reached.wait()
        deleting = asyncio.create_task(rundowns.delete_item(ids[0]))

        await pause.let_go(deleting)
        added = await adding
        await deleting

        assert added.position == 2
        rundown = await rundowns.get_rundown(rundown_id)
        assert_consistent(rundown)
        assert [item.id for item in rundown.items] == [ids[1], added.id]
        assert rundown.total_duration == 60 + 45

    async def test_reorder_during_add_is_rejected_as_stale(self, memory_store, morning_slot):
        rundowns, rundown_id = await schedule_rundown(memory_store, morning_slot)
        ids = await seed(rundowns, rundown_id, 2)

        pause = PausedAdd()
        memory_store.after_read_max = pause
        adding = asyncio.create_task(
            rundowns.add_item(rundown_id, {"type": "PROMO", "title": "Promo", "planned_duration": 20})
        )
        await pause.reached.wait()
        reordering = asyncio.create_task(rundowns.reorder_items(rundown_id, [ids[1], ids[0]]))

        await pause.let_go(reordering)
        added = await adding
        # The editor's list no longer covers every segment
        with pytest.raises(ValidationError, match="missing"):
            await reordering

        rundown = await rundowns.get_rundown(rundown_id)
        assert_consistent(rundown)
        assert [item.id for item in rundown.items] == [ids[0], ids[1], added.id]

    async def test_duration_update_during_add_is_counted_in_total(self, memory_store, morning_slot):
        rundowns, rundown_id = await schedule_rundown(memory_store, morning_slot)
        ids = await seed(rundowns, rundown_id, 2)

        pause = PausedAdd()
        memory_store.after_read_max = pause
        adding = asyncio.create_task(
            rundowns.add_item(rundown_id, {"type": "STORY", "title": "Late", "planned_duration": 90})
        )
        await pause.reached.wait()
        updating = asyncio.create_task(rundowns.update_item(ids[0], {"planned_duration": 300}))

        await pause.let_go(updating)
        await adding
        await updating

        rundown = await rundowns.get_rundown(rundown_id)
        assert_consistent(rundown)
        assert rundown.total_duration == 300 + 60 + 90

    async def test_other_rundowns_are_not_blocked(self, memory_store, morning_slot):
        rundowns, rundown_id = await schedule_rundown(memory_store, morning_slot)
        _, other_id = await schedule_rundown(memory_store, morning_slot)

        pause = PausedAdd()
        memory_store.after_read_max = pause
        adding = asyncio.create_task(
            rundowns.add_item(rundown_id, {"type": "STORY", "title": "Held", "planned_duration": 10})
        )
        await pause.reached.wait()

        # Reorder of an untouched rundown goes straight through
        other = await rundowns.reorder_items(other_id, [])
        assert other.items == []

        pause.release.set()
        await adding


# ── In-memory rollback ──────────────────────────────────────
class TestMemoryRollback:
    async def test_rollback_restores_only_fields_it_wrote(self, memory_store, morning_slot):
        rundowns, rundown_id = await schedule_rundown(memory_store, morning_slot)
        (item_id,) = await seed(rundowns, rundown_id, 1)

        with pytest.raises(RuntimeError):
            async with memory_store.transaction() as first:
                await first.update_item_fields(item_id, {"notes": "draft note"})
                async with memory_store.transaction() as second:
                    await second.update_item_fields(item_id, {"title": "Renamed"})
                raise RuntimeError("abort first")

        item = memory_store.items[item_id]
        assert item["title"] == "Renamed"
        assert item["notes"] is None

    async def test_lock_released_after_failed_transaction(self, memory_store, morning_slot):
        rundowns, rundown_id = await schedule_rundown(memory_store, morning_slot)

        with pytest.raises(RuntimeError):
            async with memory_store.transaction() as tx:
                await tx.lock_rundown(rundown_id)
                raise RuntimeError("abort")

        assert not memory_store.rundown_locks[rundown_id].locked()
        item = await rundowns.add_item(rundown_id, {"type": "STORY", "title": "x", "planned_duration": 5})
        assert item.position == 0


# ── All-or-nothing batches ──────────────────────────────────
class TestBatchAtomicity:
    async def test_crash_mid_reorder_leaves_previous_order(self, memory_store, morning_slot):
        rundowns, rundown_id = await schedule_rundown(memory_store, morning_slot)
        ids = await seed(rundowns, rundown_id, 4)
        before = await rundowns.get_rundown(rundown_id)

        memory_store.crash_batch_after = 2
        with pytest.raises(StorageUnavailableError):
            await rundowns.reorder_items(rundown_id, list(reversed(ids)))

        memory_store.crash_batch_after = None
        after = await rundowns.get_rundown(rundown_id)
        assert positions(after) == positions(before)

        # A fresh attempt goes through once storage recovers
        retried = await rundowns.reorder_items(rundown_id, list(reversed(ids)))
        assert [item.id for item in retried.items] == list(reversed(ids))

    async def test_crash_mid_renumber_keeps_deleted_item(self, memory_store, morning_slot):
        rundowns, rundown_id = await schedule_rundown(memory_store, morning_slot)
        ids = await seed(rundowns, rundown_id, 4)
        before = await rundowns.get_rundown(rundown_id)

        memory_store.crash_batch_after = 1
        with pytest.raises(StorageUnavailableError):
            await rundowns.delete_item(ids[0])

        memory_store.crash_batch_after = None
        after = await rundowns.get_rundown(rundown_id)
        assert positions(after) == positions(before)
        assert after.total_duration == before.total_duration

    async def test_sql_batch_with_unknown_id_rolls_back(self, sql_store, morning_slot):
        rundowns, rundown_id = await schedule_rundown(sql_store, morning_slot)
        ids = await seed(rundowns, rundown_id, 3)
        before = await rundowns.get_rundown(rundown_id)

        with pytest.raises(NotFoundError):
            async with sql_store.transaction() as tx:
                await tx.batch_update_positions([(ids[2], 0), ("ghost-item", 1), (ids[0], 2)])

        assert positions(await rundowns.get_rundown(rundown_id)) == positions(before)

    async def test_sql_batch_colliding_with_untouched_row_is_conflict(self, sql_store, morning_slot):
        rundowns, rundown_id = await schedule_rundown(sql_store, morning_slot)
        ids = await seed(rundowns, rundown_id, 2)

        with pytest.raises(ConflictError):
            async with sql_store.transaction() as tx:
                await tx.batch_update_positions([(ids[0], 1)])

        rundown = await rundowns.get_rundown(rundown_id)
        assert positions(rundown) == [(ids[0], 0), (ids[1], 1)]

    async def test_sql_duplicate_position_insert_is_conflict(self, sql_store, morning_slot):
        rundowns, rundown_id = await schedule_rundown(sql_store, morning_slot)
        await seed(rundowns, rundown_id, 1)

        with pytest.raises(ConflictError):
            async with sql_store.transaction() as tx:
                await tx.insert_item(
                    NewItem(
                        id=str(uuid.uuid4()),
                        rundown_id=rundown_id,
                        position=0,
                        type=SegmentType.PROMO,
                        title="Duplicate",
                        planned_duration=15,
                    )
                )

        assert len((await rundowns.get_rundown(rundown_id)).items) == 1


# ── Backend outages ─────────────────────────────────────────
class TestStorageUnavailable:
    async def test_outage_propagates_without_retry(self, memory_store, morning_slot):
        rundowns, rundown_id = await schedule_rundown(memory_store, morning_slot)
        memory_store.unavailable = True

        with pytest.raises(StorageUnavailableError):
            await rundowns.add_item(rundown_id, {"type": "STORY", "title": "x", "planned_duration": 1})
        with pytest.raises(StorageUnavailableError):
            await rundowns.get_rundown(rundown_id)
        assert await memory_store.ping() is False

        memory_store.unavailable = False
        assert (await rundowns.get_rundown(rundown_id)).items == []

    async def test_sql_store_ping(self, sql_store):
        assert await sql_store.ping() is True
