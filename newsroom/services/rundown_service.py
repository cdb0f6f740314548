"""
Rundown service: ordering and duration aggregation for broadcast segments.

Two invariants hold after every call that returns normally:

- item positions within a rundown are exactly 0..N-1 in playback order
- rundown.total_duration == sum(item.planned_duration)

Each public method is one storage transaction (add_item may use several, one
per attempt). Multi-row position changes go through a single
batch_update_positions call so they apply completely or not at all.

Every mutation locks its rundown before reading anything, so concurrent edits
of one rundown run one after another. The (rundown_id, position) constraint
still backs add_item against writers that skip the lock.
"""

from __future__ import annotations

import uuid
from collections import Counter
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from newsroom.core.config import get_settings
from newsroom.core.errors import ConflictError, NotFoundError, ValidationError
from newsroom.core.logging import get_logger
from newsroom.models.models import RundownStatus
from newsroom.schemas.schemas import ItemUpdate, NewItem, Rundown, RundownItem, SegmentSpec
from newsroom.storage.base import RundownStore, StorageTransaction

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_payload(model: type[ModelT], payload: ModelT | Mapping[str, Any]) -> ModelT:
    """Validate a request payload, converting Pydantic failures to ValidationError."""
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'payload'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(f"Invalid {model.__name__}: {problems}") from e


def _in_playback_order(rundown: Rundown) -> Rundown:
    return rundown.model_copy(update={"items": sorted(rundown.items, key=lambda i: i.position)})


def _check_permutation(requested: Sequence[str], current: Sequence[str]) -> None:
    duplicates = sorted(item_id for item_id, seen in Counter(requested).items() if seen > 1)
    if duplicates:
        raise ValidationError(f"Duplicate item ids in reorder request: {', '.join(duplicates)}")
    missing = sorted(set(current) - set(requested))
    if missing:
        raise ValidationError(f"Reorder request is missing item ids: {', '.join(missing)}")
    foreign = sorted(set(requested) - set(current))
    if foreign:
        raise ValidationError(f"Item ids do not belong to this rundown: {', '.join(foreign)}")


class RundownService:
    def __init__(self, store: RundownStore, max_add_attempts: int | None = None) -> None:
        self._store = store
        self._max_add_attempts = max_add_attempts or get_settings().add_item_max_retries

    # ── Reads ───────────────────────────────────────────────
    async def get_rundown(self, rundown_id: str) -> Rundown:
        """Rundown with its items sorted by position, whatever order storage returns."""
        async with self._store.transaction() as tx:
            rundown = await tx.get_rundown(rundown_id)
        if rundown is None:
            raise NotFoundError("Rundown", rundown_id)
        return _in_playback_order(rundown)

    # ── Item mutations ──────────────────────────────────────
    async def add_item(
        self, rundown_id: str, segment: SegmentSpec | Mapping[str, Any]
    ) -> RundownItem:
        """
        Append a segment at max(position) + 1 (0 on an empty rundown).

        Two editors appending at once can read the same maximum; the loser's
        insert hits the (rundown_id, position) constraint, its transaction
        rolls back, and it re-reads the maximum. After max_add_attempts
        failures the ConflictError reaches the caller.
        """
        spec = parse_payload(SegmentSpec, segment)

        for attempt in range(1, self._max_add_attempts + 1):
            try:
                return await self._append(rundown_id, spec)
            except ConflictError:
                logger.warning(
                    "rundown_item_position_conflict",
                    rundown_id=rundown_id,
                    attempt=attempt,
                    max_attempts=self._max_add_attempts,
                )

        raise ConflictError(
            f"Could not assign a position in rundown {rundown_id} "
            f"after {self._max_add_attempts} attempts; re-fetch and retry"
        )

    async def _append(self, rundown_id: str, spec: SegmentSpec) -> RundownItem:
        async with self._store.transaction() as tx:
            await tx.lock_rundown(rundown_id)
            if await tx.get_rundown(rundown_id) is None:
                raise NotFoundError("Rundown", rundown_id)
            if spec.story_id is not None and await tx.get_story(spec.story_id) is None:
                raise NotFoundError("Story", spec.story_id)

            highest = await tx.find_max_position(rundown_id)
            position = 0 if highest is None else highest + 1
            item = await tx.insert_item(
                NewItem(id=str(uuid.uuid4()), rundown_id=rundown_id, position=position, **spec.model_dump())
            )
            total = await self._recompute_total(tx, rundown_id)

        logger.info(
            "rundown_item_added",
            rundown_id=rundown_id,
            item_id=item.id,
            type=item.type.value,
            position=position,
            total_duration=total,
        )
        return item

    async def update_item(self, item_id: str, fields: ItemUpdate | Mapping[str, Any]) -> RundownItem:
        """Edit title, durations, script, notes or status. Never touches type or position."""
        changes = parse_payload(ItemUpdate, fields).model_dump(exclude_unset=True)

        async with self._store.transaction() as tx:
            current = await self._lock_owning_rundown(tx, item_id)
            if not changes:
                return current

            item = await tx.update_item_fields(item_id, changes)
            duration_changed = (
                "planned_duration" in changes
                and changes["planned_duration"] != current.planned_duration
            )
            if duration_changed:
                await self._recompute_total(tx, item.rundown_id)

        logger.info(
            "rundown_item_updated",
            item_id=item_id,
            rundown_id=item.rundown_id,
            fields=sorted(changes),
            duration_changed=duration_changed,
        )
        return item

    async def reorder_items(self, rundown_id: str, ordered_item_ids: Sequence[str]) -> Rundown:
        """
        Set positions to match ordered_item_ids exactly.

        The list must be a permutation of the rundown's current item ids;
        anything else is rejected before any write. Positions are written as
        one batch. A ConflictError here is not retried: the caller's view of
        the rundown is stale and must be re-fetched.
        """
        if isinstance(ordered_item_ids, str) or not all(isinstance(i, str) for i in ordered_item_ids):
            raise ValidationError("ordered_item_ids must be a list of item id strings")
        requested = list(ordered_item_ids)

        async with self._store.transaction() as tx:
            await tx.lock_rundown(rundown_id)
            rundown = await tx.get_rundown(rundown_id)
            if rundown is None:
                raise NotFoundError("Rundown", rundown_id)
            _check_permutation(requested, [item.id for item in rundown.items])

            await tx.batch_update_positions(
                [(item_id, index) for index, item_id in enumerate(requested)]
            )
            refreshed = await tx.get_rundown(rundown_id)

        logger.info("rundown_items_reordered", rundown_id=rundown_id, item_count=len(requested))
        return _in_playback_order(refreshed)

    async def delete_item(self, item_id: str) -> None:
        """Remove one item, recompute the total and close the position gap."""
        async with self._store.transaction() as tx:
            await self._lock_owning_rundown(tx, item_id)
            deleted = await tx.delete_item(item_id)

            remaining = sorted(await tx.list_items(deleted.rundown_id), key=lambda i: i.position)
            total = sum(i.planned_duration for i in remaining)
            await tx.update_rundown_total_duration(deleted.rundown_id, total)

            moves = [(i.id, index) for index, i in enumerate(remaining) if i.position != index]
            if moves:
                await tx.batch_update_positions(moves)

        logger.info(
            "rundown_item_deleted",
            item_id=item_id,
            rundown_id=deleted.rundown_id,
            position=deleted.position,
            renumbered=len(moves),
            total_duration=total,
        )

    # ── Rundown-level operations ────────────────────────────
    async def create_empty_rundown(self, tx: StorageTransaction, show_instance_id: str) -> Rundown:
        """Create a DRAFT rundown with no items inside the caller's transaction."""
        rundown = await tx.insert_rundown(show_instance_id)
        logger.info("rundown_created", rundown_id=rundown.id, show_instance_id=show_instance_id)
        return rundown

    async def update_status(self, rundown_id: str, status: RundownStatus | str) -> Rundown:
        # Item edits stay allowed on LIVE rundowns; any restriction belongs to the caller.
        try:
            new_status = RundownStatus(status)
        except ValueError as e:
            raise ValidationError(f"Unknown rundown status: {status}") from e

        async with self._store.transaction() as tx:
            await tx.lock_rundown(rundown_id)
            if await tx.get_rundown(rundown_id) is None:
                raise NotFoundError("Rundown", rundown_id)
            rundown = await tx.update_rundown_fields(rundown_id, {"status": new_status})

        logger.info("rundown_status_changed", rundown_id=rundown_id, status=new_status.value)
        return _in_playback_order(rundown)

    async def lock(self, rundown_id: str, editor_id: str) -> Rundown:
        """Mark the rundown as being edited by editor_id. Advisory only."""
        async with self._store.transaction() as tx:
            await tx.lock_rundown(rundown_id)
            current = await tx.get_rundown(rundown_id)
            if current is None:
                raise NotFoundError("Rundown", rundown_id)
            if current.locked_by not in (None, editor_id):
                raise ConflictError(f"Rundown {rundown_id} is locked by {current.locked_by}")
            rundown = await tx.update_rundown_fields(
                rundown_id, {"locked_by": editor_id, "locked_at": datetime.now(UTC)}
            )

        logger.info("rundown_locked", rundown_id=rundown_id, editor_id=editor_id)
        return _in_playback_order(rundown)

    async def unlock(self, rundown_id: str) -> Rundown:
        async with self._store.transaction() as tx:
            await tx.lock_rundown(rundown_id)
            if await tx.get_rundown(rundown_id) is None:
                raise NotFoundError("Rundown", rundown_id)
            rundown = await tx.update_rundown_fields(rundown_id, {"locked_by": None, "locked_at": None})

        logger.info("rundown_unlocked", rundown_id=rundown_id)
        return _in_playback_order(rundown)

    # ── Helpers ─────────────────────────────────────────────
    async def _lock_owning_rundown(self, tx: StorageTransaction, item_id: str) -> RundownItem:
        """Lock the rundown the item belongs to, then re-read the item under that lock."""
        item = await tx.get_item(item_id)
        if item is not None:
            await tx.lock_rundown(item.rundown_id)
            item = await tx.get_item(item_id)
        if item is None:
            raise NotFoundError("RundownItem", item_id)
        return item

    async def _recompute_total(self, tx: StorageTransaction, rundown_id: str) -> int:
        total = sum(item.planned_duration for item in await tx.list_items(rundown_id))
        await tx.update_rundown_total_duration(rundown_id, total)
        return total
