"""
Rundown editing endpoints.

GET    /api/v1/rundowns/{rundown_id}          — rundown with items in playback order
PATCH  /api/v1/rundowns/{rundown_id}/status   — workflow status (DRAFT/LIVE/COMPLETE)
POST   /api/v1/rundowns/{rundown_id}/lock     — take the advisory editing lock
POST   /api/v1/rundowns/{rundown_id}/unlock   — release it
POST   /api/v1/rundowns/{rundown_id}/items    — append a segment
POST   /api/v1/rundowns/{rundown_id}/reorder  — set the full segment order
PATCH  /api/v1/rundowns/items/{item_id}       — edit a segment
DELETE /api/v1/rundowns/items/{item_id}       — remove a segment and close the gap
"""

from __future__ import annotations

from fastapi import APIRouter, status

from newsroom.api.v1.deps import AuthenticatedUser, EditorId, Rundowns
from newsroom.schemas.schemas import (
    ItemUpdate,
    ReorderRequest,
    Rundown,
    RundownItem,
    RundownStatusUpdate,
    SegmentSpec,
)

router = APIRouter(prefix="/rundowns", tags=["rundowns"])


@router.get("/{rundown_id}", response_model=Rundown)
async def get_rundown(rundown_id: str, rundowns: Rundowns, _api_key: AuthenticatedUser) -> Rundown:
    return await rundowns.get_rundown(rundown_id)


@router.patch("/{rundown_id}/status", response_model=Rundown)
async def update_rundown_status(
    rundown_id: str,
    body: RundownStatusUpdate,
    rundowns: Rundowns,
    _api_key: AuthenticatedUser,
) -> Rundown:
    return await rundowns.update_status(rundown_id, body.status)


@router.post("/{rundown_id}/lock", response_model=Rundown)
async def lock_rundown(
    rundown_id: str,
    rundowns: Rundowns,
    editor_id: EditorId,
    _api_key: AuthenticatedUser,
) -> Rundown:
    return await rundowns.lock(rundown_id, editor_id)


@router.post("/{rundown_id}/unlock", response_model=Rundown)
async def unlock_rundown(rundown_id: str, rundowns: Rundowns, _api_key: AuthenticatedUser) -> Rundown:
    return await rundowns.unlock(rundown_id)


@router.post("/{rundown_id}/items", response_model=RundownItem, status_code=status.HTTP_201_CREATED)
async def add_item(
    rundown_id: str,
    body: SegmentSpec,
    rundowns: Rundowns,
    _api_key: AuthenticatedUser,
) -> RundownItem:
    """Append a segment at the end of the rundown."""
    return await rundowns.add_item(rundown_id, body)


@router.post("/{rundown_id}/reorder", response_model=Rundown)
async def reorder_items(
    rundown_id: str,
    body: ReorderRequest,
    rundowns: Rundowns,
    _api_key: AuthenticatedUser,
) -> Rundown:
    """
    Reorder segments. item_ids must list every segment of the rundown exactly once.

    On 409 the rundown changed underneath the editor: re-fetch and retry.
    """
    return await rundowns.reorder_items(rundown_id, body.item_ids)


@router.patch("/items/{item_id}", response_model=RundownItem)
async def update_item(
    item_id: str,
    body: ItemUpdate,
    rundowns: Rundowns,
    _api_key: AuthenticatedUser,
) -> RundownItem:
    return await rundowns.update_item(item_id, body)


@router.delete("/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(item_id: str, rundowns: Rundowns, _api_key: AuthenticatedUser) -> None:
    await rundowns.delete_item(item_id)
