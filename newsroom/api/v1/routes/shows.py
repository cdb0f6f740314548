"""
Show and airing endpoints.

POST   /api/v1/shows                        — create a show
GET    /api/v1/shows?station_id=...         — active shows of a station
GET    /api/v1/shows/{show_id}              — one show
PATCH  /api/v1/shows/{show_id}              — edit name/description/default duration
DELETE /api/v1/shows/{show_id}              — deactivate
POST   /api/v1/shows/{show_id}/instances    — schedule an airing (creates its rundown)
GET    /api/v1/shows/{show_id}/instances    — airings, newest first
"""

from __future__ import annotations

from fastapi import APIRouter, Query, status

from newsroom.api.v1.deps import AuthenticatedUser, Shows
from newsroom.schemas.schemas import Show, ShowCreate, ShowInstance, ShowInstanceCreate, ShowUpdate

router = APIRouter(prefix="/shows", tags=["shows"])


@router.post("", response_model=Show, status_code=status.HTTP_201_CREATED)
async def create_show(body: ShowCreate, shows: Shows, _api_key: AuthenticatedUser) -> Show:
    return await shows.create_show(body)


@router.get("", response_model=list[Show])
async def list_shows(
    shows: Shows,
    _api_key: AuthenticatedUser,
    station_id: str = Query(..., description="Station whose active shows to list"),
) -> list[Show]:
    return await shows.list_shows(station_id)


@router.get("/{show_id}", response_model=Show)
async def get_show(show_id: str, shows: Shows, _api_key: AuthenticatedUser) -> Show:
    return await shows.get_show(show_id)


@router.patch("/{show_id}", response_model=Show)
async def update_show(
    show_id: str, body: ShowUpdate, shows: Shows, _api_key: AuthenticatedUser
) -> Show:
    return await shows.update_show(show_id, body)


@router.delete("/{show_id}", response_model=Show)
async def deactivate_show(show_id: str, shows: Shows, _api_key: AuthenticatedUser) -> Show:
    return await shows.deactivate_show(show_id)


@router.post(
    "/{show_id}/instances", response_model=ShowInstance, status_code=status.HTTP_201_CREATED
)
async def create_show_instance(
    show_id: str,
    body: ShowInstanceCreate,
    shows: Shows,
    _api_key: AuthenticatedUser,
) -> ShowInstance:
    """Schedule an airing; the response embeds the new empty rundown."""
    return await shows.create_show_instance(
        show_id, body.air_date, body.start_time, body.end_time, notes=body.notes
    )


@router.get("/{show_id}/instances", response_model=list[ShowInstance])
async def list_show_instances(
    show_id: str, shows: Shows, _api_key: AuthenticatedUser
) -> list[ShowInstance]:
    return await shows.list_instances(show_id)
