"""
Shared pytest fixtures for unit and integration tests.

Service-level fixtures run against both storage backends: the in-memory store
and the SQLAlchemy store on an in-memory SQLite database. No external services
are needed.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import UTC, date, datetime

import pytest

from newsroom.models.database import build_engine, build_session_factory, create_tables
from newsroom.schemas.schemas import ShowInstance
from newsroom.services.rundown_service import RundownService
from newsroom.services.show_service import ShowSchedulingService
from newsroom.storage.base import RundownStore
from newsroom.storage.memory import MemoryRundownStore
from newsroom.storage.sql import SqlRundownStore

SQLITE_MEMORY_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def memory_store() -> MemoryRundownStore:
    return MemoryRundownStore()


@pytest.fixture
async def sql_store() -> AsyncIterator[SqlRundownStore]:
    engine = build_engine(SQLITE_MEMORY_URL)
    await create_tables(engine)
    yield SqlRundownStore(build_session_factory(engine))
    await engine.dispose()


@pytest.fixture(params=["memory", "sql"])
async def store(request: pytest.FixtureRequest) -> AsyncIterator[RundownStore]:
    """Each test using this runs once per storage backend."""
    if request.param == "memory":
        yield MemoryRundownStore()
        return

    engine = build_engine(SQLITE_MEMORY_URL)
    await create_tables(engine)
    yield SqlRundownStore(build_session_factory(engine))
    await engine.dispose()


@pytest.fixture
def rundown_service(store: RundownStore) -> RundownService:
    return RundownService(store, max_add_attempts=3)


@pytest.fixture
def show_service(store: RundownStore, rundown_service: RundownService) -> ShowSchedulingService:
    return ShowSchedulingService(store, rundown_service)


@pytest.fixture
def morning_slot() -> dict:
    """Air date and times for a realistic breakfast-show airing."""
    return {
        "air_date": date(2026, 10, 19),
        "start_time": datetime(2026, 10, 19, 6, 0, tzinfo=UTC),
        "end_time": datetime(2026, 10, 19, 9, 0, tzinfo=UTC),
    }


@pytest.fixture
async def show_instance(show_service: ShowSchedulingService, morning_slot: dict) -> ShowInstance:
    show = await show_service.create_show(
        {"station_id": "station-wxyz", "name": "Morning Edition", "default_duration": 10800}
    )
    return await show_service.create_show_instance(show.id, **morning_slot)


@pytest.fixture
def rundown_id(show_instance: ShowInstance) -> str:
    assert show_instance.rundown is not None
    return show_instance.rundown.id


@pytest.fixture
def opening_segment() -> dict:
    return {"type": "STORY", "title": "Opening", "planned_duration": 120}
