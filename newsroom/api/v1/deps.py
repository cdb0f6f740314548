"""
Shared FastAPI dependencies for v1 API routes.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from newsroom.core.config import Settings, get_settings
from newsroom.core.security import current_editor, verify_api_key
from newsroom.models.database import async_session
from newsroom.services.rundown_service import RundownService
from newsroom.services.show_service import ShowSchedulingService
from newsroom.storage.base import RundownStore
from newsroom.storage.sql import SqlRundownStore


@lru_cache
def get_store() -> RundownStore:
    """Process-wide store; tests swap it via app.dependency_overrides."""
    return SqlRundownStore(async_session)


Store = Annotated[RundownStore, Depends(get_store)]


def get_rundown_service(store: Store) -> RundownService:
    return RundownService(store)


def get_show_service(
    store: Store,
    rundowns: Annotated[RundownService, Depends(get_rundown_service)],
) -> ShowSchedulingService:
    return ShowSchedulingService(store, rundowns)


# Re-export for convenience in route files
AuthenticatedUser = Annotated[str, Depends(verify_api_key)]
EditorId = Annotated[str, Depends(current_editor)]
AppSettings = Annotated[Settings, Depends(get_settings)]
Rundowns = Annotated[RundownService, Depends(get_rundown_service)]
Shows = Annotated[ShowSchedulingService, Depends(get_show_service)]
