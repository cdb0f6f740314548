"""
Security utilities: API key auth and rate limiting.

User sign-in happens in the hosted auth provider; this service only trusts
callers that present the shared API key.
"""

from __future__ import annotations

import secrets
from typing import Annotated

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader
from slowapi import Limiter
from slowapi.util import get_remote_address

from newsroom.core.config import Settings, get_settings

# ── Rate limiter (attached to FastAPI app in main.py) ───────
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[get_settings().rate_limit_default],
)

# ── API Key authentication ──────────────────────────────────
_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
_editor_header = APIKeyHeader(name="X-Editor-Id", auto_error=False)


async def verify_api_key(
    api_key: Annotated[str | None, Security(_api_key_header)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> str:
    if not api_key or not secrets.compare_digest(api_key, settings.api_key):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing API key",
        )
    return api_key


async def current_editor(
    editor_id: Annotated[str | None, Security(_editor_header)],
) -> str:
    """Editor identity forwarded by the frontend, used for rundown locks."""
    if not editor_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing X-Editor-Id header",
        )
    return editor_id
