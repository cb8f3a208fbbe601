"""FastAPI dependency providers."""
from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Optional

from fastapi import Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from leaddesk.config import ApiConfig
from leaddesk.core.exceptions import ValidationError
from leaddesk.scheduling.store import NegotiationStore

_MAX_WORKSPACE_ID = 64


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield a transactional AsyncSession from the app-level session factory."""
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_api_config(request: Request) -> ApiConfig:
    return request.app.state.api_config


def get_negotiation_store(request: Request) -> NegotiationStore:
    return request.app.state.negotiation_store


def get_workspace_id(
    request: Request,
    x_workspace_id: Optional[str] = Header(default=None),
) -> str:
    """Workspace from the X-Workspace-Id header, else DEFAULT_WORKSPACE_ID."""
    workspace_id = (x_workspace_id or "").strip() or get_api_config(request).default_workspace_id
    if not workspace_id:
        raise ValidationError(
            "X-Workspace-Id header is required",
            code="WORKSPACE_REQUIRED",
        )
    if len(workspace_id) > _MAX_WORKSPACE_ID:
        raise ValidationError(
            f"X-Workspace-Id must be at most {_MAX_WORKSPACE_ID} characters",
            code="WORKSPACE_INVALID",
        )
    return workspace_id
