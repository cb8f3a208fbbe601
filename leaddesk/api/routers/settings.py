"""Settings router: per-workspace scheduling settings."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from leaddesk.api.dependencies import get_session, get_workspace_id
from leaddesk.api.schemas.scheduling import SchedulingSettingsSchema
from leaddesk.services.settings_service import SchedulingSettingsService

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("/scheduling", response_model=SchedulingSettingsSchema)
async def get_scheduling_settings(
    workspace_id: str = Depends(get_workspace_id),
    session: AsyncSession = Depends(get_session),
):
    """Current settings; defaults when the workspace has not saved any."""
    config = await SchedulingSettingsService(session).get_config(workspace_id)
    return config.to_dict()


@router.put("/scheduling", response_model=SchedulingSettingsSchema)
async def put_scheduling_settings(
    body: SchedulingSettingsSchema,
    workspace_id: str = Depends(get_workspace_id),
    session: AsyncSession = Depends(get_session),
):
    """Replace the whole settings object. Invalid hours or bounds are rejected with 400."""
    config = await SchedulingSettingsService(session).save_config(
        workspace_id, body.model_dump(mode="json")
    )
    return config.to_dict()
