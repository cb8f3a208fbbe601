"""Per-lead views: a lead's appointments and scheduling requests."""
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from leaddesk.api.dependencies import get_session, get_workspace_id
from leaddesk.api.schemas.appointments import AppointmentResponse
from leaddesk.api.schemas.scheduling_requests import SchedulingRequestResponse
from leaddesk.services.appointment_service import AppointmentService
from leaddesk.services.scheduling_request_service import SchedulingRequestService

router = APIRouter(prefix="/leads", tags=["leads"])


@router.get("/{lead_id}/appointments", response_model=List[AppointmentResponse])
async def list_lead_appointments(
    lead_id: str,
    limit: int = Query(default=100, ge=1, le=500),
    workspace_id: str = Depends(get_workspace_id),
    session: AsyncSession = Depends(get_session),
):
    return await AppointmentService(session).list_appointments(
        workspace_id, lead_id=lead_id, limit=limit
    )


@router.get("/{lead_id}/scheduling-requests", response_model=List[SchedulingRequestResponse])
async def list_lead_scheduling_requests(
    lead_id: str,
    limit: int = Query(default=100, ge=1, le=500),
    workspace_id: str = Depends(get_workspace_id),
    session: AsyncSession = Depends(get_session),
):
    return await SchedulingRequestService(session).list_requests(
        workspace_id, lead_id=lead_id, limit=limit
    )
