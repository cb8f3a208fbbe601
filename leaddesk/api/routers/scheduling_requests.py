"""Scheduling requests router: review and convert manual_request bookings."""
from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from leaddesk.api.dependencies import get_session, get_workspace_id
from leaddesk.api.schemas.appointments import AppointmentResponse
from leaddesk.api.schemas.scheduling_requests import (
    ConvertRequest,
    SchedulingRequestResponse,
    SchedulingRequestUpdate,
)
from leaddesk.core.exceptions import ValidationError
from leaddesk.scheduling.types import AppointmentSource, AppointmentType, SchedulingRequestStatus
from leaddesk.services.scheduling_request_service import SchedulingRequestService

router = APIRouter(prefix="/scheduling-requests", tags=["scheduling-requests"])


@router.get("", response_model=List[SchedulingRequestResponse])
async def list_scheduling_requests(
    status_filter: Optional[SchedulingRequestStatus] = Query(default=None, alias="status"),
    request_type: Optional[AppointmentType] = Query(default=None, alias="type"),
    source: Optional[AppointmentSource] = None,
    search: Optional[str] = Query(default=None, max_length=255),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    workspace_id: str = Depends(get_workspace_id),
    session: AsyncSession = Depends(get_session),
):
    """Newest first; ``search`` matches contact name, phone and notes."""
    return await SchedulingRequestService(session).list_requests(
        workspace_id,
        status=status_filter.value if status_filter else None,
        request_type=request_type.value if request_type else None,
        source=source.value if source else None,
        search=search,
        skip=skip,
        limit=limit,
    )


@router.patch("/{request_id}", response_model=SchedulingRequestResponse)
async def update_scheduling_request(
    request_id: UUID,
    body: SchedulingRequestUpdate,
    workspace_id: str = Depends(get_workspace_id),
    session: AsyncSession = Depends(get_session),
):
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("No fields to update")
    return await SchedulingRequestService(session).update(workspace_id, request_id, changes)


@router.post("/{request_id}/convert", response_model=AppointmentResponse)
async def convert_scheduling_request(
    request_id: UUID,
    body: Optional[ConvertRequest] = Body(default=None),
    workspace_id: str = Depends(get_workspace_id),
    session: AsyncSession = Depends(get_session),
):
    """Book the request; 409 when its time is no longer available."""
    body = body or ConvertRequest()
    return await SchedulingRequestService(session).convert(
        workspace_id,
        request_id,
        start_at=body.start_at,
        duration_minutes=body.duration_minutes,
        appointment_type=body.appointment_type,
        notes=body.notes,
    )
