"""Appointments API: availability, list, upcoming, export, create, edit and status changes."""
from __future__ import annotations

import csv
import io
import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from leaddesk.api.dependencies import get_session, get_workspace_id
from leaddesk.api.schemas.appointments import (
    AppointmentCreateRequest,
    AppointmentResponse,
    AppointmentUpdateRequest,
    AvailabilityResponse,
)
from leaddesk.core.exceptions import ValidationError
from leaddesk.scheduling.types import (
    AppointmentSource,
    AppointmentStatus,
    AppointmentType,
)
from leaddesk.services.appointment_service import AppointmentService
from leaddesk.services.availability_service import AvailabilityService
from leaddesk.services.settings_service import SchedulingSettingsService

router = APIRouter(prefix="/appointments", tags=["appointments"])

_CSV_FIELDS = [
    "id", "lead_id", "title", "appointment_type", "status", "source",
    "start_at", "end_at", "timezone", "contact_name", "contact_phone", "notes",
]


# NOTE: fixed paths must be registered BEFORE /{appointment_id} so FastAPI
# doesn't try to parse "availability" or "export" as a UUID.
@router.get("/availability", response_model=AvailabilityResponse)
async def get_availability(
    date_from: Optional[datetime] = Query(default=None, alias="from"),
    date_to: Optional[datetime] = Query(default=None, alias="to"),
    appointment_type: Optional[AppointmentType] = Query(default=None, alias="type"),
    workspace_id: str = Depends(get_workspace_id),
    session: AsyncSession = Depends(get_session),
):
    """Bookable slots; the window defaults to now .. now + max_days_ahead."""
    config = await SchedulingSettingsService(session).get_config(workspace_id)
    if appointment_type is not None and appointment_type not in config.default_appointment_types:
        raise ValidationError(
            f"Appointment type {appointment_type.value!r} is not offered by this workspace",
            details={"allowed": [t.value for t in config.default_appointment_types]},
        )
    slots = await AvailabilityService(session).list_slots(
        workspace_id, date_from, date_to, config=config
    )
    return AvailabilityResponse(
        timezone=config.timezone,
        slot_duration_minutes=config.slot_duration_minutes,
        slots=[s.to_dict() for s in slots],
    )


@router.get("", response_model=List[AppointmentResponse])
async def list_appointments(
    status_filter: Optional[AppointmentStatus] = Query(default=None, alias="status"),
    appointment_type: Optional[AppointmentType] = Query(default=None, alias="type"),
    source: Optional[AppointmentSource] = None,
    lead_id: Optional[str] = None,
    date_from: Optional[datetime] = Query(default=None, alias="from"),
    date_to: Optional[datetime] = Query(default=None, alias="to"),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    workspace_id: str = Depends(get_workspace_id),
    session: AsyncSession = Depends(get_session),
):
    """List appointments ordered by start time, with optional filters."""
    return await AppointmentService(session).list_appointments(
        workspace_id,
        status=status_filter.value if status_filter else None,
        appointment_type=appointment_type.value if appointment_type else None,
        source=source.value if source else None,
        lead_id=lead_id,
        date_from=date_from,
        date_to=date_to,
        skip=skip,
        limit=limit,
    )


@router.get("/upcoming", response_model=List[AppointmentResponse])
async def list_upcoming_appointments(
    limit: int = Query(default=10, ge=1, le=100),
    workspace_id: str = Depends(get_workspace_id),
    session: AsyncSession = Depends(get_session),
):
    """Scheduled appointments that have not ended yet, soonest first."""
    return await AppointmentService(session).list_upcoming(workspace_id, limit=limit)


@router.get("/export")
async def export_appointments_csv(
    status_filter: Optional[AppointmentStatus] = Query(default=None, alias="status"),
    appointment_type: Optional[AppointmentType] = Query(default=None, alias="type"),
    source: Optional[AppointmentSource] = None,
    date_from: Optional[datetime] = Query(default=None, alias="from"),
    date_to: Optional[datetime] = Query(default=None, alias="to"),
    workspace_id: str = Depends(get_workspace_id),
    session: AsyncSession = Depends(get_session),
):
    """Download appointments as CSV with current filters applied."""
    items = await AppointmentService(session).list_appointments(
        workspace_id,
        status=status_filter.value if status_filter else None,
        appointment_type=appointment_type.value if appointment_type else None,
        source=source.value if source else None,
        date_from=date_from,
        date_to=date_to,
        skip=0,
        limit=10_000,
    )

    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=_CSV_FIELDS, extrasaction="ignore")
    writer.writeheader()
    for a in items:
        writer.writerow({
            "id": str(a.id),
            "lead_id": a.lead_id,
            "title": a.title or "",
            "appointment_type": a.appointment_type,
            "status": a.status,
            "source": a.source,
            "start_at": a.start_at.isoformat(),
            "end_at": a.end_at.isoformat(),
            "timezone": a.timezone,
            "contact_name": a.contact_name or "",
            "contact_phone": a.contact_phone or "",
            "notes": a.notes or "",
        })

    output.seek(0)
    return StreamingResponse(
        iter([output.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=appointments.csv"},
    )


@router.post("", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
async def create_appointment(
    body: AppointmentCreateRequest,
    workspace_id: str = Depends(get_workspace_id),
    session: AsyncSession = Depends(get_session),
):
    """Book manually. 409 when the time is taken or breaks the scheduling rules."""
    return await AppointmentService(session).create_manual(
        workspace_id,
        lead_id=body.lead_id,
        start_at=body.start_at,
        appointment_type=body.appointment_type,
        duration_minutes=body.duration_minutes,
        title=body.title,
        notes=body.notes,
        contact_name=body.contact_name,
        contact_phone=body.contact_phone,
        source=body.source,
        reminder_minutes_before=body.reminder_minutes_before,
    )


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: uuid.UUID,
    workspace_id: str = Depends(get_workspace_id),
    session: AsyncSession = Depends(get_session),
):
    return await AppointmentService(session).get(workspace_id, appointment_id)


@router.patch("/{appointment_id}", response_model=AppointmentResponse)
async def update_appointment(
    appointment_id: uuid.UUID,
    body: AppointmentUpdateRequest,
    workspace_id: str = Depends(get_workspace_id),
    session: AsyncSession = Depends(get_session),
):
    """Edit a scheduled appointment; only provided fields are changed."""
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("No fields to update")
    return await AppointmentService(session).update(workspace_id, appointment_id, changes)


async def _change_status(
    session: AsyncSession,
    workspace_id: str,
    appointment_id: uuid.UUID,
    new_status: AppointmentStatus,
):
    return await AppointmentService(session).change_status(workspace_id, appointment_id, new_status)


@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: uuid.UUID,
    workspace_id: str = Depends(get_workspace_id),
    session: AsyncSession = Depends(get_session),
):
    return await _change_status(session, workspace_id, appointment_id, AppointmentStatus.CANCELLED)


@router.post("/{appointment_id}/complete", response_model=AppointmentResponse)
async def complete_appointment(
    appointment_id: uuid.UUID,
    workspace_id: str = Depends(get_workspace_id),
    session: AsyncSession = Depends(get_session),
):
    return await _change_status(session, workspace_id, appointment_id, AppointmentStatus.COMPLETED)


@router.post("/{appointment_id}/no-show", response_model=AppointmentResponse)
async def mark_no_show(
    appointment_id: uuid.UUID,
    workspace_id: str = Depends(get_workspace_id),
    session: AsyncSession = Depends(get_session),
):
    return await _change_status(session, workspace_id, appointment_id, AppointmentStatus.NO_SHOW)
