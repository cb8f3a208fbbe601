"""Pydantic schemas for scheduling requests."""
from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import AwareDatetime, BaseModel, Field

from leaddesk.scheduling.types import AppointmentType, SchedulingRequestStatus


class SchedulingRequestResponse(BaseModel):
    id: UUID
    workspace_id: str
    lead_id: str
    negotiation_id: Optional[UUID]
    status: str
    request_type: str
    preferred_start: Optional[datetime]
    preferred_end: Optional[datetime]
    timezone: str
    contact_name: Optional[str]
    contact_phone: Optional[str]
    source: str
    notes: Optional[str]
    converted_appointment_id: Optional[UUID]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SchedulingRequestUpdate(BaseModel):
    status: Optional[SchedulingRequestStatus] = None
    notes: Optional[str] = None
    contact_name: Optional[str] = Field(None, max_length=255)
    contact_phone: Optional[str] = Field(None, max_length=64)
    preferred_start: Optional[AwareDatetime] = None
    preferred_end: Optional[AwareDatetime] = None

    class Config:
        extra = "forbid"


class ConvertRequest(BaseModel):
    """Overrides for the appointment; defaults come from the request."""
    start_at: Optional[AwareDatetime] = None
    duration_minutes: Optional[int] = Field(None, gt=0, le=24 * 60)
    appointment_type: Optional[AppointmentType] = None
    notes: Optional[str] = None
