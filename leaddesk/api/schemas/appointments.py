"""Pydantic schemas for the appointments and availability API."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID
from zoneinfo import ZoneInfo

from pydantic import AwareDatetime, BaseModel, Field, field_validator

from leaddesk.scheduling.types import AppointmentSource, AppointmentType


class SlotResponse(BaseModel):
    id: str
    start: datetime
    end: datetime
    timezone: str
    label: str


class AvailabilityResponse(BaseModel):
    timezone: str
    slot_duration_minutes: int
    slots: List[SlotResponse]


class AppointmentCreateRequest(BaseModel):
    lead_id: str = Field(..., min_length=1, max_length=64)
    start_at: AwareDatetime
    appointment_type: AppointmentType
    duration_minutes: Optional[int] = Field(None, gt=0, le=24 * 60)
    title: str = Field(default="", max_length=255)
    notes: Optional[str] = None
    contact_name: Optional[str] = Field(None, max_length=255)
    contact_phone: Optional[str] = Field(None, max_length=64)
    source: AppointmentSource = AppointmentSource.MANUAL
    reminder_minutes_before: Optional[int] = Field(None, ge=0)


class AppointmentUpdateRequest(BaseModel):
    """Fields editable while the appointment is scheduled. Lead, source and status are not."""
    title: Optional[str] = Field(None, max_length=255)
    appointment_type: Optional[AppointmentType] = None
    start_at: Optional[AwareDatetime] = None
    duration_minutes: Optional[int] = Field(None, gt=0, le=24 * 60)
    notes: Optional[str] = None
    contact_name: Optional[str] = Field(None, max_length=255)
    contact_phone: Optional[str] = Field(None, max_length=64)
    timezone: Optional[str] = Field(None, max_length=64)
    reminder_minutes_before: Optional[int] = Field(None, ge=0)

    class Config:
        extra = "forbid"

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            ZoneInfo(v)
        except (KeyError, ValueError):
            raise ValueError(f"unknown IANA zone {v!r}")
        return v


class AppointmentResponse(BaseModel):
    id: UUID
    workspace_id: str
    lead_id: str
    negotiation_id: Optional[UUID]
    title: str
    appointment_type: str
    start_at: datetime
    end_at: datetime
    timezone: str
    notes: Optional[str]
    contact_name: Optional[str]
    contact_phone: Optional[str]
    source: str
    reminder_minutes_before: Optional[int]
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
