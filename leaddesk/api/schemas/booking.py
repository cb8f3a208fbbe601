"""Pydantic schemas for booking negotiations."""
from __future__ import annotations

from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import AwareDatetime, BaseModel, Field

from leaddesk.api.schemas.appointments import SlotResponse
from leaddesk.scheduling.types import AppointmentSource, AppointmentType


class StartBookingRequest(BaseModel):
    lead_id: str = Field(..., min_length=1, max_length=64)
    source: AppointmentSource = AppointmentSource.CHATBOT
    appointment_type: Optional[AppointmentType] = None
    contact_name: Optional[str] = Field(None, max_length=255)
    contact_phone: Optional[str] = Field(None, max_length=64)


class SelectSlotRequest(BaseModel):
    """Identify an offered slot by id or by its start time."""
    slot_id: Optional[str] = None
    start: Optional[AwareDatetime] = None


class IdentityRequest(BaseModel):
    field: str = Field(..., description="name | phone")
    value: str = Field(..., max_length=255)


class CustomTimeRequest(BaseModel):
    start: AwareDatetime


class QuickAction(BaseModel):
    label: str
    action: str


class BookingPayloadResponse(BaseModel):
    mode: str
    negotiation_id: str
    lead_id: str
    appointment_type: str
    timezone: str
    slots: List[SlotResponse] = []
    confirmed_slot: Optional[SlotResponse] = None
    appointment: Optional[Dict[str, Any]] = None
    scheduling_request: Optional[Dict[str, Any]] = None
    required_before_booking: List[str] = []
    quick_actions: List[QuickAction] = []
    message: str
    reason: Optional[str] = None


class ChatMessageRequest(BaseModel):
    """A lead's chat message, optionally inside an open negotiation."""
    lead_id: str = Field(..., min_length=1, max_length=64)
    message: str = Field(..., max_length=4000)
    negotiation_id: Optional[UUID] = None
    source: AppointmentSource = AppointmentSource.CHATBOT
    quote_complete: bool = Field(
        default=False,
        description="All quote fields are collected; offers booking when ask_after_quote is on",
    )


class ChatMessageResponse(BaseModel):
    handled: bool
    booking: Optional[BookingPayloadResponse] = None
