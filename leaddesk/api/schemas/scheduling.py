"""Pydantic schemas for the scheduling settings API.

Every field is required on write: the settings object is replaced as a whole.
"""
from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field

from leaddesk.scheduling.types import (
    AppointmentType,
    ChatbotBookingMode,
    IdentityField,
    PromptStyle,
)


class TimeRangeSchema(BaseModel):
    start: str = Field(..., description="Local wall-clock time, HH:MM")
    end: str = Field(..., description="Local wall-clock time, HH:MM")

    class Config:
        extra = "forbid"


class DayScheduleSchema(BaseModel):
    day: str
    enabled: bool
    ranges: List[TimeRangeSchema]

    class Config:
        extra = "forbid"


class ChatbotBookingSchema(BaseModel):
    booking_mode: ChatbotBookingMode
    prompt_style: PromptStyle
    required_fields: List[IdentityField]
    ask_after_quote: bool
    default_booking_type: AppointmentType
    show_available_slots: bool
    allow_custom_time: bool

    class Config:
        extra = "forbid"


class SchedulingSettingsSchema(BaseModel):
    scheduling_enabled: bool
    allow_manual_booking: bool
    timezone: str = Field(..., min_length=1, max_length=64)
    default_appointment_types: List[AppointmentType]
    slot_duration_minutes: int
    buffer_before_minutes: int
    buffer_after_minutes: int
    minimum_notice_hours: int
    max_days_ahead: int
    working_hours: List[DayScheduleSchema]
    in_app_reminders: bool
    email_reminders: bool
    reminder_lead_time_minutes: int
    chatbot_booking: ChatbotBookingSchema

    class Config:
        extra = "forbid"
