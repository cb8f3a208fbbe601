"""Core data structures for scheduling: settings, slots and booking modes."""
from __future__ import annotations

import datetime as _dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

DAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

BusyInterval = Tuple[_dt.datetime, _dt.datetime]
"""(start, end) of an existing appointment, timezone-aware."""


class AppointmentType(str, Enum):
    CALL = "call"
    SITE_VISIT = "site_visit"
    MEETING = "meeting"
    FOLLOW_UP = "follow_up"


class AppointmentSource(str, Enum):
    MANUAL = "manual"
    CHATBOT = "chatbot"
    INBOX = "inbox"
    SIMULATION = "simulation"


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class SchedulingRequestStatus(str, Enum):
    OPEN = "open"
    CONVERTED = "converted"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class BookingMode(str, Enum):
    """Discrete state of a booking negotiation (what the conversation renders next)."""
    OFFER = "offer"
    SLOTS = "slots"
    AWAITING_NAME = "awaiting_name"
    AWAITING_PHONE = "awaiting_phone"
    AWAITING_CUSTOM_TIME = "awaiting_custom_time"
    CONFIRMED = "confirmed"
    DECLINED = "declined"
    NOT_AVAILABLE = "not_available"


class ChatbotBookingMode(str, Enum):
    OFF = "off"
    MANUAL_REQUEST = "manual_request"
    DIRECT_BOOKING = "direct_booking"


class PromptStyle(str, Enum):
    NEUTRAL = "neutral"
    FRIENDLY = "friendly"
    CONCISE = "concise"


class IdentityField(str, Enum):
    NAME = "name"
    PHONE = "phone"


@dataclass
class TimeRange:
    """One working interval inside a day, local wall-clock "HH:MM" strings."""
    start: str
    end: str

    def to_dict(self) -> Dict[str, str]:
        return {"start": self.start, "end": self.end}


@dataclass
class DaySchedule:
    day: str
    enabled: bool = False
    ranges: List[TimeRange] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "day": self.day,
            "enabled": self.enabled,
            "ranges": [r.to_dict() for r in self.ranges],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DaySchedule":
        return cls(
            day=str(data.get("day", "")).lower(),
            enabled=bool(data.get("enabled", False)),
            ranges=[
                TimeRange(start=str(r.get("start", "")), end=str(r.get("end", "")))
                for r in (data.get("ranges") or [])
            ],
        )


def default_working_hours() -> List[DaySchedule]:
    """Mon-Fri 09:00-17:00, weekend off."""
    return [
        DaySchedule(day=d, enabled=d not in ("saturday", "sunday"), ranges=[TimeRange("09:00", "17:00")])
        for d in DAY_NAMES
    ]


@dataclass
class ChatbotBookingConfig:
    """Whether and how an automated agent may offer booking."""

    booking_mode: ChatbotBookingMode = ChatbotBookingMode.MANUAL_REQUEST
    prompt_style: PromptStyle = PromptStyle.NEUTRAL
    required_fields: List[IdentityField] = field(default_factory=list)
    """Identity the lead must provide before a slot can be confirmed."""

    ask_after_quote: bool = True
    default_booking_type: AppointmentType = AppointmentType.CALL
    show_available_slots: bool = True
    allow_custom_time: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "booking_mode": self.booking_mode.value,
            "prompt_style": self.prompt_style.value,
            "required_fields": [f.value for f in self.required_fields],
            "ask_after_quote": self.ask_after_quote,
            "default_booking_type": self.default_booking_type.value,
            "show_available_slots": self.show_available_slots,
            "allow_custom_time": self.allow_custom_time,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]] = None) -> "ChatbotBookingConfig":
        """Build from a stored dict. Enum values are trusted (validated on save)."""
        if not data:
            return cls()
        return cls(
            booking_mode=ChatbotBookingMode(data.get("booking_mode", "manual_request")),
            prompt_style=PromptStyle(data.get("prompt_style", "neutral")),
            required_fields=[IdentityField(f) for f in data.get("required_fields") or []],
            ask_after_quote=bool(data.get("ask_after_quote", True)),
            default_booking_type=AppointmentType(data.get("default_booking_type", "call")),
            show_available_slots=bool(data.get("show_available_slots", True)),
            allow_custom_time=bool(data.get("allow_custom_time", True)),
        )


@dataclass
class SchedulingConfig:
    """Per-workspace scheduling settings (one row per workspace).

    ``working_hours`` is always the seven-entry array Monday..Sunday; each
    day may hold several disjoint ranges (split shifts). Times are local to
    ``timezone``; appointments themselves are stored in UTC.
    """

    scheduling_enabled: bool = True
    allow_manual_booking: bool = True
    timezone: str = "UTC"
    default_appointment_types: List[AppointmentType] = field(
        default_factory=lambda: list(AppointmentType),
    )
    slot_duration_minutes: int = 30
    buffer_before_minutes: int = 0
    buffer_after_minutes: int = 0
    minimum_notice_hours: int = 1
    max_days_ahead: int = 30
    working_hours: List[DaySchedule] = field(default_factory=default_working_hours)
    in_app_reminders: bool = True
    email_reminders: bool = False
    reminder_lead_time_minutes: int = 60
    chatbot_booking: ChatbotBookingConfig = field(default_factory=ChatbotBookingConfig)

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def slot_duration(self) -> _dt.timedelta:
        return _dt.timedelta(minutes=self.slot_duration_minutes)

    def day(self, weekday: int) -> Optional[DaySchedule]:
        """Schedule for a ``date.weekday()`` index, or None if the day is absent."""
        name = DAY_NAMES[weekday]
        for entry in self.working_hours:
            if entry.day == name:
                return entry
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for JSONB persistence and API responses."""
        return {
            "scheduling_enabled": self.scheduling_enabled,
            "allow_manual_booking": self.allow_manual_booking,
            "timezone": self.timezone,
            "default_appointment_types": [t.value for t in self.default_appointment_types],
            "slot_duration_minutes": self.slot_duration_minutes,
            "buffer_before_minutes": self.buffer_before_minutes,
            "buffer_after_minutes": self.buffer_after_minutes,
            "minimum_notice_hours": self.minimum_notice_hours,
            "max_days_ahead": self.max_days_ahead,
            "working_hours": [d.to_dict() for d in self.working_hours],
            "in_app_reminders": self.in_app_reminders,
            "email_reminders": self.email_reminders,
            "reminder_lead_time_minutes": self.reminder_lead_time_minutes,
            "chatbot_booking": self.chatbot_booking.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]] = None) -> "SchedulingConfig":
        """Load from a dict (stored JSONB or a validated request body). Missing keys use defaults."""
        if not data:
            return cls()
        raw_types = data.get("default_appointment_types")
        raw_hours = data.get("working_hours")
        return cls(
            scheduling_enabled=bool(data.get("scheduling_enabled", True)),
            allow_manual_booking=bool(data.get("allow_manual_booking", True)),
            timezone=str(data.get("timezone") or "UTC"),
            default_appointment_types=(
                [AppointmentType(t) for t in raw_types]
                if raw_types is not None
                else list(AppointmentType)
            ),
            slot_duration_minutes=int(data.get("slot_duration_minutes", 30)),
            buffer_before_minutes=int(data.get("buffer_before_minutes", 0)),
            buffer_after_minutes=int(data.get("buffer_after_minutes", 0)),
            minimum_notice_hours=int(data.get("minimum_notice_hours", 1)),
            max_days_ahead=int(data.get("max_days_ahead", 30)),
            working_hours=(
                [DaySchedule.from_dict(d) for d in raw_hours]
                if raw_hours is not None
                else default_working_hours()
            ),
            in_app_reminders=bool(data.get("in_app_reminders", True)),
            email_reminders=bool(data.get("email_reminders", False)),
            reminder_lead_time_minutes=int(data.get("reminder_lead_time_minutes", 60)),
            chatbot_booking=ChatbotBookingConfig.from_dict(data.get("chatbot_booking")),
        )


@dataclass(frozen=True)
class Slot:
    """A candidate bookable interval. ``start``/``end`` are aware UTC datetimes."""
    start: _dt.datetime
    end: _dt.datetime
    timezone: str = "UTC"

    @property
    def id(self) -> str:
        return "slot_" + self.start.astimezone(_dt.timezone.utc).strftime("%Y%m%dT%H%MZ")

    @property
    def label(self) -> str:
        """Display label in the workspace timezone, e.g. "Mon 04 May · 09:00 – 09:30"."""
        tz = ZoneInfo(self.timezone)
        local_start = self.start.astimezone(tz)
        local_end = self.end.astimezone(tz)
        return f"{local_start:%a %d %b} · {local_start:%H:%M} – {local_end:%H:%M}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "timezone": self.timezone,
            "label": self.label,
        }
