"""Booking negotiation state machine.

A ``Negotiation`` is one in-progress booking conversation for a lead. Its
``mode`` only changes through ``transition()``, which enforces the table
below. Everything here is in-memory; the only persisted effect of a
negotiation is the appointment (or scheduling request) written when it
enters ``confirmed``, which ``BookingService`` does.
``classify_reply`` maps a lead's free-text chat reply onto the matching input.

    offer                -> slots | awaiting_name | awaiting_phone | awaiting_custom_time
                            | not_available | declined
    slots                -> slots | awaiting_name | awaiting_phone | awaiting_custom_time
                            | confirmed | not_available | declined
    awaiting_name        -> awaiting_phone | slots | confirmed | not_available | declined
    awaiting_phone       -> awaiting_name | slots | confirmed | not_available | declined
    awaiting_custom_time -> slots | awaiting_name | awaiting_phone | confirmed
                            | not_available | declined
    not_available        -> offer                      (restart)
    confirmed, declined  -> (terminal)
"""
from __future__ import annotations

import datetime as _dt
import logging
import re
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from leaddesk.core.exceptions import InvalidTransitionError
from leaddesk.scheduling.types import (
    AppointmentSource,
    AppointmentType,
    BookingMode,
    IdentityField,
    PromptStyle,
    Slot,
)

logger = logging.getLogger(__name__)

M = BookingMode

TRANSITIONS: Dict[BookingMode, FrozenSet[BookingMode]] = {
    M.OFFER: frozenset({
        M.SLOTS, M.AWAITING_NAME, M.AWAITING_PHONE, M.AWAITING_CUSTOM_TIME,
        M.NOT_AVAILABLE, M.DECLINED,
    }),
    M.SLOTS: frozenset({
        M.SLOTS, M.AWAITING_NAME, M.AWAITING_PHONE, M.AWAITING_CUSTOM_TIME,
        M.CONFIRMED, M.NOT_AVAILABLE, M.DECLINED,
    }),
    M.AWAITING_NAME: frozenset({
        M.AWAITING_PHONE, M.SLOTS, M.CONFIRMED, M.NOT_AVAILABLE, M.DECLINED,
    }),
    M.AWAITING_PHONE: frozenset({
        M.AWAITING_NAME, M.SLOTS, M.CONFIRMED, M.NOT_AVAILABLE, M.DECLINED,
    }),
    M.AWAITING_CUSTOM_TIME: frozenset({
        M.SLOTS, M.AWAITING_NAME, M.AWAITING_PHONE, M.CONFIRMED,
        M.NOT_AVAILABLE, M.DECLINED,
    }),
    M.CONFIRMED: frozenset(),
    M.DECLINED: frozenset(),
    M.NOT_AVAILABLE: frozenset({M.OFFER}),
}

TERMINAL_MODES = frozenset({M.CONFIRMED, M.DECLINED, M.NOT_AVAILABLE})

# Reasons attached to a payload when the machine moves somewhere the caller
# did not ask for (expected outcomes, never exceptions).
REASON_SLOT_TAKEN = "slot_taken"
REASON_NO_SLOTS = "no_slots"
REASON_BOOKING_DISABLED = "booking_disabled"
REASON_CUSTOM_TIME_NOT_ALLOWED = "custom_time_not_allowed"
REASON_CUSTOM_TIME_UNAVAILABLE = "custom_time_unavailable"
REASON_INVALID_NAME = "invalid_name"
REASON_INVALID_PHONE = "invalid_phone"

_PHONE_RE = re.compile(r"^[\d\s+\-().]+$")


def can_transition(current: BookingMode, target: BookingMode) -> bool:
    return target in TRANSITIONS[current]


@dataclass
class Negotiation:
    """State of one booking conversation. Never persisted."""

    workspace_id: str
    lead_id: str
    source: AppointmentSource = AppointmentSource.CHATBOT
    appointment_type: AppointmentType = AppointmentType.CALL
    timezone: str = "UTC"
    required_fields: List[IdentityField] = field(default_factory=list)
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    mode: BookingMode = BookingMode.OFFER
    offered_slots: List[Slot] = field(default_factory=list)
    held_slot: Optional[Slot] = None
    """Slot chosen while identity was still missing; re-validated before confirming."""

    confirmed_slot: Optional[Slot] = None
    appointment_id: Optional[uuid.UUID] = None
    scheduling_request_id: Optional[uuid.UUID] = None
    reason: Optional[str] = None
    created_at: _dt.datetime = field(default_factory=lambda: _dt.datetime.now(_dt.timezone.utc))
    updated_at: _dt.datetime = field(default_factory=lambda: _dt.datetime.now(_dt.timezone.utc))

    @property
    def is_terminal(self) -> bool:
        return self.mode in TERMINAL_MODES

    def missing_fields(self) -> List[IdentityField]:
        """Required identity fields not collected yet, in the order they are asked."""
        known = {
            IdentityField.NAME: bool(self.contact_name),
            IdentityField.PHONE: bool(self.contact_phone),
        }
        return [f for f in (IdentityField.NAME, IdentityField.PHONE)
                if f in self.required_fields and not known[f]]

    def find_offered(self, slot_id: Optional[str] = None, start: Optional[_dt.datetime] = None) -> Optional[Slot]:
        for slot in self.offered_slots:
            if slot_id is not None and slot.id == slot_id:
                return slot
            if start is not None and slot.start == start:
                return slot
        return None


def transition(
    negotiation: Negotiation,
    target: BookingMode,
    *,
    reason: Optional[str] = None,
) -> Negotiation:
    """Move ``negotiation`` to ``target`` or raise InvalidTransitionError."""
    current = negotiation.mode
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"Cannot move booking from {current.value} to {target.value}",
            details={
                "negotiation_id": str(negotiation.id),
                "from": current.value,
                "to": target.value,
            },
        )
    negotiation.mode = target
    negotiation.reason = reason
    negotiation.updated_at = _dt.datetime.now(_dt.timezone.utc)
    logger.info(
        "Booking %s: %s -> %s%s",
        negotiation.id, current.value, target.value, f" ({reason})" if reason else "",
        extra={"negotiation_id": str(negotiation.id), "lead_id": negotiation.lead_id,
               "mode": target.value},
    )
    return negotiation


def awaiting_mode_for(field_name: IdentityField) -> BookingMode:
    return M.AWAITING_NAME if field_name is IdentityField.NAME else M.AWAITING_PHONE


def normalize_identity_value(field_name: IdentityField, value: str) -> Optional[str]:
    """Cleaned value, or None when it does not look like a name/phone number."""
    cleaned = " ".join((value or "").split())
    if field_name is IdentityField.NAME:
        return cleaned if len(cleaned) >= 2 else None
    if not _PHONE_RE.match(cleaned):
        return None
    digits = sum(ch.isdigit() for ch in cleaned)
    return cleaned if digits >= 6 else None


# ── Conversation text ─────────────────────────────────────────────────────────

_MESSAGES: Dict[PromptStyle, Dict[BookingMode, str]] = {
    PromptStyle.NEUTRAL: {
        M.OFFER: "Would you like to schedule a {type}?",
        M.SLOTS: "Here are the available times for a {type}. Please pick one.",
        M.AWAITING_NAME: "Before we schedule, could you share your name?",
        M.AWAITING_PHONE: "Could you share your phone number so we can reach you?",
        M.AWAITING_CUSTOM_TIME: "When would work best for you?",
        M.CONFIRMED: "Your {type} is booked for {when}.",
        M.DECLINED: "No problem, we can schedule later.",
        M.NOT_AVAILABLE: "There are no available times right now.",
    },
    PromptStyle.FRIENDLY: {
        M.OFFER: "Would you like to set up a quick {type}? Happy to find a time that suits you!",
        M.SLOTS: "Great! Here are some times that work for a {type}. Which one suits you best?",
        M.AWAITING_NAME: "Lovely! Before I book it, what name should I put it under?",
        M.AWAITING_PHONE: "Thanks! What's the best phone number to reach you on?",
        M.AWAITING_CUSTOM_TIME: "Sure! What time would suit you best?",
        M.CONFIRMED: "All set! Your {type} is booked for {when}. Talk soon!",
        M.DECLINED: "No worries at all, just let me know whenever you're ready.",
        M.NOT_AVAILABLE: "Sorry, I couldn't find any free times right now.",
    },
    PromptStyle.CONCISE: {
        M.OFFER: "Schedule a {type}?",
        M.SLOTS: "Available times:",
        M.AWAITING_NAME: "Your name?",
        M.AWAITING_PHONE: "Your phone number?",
        M.AWAITING_CUSTOM_TIME: "Preferred time?",
        M.CONFIRMED: "Booked: {when}.",
        M.DECLINED: "Okay.",
        M.NOT_AVAILABLE: "No times available.",
    },
}

_REASON_PREFIX = {
    REASON_SLOT_TAKEN: "That time was just taken.",
    REASON_CUSTOM_TIME_UNAVAILABLE: "That time isn't available.",
    REASON_CUSTOM_TIME_NOT_ALLOWED: "Please choose one of the offered times.",
    REASON_INVALID_NAME: "I didn't catch a name there.",
    REASON_INVALID_PHONE: "That doesn't look like a phone number.",
}


def render_message(negotiation: Negotiation, style: PromptStyle = PromptStyle.NEUTRAL) -> str:
    slot = negotiation.confirmed_slot
    text = _MESSAGES[style][negotiation.mode].format(
        type=negotiation.appointment_type.value.replace("_", " "),
        when=slot.label if slot is not None else "",
    )
    prefix = _REASON_PREFIX.get(negotiation.reason or "")
    return f"{prefix} {text}" if prefix else text


def quick_actions(
    negotiation: Negotiation,
    *,
    show_available_slots: bool,
    allow_custom_time: bool,
) -> List[Dict[str, str]]:
    """Suggested replies the conversation UI renders as buttons."""
    actions: List[Dict[str, str]] = []
    if negotiation.mode is M.OFFER:
        if show_available_slots:
            actions.append({"label": "Show available slots", "action": "accept"})
        if allow_custom_time:
            actions.append({"label": "Propose a time", "action": "request_custom_time"})
        actions.append({"label": "Not now", "action": "decline"})
    elif negotiation.mode is M.SLOTS:
        if allow_custom_time:
            actions.append({"label": "Propose another time", "action": "request_custom_time"})
        actions.append({"label": "Not now", "action": "decline"})
    elif negotiation.mode is M.NOT_AVAILABLE:
        actions.append({"label": "Try again", "action": "restart"})
    return actions


def build_payload(
    negotiation: Negotiation,
    *,
    style: PromptStyle = PromptStyle.NEUTRAL,
    show_available_slots: bool = True,
    allow_custom_time: bool = True,
    appointment: Optional[Dict[str, Any]] = None,
    scheduling_request: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Render the negotiation as the BookingPayload the conversation layer consumes."""
    return {
        "mode": negotiation.mode.value,
        "negotiation_id": str(negotiation.id),
        "lead_id": negotiation.lead_id,
        "appointment_type": negotiation.appointment_type.value,
        "timezone": negotiation.timezone,
        "slots": (
            [s.to_dict() for s in negotiation.offered_slots]
            if negotiation.mode is M.SLOTS
            else []
        ),
        "confirmed_slot": (
            negotiation.confirmed_slot.to_dict() if negotiation.confirmed_slot else None
        ),
        "appointment": appointment,
        "scheduling_request": scheduling_request,
        "required_before_booking": [f.value for f in negotiation.missing_fields()],
        "quick_actions": quick_actions(
            negotiation,
            show_available_slots=show_available_slots,
            allow_custom_time=allow_custom_time,
        ),
        "message": render_message(negotiation, style),
        "reason": negotiation.reason,
    }


# ── Free-text replies ─────────────────────────────────────────────────────────

_BOOKING_INTENT_PATTERNS = tuple(re.compile(p, re.IGNORECASE) for p in (
    r"\b(book|booking|schedule|appointment)\b",
    r"\b(call me|can we talk|meeting)\b",
    r"\b(tomorrow|next week|this week|at \d{1,2}(:\d{2})?\s*(am|pm)?)\b",
    r"\b(can i schedule|set up a (call|meeting|visit))\b",
    r"\b(available\s*(time|slot)s?)\b",
    r"\b(\d{1,2}:\d{2}|\d{1,2}\s*(o'?clock|am|pm))\b",
))

_DECLINE_RE = re.compile(r"\b(not now|no thanks|maybe later|decline|skip)\b|^later\W*$", re.IGNORECASE)
_SHOW_SLOTS_RE = re.compile(r"\b(show.*slots?|available.*times?|show.*available)\b", re.IGNORECASE)
_CUSTOM_TIME_RE = re.compile(r"\b(propose|custom|my own|prefer|another time|different time)\b", re.IGNORECASE)
_ACCEPT_RE = re.compile(
    r"\b(yes|yeah|sure|ok|okay|confirm|book|go ahead|sounds good|let'?s do it)\b", re.IGNORECASE
)
_SLOT_CHOICE_RE = re.compile(r"^\s*(?:#|option\s+|slot\s+|number\s+)?(\d{1,2})\s*[.)]?\s*$", re.IGNORECASE)
_NAME_PREFIX_RE = re.compile(r"^(my name is|name is|i am|i'm|it's|this is)\s+", re.IGNORECASE)
_PHONE_IN_TEXT_RE = re.compile(r"\+?[\d\s\-().]{6,}")


class ReplyIntent(str, Enum):
    DECLINE = "decline"
    ACCEPT = "accept"
    SHOW_SLOTS = "show_slots"
    REQUEST_CUSTOM_TIME = "request_custom_time"
    SELECT_SLOT = "select_slot"
    NAME = "name"
    PHONE = "phone"
    NONE = "none"


def detect_booking_intent(message: str) -> bool:
    """True when a lead message asks for a call, meeting or time. Keyword based, no model."""
    if not message:
        return False
    return any(p.search(message) for p in _BOOKING_INTENT_PATTERNS)


def _extract_name(message: str) -> Optional[str]:
    text = _NAME_PREFIX_RE.sub("", message.strip()).strip(" .!")
    return normalize_identity_value(IdentityField.NAME, text)


def _extract_phone(message: str) -> Optional[str]:
    for match in _PHONE_IN_TEXT_RE.finditer(message):
        phone = normalize_identity_value(IdentityField.PHONE, match.group().strip())
        if phone is not None:
            return phone
    return None


def classify_reply(negotiation: Negotiation, message: str) -> Tuple[ReplyIntent, Optional[str]]:
    """Map a lead's free-text reply onto the input the negotiation expects.

    Returns the intent and, for NAME / PHONE / SELECT_SLOT, the extracted
    value (the name, the phone number, the slot id). ``NONE`` means the
    message is not about booking and the conversation layer answers it.
    """
    msg = (message or "").strip()
    mode = negotiation.mode
    if not msg or negotiation.is_terminal:
        return ReplyIntent.NONE, None

    if _DECLINE_RE.search(msg):
        return ReplyIntent.DECLINE, None
    if _SHOW_SLOTS_RE.search(msg):
        return ReplyIntent.SHOW_SLOTS, None
    if mode in (M.OFFER, M.SLOTS) and _CUSTOM_TIME_RE.search(msg):
        return ReplyIntent.REQUEST_CUSTOM_TIME, None

    if mode is M.AWAITING_PHONE:
        phone = _extract_phone(msg)
        if phone is not None:
            return ReplyIntent.PHONE, phone
    if mode is M.AWAITING_NAME:
        name = _extract_name(msg)
        if name is not None:
            return ReplyIntent.NAME, name

    if mode is M.SLOTS:
        choice = _SLOT_CHOICE_RE.match(msg)
        if choice:
            index = int(choice.group(1)) - 1
            if 0 <= index < len(negotiation.offered_slots):
                return ReplyIntent.SELECT_SLOT, negotiation.offered_slots[index].id
    if mode is M.OFFER and _ACCEPT_RE.search(msg):
        return ReplyIntent.ACCEPT, None
    return ReplyIntent.NONE, None
