"""BookingService: drives booking negotiations against settings, availability and storage.

Every operation takes the negotiation's lock, applies one input and returns
the resulting BookingPayload. Expected outcomes (no availability, slot taken,
declined) come back as a mode plus reason; only malformed input, unknown ids,
disallowed transitions and storage failures raise. A booking is committed
before its negotiation is marked confirmed.
"""
from __future__ import annotations

import datetime as _dt
import logging
from typing import Any, Callable, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from leaddesk.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from leaddesk.scheduling.booking import (
    REASON_BOOKING_DISABLED,
    REASON_CUSTOM_TIME_NOT_ALLOWED,
    REASON_CUSTOM_TIME_UNAVAILABLE,
    REASON_INVALID_NAME,
    REASON_INVALID_PHONE,
    REASON_NO_SLOTS,
    REASON_SLOT_TAKEN,
    Negotiation,
    ReplyIntent,
    awaiting_mode_for,
    build_payload,
    classify_reply,
    detect_booking_intent,
    normalize_identity_value,
    transition,
)
from leaddesk.scheduling.store import NegotiationStore
from leaddesk.scheduling.types import (
    AppointmentSource,
    AppointmentType,
    BookingMode,
    ChatbotBookingMode,
    IdentityField,
    SchedulingConfig,
    Slot,
)
from leaddesk.services.appointment_service import AppointmentService, appointment_to_dict
from leaddesk.services.availability_service import AvailabilityService, utc_now
from leaddesk.services.scheduling_request_service import (
    SchedulingRequestService,
    scheduling_request_to_dict,
)
from leaddesk.services.settings_service import SchedulingSettingsService

logger = logging.getLogger(__name__)

# Sources driven by an automated agent; the chatbot_booking settings apply to them.
_AGENT_SOURCES = frozenset({AppointmentSource.CHATBOT, AppointmentSource.SIMULATION})


class BookingService:
    def __init__(
        self,
        session: AsyncSession,
        store: NegotiationStore,
        *,
        offer_limit: int = 5,
        clock: Callable[[], _dt.datetime] = utc_now,
    ) -> None:
        self._session = session
        self._store = store
        self._offer_limit = offer_limit
        self._settings = SchedulingSettingsService(session)
        self._availability = AvailabilityService(session, clock=clock)
        self._appointments = AppointmentService(session, clock=clock)
        self._requests = SchedulingRequestService(session, clock=clock)

    # ── Operations ───────────────────────────────────────────────────────────

    async def start_booking(
        self,
        workspace_id: str,
        lead_id: str,
        *,
        source: AppointmentSource = AppointmentSource.CHATBOT,
        appointment_type: Optional[AppointmentType] = None,
        contact_name: Optional[str] = None,
        contact_phone: Optional[str] = None,
    ) -> Dict[str, Any]:
        config = await self._settings.get_config(workspace_id)
        chatbot = config.chatbot_booking
        agent = source in _AGENT_SOURCES
        negotiation = Negotiation(
            workspace_id=workspace_id,
            lead_id=lead_id,
            source=source,
            appointment_type=appointment_type or chatbot.default_booking_type,
            timezone=config.timezone,
            required_fields=list(chatbot.required_fields) if agent else [],
            contact_name=normalize_identity_value(IdentityField.NAME, contact_name) if contact_name else None,
            contact_phone=normalize_identity_value(IdentityField.PHONE, contact_phone) if contact_phone else None,
        )
        self._store.add(negotiation)
        logger.info(
            "Booking %s started for lead %s (%s)", negotiation.id, lead_id, source.value,
            extra={"workspace_id": workspace_id, "lead_id": lead_id,
                   "negotiation_id": str(negotiation.id), "mode": negotiation.mode.value},
        )
        if self._booking_disabled(config, negotiation):
            transition(negotiation, BookingMode.NOT_AVAILABLE, reason=REASON_BOOKING_DISABLED)
        return self._payload(negotiation, config)

    async def get(self, workspace_id: str, negotiation_id: UUID) -> Dict[str, Any]:
        negotiation = self._load(workspace_id, negotiation_id)
        config = await self._settings.get_config(workspace_id)
        try:
            return await self._payload_with_records(negotiation, config)
        except NotFoundError:
            logger.warning(
                "Booking %s is confirmed but its record is missing", negotiation.id,
                extra={"negotiation_id": str(negotiation.id), "lead_id": negotiation.lead_id,
                       "workspace_id": workspace_id},
            )
            return self._payload(negotiation, config)

    async def accept_offer(self, workspace_id: str, negotiation_id: UUID) -> Dict[str, Any]:
        async with self._store.lock(negotiation_id):
            negotiation = self._load(workspace_id, negotiation_id)
            self._require_mode(negotiation, BookingMode.OFFER, "accept")
            config = await self._settings.get_config(workspace_id)
            chatbot = config.chatbot_booking
            if (
                negotiation.source in _AGENT_SOURCES
                and not chatbot.show_available_slots
                and chatbot.allow_custom_time
            ):
                transition(negotiation, BookingMode.AWAITING_CUSTOM_TIME)
            else:
                await self._offer_slots(negotiation, config)
            return self._payload(negotiation, config)

    async def show_slots(self, workspace_id: str, negotiation_id: UUID) -> Dict[str, Any]:
        async with self._store.lock(negotiation_id):
            negotiation = self._load(workspace_id, negotiation_id)
            config = await self._settings.get_config(workspace_id)
            negotiation.held_slot = None
            await self._offer_slots(negotiation, config)
            return self._payload(negotiation, config)

    async def select_slot(
        self,
        workspace_id: str,
        negotiation_id: UUID,
        *,
        slot_id: Optional[str] = None,
        start: Optional[_dt.datetime] = None,
    ) -> Dict[str, Any]:
        async with self._store.lock(negotiation_id):
            negotiation = self._load(workspace_id, negotiation_id)
            self._require_mode(negotiation, BookingMode.SLOTS, "select a slot")
            slot = self._offered_slot(negotiation, slot_id, start)
            config = await self._settings.get_config(workspace_id)
            return await self._proceed(negotiation, slot, config)

    async def supply_identity_field(
        self,
        workspace_id: str,
        negotiation_id: UUID,
        field_name: str,
        value: str,
    ) -> Dict[str, Any]:
        try:
            identity = IdentityField(field_name)
        except ValueError as exc:
            raise ValidationError(
                f"Unknown identity field {field_name!r}",
                details={"allowed": [f.value for f in IdentityField]},
            ) from exc

        async with self._store.lock(negotiation_id):
            negotiation = self._load(workspace_id, negotiation_id)
            if negotiation.is_terminal:
                raise InvalidTransitionError(
                    f"Booking is already {negotiation.mode.value}",
                    details={"negotiation_id": str(negotiation.id), "from": negotiation.mode.value},
                )
            config = await self._settings.get_config(workspace_id)

            cleaned = normalize_identity_value(identity, value)
            if cleaned is None:
                negotiation.reason = (
                    REASON_INVALID_NAME if identity is IdentityField.NAME else REASON_INVALID_PHONE
                )
                negotiation.updated_at = _dt.datetime.now(_dt.timezone.utc)
                return self._payload(negotiation, config)
            if identity is IdentityField.NAME:
                negotiation.contact_name = cleaned
            else:
                negotiation.contact_phone = cleaned
            negotiation.reason = None

            if negotiation.mode not in (BookingMode.AWAITING_NAME, BookingMode.AWAITING_PHONE):
                # Volunteered early; remembered for later.
                return self._payload(negotiation, config)

            missing = negotiation.missing_fields()
            if missing:
                target = awaiting_mode_for(missing[0])
                if target is not negotiation.mode:
                    transition(negotiation, target)
                return self._payload(negotiation, config)

            if negotiation.held_slot is not None:
                return await self._confirm(negotiation, negotiation.held_slot, config)
            await self._offer_slots(negotiation, config)
            return self._payload(negotiation, config)

    async def request_custom_time(self, workspace_id: str, negotiation_id: UUID) -> Dict[str, Any]:
        async with self._store.lock(negotiation_id):
            negotiation = self._load(workspace_id, negotiation_id)
            config = await self._settings.get_config(workspace_id)
            allowed = (
                negotiation.source not in _AGENT_SOURCES
                or config.chatbot_booking.allow_custom_time
            )
            if not allowed:
                if negotiation.mode not in (BookingMode.OFFER, BookingMode.SLOTS):
                    raise InvalidTransitionError(
                        f"Cannot request a custom time from {negotiation.mode.value}",
                        details={"negotiation_id": str(negotiation.id), "from": negotiation.mode.value},
                    )
                await self._offer_slots(negotiation, config, reason=REASON_CUSTOM_TIME_NOT_ALLOWED)
            else:
                transition(negotiation, BookingMode.AWAITING_CUSTOM_TIME)
            return self._payload(negotiation, config)

    async def propose_custom_time(
        self,
        workspace_id: str,
        negotiation_id: UUID,
        start: _dt.datetime,
    ) -> Dict[str, Any]:
        if start.tzinfo is None or start.utcoffset() is None:
            raise ValidationError("start must be timezone-aware", details={"field": "start"})
        async with self._store.lock(negotiation_id):
            negotiation = self._load(workspace_id, negotiation_id)
            self._require_mode(negotiation, BookingMode.AWAITING_CUSTOM_TIME, "propose a time")
            config = await self._settings.get_config(workspace_id)
            start = start.astimezone(_dt.timezone.utc)
            end = start + config.slot_duration
            reason = await self._availability.check(workspace_id, start, end, config=config)
            if reason is not None:
                logger.info(
                    "Booking %s: custom time %s rejected (%s)", negotiation.id, start.isoformat(), reason,
                    extra={"negotiation_id": str(negotiation.id), "lead_id": negotiation.lead_id},
                )
                await self._offer_slots(negotiation, config, reason=REASON_CUSTOM_TIME_UNAVAILABLE)
                return self._payload(negotiation, config)
            slot = Slot(start=start, end=end, timezone=config.timezone)
            return await self._proceed(negotiation, slot, config)

    async def decline(self, workspace_id: str, negotiation_id: UUID) -> Dict[str, Any]:
        async with self._store.lock(negotiation_id):
            negotiation = self._load(workspace_id, negotiation_id)
            config = await self._settings.get_config(workspace_id)
            if negotiation.mode is not BookingMode.DECLINED:
                transition(negotiation, BookingMode.DECLINED)
                negotiation.held_slot = None
            return self._payload(negotiation, config)

    async def restart(self, workspace_id: str, negotiation_id: UUID) -> Dict[str, Any]:
        async with self._store.lock(negotiation_id):
            negotiation = self._load(workspace_id, negotiation_id)
            config = await self._settings.get_config(workspace_id)
            transition(negotiation, BookingMode.OFFER)
            negotiation.offered_slots = []
            negotiation.held_slot = None
            if self._booking_disabled(config, negotiation):
                transition(negotiation, BookingMode.NOT_AVAILABLE, reason=REASON_BOOKING_DISABLED)
            return self._payload(negotiation, config)

    async def confirm_appointment(
        self,
        workspace_id: str,
        negotiation_id: UUID,
        *,
        slot_id: Optional[str] = None,
        start: Optional[_dt.datetime] = None,
    ) -> Dict[str, Any]:
        """Book the chosen (or held) slot. Replays on a confirmed negotiation return its record."""
        async with self._store.lock(negotiation_id):
            negotiation = self._load(workspace_id, negotiation_id)
            config = await self._settings.get_config(workspace_id)
            if negotiation.mode is BookingMode.CONFIRMED:
                try:
                    return await self._payload_with_records(negotiation, config)
                except NotFoundError:
                    return await self._rebook(negotiation, config)
            if negotiation.is_terminal or negotiation.mode is BookingMode.OFFER:
                raise InvalidTransitionError(
                    f"Cannot confirm a booking in {negotiation.mode.value}",
                    details={"negotiation_id": str(negotiation.id), "from": negotiation.mode.value},
                )

            if slot_id is not None or start is not None:
                slot = self._offered_slot(negotiation, slot_id, start)
            elif negotiation.held_slot is not None:
                slot = negotiation.held_slot
            else:
                raise ValidationError(
                    "No slot selected for this booking",
                    details={"negotiation_id": str(negotiation.id), "mode": negotiation.mode.value},
                )
            return await self._proceed(negotiation, slot, config)

    async def handle_message(
        self,
        workspace_id: str,
        lead_id: str,
        message: str,
        *,
        negotiation_id: Optional[UUID] = None,
        source: AppointmentSource = AppointmentSource.CHATBOT,
        quote_complete: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """Route a lead's chat message into the booking flow.

        With an open negotiation the reply is classified and applied as one
        input. Without one, a booking request in the message (or a finished
        quote when ``ask_after_quote`` is on) starts a negotiation. Returns
        None when the message is not about booking.
        """
        if negotiation_id is not None:
            negotiation = self._load(workspace_id, negotiation_id)
            intent, value = classify_reply(negotiation, message)
            logger.debug(
                "Booking %s: reply classified as %s", negotiation.id, intent.value,
                extra={"negotiation_id": str(negotiation.id), "lead_id": negotiation.lead_id},
            )
            return await self._apply_reply(workspace_id, negotiation_id, intent, value)

        config = await self._settings.get_config(workspace_id)
        if source in _AGENT_SOURCES and (
            not config.scheduling_enabled
            or config.chatbot_booking.booking_mode is ChatbotBookingMode.OFF
        ):
            return None
        asked = detect_booking_intent(message)
        if not asked and not (quote_complete and config.chatbot_booking.ask_after_quote):
            return None

        payload = await self.start_booking(workspace_id, lead_id, source=source)
        if asked and payload["mode"] == BookingMode.OFFER.value:
            return await self.accept_offer(workspace_id, UUID(payload["negotiation_id"]))
        return payload

    # ── Steps ────────────────────────────────────────────────────────────────

    async def _apply_reply(
        self,
        workspace_id: str,
        negotiation_id: UUID,
        intent: ReplyIntent,
        value: Optional[str],
    ) -> Optional[Dict[str, Any]]:
        if intent is ReplyIntent.DECLINE:
            return await self.decline(workspace_id, negotiation_id)
        if intent is ReplyIntent.ACCEPT:
            return await self.accept_offer(workspace_id, negotiation_id)
        if intent is ReplyIntent.SHOW_SLOTS:
            return await self.show_slots(workspace_id, negotiation_id)
        if intent is ReplyIntent.REQUEST_CUSTOM_TIME:
            return await self.request_custom_time(workspace_id, negotiation_id)
        if intent is ReplyIntent.SELECT_SLOT:
            return await self.select_slot(workspace_id, negotiation_id, slot_id=value)
        if intent in (ReplyIntent.NAME, ReplyIntent.PHONE):
            return await self.supply_identity_field(workspace_id, negotiation_id, intent.value, value)
        return None

    async def _proceed(
        self,
        negotiation: Negotiation,
        slot: Slot,
        config: SchedulingConfig,
    ) -> Dict[str, Any]:
        """Ask for the next missing identity field, or confirm."""
        missing = negotiation.missing_fields()
        if missing:
            negotiation.held_slot = slot
            target = awaiting_mode_for(missing[0])
            if target is not negotiation.mode:
                transition(negotiation, target)
            return self._payload(negotiation, config)
        return await self._confirm(negotiation, slot, config)

    async def _confirm(
        self,
        negotiation: Negotiation,
        slot: Slot,
        config: SchedulingConfig,
    ) -> Dict[str, Any]:
        """Write the booking, commit it, and only then move to ``confirmed``.

        A failed commit leaves the negotiation where it was, so the lead can retry.
        """
        if self._manual_request(config, negotiation):
            reason = await self._availability.check(
                negotiation.workspace_id, slot.start, slot.end, config=config
            )
            if reason is not None:
                await self._offer_slots(negotiation, config, reason=REASON_SLOT_TAKEN)
                return self._payload(negotiation, config)
            req = await self._record_request(negotiation, slot)
            await self._commit(negotiation)
            negotiation.scheduling_request_id = req.id
            negotiation.held_slot = None
            negotiation.confirmed_slot = slot
            transition(negotiation, BookingMode.CONFIRMED)
            return self._payload(
                negotiation, config, scheduling_request=scheduling_request_to_dict(req)
            )

        appt, outcome = await self._reserve(negotiation, slot)
        if appt is None:
            logger.warning(
                "Booking %s: slot %s no longer available (%s)", negotiation.id, slot.id, outcome,
                extra={"negotiation_id": str(negotiation.id), "lead_id": negotiation.lead_id,
                       "workspace_id": negotiation.workspace_id},
            )
            negotiation.held_slot = None
            await self._offer_slots(negotiation, config, reason=REASON_SLOT_TAKEN)
            return self._payload(negotiation, config)

        await self._commit(negotiation)
        negotiation.appointment_id = appt.id
        negotiation.held_slot = None
        negotiation.confirmed_slot = Slot(start=appt.start_at, end=appt.end_at, timezone=appt.timezone)
        transition(negotiation, BookingMode.CONFIRMED)
        return self._payload(negotiation, config, appointment=appointment_to_dict(appt))

    async def _rebook(self, negotiation: Negotiation, config: SchedulingConfig) -> Dict[str, Any]:
        """Write the confirmed slot again after its record went missing."""
        slot = negotiation.confirmed_slot
        logger.warning(
            "Booking %s: confirmed record missing, writing %s again", negotiation.id, slot.id,
            extra={"negotiation_id": str(negotiation.id), "lead_id": negotiation.lead_id,
                   "workspace_id": negotiation.workspace_id},
        )
        if negotiation.scheduling_request_id is not None:
            req = await self._record_request(negotiation, slot)
            await self._commit(negotiation)
            negotiation.scheduling_request_id = req.id
            return self._payload(
                negotiation, config, scheduling_request=scheduling_request_to_dict(req)
            )

        appt, outcome = await self._reserve(negotiation, slot)
        if appt is None:
            raise ConflictError(
                "The confirmed time is no longer available",
                code="SLOT_UNAVAILABLE",
                details={"negotiation_id": str(negotiation.id), "reason": outcome,
                         "start": slot.start.isoformat()},
            )
        await self._commit(negotiation)
        negotiation.appointment_id = appt.id
        return self._payload(negotiation, config, appointment=appointment_to_dict(appt))

    async def _reserve(self, negotiation: Negotiation, slot: Slot):
        return await self._appointments.reserve(
            negotiation.workspace_id,
            negotiation.lead_id,
            slot.start,
            slot.end,
            appointment_type=negotiation.appointment_type,
            source=negotiation.source,
            contact_name=negotiation.contact_name,
            contact_phone=negotiation.contact_phone,
            negotiation_id=negotiation.id,
        )

    async def _record_request(self, negotiation: Negotiation, slot: Slot):
        return await self._requests.record(
            negotiation.workspace_id,
            negotiation.lead_id,
            slot,
            request_type=negotiation.appointment_type,
            source=negotiation.source,
            negotiation_id=negotiation.id,
            contact_name=negotiation.contact_name,
            contact_phone=negotiation.contact_phone,
        )

    async def _commit(self, negotiation: Negotiation) -> None:
        try:
            await self._session.commit()
        except Exception:
            logger.exception(
                "Booking %s: commit failed, staying in %s", negotiation.id, negotiation.mode.value,
                extra={"negotiation_id": str(negotiation.id), "lead_id": negotiation.lead_id,
                       "workspace_id": negotiation.workspace_id},
            )
            await self._session.rollback()
            raise

    async def _offer_slots(
        self,
        negotiation: Negotiation,
        config: SchedulingConfig,
        *,
        reason: Optional[str] = None,
    ) -> None:
        """Recompute slots; ``slots`` when any remain, else ``not_available``."""
        slots = await self._availability.list_slots(
            negotiation.workspace_id, config=config, limit=self._offer_limit
        )
        if slots:
            negotiation.offered_slots = slots
            transition(negotiation, BookingMode.SLOTS, reason=reason)
        else:
            negotiation.offered_slots = []
            transition(negotiation, BookingMode.NOT_AVAILABLE, reason=reason or REASON_NO_SLOTS)

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _load(self, workspace_id: str, negotiation_id: UUID) -> Negotiation:
        negotiation = self._store.get(negotiation_id)
        if negotiation.workspace_id != workspace_id:
            raise NotFoundError(
                "Booking negotiation not found",
                details={"negotiation_id": str(negotiation_id)},
            )
        return negotiation

    @staticmethod
    def _require_mode(negotiation: Negotiation, mode: BookingMode, action: str) -> None:
        if negotiation.mode is not mode:
            raise InvalidTransitionError(
                f"Cannot {action} while booking is {negotiation.mode.value}",
                details={"negotiation_id": str(negotiation.id), "from": negotiation.mode.value},
            )

    @staticmethod
    def _offered_slot(
        negotiation: Negotiation,
        slot_id: Optional[str],
        start: Optional[_dt.datetime],
    ) -> Slot:
        if slot_id is None and start is None:
            raise ValidationError("slot_id or start is required")
        slot = negotiation.find_offered(slot_id=slot_id, start=start)
        if slot is None:
            raise ValidationError(
                "Slot was not offered in this booking",
                details={"negotiation_id": str(negotiation.id), "slot_id": slot_id,
                         "start": start.isoformat() if start else None},
            )
        return slot

    @staticmethod
    def _booking_disabled(config: SchedulingConfig, negotiation: Negotiation) -> bool:
        if negotiation.source not in _AGENT_SOURCES:
            return False
        return (
            not config.scheduling_enabled
            or config.chatbot_booking.booking_mode is ChatbotBookingMode.OFF
        )

    @staticmethod
    def _manual_request(config: SchedulingConfig, negotiation: Negotiation) -> bool:
        return (
            negotiation.source in _AGENT_SOURCES
            and config.chatbot_booking.booking_mode is ChatbotBookingMode.MANUAL_REQUEST
        )

    def _payload(
        self,
        negotiation: Negotiation,
        config: SchedulingConfig,
        *,
        appointment: Optional[Dict[str, Any]] = None,
        scheduling_request: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        chatbot = config.chatbot_booking
        return build_payload(
            negotiation,
            style=chatbot.prompt_style,
            show_available_slots=chatbot.show_available_slots,
            allow_custom_time=chatbot.allow_custom_time,
            appointment=appointment,
            scheduling_request=scheduling_request,
        )

    async def _payload_with_records(
        self,
        negotiation: Negotiation,
        config: SchedulingConfig,
    ) -> Dict[str, Any]:
        appointment = None
        scheduling_request = None
        if negotiation.appointment_id is not None:
            appt = await self._appointments.get(negotiation.workspace_id, negotiation.appointment_id)
            appointment = appointment_to_dict(appt)
        if negotiation.scheduling_request_id is not None:
            req = await self._requests.get(negotiation.workspace_id, negotiation.scheduling_request_id)
            scheduling_request = scheduling_request_to_dict(req)
        return self._payload(
            negotiation, config, appointment=appointment, scheduling_request=scheduling_request
        )
