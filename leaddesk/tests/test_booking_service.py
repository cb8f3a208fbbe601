"""Tests for BookingService.

Covers:
- Starting a negotiation (offer / booking disabled)
- Offer -> slots -> identity -> confirmed, in direct_booking and manual_request modes
- Slot taken between offer and confirm, and confirmation replay
- Custom time requests and proposals
- Decline / restart rules and lookup errors
- Commit ordering on confirm and rebooking a lost confirmation
- Routing free-text chat replies into the flow
"""
from __future__ import annotations

import asyncio
import datetime as _dt
import unittest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

from leaddesk.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from leaddesk.scheduling.store import NegotiationStore
from leaddesk.scheduling.types import (
    AppointmentSource,
    ChatbotBookingConfig,
    ChatbotBookingMode,
    IdentityField,
    SchedulingConfig,
    Slot,
)
from leaddesk.services.booking_service import BookingService

UTC = _dt.timezone.utc
WS = "ws-1"
NOW = _dt.datetime(2026, 5, 3, 12, tzinfo=UTC)


def _run(coro):
    return asyncio.run(coro)


def _slots(n: int = 3, hour: int = 9):
    start = _dt.datetime(2026, 5, 4, hour, tzinfo=UTC)
    step = _dt.timedelta(minutes=30)
    return [Slot(start=start + step * i, end=start + step * (i + 1)) for i in range(n)]


def _config(
    *,
    booking_mode=ChatbotBookingMode.DIRECT_BOOKING,
    required=(),
    allow_custom_time=True,
    show_available_slots=True,
    enabled=True,
) -> SchedulingConfig:
    return SchedulingConfig(
        scheduling_enabled=enabled,
        chatbot_booking=ChatbotBookingConfig(
            booking_mode=booking_mode,
            required_fields=list(required),
            allow_custom_time=allow_custom_time,
            show_available_slots=show_available_slots,
        ),
    )


def _fake_appointment(start, end, **kwargs):
    defaults = {
        "id": uuid4(),
        "workspace_id": WS,
        "lead_id": "lead-1",
        "negotiation_id": None,
        "title": "Call with lead-1",
        "appointment_type": "call",
        "start_at": start,
        "end_at": end,
        "timezone": "UTC",
        "notes": None,
        "contact_name": None,
        "contact_phone": None,
        "source": "chatbot",
        "reminder_minutes_before": 60,
        "status": "scheduled",
    }
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


def _fake_request(slot, **kwargs):
    defaults = {
        "id": uuid4(),
        "workspace_id": WS,
        "lead_id": "lead-1",
        "negotiation_id": None,
        "status": "open",
        "request_type": "call",
        "preferred_start": slot.start,
        "preferred_end": slot.end,
        "timezone": "UTC",
        "contact_name": None,
        "contact_phone": None,
        "source": "chatbot",
        "notes": None,
        "converted_appointment_id": None,
    }
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


def _session():
    session = MagicMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


def _make_service(config=None, *, slots=None, store=None):
    svc = BookingService(_session(), store or NegotiationStore(), offer_limit=5, clock=lambda: NOW)
    svc._settings.get_config = AsyncMock(return_value=config or _config())
    svc._availability.list_slots = AsyncMock(return_value=list(_slots() if slots is None else slots))
    svc._availability.check = AsyncMock(return_value=None)

    async def _reserve(workspace_id, lead_id, start, end, **kwargs):
        appt = _fake_appointment(
            start, end,
            negotiation_id=kwargs.get("negotiation_id"),
            contact_name=kwargs.get("contact_name"),
            contact_phone=kwargs.get("contact_phone"),
        )
        svc._appointments.get.return_value = appt
        return appt, "ok"

    svc._appointments.reserve = AsyncMock(side_effect=_reserve)
    svc._appointments.get = AsyncMock()
    return svc


def _nid(payload) -> UUID:
    return UUID(payload["negotiation_id"])


def _to_slots(svc, **start_kwargs):
    payload = _run(svc.start_booking(WS, "lead-1", **start_kwargs))
    return _run(svc.accept_offer(WS, _nid(payload)))


class TestStartBooking(unittest.TestCase):
    def test_starts_in_offer(self):
        svc = _make_service()
        payload = _run(svc.start_booking(WS, "lead-1"))

        self.assertEqual(payload["mode"], "offer")
        self.assertEqual(payload["lead_id"], "lead-1")
        self.assertEqual(payload["appointment_type"], "call")
        self.assertEqual(payload["slots"], [])

    def test_chatbot_with_booking_off_is_not_available(self):
        svc = _make_service(_config(booking_mode=ChatbotBookingMode.OFF))
        payload = _run(svc.start_booking(WS, "lead-1"))

        self.assertEqual(payload["mode"], "not_available")
        self.assertEqual(payload["reason"], "booking_disabled")

    def test_chatbot_with_scheduling_disabled_is_not_available(self):
        svc = _make_service(_config(enabled=False))
        payload = _run(svc.start_booking(WS, "lead-1"))
        self.assertEqual(payload["mode"], "not_available")

    def test_manual_source_ignores_chatbot_switch(self):
        svc = _make_service(_config(booking_mode=ChatbotBookingMode.OFF, required=[IdentityField.NAME]))
        payload = _run(svc.start_booking(WS, "lead-1", source=AppointmentSource.MANUAL))

        self.assertEqual(payload["mode"], "offer")
        self.assertEqual(payload["required_before_booking"], [])


class TestDirectBooking(unittest.TestCase):
    def test_accept_offers_fresh_slots(self):
        svc = _make_service()
        payload = _to_slots(svc)

        self.assertEqual(payload["mode"], "slots")
        self.assertEqual(len(payload["slots"]), 3)
        svc._availability.list_slots.assert_awaited_once()
        self.assertEqual(svc._availability.list_slots.call_args.kwargs["limit"], 5)

    def test_accept_without_slots_is_not_available(self):
        svc = _make_service(slots=[])
        payload = _to_slots(svc)

        self.assertEqual(payload["mode"], "not_available")
        self.assertEqual(payload["reason"], "no_slots")
        self.assertEqual(payload["quick_actions"], [{"label": "Try again", "action": "restart"}])

    def test_accept_goes_to_custom_time_when_slots_hidden(self):
        svc = _make_service(_config(show_available_slots=False))
        payload = _to_slots(svc)
        self.assertEqual(payload["mode"], "awaiting_custom_time")

    def test_select_slot_confirms_when_no_identity_required(self):
        svc = _make_service()
        slots = _to_slots(svc)
        nid = _nid(slots)
        payload = _run(svc.select_slot(WS, nid, slot_id=slots["slots"][1]["id"]))

        self.assertEqual(payload["mode"], "confirmed")
        self.assertEqual(payload["confirmed_slot"]["start"], "2026-05-04T09:30:00+00:00")
        self.assertEqual(payload["appointment"]["status"], "scheduled")
        kwargs = svc._appointments.reserve.call_args.kwargs
        self.assertEqual(kwargs["negotiation_id"], nid)
        self.assertIs(kwargs["source"], AppointmentSource.CHATBOT)

    def test_select_by_start_time(self):
        svc = _make_service()
        nid = _nid(_to_slots(svc))
        payload = _run(svc.select_slot(WS, nid, start=_dt.datetime(2026, 5, 4, 10, tzinfo=UTC)))
        self.assertEqual(payload["mode"], "confirmed")

    def test_slot_not_offered_is_rejected(self):
        svc = _make_service()
        nid = _nid(_to_slots(svc))
        with self.assertRaises(ValidationError):
            _run(svc.select_slot(WS, nid, slot_id="slot_20300101T0900Z"))
        svc._appointments.reserve.assert_not_awaited()

    def test_select_before_accept_is_invalid(self):
        svc = _make_service()
        nid = _nid(_run(svc.start_booking(WS, "lead-1")))
        with self.assertRaises(InvalidTransitionError):
            _run(svc.select_slot(WS, nid, slot_id=_slots()[0].id))

    def test_accept_twice_is_invalid(self):
        svc = _make_service()
        nid = _nid(_to_slots(svc))
        with self.assertRaises(InvalidTransitionError):
            _run(svc.accept_offer(WS, nid))

    def test_show_slots_refreshes_list(self):
        svc = _make_service()
        nid = _nid(_to_slots(svc))
        svc._availability.list_slots.return_value = _slots(2, hour=14)
        payload = _run(svc.show_slots(WS, nid))

        self.assertEqual(payload["mode"], "slots")
        self.assertEqual([s["id"] for s in payload["slots"]], [s.id for s in _slots(2, hour=14)])


class TestIdentity(unittest.TestCase):
    def test_name_then_phone_then_confirmed(self):
        svc = _make_service(_config(required=[IdentityField.NAME, IdentityField.PHONE]))
        slots = _to_slots(svc)
        nid = _nid(slots)

        payload = _run(svc.select_slot(WS, nid, slot_id=slots["slots"][0]["id"]))
        self.assertEqual(payload["mode"], "awaiting_name")
        self.assertEqual(payload["required_before_booking"], ["name", "phone"])
        svc._appointments.reserve.assert_not_awaited()

        payload = _run(svc.supply_identity_field(WS, nid, "name", "Ada Lovelace"))
        self.assertEqual(payload["mode"], "awaiting_phone")

        payload = _run(svc.supply_identity_field(WS, nid, "phone", "+44 20 7946 0000"))
        self.assertEqual(payload["mode"], "confirmed")
        kwargs = svc._appointments.reserve.call_args.kwargs
        self.assertEqual(kwargs["contact_name"], "Ada Lovelace")
        self.assertEqual(kwargs["contact_phone"], "+44 20 7946 0000")

    def test_invalid_value_keeps_mode_with_reason(self):
        svc = _make_service(_config(required=[IdentityField.NAME]))
        slots = _to_slots(svc)
        nid = _nid(slots)
        _run(svc.select_slot(WS, nid, slot_id=slots["slots"][0]["id"]))

        payload = _run(svc.supply_identity_field(WS, nid, "name", "A"))
        self.assertEqual(payload["mode"], "awaiting_name")
        self.assertEqual(payload["reason"], "invalid_name")

        payload = _run(svc.supply_identity_field(WS, nid, "name", "Al"))
        self.assertEqual(payload["mode"], "confirmed")

    def test_identity_given_at_start_skips_question(self):
        svc = _make_service(_config(required=[IdentityField.NAME]))
        payload = _run(svc.start_booking(WS, "lead-1", contact_name="Grace Hopper"))
        self.assertEqual(payload["required_before_booking"], [])

        nid = _nid(payload)
        slots = _run(svc.accept_offer(WS, nid))
        payload = _run(svc.select_slot(WS, nid, slot_id=slots["slots"][0]["id"]))
        self.assertEqual(payload["mode"], "confirmed")

    def test_unknown_field_rejected(self):
        svc = _make_service()
        nid = _nid(_run(svc.start_booking(WS, "lead-1")))
        with self.assertRaises(ValidationError):
            _run(svc.supply_identity_field(WS, nid, "email", "a@example.com"))

    def test_held_slot_taken_while_collecting_identity(self):
        svc = _make_service(_config(required=[IdentityField.PHONE]))
        slots = _to_slots(svc)
        nid = _nid(slots)
        _run(svc.select_slot(WS, nid, slot_id=slots["slots"][0]["id"]))

        svc._appointments.reserve.side_effect = None
        svc._appointments.reserve.return_value = (None, "slot_conflict")
        svc._availability.list_slots.return_value = _slots(2, hour=11)
        payload = _run(svc.supply_identity_field(WS, nid, "phone", "555 010 9999"))

        self.assertEqual(payload["mode"], "slots")
        self.assertEqual(payload["reason"], "slot_taken")
        self.assertEqual(payload["slots"][0]["start"], "2026-05-04T11:00:00+00:00")

    def test_show_slots_releases_held_slot(self):
        svc = _make_service(_config(required=[IdentityField.NAME]))
        slots = _to_slots(svc)
        nid = _nid(slots)
        _run(svc.select_slot(WS, nid, slot_id=slots["slots"][0]["id"]))
        svc._availability.list_slots.return_value = _slots(2, hour=14)

        payload = _run(svc.show_slots(WS, nid))
        self.assertEqual(payload["mode"], "slots")

        _run(svc.supply_identity_field(WS, nid, "name", "Ada Lovelace"))
        with self.assertRaises(ValidationError):
            _run(svc.confirm_appointment(WS, nid))
        svc._appointments.reserve.assert_not_awaited()


class TestConfirmation(unittest.TestCase):
    def test_replay_returns_same_appointment_without_new_row(self):
        svc = _make_service()
        slots = _to_slots(svc)
        nid = _nid(slots)
        slot_id = slots["slots"][0]["id"]

        first = _run(svc.confirm_appointment(WS, nid, slot_id=slot_id))
        second = _run(svc.confirm_appointment(WS, nid, slot_id=slot_id))

        self.assertEqual(first["mode"], "confirmed")
        self.assertEqual(second["mode"], "confirmed")
        self.assertEqual(first["appointment"]["id"], second["appointment"]["id"])
        svc._appointments.reserve.assert_awaited_once()

    def test_competing_negotiation_gets_slot_taken(self):
        store = NegotiationStore()
        svc = _make_service(store=store)
        first = _to_slots(svc)
        second = _to_slots(svc)
        slot_id = first["slots"][0]["id"]

        won = _run(svc.confirm_appointment(WS, _nid(first), slot_id=slot_id))

        svc._appointments.reserve.side_effect = None
        svc._appointments.reserve.return_value = (None, "slot_taken")
        svc._availability.list_slots.return_value = _slots(3)[1:]
        lost = _run(svc.confirm_appointment(WS, _nid(second), slot_id=slot_id))

        self.assertEqual(won["mode"], "confirmed")
        self.assertEqual(lost["mode"], "slots")
        self.assertEqual(lost["reason"], "slot_taken")
        self.assertNotIn(slot_id, [s["id"] for s in lost["slots"]])

    def test_conflict_with_nothing_left_is_not_available(self):
        svc = _make_service()
        slots = _to_slots(svc)
        svc._appointments.reserve.side_effect = None
        svc._appointments.reserve.return_value = (None, "slot_taken")
        svc._availability.list_slots.return_value = []

        payload = _run(svc.confirm_appointment(WS, _nid(slots), slot_id=slots["slots"][0]["id"]))
        self.assertEqual(payload["mode"], "not_available")
        self.assertEqual(payload["reason"], "slot_taken")

    def test_confirm_without_slot_is_rejected(self):
        svc = _make_service()
        nid = _nid(_to_slots(svc))
        with self.assertRaises(ValidationError):
            _run(svc.confirm_appointment(WS, nid))

    def test_confirm_from_offer_is_invalid(self):
        svc = _make_service()
        nid = _nid(_run(svc.start_booking(WS, "lead-1")))
        with self.assertRaises(InvalidTransitionError):
            _run(svc.confirm_appointment(WS, nid, slot_id=_slots()[0].id))

    def test_manual_request_mode_records_request(self):
        svc = _make_service(_config(booking_mode=ChatbotBookingMode.MANUAL_REQUEST))
        svc._requests.record = AsyncMock(side_effect=lambda ws, lead, slot, **kw: _fake_request(
            slot, negotiation_id=kw["negotiation_id"]
        ))
        slots = _to_slots(svc)
        nid = _nid(slots)
        payload = _run(svc.select_slot(WS, nid, slot_id=slots["slots"][0]["id"]))

        self.assertEqual(payload["mode"], "confirmed")
        self.assertIsNone(payload["appointment"])
        self.assertEqual(payload["scheduling_request"]["status"], "open")
        self.assertEqual(payload["scheduling_request"]["negotiation_id"], str(nid))
        svc._appointments.reserve.assert_not_awaited()
        svc._availability.check.assert_awaited_once()

    def test_manual_request_revalidates_slot(self):
        svc = _make_service(_config(booking_mode=ChatbotBookingMode.MANUAL_REQUEST))
        svc._requests.record = AsyncMock()
        slots = _to_slots(svc)
        svc._availability.check.return_value = "slot_conflict"

        payload = _run(svc.select_slot(WS, _nid(slots), slot_id=slots["slots"][0]["id"]))
        self.assertEqual(payload["mode"], "slots")
        self.assertEqual(payload["reason"], "slot_taken")
        svc._requests.record.assert_not_awaited()


class TestCustomTime(unittest.TestCase):
    def test_request_and_propose_valid_time(self):
        svc = _make_service()
        nid = _nid(_to_slots(svc))

        payload = _run(svc.request_custom_time(WS, nid))
        self.assertEqual(payload["mode"], "awaiting_custom_time")

        proposed = _dt.datetime(2026, 5, 4, 14, 15, tzinfo=_dt.timezone(_dt.timedelta(hours=2)))
        payload = _run(svc.propose_custom_time(WS, nid, proposed))

        self.assertEqual(payload["mode"], "confirmed")
        start, end = svc._appointments.reserve.call_args.args[2:4]
        self.assertEqual(start, _dt.datetime(2026, 5, 4, 12, 15, tzinfo=UTC))
        self.assertEqual(end - start, _dt.timedelta(minutes=30))

    def test_unavailable_time_returns_to_slots(self):
        svc = _make_service()
        nid = _nid(_to_slots(svc))
        _run(svc.request_custom_time(WS, nid))
        svc._availability.check.return_value = "outside_working_hours"

        payload = _run(svc.propose_custom_time(WS, nid, _dt.datetime(2026, 5, 4, 22, tzinfo=UTC)))
        self.assertEqual(payload["mode"], "slots")
        self.assertEqual(payload["reason"], "custom_time_unavailable")
        svc._appointments.reserve.assert_not_awaited()

    def test_custom_time_not_allowed(self):
        svc = _make_service(_config(allow_custom_time=False))
        nid = _nid(_to_slots(svc))
        payload = _run(svc.request_custom_time(WS, nid))

        self.assertEqual(payload["mode"], "slots")
        self.assertEqual(payload["reason"], "custom_time_not_allowed")

    def test_custom_time_switch_only_binds_agent_sources(self):
        svc = _make_service(_config(allow_custom_time=False))
        nid = _nid(_to_slots(svc, source=AppointmentSource.MANUAL))
        payload = _run(svc.request_custom_time(WS, nid))

        self.assertEqual(payload["mode"], "awaiting_custom_time")
        self.assertIsNone(payload["reason"])

    def test_naive_time_rejected(self):
        svc = _make_service()
        nid = _nid(_to_slots(svc))
        _run(svc.request_custom_time(WS, nid))
        with self.assertRaises(ValidationError):
            _run(svc.propose_custom_time(WS, nid, _dt.datetime(2026, 5, 4, 14)))

    def test_propose_requires_custom_time_mode(self):
        svc = _make_service()
        nid = _nid(_to_slots(svc))
        with self.assertRaises(InvalidTransitionError):
            _run(svc.propose_custom_time(WS, nid, _dt.datetime(2026, 5, 4, 14, tzinfo=UTC)))


class TestDeclineRestart(unittest.TestCase):
    def test_decline_is_idempotent(self):
        svc = _make_service()
        nid = _nid(_to_slots(svc))
        self.assertEqual(_run(svc.decline(WS, nid))["mode"], "declined")
        self.assertEqual(_run(svc.decline(WS, nid))["mode"], "declined")

    def test_decline_after_confirmed_is_invalid(self):
        svc = _make_service()
        slots = _to_slots(svc)
        nid = _nid(slots)
        _run(svc.select_slot(WS, nid, slot_id=slots["slots"][0]["id"]))
        with self.assertRaises(InvalidTransitionError):
            _run(svc.decline(WS, nid))

    def test_restart_from_not_available(self):
        svc = _make_service(slots=[])
        nid = _nid(_to_slots(svc))
        payload = _run(svc.restart(WS, nid))
        self.assertEqual(payload["mode"], "offer")
        self.assertIsNone(payload["reason"])

    def test_restart_while_still_disabled(self):
        svc = _make_service(_config(booking_mode=ChatbotBookingMode.OFF))
        nid = _nid(_run(svc.start_booking(WS, "lead-1")))
        payload = _run(svc.restart(WS, nid))
        self.assertEqual(payload["mode"], "not_available")
        self.assertEqual(payload["reason"], "booking_disabled")

    def test_restart_from_declined_is_invalid(self):
        svc = _make_service()
        nid = _nid(_run(svc.start_booking(WS, "lead-1")))
        _run(svc.decline(WS, nid))
        with self.assertRaises(InvalidTransitionError):
            _run(svc.restart(WS, nid))


class TestLookup(unittest.TestCase):
    def test_unknown_negotiation(self):
        svc = _make_service()
        with self.assertRaises(NotFoundError):
            _run(svc.get(WS, uuid4()))
        with self.assertRaises(NotFoundError):
            _run(svc.accept_offer(WS, uuid4()))

    def test_other_workspace_cannot_see_negotiation(self):
        svc = _make_service()
        nid = _nid(_run(svc.start_booking(WS, "lead-1")))
        with self.assertRaises(NotFoundError):
            _run(svc.get("ws-2", nid))

    def test_get_confirmed_includes_appointment(self):
        svc = _make_service()
        slots = _to_slots(svc)
        nid = _nid(slots)
        confirmed = _run(svc.select_slot(WS, nid, slot_id=slots["slots"][0]["id"]))

        payload = _run(svc.get(WS, nid))
        self.assertEqual(payload["appointment"]["id"], confirmed["appointment"]["id"])

    def test_get_with_missing_record_still_answers(self):
        svc = _make_service()
        slots = _to_slots(svc)
        nid = _nid(slots)
        _run(svc.select_slot(WS, nid, slot_id=slots["slots"][0]["id"]))
        svc._appointments.get.side_effect = NotFoundError("Appointment not found")

        payload = _run(svc.get(WS, nid))
        self.assertEqual(payload["mode"], "confirmed")
        self.assertIsNone(payload["appointment"])


class TestConfirmCommit(unittest.TestCase):
    def test_row_committed_before_negotiation_is_confirmed(self):
        svc = _make_service()
        slots = _to_slots(svc)
        nid = _nid(slots)
        modes_at_commit = []
        svc._session.commit.side_effect = lambda: modes_at_commit.append(svc._store.get(nid).mode.value)

        payload = _run(svc.confirm_appointment(WS, nid, slot_id=slots["slots"][0]["id"]))

        self.assertEqual(payload["mode"], "confirmed")
        self.assertEqual(modes_at_commit, ["slots"])

    def test_failed_commit_leaves_negotiation_retryable(self):
        svc = _make_service()
        slots = _to_slots(svc)
        nid = _nid(slots)
        slot_id = slots["slots"][0]["id"]
        svc._session.commit.side_effect = [RuntimeError("connection lost"), None]

        with self.assertRaises(RuntimeError):
            _run(svc.confirm_appointment(WS, nid, slot_id=slot_id))
        negotiation = svc._store.get(nid)
        self.assertEqual(negotiation.mode.value, "slots")
        self.assertIsNone(negotiation.appointment_id)
        svc._session.rollback.assert_awaited_once()

        payload = _run(svc.confirm_appointment(WS, nid, slot_id=slot_id))
        self.assertEqual(payload["mode"], "confirmed")
        self.assertEqual(svc._appointments.reserve.await_count, 2)

    def test_failed_commit_on_manual_request_keeps_mode(self):
        svc = _make_service(_config(booking_mode=ChatbotBookingMode.MANUAL_REQUEST))
        svc._requests.record = AsyncMock(side_effect=lambda ws, lead, slot, **kw: _fake_request(slot))
        slots = _to_slots(svc)
        nid = _nid(slots)
        svc._session.commit.side_effect = RuntimeError("connection lost")

        with self.assertRaises(RuntimeError):
            _run(svc.select_slot(WS, nid, slot_id=slots["slots"][0]["id"]))
        self.assertEqual(svc._store.get(nid).mode.value, "slots")
        self.assertIsNone(svc._store.get(nid).scheduling_request_id)

    def test_replay_rebooks_when_record_is_missing(self):
        svc = _make_service()
        slots = _to_slots(svc)
        nid = _nid(slots)
        slot_id = slots["slots"][0]["id"]
        first = _run(svc.confirm_appointment(WS, nid, slot_id=slot_id))
        svc._appointments.get.side_effect = NotFoundError("Appointment not found")

        replay = _run(svc.confirm_appointment(WS, nid))

        self.assertEqual(replay["mode"], "confirmed")
        self.assertNotEqual(replay["appointment"]["id"], first["appointment"]["id"])
        self.assertEqual(str(svc._store.get(nid).appointment_id), replay["appointment"]["id"])
        self.assertEqual(svc._appointments.reserve.await_count, 2)
        start = svc._appointments.reserve.call_args.args[2]
        self.assertEqual(start.isoformat(), first["confirmed_slot"]["start"])

    def test_replay_with_missing_record_and_slot_gone_is_conflict(self):
        svc = _make_service()
        slots = _to_slots(svc)
        nid = _nid(slots)
        _run(svc.confirm_appointment(WS, nid, slot_id=slots["slots"][0]["id"]))
        svc._appointments.get.side_effect = NotFoundError("Appointment not found")
        svc._appointments.reserve.side_effect = None
        svc._appointments.reserve.return_value = (None, "slot_taken")

        with self.assertRaises(ConflictError):
            _run(svc.confirm_appointment(WS, nid))
        self.assertEqual(svc._store.get(nid).mode.value, "confirmed")


class TestChatMessages(unittest.TestCase):
    def test_booking_request_opens_slots(self):
        svc = _make_service()
        payload = _run(svc.handle_message(WS, "lead-1", "Can I book a call tomorrow?"))

        self.assertEqual(payload["mode"], "slots")
        self.assertEqual(len(payload["slots"]), 3)

    def test_unrelated_message_is_not_handled(self):
        svc = _make_service()
        self.assertIsNone(_run(svc.handle_message(WS, "lead-1", "How much is the premium plan?")))

    def test_finished_quote_offers_booking(self):
        svc = _make_service()
        payload = _run(svc.handle_message(WS, "lead-1", "Thanks!", quote_complete=True))
        self.assertEqual(payload["mode"], "offer")

    def test_finished_quote_ignored_when_ask_after_quote_off(self):
        config = _config()
        config.chatbot_booking.ask_after_quote = False
        svc = _make_service(config)
        self.assertIsNone(_run(svc.handle_message(WS, "lead-1", "Thanks!", quote_complete=True)))

    def test_booking_off_is_not_handled(self):
        svc = _make_service(_config(booking_mode=ChatbotBookingMode.OFF))
        self.assertIsNone(_run(svc.handle_message(WS, "lead-1", "Can we schedule a meeting?")))

    def test_numbered_choice_selects_slot(self):
        svc = _make_service()
        nid = _nid(_to_slots(svc))
        payload = _run(svc.handle_message(WS, "lead-1", "2", negotiation_id=nid))

        self.assertEqual(payload["mode"], "confirmed")
        self.assertEqual(payload["confirmed_slot"]["start"], "2026-05-04T09:30:00+00:00")

    def test_name_and_phone_replies(self):
        svc = _make_service(_config(required=[IdentityField.NAME, IdentityField.PHONE]))
        slots = _to_slots(svc)
        nid = _nid(slots)
        _run(svc.select_slot(WS, nid, slot_id=slots["slots"][0]["id"]))

        payload = _run(svc.handle_message(WS, "lead-1", "I'm Ada Lovelace", negotiation_id=nid))
        self.assertEqual(payload["mode"], "awaiting_phone")

        payload = _run(svc.handle_message(WS, "lead-1", "my number is +44 20 7946 0000", negotiation_id=nid))
        self.assertEqual(payload["mode"], "confirmed")
        kwargs = svc._appointments.reserve.call_args.kwargs
        self.assertEqual(kwargs["contact_name"], "Ada Lovelace")
        self.assertEqual(kwargs["contact_phone"], "+44 20 7946 0000")

    def test_not_now_declines(self):
        svc = _make_service()
        nid = _nid(_to_slots(svc))
        payload = _run(svc.handle_message(WS, "lead-1", "Not now, thanks", negotiation_id=nid))
        self.assertEqual(payload["mode"], "declined")

    def test_small_talk_inside_negotiation_is_not_handled(self):
        svc = _make_service()
        nid = _nid(_to_slots(svc))
        self.assertIsNone(_run(svc.handle_message(WS, "lead-1", "Where is your office?", negotiation_id=nid)))
        self.assertEqual(svc._store.get(nid).mode.value, "slots")


if __name__ == "__main__":
    unittest.main()
