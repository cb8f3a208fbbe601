"""Tests for the availability engine (leaddesk.scheduling.availability).

Covers:
- Worked scenarios: booked appointment, minimum notice, buffers
- Slot duration, notice and max-days bounds over a spread of configs
- Stride alignment, trailing partial slots, split shifts and DST
- check_slot / is_slot_bookable on arbitrary intervals
"""
from __future__ import annotations

import datetime as _dt
import unittest

from leaddesk.core.exceptions import ValidationError
from leaddesk.scheduling.availability import (
    INSUFFICIENT_NOTICE,
    OUTSIDE_WORKING_HOURS,
    SCHEDULING_DISABLED,
    SLOT_CONFLICT,
    TOO_FAR_AHEAD,
    check_slot,
    compute_available_slots,
    is_slot_bookable,
)
from leaddesk.scheduling.types import DAY_NAMES, DaySchedule, SchedulingConfig, TimeRange

UTC = _dt.timezone.utc


def _utc(*args) -> _dt.datetime:
    return _dt.datetime(*args, tzinfo=UTC)


def _config(**overrides) -> SchedulingConfig:
    """Mon-Fri 09:00-17:00 UTC, 30 min slots, no buffers, 1h notice."""
    values = {
        "timezone": "UTC",
        "slot_duration_minutes": 30,
        "buffer_before_minutes": 0,
        "buffer_after_minutes": 0,
        "minimum_notice_hours": 1,
        "max_days_ahead": 30,
    }
    values.update(overrides)
    return SchedulingConfig(**values)


def _monday_only(*ranges) -> list:
    return [
        DaySchedule(
            day=d,
            enabled=d == "monday",
            ranges=[TimeRange(s, e) for s, e in ranges] if d == "monday" else [],
        )
        for d in DAY_NAMES
    ]


def _hhmm(slots) -> list:
    return [s.start.strftime("%H:%M") for s in slots]


# 2026-05-04 is a Monday
SUNDAY_NOON = _utc(2026, 5, 3, 12)
MONDAY = _utc(2026, 5, 4)
TUESDAY = _utc(2026, 5, 5)


class TestScenarios(unittest.TestCase):
    def test_booked_appointment_is_excluded(self):
        busy = [(_utc(2026, 5, 4, 10), _utc(2026, 5, 4, 10, 30))]
        slots = compute_available_slots(_config(), MONDAY, TUESDAY, busy, SUNDAY_NOON)

        expected = ["09:00", "09:30"] + [
            f"{h:02d}:{m:02d}" for h in range(10, 17) for m in (0, 30) if (h, m) != (10, 0)
        ]
        self.assertEqual(_hhmm(slots), expected)
        self.assertNotIn("10:00", _hhmm(slots))
        self.assertEqual(_hhmm(slots)[-1], "16:30")

    def test_minimum_notice_pushes_first_slot_to_next_day(self):
        now = _utc(2026, 5, 4, 10)
        config = _config(minimum_notice_hours=24)
        slots = compute_available_slots(config, MONDAY, _utc(2026, 5, 7), [], now)

        self.assertTrue(slots)
        self.assertEqual(slots[0].start, _utc(2026, 5, 5, 10))
        for slot in slots:
            self.assertGreaterEqual(slot.start, _utc(2026, 5, 5, 10))

    def test_buffers_widen_busy_window(self):
        config = _config(buffer_before_minutes=15, buffer_after_minutes=15)
        busy = [(_utc(2026, 5, 4, 10), _utc(2026, 5, 4, 10, 30))]
        starts = _hhmm(compute_available_slots(config, MONDAY, TUESDAY, busy, SUNDAY_NOON))

        self.assertIn("09:00", starts)
        self.assertIn("11:00", starts)
        for blocked in ("09:30", "10:00", "10:30"):
            self.assertNotIn(blocked, starts)


class TestProperties(unittest.TestCase):
    CASES = [
        {"slot_duration_minutes": 15, "minimum_notice_hours": 0, "max_days_ahead": 2},
        {"slot_duration_minutes": 30, "minimum_notice_hours": 5, "max_days_ahead": 3},
        {"slot_duration_minutes": 45, "minimum_notice_hours": 26, "max_days_ahead": 7},
        {"slot_duration_minutes": 60, "minimum_notice_hours": 1, "max_days_ahead": 1},
        {"slot_duration_minutes": 50, "minimum_notice_hours": 48, "max_days_ahead": 10,
         "timezone": "America/New_York"},
    ]
    NOW = _utc(2026, 5, 4, 9, 7)

    def test_slots_respect_duration_notice_and_horizon(self):
        for overrides in self.CASES:
            config = _config(**overrides)
            slots = compute_available_slots(
                config, self.NOW - _dt.timedelta(days=1), self.NOW + _dt.timedelta(days=30), [], self.NOW
            )
            with self.subTest(**overrides):
                self.assertTrue(slots)
                for slot in slots:
                    self.assertEqual(slot.end - slot.start, config.slot_duration)
                    self.assertGreaterEqual(
                        slot.start, self.NOW + _dt.timedelta(hours=config.minimum_notice_hours)
                    )
                    self.assertLessEqual(
                        slot.end, self.NOW + _dt.timedelta(days=config.max_days_ahead)
                    )

    def test_slots_ascending_and_disjoint_with_back_to_back_busy(self):
        config = _config(buffer_before_minutes=10, buffer_after_minutes=20, minimum_notice_hours=0)
        busy = [
            (_utc(2026, 5, 4, 11), _utc(2026, 5, 4, 11, 30)),
            (_utc(2026, 5, 4, 11, 30), _utc(2026, 5, 4, 12)),
            (_utc(2026, 5, 4, 12), _utc(2026, 5, 4, 12, 30)),
        ]
        slots = compute_available_slots(config, MONDAY, TUESDAY, busy, SUNDAY_NOON)

        self.assertTrue(slots)
        for prev, nxt in zip(slots, slots[1:]):
            self.assertLessEqual(prev.end, nxt.start)
        for slot in slots:
            for busy_start, busy_end in busy:
                self.assertFalse(
                    slot.start < busy_end + _dt.timedelta(minutes=20)
                    and slot.end > busy_start - _dt.timedelta(minutes=10)
                )

    def test_slot_end_always_after_start(self):
        slots = compute_available_slots(_config(), MONDAY, TUESDAY, [], SUNDAY_NOON)
        for slot in slots:
            self.assertGreater(slot.end, slot.start)


class TestGeneration(unittest.TestCase):
    def test_stride_starts_at_range_start_not_window_start(self):
        slots = compute_available_slots(
            _config(), _utc(2026, 5, 4, 9, 15), TUESDAY, [], SUNDAY_NOON
        )
        self.assertEqual(_hhmm(slots)[0], "09:30")

    def test_trailing_partial_slot_dropped(self):
        config = _config(working_hours=_monday_only(("09:00", "10:45")))
        slots = compute_available_slots(config, MONDAY, TUESDAY, [], SUNDAY_NOON)
        self.assertEqual(_hhmm(slots), ["09:00", "09:30", "10:00"])

    def test_split_shift(self):
        config = _config(working_hours=_monday_only(("09:00", "10:00"), ("13:00", "14:00")))
        slots = compute_available_slots(config, MONDAY, TUESDAY, [], SUNDAY_NOON)
        self.assertEqual(_hhmm(slots), ["09:00", "09:30", "13:00", "13:30"])

    def test_window_end_is_exclusive(self):
        slots = compute_available_slots(
            _config(), MONDAY, _utc(2026, 5, 4, 10), [], SUNDAY_NOON
        )
        self.assertEqual(_hhmm(slots), ["09:00", "09:30"])

    def test_max_days_ahead_cuts_horizon(self):
        now = _utc(2026, 5, 4, 8)
        config = _config(max_days_ahead=1, minimum_notice_hours=0)
        slots = compute_available_slots(config, MONDAY, _utc(2026, 5, 6), [], now)

        self.assertEqual(len(slots), 16)
        self.assertTrue(all(s.start.date() == _dt.date(2026, 5, 4) for s in slots))

    def test_weekend_has_no_slots(self):
        slots = compute_available_slots(
            _config(), _utc(2026, 5, 9), _utc(2026, 5, 11), [], SUNDAY_NOON - _dt.timedelta(days=7)
        )
        self.assertEqual(slots, [])

    def test_local_timezone_and_dst(self):
        config = _config(timezone="Europe/Berlin", minimum_notice_hours=0)
        now = _utc(2026, 3, 20)

        # Before the switch on 2026-03-29 Berlin is UTC+1, after it UTC+2.
        winter = compute_available_slots(config, _utc(2026, 3, 23), _utc(2026, 3, 24), [], now)
        summer = compute_available_slots(config, _utc(2026, 3, 30), _utc(2026, 3, 31), [], now)

        self.assertEqual(winter[0].start, _utc(2026, 3, 23, 8))
        self.assertEqual(summer[0].start, _utc(2026, 3, 30, 7))
        self.assertEqual(winter[0].timezone, "Europe/Berlin")

    def test_slot_id_and_label(self):
        slot = compute_available_slots(_config(), MONDAY, TUESDAY, [], SUNDAY_NOON)[0]
        self.assertEqual(slot.id, "slot_20260504T0900Z")
        self.assertIn("09:00", slot.label)
        self.assertEqual(slot.to_dict()["start"], "2026-05-04T09:00:00+00:00")


class TestEmptyResults(unittest.TestCase):
    def test_missing_config(self):
        self.assertEqual(compute_available_slots(None, MONDAY, TUESDAY, [], SUNDAY_NOON), [])

    def test_scheduling_disabled(self):
        config = _config(scheduling_enabled=False)
        self.assertEqual(compute_available_slots(config, MONDAY, TUESDAY, [], SUNDAY_NOON), [])

    def test_no_enabled_day(self):
        hours = [DaySchedule(day=d, enabled=False, ranges=[TimeRange("09:00", "17:00")]) for d in DAY_NAMES]
        config = _config(working_hours=hours)
        self.assertEqual(compute_available_slots(config, MONDAY, TUESDAY, [], SUNDAY_NOON), [])

    def test_inverted_window(self):
        self.assertEqual(compute_available_slots(_config(), TUESDAY, MONDAY, [], SUNDAY_NOON), [])

    def test_naive_datetimes_rejected(self):
        with self.assertRaises(ValidationError):
            compute_available_slots(_config(), _dt.datetime(2026, 5, 4), TUESDAY, [], SUNDAY_NOON)


class TestCheckSlot(unittest.TestCase):
    def test_unaligned_time_inside_hours_is_bookable(self):
        start = _utc(2026, 5, 4, 9, 15)
        self.assertIsNone(check_slot(_config(), start, start + _dt.timedelta(minutes=30), [], SUNDAY_NOON))

    def test_outside_working_hours(self):
        cases = [
            (_utc(2026, 5, 4, 8, 45), _utc(2026, 5, 4, 9, 15)),
            (_utc(2026, 5, 4, 16, 45), _utc(2026, 5, 4, 17, 15)),
            (_utc(2026, 5, 9, 10), _utc(2026, 5, 9, 10, 30)),
        ]
        for start, end in cases:
            with self.subTest(start=start):
                self.assertEqual(
                    check_slot(_config(), start, end, [], SUNDAY_NOON), OUTSIDE_WORKING_HOURS
                )

    def test_insufficient_notice(self):
        now = _utc(2026, 5, 4, 9, 30)
        reason = check_slot(_config(), _utc(2026, 5, 4, 10), _utc(2026, 5, 4, 10, 30), [], now)
        self.assertEqual(reason, INSUFFICIENT_NOTICE)

    def test_too_far_ahead(self):
        reason = check_slot(
            _config(max_days_ahead=1), _utc(2026, 5, 5, 10), _utc(2026, 5, 5, 10, 30), [], SUNDAY_NOON
        )
        self.assertEqual(reason, TOO_FAR_AHEAD)

    def test_conflict_and_buffer(self):
        start, end = _utc(2026, 5, 4, 10), _utc(2026, 5, 4, 10, 30)
        overlapping = [(_utc(2026, 5, 4, 10, 15), _utc(2026, 5, 4, 10, 45))]
        adjacent = [(_utc(2026, 5, 4, 9, 30), _utc(2026, 5, 4, 10))]

        self.assertEqual(check_slot(_config(), start, end, overlapping, SUNDAY_NOON), SLOT_CONFLICT)
        self.assertIsNone(check_slot(_config(), start, end, adjacent, SUNDAY_NOON))
        self.assertEqual(
            check_slot(_config(buffer_after_minutes=15), start, end, adjacent, SUNDAY_NOON),
            SLOT_CONFLICT,
        )

    def test_disabled(self):
        start, end = _utc(2026, 5, 4, 10), _utc(2026, 5, 4, 10, 30)
        self.assertEqual(
            check_slot(_config(scheduling_enabled=False), start, end, [], SUNDAY_NOON),
            SCHEDULING_DISABLED,
        )
        self.assertEqual(check_slot(None, start, end, [], SUNDAY_NOON), SCHEDULING_DISABLED)

    def test_is_slot_bookable(self):
        start, end = _utc(2026, 5, 4, 10), _utc(2026, 5, 4, 10, 30)
        self.assertTrue(is_slot_bookable(_config(), start, end, [], SUNDAY_NOON))
        self.assertFalse(is_slot_bookable(_config(), start, end, [(start, end)], SUNDAY_NOON))


if __name__ == "__main__":
    unittest.main()
