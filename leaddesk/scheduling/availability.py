"""Availability engine: pure slot computation from working hours minus busy intervals.

Nothing here touches I/O. ``AvailabilityService`` loads the settings and the
workspace's scheduled appointments and hands them to these functions, so the
same rules run for slot listing, custom-time proposals and the re-check done
right before an appointment is written.
"""
from __future__ import annotations

import datetime as _dt
import re
from typing import List, Optional, Sequence

from leaddesk.core.exceptions import ValidationError
from leaddesk.scheduling.types import DAY_NAMES, BusyInterval, SchedulingConfig, Slot

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

# Reasons returned by check_slot(); surfaced to the conversation as BookingPayload.reason
OUTSIDE_WORKING_HOURS = "outside_working_hours"
INSUFFICIENT_NOTICE = "insufficient_notice"
TOO_FAR_AHEAD = "too_far_ahead"
SLOT_CONFLICT = "slot_conflict"
SCHEDULING_DISABLED = "scheduling_disabled"


def compute_available_slots(
    config: Optional[SchedulingConfig],
    window_start: _dt.datetime,
    window_end: _dt.datetime,
    busy: Sequence[BusyInterval],
    now: _dt.datetime,
) -> List[Slot]:
    """Return bookable slots inside ``[window_start, window_end)``, ascending by start.

    Slots are cut at ``slot_duration_minutes`` stride from each range start;
    a trailing partial slot is dropped. Busy intervals are widened by the
    configured buffers before the overlap test. Ties on start time keep the
    order the ranges were declared in.
    """
    _require_aware(window_start, "window_start")
    _require_aware(window_end, "window_end")
    _require_aware(now, "now")
    if config is None or not config.scheduling_enabled:
        return []
    if not any(d.enabled and d.ranges for d in config.working_hours):
        return []
    if config.slot_duration_minutes <= 0:
        return []

    earliest = max(window_start, now + _dt.timedelta(hours=config.minimum_notice_hours))
    latest_end = min(window_end, now + _dt.timedelta(days=config.max_days_ahead))
    if earliest >= latest_end:
        return []

    tz = config.tz
    duration = config.slot_duration
    blocked = _expand_busy(config, busy)

    slots: List[Slot] = []
    # Start one local day early: a UTC window edge can fall mid-day locally.
    day = earliest.astimezone(tz).date() - _dt.timedelta(days=1)
    last_day = latest_end.astimezone(tz).date()
    while day <= last_day:
        schedule = config.day(day.weekday())
        if schedule is not None and schedule.enabled:
            for time_range in schedule.ranges:
                bounds = _range_bounds(day, time_range.start, time_range.end, tz)
                if bounds is None:
                    continue
                range_start, range_end = bounds
                cursor = range_start
                while cursor + duration <= range_end:
                    end = cursor + duration
                    if (
                        cursor >= earliest
                        and end <= latest_end
                        and not _overlaps_any(cursor, end, blocked)
                    ):
                        slots.append(Slot(start=cursor, end=end, timezone=config.timezone))
                    cursor = end
        day += _dt.timedelta(days=1)

    # list.sort is stable: equal starts keep range declaration order
    slots.sort(key=lambda s: s.start)
    return slots


def check_slot(
    config: Optional[SchedulingConfig],
    start: _dt.datetime,
    end: _dt.datetime,
    busy: Sequence[BusyInterval],
    now: _dt.datetime,
) -> Optional[str]:
    """Apply the engine rules to an arbitrary interval.

    Returns None when ``[start, end)`` is bookable, otherwise the reason
    constant of the first rule it breaks. Stride alignment is not required,
    so user-proposed times that fit inside a working range are accepted.
    """
    _require_aware(start, "start")
    _require_aware(end, "end")
    _require_aware(now, "now")
    if config is None or not config.scheduling_enabled:
        return SCHEDULING_DISABLED
    if end <= start:
        return OUTSIDE_WORKING_HOURS
    if not _within_working_hours(config, start, end):
        return OUTSIDE_WORKING_HOURS
    if start < now + _dt.timedelta(hours=config.minimum_notice_hours):
        return INSUFFICIENT_NOTICE
    if end > now + _dt.timedelta(days=config.max_days_ahead):
        return TOO_FAR_AHEAD
    if _overlaps_any(start, end, _expand_busy(config, busy)):
        return SLOT_CONFLICT
    return None


def is_slot_bookable(
    config: Optional[SchedulingConfig],
    start: _dt.datetime,
    end: _dt.datetime,
    busy: Sequence[BusyInterval],
    now: _dt.datetime,
) -> bool:
    return check_slot(config, start, end, busy, now) is None


def validate_config(config: SchedulingConfig) -> None:
    """Reject malformed settings at save time. Raises ValidationError, never coerces."""
    errors: List[str] = []

    try:
        config.tz
    except (KeyError, ValueError):
        errors.append(f"timezone: unknown IANA zone {config.timezone!r}")

    if config.slot_duration_minutes < 1:
        errors.append("slot_duration_minutes must be >= 1")
    for name in ("buffer_before_minutes", "buffer_after_minutes", "minimum_notice_hours",
                 "reminder_lead_time_minutes"):
        if getattr(config, name) < 0:
            errors.append(f"{name} must be >= 0")
    if config.max_days_ahead < 1:
        errors.append("max_days_ahead must be >= 1")
    if not config.default_appointment_types:
        errors.append("default_appointment_types must not be empty")

    days = [d.day for d in config.working_hours]
    if days != DAY_NAMES:
        errors.append(f"working_hours must list exactly {', '.join(DAY_NAMES)} in order")

    for schedule in config.working_hours:
        parsed = []
        for idx, time_range in enumerate(schedule.ranges):
            if not _HHMM.match(time_range.start) or not _HHMM.match(time_range.end):
                errors.append(f"working_hours.{schedule.day}[{idx}]: times must be HH:MM")
                continue
            if time_range.start >= time_range.end:
                errors.append(
                    f"working_hours.{schedule.day}[{idx}]: start {time_range.start} "
                    f"must be before end {time_range.end}"
                )
                continue
            parsed.append((time_range.start, time_range.end, idx))
        parsed.sort()
        for (_, prev_end, prev_idx), (start, _, idx) in zip(parsed, parsed[1:]):
            if start < prev_end:
                errors.append(
                    f"working_hours.{schedule.day}: ranges {prev_idx} and {idx} overlap"
                )
        if schedule.enabled and not schedule.ranges:
            errors.append(f"working_hours.{schedule.day}: enabled day needs at least one range")

    if errors:
        raise ValidationError("Invalid scheduling settings", details={"errors": errors})


def _require_aware(value: _dt.datetime, name: str) -> None:
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValidationError(f"{name} must be timezone-aware", details={"field": name})


def _parse_time(s: str) -> Optional[_dt.time]:
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return _dt.datetime.strptime(s, fmt).time()
        except ValueError:
            continue
    return None


def _range_bounds(
    day: _dt.date,
    start_str: str,
    end_str: str,
    tz: _dt.tzinfo,
) -> Optional[BusyInterval]:
    """Local range on ``day`` as aware UTC datetimes, None if unparseable or empty."""
    start = _parse_time(start_str)
    end = _parse_time(end_str)
    if start is None or end is None or start >= end:
        return None
    utc = _dt.timezone.utc
    return (
        _dt.datetime.combine(day, start, tzinfo=tz).astimezone(utc),
        _dt.datetime.combine(day, end, tzinfo=tz).astimezone(utc),
    )


def _within_working_hours(config: SchedulingConfig, start: _dt.datetime, end: _dt.datetime) -> bool:
    tz = config.tz
    day = start.astimezone(tz).date()
    schedule = config.day(day.weekday())
    if schedule is None or not schedule.enabled:
        return False
    for time_range in schedule.ranges:
        bounds = _range_bounds(day, time_range.start, time_range.end, tz)
        if bounds is not None and bounds[0] <= start and end <= bounds[1]:
            return True
    return False


def _expand_busy(config: SchedulingConfig, busy: Sequence[BusyInterval]) -> List[BusyInterval]:
    before = _dt.timedelta(minutes=config.buffer_before_minutes)
    after = _dt.timedelta(minutes=config.buffer_after_minutes)
    return [(s - before, e + after) for s, e in busy]


def _overlaps_any(
    start: _dt.datetime,
    end: _dt.datetime,
    ranges: Sequence[BusyInterval],
) -> bool:
    for busy_start, busy_end in ranges:
        if start < busy_end and end > busy_start:
            return True
    return False
