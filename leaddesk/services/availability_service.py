"""AvailabilityService: bookable slots from the workspace settings minus its scheduled appointments."""
from __future__ import annotations

import datetime as _dt
import logging
from typing import Callable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from leaddesk.core.exceptions import ValidationError
from leaddesk.infra.database.repositories import AppointmentRepository
from leaddesk.scheduling.availability import check_slot, compute_available_slots
from leaddesk.scheduling.types import BusyInterval, SchedulingConfig, Slot
from leaddesk.services.settings_service import SchedulingSettingsService

logger = logging.getLogger(__name__)


def utc_now() -> _dt.datetime:
    return _dt.datetime.now(_dt.timezone.utc)


class AvailabilityService:
    """Async wrapper around the pure engine.

    Settings and busy intervals are read fresh on every call; nothing is cached.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        clock: Callable[[], _dt.datetime] = utc_now,
    ) -> None:
        self._settings = SchedulingSettingsService(session)
        self._repo = AppointmentRepository(session)
        self._clock = clock

    async def busy_intervals(
        self,
        workspace_id: str,
        config: SchedulingConfig,
        start: _dt.datetime,
        end: _dt.datetime,
        *,
        exclude_id: Optional[UUID] = None,
    ) -> List[BusyInterval]:
        # An appointment ending up to buffer_after before ``start`` (or starting
        # up to buffer_before after ``end``) still blocks the window edges.
        widened_start = start - _dt.timedelta(minutes=config.buffer_after_minutes)
        widened_end = end + _dt.timedelta(minutes=config.buffer_before_minutes)
        return await self._repo.list_busy(
            workspace_id, widened_start, widened_end, exclude_id=exclude_id
        )

    async def list_slots(
        self,
        workspace_id: str,
        window_start: Optional[_dt.datetime] = None,
        window_end: Optional[_dt.datetime] = None,
        *,
        config: Optional[SchedulingConfig] = None,
        limit: Optional[int] = None,
    ) -> List[Slot]:
        """Slots in ``[window_start, window_end)``; defaults to now .. now + max_days_ahead."""
        for name, value in (("from", window_start), ("to", window_end)):
            if value is not None and (value.tzinfo is None or value.utcoffset() is None):
                raise ValidationError(f"{name} must be timezone-aware", details={"field": name})
        now = self._clock()
        if config is None:
            config = await self._settings.get_config(workspace_id)
        if window_start is None:
            window_start = now
        if window_end is None:
            window_end = now + _dt.timedelta(days=config.max_days_ahead)
        if window_end <= window_start or not config.scheduling_enabled:
            return []
        busy = await self.busy_intervals(workspace_id, config, window_start, window_end)
        slots = compute_available_slots(config, window_start, window_end, busy, now)
        logger.debug(
            "Availability for %s: %d slots between %s and %s",
            workspace_id, len(slots), window_start.isoformat(), window_end.isoformat(),
        )
        return slots[:limit] if limit is not None else slots

    async def check(
        self,
        workspace_id: str,
        start: _dt.datetime,
        end: _dt.datetime,
        *,
        config: Optional[SchedulingConfig] = None,
        exclude_id: Optional[UUID] = None,
    ) -> Optional[str]:
        """None when ``[start, end)`` is bookable right now, else the rule it breaks."""
        if config is None:
            config = await self._settings.get_config(workspace_id)
        busy: List[BusyInterval] = []
        if config.scheduling_enabled and end > start:
            busy = await self.busy_intervals(workspace_id, config, start, end, exclude_id=exclude_id)
        return check_slot(config, start, end, busy, self._clock())
