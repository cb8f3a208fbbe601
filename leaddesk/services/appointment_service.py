"""AppointmentService: atomic check-and-reserve, manual booking, edits, status changes and export."""
from __future__ import annotations

import datetime as _dt
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from leaddesk.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from leaddesk.infra.database.models.appointment import Appointment
from leaddesk.infra.database.repositories import AppointmentRepository
from leaddesk.scheduling.types import AppointmentSource, AppointmentStatus, AppointmentType
from leaddesk.services.availability_service import AvailabilityService, utc_now
from leaddesk.services.settings_service import SchedulingSettingsService

logger = logging.getLogger(__name__)

# reserve() outcomes besides the availability rule names
OUTCOME_OK = "ok"
OUTCOME_EXISTING = "existing"
OUTCOME_TAKEN = "slot_taken"

_EDITABLE_FIELDS = {
    "title",
    "appointment_type",
    "notes",
    "contact_name",
    "contact_phone",
    "timezone",
    "reminder_minutes_before",
}


def appointment_to_dict(appt: Appointment) -> Dict[str, Any]:
    """JSON-ready view of an appointment (embedded in booking payloads)."""
    return {
        "id": str(appt.id),
        "workspace_id": appt.workspace_id,
        "lead_id": appt.lead_id,
        "negotiation_id": str(appt.negotiation_id) if appt.negotiation_id else None,
        "title": appt.title,
        "appointment_type": appt.appointment_type,
        "start_at": appt.start_at.isoformat(),
        "end_at": appt.end_at.isoformat(),
        "timezone": appt.timezone,
        "notes": appt.notes,
        "contact_name": appt.contact_name,
        "contact_phone": appt.contact_phone,
        "source": appt.source,
        "reminder_minutes_before": appt.reminder_minutes_before,
        "status": appt.status,
    }


class AppointmentService:
    def __init__(
        self,
        session: AsyncSession,
        *,
        clock: Callable[[], _dt.datetime] = utc_now,
    ) -> None:
        self._session = session
        self._repo = AppointmentRepository(session)
        self._settings = SchedulingSettingsService(session)
        self._availability = AvailabilityService(session, clock=clock)
        self._clock = clock

    async def reserve(
        self,
        workspace_id: str,
        lead_id: str,
        start_at: _dt.datetime,
        end_at: _dt.datetime,
        *,
        appointment_type: AppointmentType = AppointmentType.CALL,
        source: AppointmentSource = AppointmentSource.MANUAL,
        title: str = "",
        notes: Optional[str] = None,
        contact_name: Optional[str] = None,
        contact_phone: Optional[str] = None,
        negotiation_id: Optional[UUID] = None,
        reminder_minutes_before: Optional[int] = None,
    ) -> Tuple[Optional[Appointment], str]:
        """Check availability and insert as one step.

        The workspace advisory lock is held until the surrounding transaction
        ends, so a concurrent reserve for the same workspace sees this row.

        Returns (appointment, outcome) where outcome is one of:
        "ok" | "existing" (negotiation already booked) | "slot_taken" | a rule name
        from the availability engine. Appointment is None unless ok/existing.
        """
        await self._repo.lock_workspace(workspace_id)

        if negotiation_id is not None:
            existing = await self._repo.get_by_negotiation(negotiation_id)
            if existing is not None:
                return existing, OUTCOME_EXISTING

        config = await self._settings.get_config(workspace_id)
        reason = await self._availability.check(workspace_id, start_at, end_at, config=config)
        if reason is not None:
            logger.warning(
                "Reserve rejected for workspace %s at %s: %s",
                workspace_id, start_at.isoformat(), reason,
                extra={"workspace_id": workspace_id, "lead_id": lead_id},
            )
            return None, reason

        data: Dict[str, Any] = {
            "workspace_id": workspace_id,
            "lead_id": lead_id,
            "negotiation_id": negotiation_id,
            "title": title or f"{appointment_type.value.replace('_', ' ').title()} with {contact_name or lead_id}",
            "appointment_type": appointment_type.value,
            "start_at": start_at,
            "end_at": end_at,
            "timezone": config.timezone,
            "notes": notes,
            "contact_name": contact_name,
            "contact_phone": contact_phone,
            "source": source.value,
            "reminder_minutes_before": (
                reminder_minutes_before
                if reminder_minutes_before is not None
                else config.reminder_lead_time_minutes
            ),
            "status": AppointmentStatus.SCHEDULED.value,
        }
        try:
            async with self._session.begin_nested():
                appt = await self._repo.create(data)
        except IntegrityError:
            logger.warning(
                "Reserve lost a race for workspace %s at %s",
                workspace_id, start_at.isoformat(),
                extra={"workspace_id": workspace_id, "lead_id": lead_id},
            )
            return None, OUTCOME_TAKEN

        logger.info(
            "Appointment %s reserved for lead %s at %s (%s)",
            appt.id, lead_id, start_at.isoformat(), source.value,
            extra={"workspace_id": workspace_id, "lead_id": lead_id, "appointment_id": str(appt.id)},
        )
        return appt, OUTCOME_OK

    async def create_manual(
        self,
        workspace_id: str,
        *,
        lead_id: str,
        start_at: _dt.datetime,
        appointment_type: AppointmentType,
        duration_minutes: Optional[int] = None,
        title: str = "",
        notes: Optional[str] = None,
        contact_name: Optional[str] = None,
        contact_phone: Optional[str] = None,
        source: AppointmentSource = AppointmentSource.MANUAL,
        reminder_minutes_before: Optional[int] = None,
    ) -> Appointment:
        """Book from the admin UI. Same rules and lock as chatbot bookings."""
        config = await self._settings.get_config(workspace_id)
        if not config.allow_manual_booking:
            raise ForbiddenError(
                "Manual booking is disabled for this workspace",
                details={"workspace_id": workspace_id},
            )
        if appointment_type not in config.default_appointment_types:
            raise ValidationError(
                f"Appointment type {appointment_type.value!r} is not offered by this workspace",
                details={"allowed": [t.value for t in config.default_appointment_types]},
            )
        duration = duration_minutes or config.slot_duration_minutes
        end_at = start_at + _dt.timedelta(minutes=duration)
        appt, outcome = await self.reserve(
            workspace_id,
            lead_id,
            start_at,
            end_at,
            appointment_type=appointment_type,
            source=source,
            title=title,
            notes=notes,
            contact_name=contact_name,
            contact_phone=contact_phone,
            reminder_minutes_before=reminder_minutes_before,
        )
        if appt is None:
            raise ConflictError(
                "Requested time is not available",
                code="SLOT_UNAVAILABLE",
                details={"reason": outcome, "start_at": start_at.isoformat()},
            )
        return appt

    async def get(self, workspace_id: str, id: UUID) -> Appointment:
        appt = await self._repo.get_by_id(id)
        if appt is None or appt.workspace_id != workspace_id:
            raise NotFoundError("Appointment not found", details={"appointment_id": str(id)})
        return appt

    async def update(
        self,
        workspace_id: str,
        id: UUID,
        changes: Dict[str, Any],
    ) -> Appointment:
        """Edit a scheduled appointment. Time changes are re-checked against the others."""
        appt = await self.get(workspace_id, id)
        if appt.status != AppointmentStatus.SCHEDULED.value:
            raise ConflictError(
                "Only scheduled appointments can be edited",
                details={"appointment_id": str(id), "status": appt.status},
            )

        data: Dict[str, Any] = {}
        for key, value in changes.items():
            if key in _EDITABLE_FIELDS:
                data[key] = value.value if isinstance(value, AppointmentType) else value

        if "start_at" in changes or "duration_minutes" in changes:
            start_at = changes.get("start_at") or appt.start_at
            duration = changes.get("duration_minutes") or int(
                (appt.end_at - appt.start_at).total_seconds() // 60
            )
            end_at = start_at + _dt.timedelta(minutes=duration)
            await self._repo.lock_workspace(workspace_id)
            reason = await self._availability.check(
                workspace_id, start_at, end_at, exclude_id=appt.id
            )
            if reason is not None:
                raise ConflictError(
                    "Requested time is not available",
                    code="SLOT_UNAVAILABLE",
                    details={"reason": reason, "start_at": start_at.isoformat()},
                )
            data["start_at"] = start_at
            data["end_at"] = end_at

        if not data:
            return appt
        updated = await self._repo.update(appt.id, data)
        logger.info(
            "Appointment %s updated: %s", appt.id, sorted(data),
            extra={"workspace_id": workspace_id, "appointment_id": str(appt.id)},
        )
        return updated

    async def change_status(
        self,
        workspace_id: str,
        id: UUID,
        status: AppointmentStatus,
    ) -> Appointment:
        """scheduled -> completed | cancelled | no_show. Repeating the same change is a no-op."""
        appt = await self.get(workspace_id, id)
        if appt.status == status.value:
            return appt
        if appt.status != AppointmentStatus.SCHEDULED.value or status is AppointmentStatus.SCHEDULED:
            raise InvalidTransitionError(
                f"Cannot move appointment from {appt.status} to {status.value}",
                details={"appointment_id": str(id), "from": appt.status, "to": status.value},
            )
        updated = await self._repo.update(appt.id, {"status": status.value})
        logger.info(
            "Appointment %s -> %s", appt.id, status.value,
            extra={"workspace_id": workspace_id, "appointment_id": str(appt.id)},
        )
        return updated

    async def list_appointments(
        self,
        workspace_id: str,
        *,
        status: Optional[str] = None,
        appointment_type: Optional[str] = None,
        source: Optional[str] = None,
        lead_id: Optional[str] = None,
        date_from: Optional[_dt.datetime] = None,
        date_to: Optional[_dt.datetime] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Appointment]:
        return await self._repo.list_all(
            workspace_id,
            status=status,
            appointment_type=appointment_type,
            source=source,
            lead_id=lead_id,
            date_from=date_from,
            date_to=date_to,
            skip=skip,
            limit=limit,
        )

    async def list_upcoming(self, workspace_id: str, limit: int = 10) -> List[Appointment]:
        return await self._repo.list_upcoming(workspace_id, self._clock(), limit=limit)

