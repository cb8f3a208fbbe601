"""SchedulingRequestService: requests left by manual_request bookings and their conversion."""
from __future__ import annotations

import datetime as _dt
import logging
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from leaddesk.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from leaddesk.infra.database.models.appointment import Appointment
from leaddesk.infra.database.models.scheduling_request import SchedulingRequest
from leaddesk.infra.database.repositories import SchedulingRequestRepository
from leaddesk.scheduling.types import (
    AppointmentSource,
    AppointmentType,
    SchedulingRequestStatus,
    Slot,
)
from leaddesk.services.appointment_service import AppointmentService
from leaddesk.services.availability_service import utc_now
from leaddesk.services.settings_service import SchedulingSettingsService

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = {"notes", "contact_name", "contact_phone", "preferred_start", "preferred_end"}


def scheduling_request_to_dict(req: SchedulingRequest) -> Dict[str, Any]:
    return {
        "id": str(req.id),
        "workspace_id": req.workspace_id,
        "lead_id": req.lead_id,
        "negotiation_id": str(req.negotiation_id) if req.negotiation_id else None,
        "status": req.status,
        "request_type": req.request_type,
        "preferred_start": req.preferred_start.isoformat() if req.preferred_start else None,
        "preferred_end": req.preferred_end.isoformat() if req.preferred_end else None,
        "timezone": req.timezone,
        "contact_name": req.contact_name,
        "contact_phone": req.contact_phone,
        "source": req.source,
        "notes": req.notes,
        "converted_appointment_id": (
            str(req.converted_appointment_id) if req.converted_appointment_id else None
        ),
    }


class SchedulingRequestService:
    def __init__(
        self,
        session: AsyncSession,
        *,
        clock: Callable[[], _dt.datetime] = utc_now,
    ) -> None:
        self._repo = SchedulingRequestRepository(session)
        self._settings = SchedulingSettingsService(session)
        self._appointments = AppointmentService(session, clock=clock)

    async def record(
        self,
        workspace_id: str,
        lead_id: str,
        slot: Slot,
        *,
        request_type: AppointmentType,
        source: AppointmentSource,
        negotiation_id: Optional[UUID] = None,
        contact_name: Optional[str] = None,
        contact_phone: Optional[str] = None,
    ) -> SchedulingRequest:
        """Open a request for the chosen slot; one per negotiation."""
        if negotiation_id is not None:
            existing = await self._repo.get_by_negotiation(negotiation_id)
            if existing is not None:
                return existing
        req = await self._repo.create({
            "workspace_id": workspace_id,
            "lead_id": lead_id,
            "negotiation_id": negotiation_id,
            "status": SchedulingRequestStatus.OPEN.value,
            "request_type": request_type.value,
            "preferred_start": slot.start,
            "preferred_end": slot.end,
            "timezone": slot.timezone,
            "contact_name": contact_name,
            "contact_phone": contact_phone,
            "source": source.value,
        })
        logger.info(
            "Scheduling request %s opened for lead %s at %s",
            req.id, lead_id, slot.start.isoformat(),
            extra={"workspace_id": workspace_id, "lead_id": lead_id},
        )
        return req

    async def get(self, workspace_id: str, id: UUID) -> SchedulingRequest:
        req = await self._repo.get_by_id(id)
        if req is None or req.workspace_id != workspace_id:
            raise NotFoundError("Scheduling request not found", details={"request_id": str(id)})
        return req

    async def list_requests(
        self,
        workspace_id: str,
        *,
        status: Optional[str] = None,
        request_type: Optional[str] = None,
        source: Optional[str] = None,
        lead_id: Optional[str] = None,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[SchedulingRequest]:
        return await self._repo.list_all(
            workspace_id,
            status=status,
            request_type=request_type,
            source=source,
            lead_id=lead_id,
            search=search,
            skip=skip,
            limit=limit,
        )

    async def update(
        self,
        workspace_id: str,
        id: UUID,
        changes: Dict[str, Any],
    ) -> SchedulingRequest:
        """Edit details or close an open request. ``converted`` is only set by convert()."""
        req = await self.get(workspace_id, id)
        data = {k: v for k, v in changes.items() if k in _EDITABLE_FIELDS}

        status = changes.get("status")
        if status is not None:
            status = SchedulingRequestStatus(status)
            if status is SchedulingRequestStatus.CONVERTED:
                raise ValidationError(
                    "Use the convert operation to turn a request into an appointment",
                    details={"request_id": str(id)},
                )
            if status.value != req.status:
                if req.status != SchedulingRequestStatus.OPEN.value:
                    raise InvalidTransitionError(
                        f"Cannot move scheduling request from {req.status} to {status.value}",
                        details={"request_id": str(id), "from": req.status, "to": status.value},
                    )
                data["status"] = status.value

        if not data:
            return req
        return await self._repo.update(req.id, data)

    async def convert(
        self,
        workspace_id: str,
        id: UUID,
        *,
        start_at: Optional[_dt.datetime] = None,
        duration_minutes: Optional[int] = None,
        appointment_type: Optional[AppointmentType] = None,
        notes: Optional[str] = None,
    ) -> Appointment:
        """Book the request through the same reserve used by chatbot confirmations."""
        req = await self.get(workspace_id, id)
        if req.status != SchedulingRequestStatus.OPEN.value:
            raise InvalidTransitionError(
                f"Only open scheduling requests can be converted (status is {req.status})",
                details={"request_id": str(id), "status": req.status},
            )
        start_at = start_at or req.preferred_start
        if start_at is None:
            raise ValidationError(
                "start_at is required when the request has no preferred time",
                details={"request_id": str(id)},
            )
        if duration_minutes is None:
            if start_at == req.preferred_start and req.preferred_end is not None:
                duration_minutes = int((req.preferred_end - req.preferred_start).total_seconds() // 60)
            else:
                duration_minutes = (await self._settings.get_config(workspace_id)).slot_duration_minutes

        appt, outcome = await self._appointments.reserve(
            workspace_id,
            req.lead_id,
            start_at,
            start_at + _dt.timedelta(minutes=duration_minutes),
            appointment_type=appointment_type or AppointmentType(req.request_type),
            source=AppointmentSource(req.source),
            notes=notes if notes is not None else req.notes,
            contact_name=req.contact_name,
            contact_phone=req.contact_phone,
            negotiation_id=req.negotiation_id,
        )
        if appt is None:
            raise ConflictError(
                "Requested time is not available",
                code="SLOT_UNAVAILABLE",
                details={"reason": outcome, "start_at": start_at.isoformat()},
            )
        await self._repo.update(req.id, {
            "status": SchedulingRequestStatus.CONVERTED.value,
            "converted_appointment_id": appt.id,
        })
        logger.info(
            "Scheduling request %s converted to appointment %s", req.id, appt.id,
            extra={"workspace_id": workspace_id, "lead_id": req.lead_id, "appointment_id": str(appt.id)},
        )
        return appt
