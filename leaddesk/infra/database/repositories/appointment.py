"""Appointment repository: filtered listing, busy intervals and the workspace booking lock."""
from __future__ import annotations

import datetime as _dt
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select

from leaddesk.infra.database.models.appointment import Appointment
from leaddesk.infra.database.repositories.base import BaseRepository


class AppointmentRepository(BaseRepository[Appointment]):
    model = Appointment

    async def list_all(
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
        stmt = (
            select(Appointment)
            .where(Appointment.workspace_id == workspace_id)
            .order_by(Appointment.start_at)
        )
        if status:
            stmt = stmt.where(Appointment.status == status)
        if appointment_type:
            stmt = stmt.where(Appointment.appointment_type == appointment_type)
        if source:
            stmt = stmt.where(Appointment.source == source)
        if lead_id:
            stmt = stmt.where(Appointment.lead_id == lead_id)
        if date_from:
            stmt = stmt.where(Appointment.start_at >= date_from)
        if date_to:
            stmt = stmt.where(Appointment.start_at < date_to)
        stmt = stmt.offset(skip).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_upcoming(
        self,
        workspace_id: str,
        now: _dt.datetime,
        limit: int = 10,
    ) -> List[Appointment]:
        stmt = (
            select(Appointment)
            .where(Appointment.workspace_id == workspace_id)
            .where(Appointment.status == "scheduled")
            .where(Appointment.end_at > now)
            .order_by(Appointment.start_at)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_busy(
        self,
        workspace_id: str,
        start: _dt.datetime,
        end: _dt.datetime,
        *,
        exclude_id: Optional[UUID] = None,
    ) -> List[Tuple[_dt.datetime, _dt.datetime]]:
        """(start_at, end_at) of scheduled appointments overlapping ``[start, end)``.

        Callers widen the window by the buffers so that appointments just
        outside it still block slots at its edges.
        """
        stmt = (
            select(Appointment.start_at, Appointment.end_at)
            .where(Appointment.workspace_id == workspace_id)
            .where(Appointment.status == "scheduled")
            .where(Appointment.start_at < end)
            .where(Appointment.end_at > start)
            .order_by(Appointment.start_at)
        )
        if exclude_id is not None:
            stmt = stmt.where(Appointment.id != exclude_id)
        result = await self.session.execute(stmt)
        return [(row.start_at, row.end_at) for row in result.all()]

    async def get_by_negotiation(self, negotiation_id: UUID) -> Optional[Appointment]:
        stmt = select(Appointment).where(Appointment.negotiation_id == negotiation_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def lock_workspace(self, workspace_id: str) -> None:
        """Serialize bookings of one workspace until the current transaction ends.

        PostgreSQL transaction-level advisory lock; released automatically on
        commit or rollback.
        """
        key = func.hashtext(f"appointments:{workspace_id}")
        await self.session.execute(select(func.pg_advisory_xact_lock(key)))
