"""SchedulingRequest repository."""
from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_, select

from leaddesk.infra.database.models.scheduling_request import SchedulingRequest
from leaddesk.infra.database.repositories.base import BaseRepository


class SchedulingRequestRepository(BaseRepository[SchedulingRequest]):
    model = SchedulingRequest

    async def list_all(
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
        stmt = (
            select(SchedulingRequest)
            .where(SchedulingRequest.workspace_id == workspace_id)
            .order_by(SchedulingRequest.created_at.desc())
        )
        if status:
            stmt = stmt.where(SchedulingRequest.status == status)
        if request_type:
            stmt = stmt.where(SchedulingRequest.request_type == request_type)
        if source:
            stmt = stmt.where(SchedulingRequest.source == source)
        if lead_id:
            stmt = stmt.where(SchedulingRequest.lead_id == lead_id)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(
                or_(
                    SchedulingRequest.contact_name.ilike(pattern),
                    SchedulingRequest.contact_phone.ilike(pattern),
                    SchedulingRequest.notes.ilike(pattern),
                )
            )
        stmt = stmt.offset(skip).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_by_negotiation(self, negotiation_id: UUID) -> Optional[SchedulingRequest]:
        stmt = select(SchedulingRequest).where(SchedulingRequest.negotiation_id == negotiation_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
