"""SchedulingRequest ORM model: a booking a human still has to turn into an appointment."""
from __future__ import annotations

import datetime as _dt
import uuid
from typing import Optional

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from leaddesk.infra.database.models.base import Base, TimestampMixin, _uuid_pk


class SchedulingRequest(Base, TimestampMixin):
    """
    Created when a chatbot negotiation confirms in manual_request mode.
    status: "open" | "converted" | "closed" | "cancelled"
    """

    __tablename__ = "scheduling_requests"
    __table_args__ = (
        Index("ix_scheduling_requests_workspace_status", "workspace_id", "status"),
        Index("ix_scheduling_requests_lead", "workspace_id", "lead_id"),
    )

    id: Mapped[uuid.UUID] = _uuid_pk()
    workspace_id: Mapped[str] = mapped_column(String(64), nullable=False)
    lead_id: Mapped[str] = mapped_column(String(64), nullable=False)
    negotiation_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True, unique=True
    )

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="open")
    request_type: Mapped[str] = mapped_column(String(32), nullable=False, default="call")
    preferred_start: Mapped[Optional[_dt.datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    preferred_end: Mapped[Optional[_dt.datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")

    contact_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    contact_phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source: Mapped[str] = mapped_column(String(32), nullable=False, default="chatbot")
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    converted_appointment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
