"""Appointment ORM model."""
from __future__ import annotations

import datetime as _dt
import uuid
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from leaddesk.infra.database.models.base import Base, TimestampMixin, _uuid_pk


class Appointment(Base, TimestampMixin):
    """A booked slot for a lead. Cancelling is a status change, rows are never deleted."""

    __tablename__ = "appointments"
    __table_args__ = (
        CheckConstraint("end_at > start_at", name="ck_appointments_end_after_start"),
        Index("ix_appointments_workspace_start", "workspace_id", "start_at"),
        Index("ix_appointments_lead", "workspace_id", "lead_id"),
        # Backstops for the advisory-lock reserve: one live appointment per
        # start time per workspace, one appointment per negotiation.
        Index(
            "uq_appointments_workspace_start_scheduled",
            "workspace_id", "start_at",
            unique=True,
            postgresql_where=text("status = 'scheduled'"),
        ),
        Index(
            "uq_appointments_negotiation",
            "negotiation_id",
            unique=True,
            postgresql_where=text("negotiation_id IS NOT NULL"),
        ),
    )

    id: Mapped[uuid.UUID] = _uuid_pk()

    workspace_id: Mapped[str] = mapped_column(String(64), nullable=False)
    lead_id: Mapped[str] = mapped_column(String(64), nullable=False)
    negotiation_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)

    title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    appointment_type: Mapped[str] = mapped_column(String(32), nullable=False, default="call")
    # call | site_visit | meeting | follow_up

    start_at: Mapped[_dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[_dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    contact_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    contact_phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    source: Mapped[str] = mapped_column(String(32), nullable=False, default="manual")
    # manual | chatbot | inbox | simulation

    reminder_minutes_before: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="scheduled")
    # scheduled | completed | cancelled | no_show
