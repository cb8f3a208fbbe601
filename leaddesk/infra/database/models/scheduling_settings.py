"""Per-workspace scheduling settings (single JSONB document)."""
from __future__ import annotations

from typing import Any

from sqlalchemy import String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from leaddesk.infra.database.models.base import Base, TimestampMixin


class SchedulingSettingsModel(Base, TimestampMixin):
    """Stores SchedulingConfig.to_dict() verbatim so save/reload is lossless."""

    __tablename__ = "scheduling_settings"

    workspace_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    config_json: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, server_default="{}")
