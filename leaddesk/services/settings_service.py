"""SchedulingSettingsService: load and replace a workspace's scheduling settings."""
from __future__ import annotations

import logging
from typing import Any, Dict

from sqlalchemy.ext.asyncio import AsyncSession

from leaddesk.core.exceptions import ConfigurationError, ValidationError
from leaddesk.infra.database.repositories import SchedulingSettingsRepository
from leaddesk.scheduling.availability import validate_config
from leaddesk.scheduling.types import SchedulingConfig

logger = logging.getLogger(__name__)


class SchedulingSettingsService:
    def __init__(self, session: AsyncSession) -> None:
        self._repo = SchedulingSettingsRepository(session)

    async def get_config(self, workspace_id: str) -> SchedulingConfig:
        """Stored settings, or the defaults when the workspace never saved any."""
        data = await self._repo.get_config(workspace_id)
        try:
            return SchedulingConfig.from_dict(data)
        except (TypeError, ValueError) as exc:
            # Rows are validated on save; this only trips on hand-edited JSONB.
            raise ConfigurationError(
                "Stored scheduling settings are unreadable",
                details={"workspace_id": workspace_id},
                cause=exc,
            ) from exc

    async def save_config(self, workspace_id: str, data: Dict[str, Any]) -> SchedulingConfig:
        """Validate and store the full settings object. Nothing is merged or coerced."""
        try:
            config = SchedulingConfig.from_dict(data)
        except (TypeError, ValueError) as exc:
            raise ValidationError(
                "Invalid scheduling settings",
                details={"errors": [str(exc)]},
                cause=exc,
            ) from exc
        validate_config(config)
        stored = await self._repo.save_config(workspace_id, config.to_dict())
        logger.info(
            "Scheduling settings saved for workspace %s (enabled=%s, booking_mode=%s)",
            workspace_id, config.scheduling_enabled, config.chatbot_booking.booking_mode.value,
            extra={"workspace_id": workspace_id},
        )
        return SchedulingConfig.from_dict(stored)
