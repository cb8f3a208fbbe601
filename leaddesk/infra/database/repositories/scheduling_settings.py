"""Scheduling settings repository: load and replace the per-workspace document."""
from __future__ import annotations

from typing import Any, Dict, Optional

from leaddesk.infra.database.models.scheduling_settings import SchedulingSettingsModel
from leaddesk.infra.database.repositories.base import BaseRepository


class SchedulingSettingsRepository(BaseRepository[SchedulingSettingsModel]):
    model = SchedulingSettingsModel

    async def get_config(self, workspace_id: str) -> Optional[Dict[str, Any]]:
        row = await self.get_by_id(workspace_id)
        return dict(row.config_json) if row is not None else None

    async def save_config(self, workspace_id: str, config_json: Dict[str, Any]) -> Dict[str, Any]:
        """Replace the whole document (no partial merge)."""
        row = await self.get_by_id(workspace_id)
        if row is None:
            row = await self.create({"workspace_id": workspace_id, "config_json": config_json})
        else:
            row = await self.update(workspace_id, {"config_json": config_json})
        return dict(row.config_json)
