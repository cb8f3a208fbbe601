"""Repositories for the leaddesk database."""
from leaddesk.infra.database.repositories.appointment import AppointmentRepository
from leaddesk.infra.database.repositories.base import BaseRepository
from leaddesk.infra.database.repositories.scheduling_request import SchedulingRequestRepository
from leaddesk.infra.database.repositories.scheduling_settings import SchedulingSettingsRepository

__all__ = [
    "BaseRepository",
    "AppointmentRepository",
    "SchedulingRequestRepository",
    "SchedulingSettingsRepository",
]
