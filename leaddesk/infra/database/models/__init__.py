"""
leaddesk.infra.database.models – SQLAlchemy 2.0 ORM models.

Exports Base, mixins, and all model classes.
"""
from leaddesk.infra.database.models.appointment import Appointment
from leaddesk.infra.database.models.base import Base, TimestampMixin, _uuid_pk
from leaddesk.infra.database.models.scheduling_request import SchedulingRequest
from leaddesk.infra.database.models.scheduling_settings import SchedulingSettingsModel

__all__ = [
    "Base",
    "TimestampMixin",
    "_uuid_pk",
    "Appointment",
    "SchedulingRequest",
    "SchedulingSettingsModel",
]
