"""
leaddesk.infra.database – PostgreSQL async engine, session, models and repositories.

Public API
──────────
  build_engine, build_session_factory, ensure_database_exists, init_db, close_engine
  Base, Appointment, SchedulingRequest, SchedulingSettingsModel (models)
  AppointmentRepository, SchedulingRequestRepository, SchedulingSettingsRepository
"""
from leaddesk.infra.database.engine import (
    build_engine,
    build_session_factory,
    close_engine,
    ensure_database_exists,
    init_db,
)
from leaddesk.infra.database.models import (
    Appointment,
    Base,
    SchedulingRequest,
    SchedulingSettingsModel,
)
from leaddesk.infra.database.repositories import (
    AppointmentRepository,
    BaseRepository,
    SchedulingRequestRepository,
    SchedulingSettingsRepository,
)

__all__ = [
    "build_engine",
    "build_session_factory",
    "ensure_database_exists",
    "init_db",
    "close_engine",
    "Base",
    "Appointment",
    "SchedulingRequest",
    "SchedulingSettingsModel",
    "BaseRepository",
    "AppointmentRepository",
    "SchedulingRequestRepository",
    "SchedulingSettingsRepository",
]
