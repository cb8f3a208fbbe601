"""
Project logger: rotating file (JSON) + console, configured from the environment.

Usage:
    from leaddesk.core.logger import configure, LoggerConfig

    # Configure once at startup; LoggerConfig.from_env() when no config is given.
    # Env: LOG_LEVEL, LOG_DIR, LOG_FILE_BASENAME, LOG_MAX_BYTES, LOG_BACKUP_COUNT, ...
    configure()

    logger = logging.getLogger(__name__)
    logger.info("Negotiation %s -> slots", negotiation_id, extra={"negotiation_id": str(negotiation_id)})

Booking context passed through ``extra`` (negotiation_id, workspace_id,
lead_id, appointment_id) is copied into the JSON file records.
"""
from leaddesk.core.logger.config import LoggerConfig
from leaddesk.core.logger.formatters import JsonFormatter, PlainConsoleFormatter
from leaddesk.core.logger.setup import configure

__all__ = [
    "LoggerConfig",
    "JsonFormatter",
    "PlainConsoleFormatter",
    "configure",
]
