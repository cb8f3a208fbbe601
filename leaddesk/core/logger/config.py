"""
Logger configuration, built in code or from env.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

_TRUTHY = ("1", "true", "yes")


@dataclass(frozen=True)
class LoggerConfig:
    """
    Configuration for the project logger.

    Use LoggerConfig.from_env() for env-based config, or build explicitly.
    """

    # Level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    level: str = "INFO"
    # Log directory for rotating file (if None, file handler is skipped)
    log_dir: Optional[str] = None
    # Basename for log file (e.g. "leaddesk" -> leaddesk.log)
    log_file_basename: str = "leaddesk"
    max_bytes: int = 5 * 1024 * 1024
    backup_count: int = 5
    # Logger that receives the handlers; every leaddesk.* module logs below it
    root_name: str = "leaddesk"
    console: bool = True
    file_rotating: bool = True

    @classmethod
    def from_env(cls) -> "LoggerConfig":
        """Build config from LOG_* environment variables."""
        return cls(
            level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            log_dir=os.environ.get("LOG_DIR") or None,
            log_file_basename=os.environ.get("LOG_FILE_BASENAME", "leaddesk"),
            max_bytes=int(os.environ.get("LOG_MAX_BYTES", "5242880")),
            backup_count=int(os.environ.get("LOG_BACKUP_COUNT", "5")),
            root_name=os.environ.get("LOG_ROOT_NAME", "leaddesk"),
            console=os.environ.get("LOG_CONSOLE", "true").lower() in _TRUTHY,
            file_rotating=os.environ.get("LOG_FILE_ROTATING", "true").lower() in _TRUTHY,
        )
