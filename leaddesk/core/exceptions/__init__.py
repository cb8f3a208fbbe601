"""
Project exception system.

Usage:
    from leaddesk.core.exceptions import ConflictError, ValidationError

    raise ValidationError("Invalid scheduling settings", details={"errors": errors})
    raise ConflictError("Requested time is not available", code="SLOT_UNAVAILABLE")

Every subclass carries its own default code and HTTP status (see errors.py).
"""
from leaddesk.core.exceptions.base import ProjectError
from leaddesk.core.exceptions.errors import (
    ConfigurationError,
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)

__all__ = [
    "ProjectError",
    "ConfigurationError",
    "ValidationError",
    "NotFoundError",
    "ForbiddenError",
    "ConflictError",
    "InvalidTransitionError",
]
