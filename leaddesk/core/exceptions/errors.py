"""
Concrete error types raised by the scheduling services.
"""
from __future__ import annotations

from leaddesk.core.exceptions.base import ProjectError


class ConfigurationError(ProjectError):
    """Stored or environment configuration cannot be used."""

    default_code = "CONFIGURATION_ERROR"
    default_http_status = 500


class ValidationError(ProjectError):
    """Request or input validation failed."""

    default_code = "VALIDATION_ERROR"
    default_http_status = 400


class NotFoundError(ProjectError):
    """Requested resource not found."""

    default_code = "NOT_FOUND"
    default_http_status = 404


class ForbiddenError(ProjectError):
    """Action disabled by workspace settings."""

    default_code = "FORBIDDEN"
    default_http_status = 403


class ConflictError(ProjectError):
    """Resource state conflict (e.g. slot already taken, appointment no longer scheduled)."""

    default_code = "CONFLICT"
    default_http_status = 409


class InvalidTransitionError(ConflictError):
    """A booking negotiation was asked to leave a state it cannot leave that way."""

    default_code = "INVALID_TRANSITION"
    default_http_status = 409
