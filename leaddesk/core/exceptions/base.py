"""
ProjectError: the single exception root for leaddesk.

Services raise subclasses of it; ``leaddesk.api.main`` installs one handler
that turns any of them into a JSON error body with the right status code.
"""
from __future__ import annotations

import traceback
from typing import Any, Optional


class ProjectError(Exception):
    """
    Error with a machine-readable code and the HTTP status it maps to.

    Attributes:
        message: Text shown to API clients.
        code: Stable slug clients can branch on (class ``default_code`` unless overridden).
        http_status: Status the API handler responds with.
        details: Extra context, e.g. the list of settings errors or the rejected slot.
        cause: Underlying exception, kept for logs only.
    """

    default_code: str = "ERROR"
    default_http_status: int = 500

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        http_status: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.http_status = http_status or self.default_http_status
        self.details: dict[str, Any] = details or {}
        self.cause = cause

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, code={self.code!r}, http_status={self.http_status})"

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Full record for the error log, including the cause traceback."""
        record: dict[str, Any] = {
            "message": self.message,
            "code": self.code,
            "http_status": self.http_status,
            "details": self.details,
        }
        if self.cause is not None:
            record["cause"] = repr(self.cause)
            record["cause_traceback"] = "".join(traceback.format_exception(
                type(self.cause), self.cause, self.cause.__traceback__
            ))
        return record

    def to_response(self) -> dict[str, Any]:
        """Body returned to API clients; never includes tracebacks."""
        body: dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body
