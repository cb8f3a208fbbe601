"""
leaddesk.config.api – HTTP layer configuration.

Env vars: CORS_ORIGINS, API_RATE_LIMIT, ADMIN_API_KEY, BOOKING_OFFER_LIMIT,
DEFAULT_WORKSPACE_ID, NEGOTIATION_IDLE_HOURS.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class ApiConfig:
    """FastAPI app settings. Use load_api_config() to build from env."""

    cors_origins: List[str] = field(
        default_factory=lambda: ["http://localhost:5173", "http://127.0.0.1:5173"]
    )
    rate_limit: str = "120/minute"
    """slowapi limit string applied to every route."""

    admin_api_key: Optional[str] = None
    """When set, every /api/v1 request must carry it in X-Api-Key."""

    booking_offer_limit: int = 5
    """How many slots a booking negotiation offers at once."""

    default_workspace_id: Optional[str] = None
    """Workspace used when a request carries no X-Workspace-Id header (single-tenant installs)."""

    negotiation_idle_hours: int = 24
    """Negotiations untouched for this long are dropped from memory by the purge task."""

    def __post_init__(self) -> None:
        if not isinstance(self.booking_offer_limit, int) or self.booking_offer_limit < 1:
            raise ValueError(
                f"booking_offer_limit must be an integer >= 1, got {self.booking_offer_limit!r}"
            )
        if self.negotiation_idle_hours < 1:
            raise ValueError(
                f"negotiation_idle_hours must be >= 1, got {self.negotiation_idle_hours!r}"
            )
        if "/" not in self.rate_limit:
            raise ValueError(f"rate_limit must look like '120/minute', got {self.rate_limit!r}")

    @classmethod
    def from_env(cls) -> ApiConfig:
        origins = os.environ.get("CORS_ORIGINS", "")
        return cls(
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()]
            or ["http://localhost:5173", "http://127.0.0.1:5173"],
            rate_limit=os.environ.get("API_RATE_LIMIT", "120/minute").strip(),
            admin_api_key=os.environ.get("ADMIN_API_KEY", "").strip() or None,
            booking_offer_limit=int(os.environ.get("BOOKING_OFFER_LIMIT", "5")),
            default_workspace_id=os.environ.get("DEFAULT_WORKSPACE_ID", "").strip() or None,
            negotiation_idle_hours=int(os.environ.get("NEGOTIATION_IDLE_HOURS", "24")),
        )


def load_api_config() -> ApiConfig:
    """Load and validate API config from environment. Raises ValueError on bad values."""
    return ApiConfig.from_env()
