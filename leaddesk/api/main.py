"""LeadDesk scheduling API entry point.

Start with:
    uvicorn leaddesk.api.main:app --reload --host 0.0.0.0 --port 8000

All routes live under /api/v1 and are scoped to the workspace named in the
X-Workspace-Id header (DEFAULT_WORKSPACE_ID when absent).
"""
from __future__ import annotations

import asyncio
import datetime as _dt
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from leaddesk.config import load_api_config
from leaddesk.core.exceptions import ProjectError
from leaddesk.core.logger import configure
from leaddesk.infra.database.engine import (
    build_engine,
    build_session_factory,
    close_engine,
    ensure_database_exists,
    init_db,
)
from leaddesk.scheduling.store import NegotiationStore

logger = logging.getLogger(__name__)

_PURGE_INTERVAL_SECONDS = 600

api_config = load_api_config()


async def project_error_handler(request: Request, exc: ProjectError) -> JSONResponse:
    """Render any ProjectError as {"detail", "code", "details"} with its HTTP status."""
    if exc.http_status >= 500:
        logger.error("API: %s %s failed: %s", request.method, request.url.path, exc.to_dict())
    else:
        logger.info("API: %s %s -> %d %s", request.method, request.url.path, exc.http_status, exc.code)
    return JSONResponse(status_code=exc.http_status, content=exc.to_response())


async def _purge_negotiations(store: NegotiationStore, idle_hours: int) -> None:
    """Drop negotiations abandoned mid-conversation, every few minutes."""
    while True:
        await asyncio.sleep(_PURGE_INTERVAL_SECONDS)
        cutoff = _dt.datetime.now(_dt.timezone.utc) - _dt.timedelta(hours=idle_hours)
        store.purge_older_than(cutoff)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ── Startup ──────────────────────────────────────────────────
    configure()

    await ensure_database_exists()
    engine = build_engine()
    session_factory = build_session_factory(engine)
    await init_db()

    app.state.session_factory = session_factory
    store = NegotiationStore()
    app.state.negotiation_store = store
    purge_task = asyncio.create_task(
        _purge_negotiations(store, api_config.negotiation_idle_hours)
    )
    logger.info(
        "API: ready (offer_limit=%d, default_workspace=%s)",
        api_config.booking_offer_limit, api_config.default_workspace_id or "-",
    )

    yield

    # ── Shutdown ─────────────────────────────────────────────────
    purge_task.cancel()
    await close_engine()
    logger.info("API: engine disposed")


app = FastAPI(
    title="LeadDesk Scheduling API",
    version="1.0.0",
    description="Scheduling settings, availability, booking negotiations and appointments.",
    lifespan=lifespan,
)
app.state.api_config = api_config

# Rate limit from API_RATE_LIMIT (default 120/minute), applied to every route
limiter = Limiter(key_func=get_remote_address, default_limits=[api_config.rate_limit])
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(ProjectError, project_error_handler)
app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=api_config.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Optional API key authentication ──────────────────────────────
# Set ADMIN_API_KEY to protect all /api/v1/* endpoints; requests must then
# include the header X-Api-Key: <value>. Unset means open (dev) mode.
@app.middleware("http")
async def api_key_middleware(request: Request, call_next):
    if api_config.admin_api_key and request.url.path.startswith("/api/v1"):
        provided = request.headers.get("X-Api-Key")
        if provided != api_config.admin_api_key:
            return JSONResponse(
                status_code=401,
                content={"detail": "Unauthorized: set the X-Api-Key header", "code": "UNAUTHORIZED"},
            )
    return await call_next(request)


# ── Routers ───────────────────────────────────────────────────────
from leaddesk.api.routers import appointments, booking, leads, scheduling_requests, settings  # noqa: E402

app.include_router(settings.router, prefix="/api/v1")
app.include_router(appointments.router, prefix="/api/v1")
app.include_router(booking.router, prefix="/api/v1")
app.include_router(scheduling_requests.router, prefix="/api/v1")
app.include_router(leads.router, prefix="/api/v1")


@app.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
