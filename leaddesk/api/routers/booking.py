"""Booking router: drive a booking negotiation one input at a time.

Each endpoint returns the BookingPayload; callers render ``mode`` and
``reason`` rather than relying on HTTP errors for expected outcomes.
"""
from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from leaddesk.api.dependencies import (
    get_api_config,
    get_negotiation_store,
    get_session,
    get_workspace_id,
)
from leaddesk.api.schemas.booking import (
    BookingPayloadResponse,
    ChatMessageRequest,
    ChatMessageResponse,
    CustomTimeRequest,
    IdentityRequest,
    SelectSlotRequest,
    StartBookingRequest,
)
from leaddesk.config import ApiConfig
from leaddesk.scheduling.store import NegotiationStore
from leaddesk.services.booking_service import BookingService

router = APIRouter(prefix="/booking/negotiations", tags=["booking"])


def get_booking_service(
    session: AsyncSession = Depends(get_session),
    store: NegotiationStore = Depends(get_negotiation_store),
    config: ApiConfig = Depends(get_api_config),
) -> BookingService:
    return BookingService(session, store, offer_limit=config.booking_offer_limit)


@router.post("", response_model=BookingPayloadResponse, status_code=status.HTTP_201_CREATED)
async def start_booking(
    body: StartBookingRequest,
    workspace_id: str = Depends(get_workspace_id),
    svc: BookingService = Depends(get_booking_service),
):
    """Open a negotiation in ``offer`` (or ``not_available`` when booking is disabled)."""
    return await svc.start_booking(
        workspace_id,
        body.lead_id,
        source=body.source,
        appointment_type=body.appointment_type,
        contact_name=body.contact_name,
        contact_phone=body.contact_phone,
    )


@router.post("/messages", response_model=ChatMessageResponse)
async def handle_message(
    body: ChatMessageRequest,
    workspace_id: str = Depends(get_workspace_id),
    svc: BookingService = Depends(get_booking_service),
):
    """Route a lead's free-text reply into the booking flow. ``handled`` is false when it is not about booking."""
    payload = await svc.handle_message(
        workspace_id,
        body.lead_id,
        body.message,
        negotiation_id=body.negotiation_id,
        source=body.source,
        quote_complete=body.quote_complete,
    )
    return {"handled": payload is not None, "booking": payload}


@router.get("/{negotiation_id}", response_model=BookingPayloadResponse)
async def get_negotiation(
    negotiation_id: UUID,
    workspace_id: str = Depends(get_workspace_id),
    svc: BookingService = Depends(get_booking_service),
):
    return await svc.get(workspace_id, negotiation_id)


@router.post("/{negotiation_id}/accept", response_model=BookingPayloadResponse)
async def accept_offer(
    negotiation_id: UUID,
    workspace_id: str = Depends(get_workspace_id),
    svc: BookingService = Depends(get_booking_service),
):
    return await svc.accept_offer(workspace_id, negotiation_id)


@router.post("/{negotiation_id}/slots", response_model=BookingPayloadResponse)
async def refresh_slots(
    negotiation_id: UUID,
    workspace_id: str = Depends(get_workspace_id),
    svc: BookingService = Depends(get_booking_service),
):
    """Recompute the offered slots."""
    return await svc.show_slots(workspace_id, negotiation_id)


@router.post("/{negotiation_id}/select-slot", response_model=BookingPayloadResponse)
async def select_slot(
    negotiation_id: UUID,
    body: SelectSlotRequest,
    workspace_id: str = Depends(get_workspace_id),
    svc: BookingService = Depends(get_booking_service),
):
    return await svc.select_slot(
        workspace_id, negotiation_id, slot_id=body.slot_id, start=body.start
    )


@router.post("/{negotiation_id}/identity", response_model=BookingPayloadResponse)
async def supply_identity(
    negotiation_id: UUID,
    body: IdentityRequest,
    workspace_id: str = Depends(get_workspace_id),
    svc: BookingService = Depends(get_booking_service),
):
    return await svc.supply_identity_field(workspace_id, negotiation_id, body.field, body.value)


@router.post("/{negotiation_id}/custom-time/request", response_model=BookingPayloadResponse)
async def request_custom_time(
    negotiation_id: UUID,
    workspace_id: str = Depends(get_workspace_id),
    svc: BookingService = Depends(get_booking_service),
):
    return await svc.request_custom_time(workspace_id, negotiation_id)


@router.post("/{negotiation_id}/custom-time", response_model=BookingPayloadResponse)
async def propose_custom_time(
    negotiation_id: UUID,
    body: CustomTimeRequest,
    workspace_id: str = Depends(get_workspace_id),
    svc: BookingService = Depends(get_booking_service),
):
    return await svc.propose_custom_time(workspace_id, negotiation_id, body.start)


@router.post("/{negotiation_id}/decline", response_model=BookingPayloadResponse)
async def decline(
    negotiation_id: UUID,
    workspace_id: str = Depends(get_workspace_id),
    svc: BookingService = Depends(get_booking_service),
):
    return await svc.decline(workspace_id, negotiation_id)


@router.post("/{negotiation_id}/restart", response_model=BookingPayloadResponse)
async def restart(
    negotiation_id: UUID,
    workspace_id: str = Depends(get_workspace_id),
    svc: BookingService = Depends(get_booking_service),
):
    return await svc.restart(workspace_id, negotiation_id)


@router.post("/{negotiation_id}/confirm", response_model=BookingPayloadResponse)
async def confirm(
    negotiation_id: UUID,
    body: Optional[SelectSlotRequest] = Body(default=None),
    workspace_id: str = Depends(get_workspace_id),
    svc: BookingService = Depends(get_booking_service),
):
    """Book the selected or held slot. Safe to repeat; a replay returns the same appointment."""
    return await svc.confirm_appointment(
        workspace_id,
        negotiation_id,
        slot_id=body.slot_id if body else None,
        start=body.start if body else None,
    )
