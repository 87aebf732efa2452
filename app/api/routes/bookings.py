import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_principal, get_session
from app.api.schemas.appointment import (
    BookingResponse,
    BookingWithSlot,
    BookSlotRequest,
    CheckoutRequest,
    CheckoutResponse,
)
from app.core.security import Principal
from app.models.appointment import AppointmentPublic
from app.models.booking import BookingPublic
from app.models.provider import ProviderPublic
from app.models.slot import SlotPublic
from app.services.booking_service import BookingResult, cancel_booking, claim_slot, list_bookings_for_customer
from app.services.payment_service import create_checkout_session

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/bookings", tags=["bookings"])


def booking_response(result: BookingResult) -> BookingResponse:
    return BookingResponse(
        booking=BookingPublic.model_validate(result.booking) if result.booking else None,
        appointment=AppointmentPublic.model_validate(result.appointment) if result.appointment else None,
        warnings=result.warnings,
        applied=result.applied,
    )


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def book_slot(
    body: BookSlotRequest,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_principal),
) -> BookingResponse:
    """Reserve a slot. The booking stays pending until payment succeeds."""
    result = await claim_slot(
        session,
        principal,
        body.slot_id,
        body.service_name,
        customer_name=body.customer_name,
        customer_email=body.customer_email,
    )
    if result.degraded:
        logger.warning("Booking %s created with warnings: %s", result.booking.id, result.warnings)
    return booking_response(result)


@router.get("/me", response_model=list[BookingWithSlot])
async def list_my_bookings(
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_principal),
) -> list[BookingWithSlot]:
    rows = await list_bookings_for_customer(session, principal.user_id)
    return [
        BookingWithSlot(
            booking=BookingPublic.model_validate(b),
            slot=SlotPublic.model_validate(s) if s else None,
            provider=ProviderPublic.model_validate(p) if p else None,
        )
        for b, s, p in rows
    ]


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_my_booking(
    booking_id: int,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_principal),
) -> BookingResponse:
    return booking_response(await cancel_booking(session, booking_id, principal))


@router.post("/{booking_id}/checkout", response_model=CheckoutResponse)
async def start_checkout(
    booking_id: int,
    body: CheckoutRequest | None = None,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_principal),
) -> CheckoutResponse:
    """Open a hosted payment page for a pending booking."""
    checkout = await create_checkout_session(
        session, booking_id, principal, customer_email=body.customer_email if body else None
    )
    return CheckoutResponse(
        url=checkout.url,
        checkout_session_id=checkout.checkout_session_id,
        booking_id=checkout.booking_id,
    )
