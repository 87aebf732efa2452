import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_principal, get_session
from app.api.schemas.payment import (
    AccountLinkRequest,
    AccountLinkResponse,
    ConnectAccountRequest,
    ConnectAccountResponse,
    WebhookAck,
)
from app.core.security import Principal
from app.models.booking import BookingStatus
from app.services.booking_service import BookingResult, PaymentOutcome
from app.services.email_service import send_booking_confirmation_email
from app.services.payment_service import (
    create_account_link,
    create_connect_account,
    handle_webhook_event,
    verify_webhook,
)
from app.services.profile_service import get_customer

logger = logging.getLogger(__name__)
router = APIRouter(tags=["payments"])


@router.post("/payments/connect-account", response_model=ConnectAccountResponse)
async def connect_account(
    body: ConnectAccountRequest,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_principal),
) -> ConnectAccountResponse:
    account_id, existing = await create_connect_account(
        session, body.provider_id, principal, email=body.email, name=body.name
    )
    return ConnectAccountResponse(account_id=account_id, existing=existing)


@router.post("/payments/account-link", response_model=AccountLinkResponse)
async def account_link(
    body: AccountLinkRequest,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_principal),
) -> AccountLinkResponse:
    return AccountLinkResponse(url=await create_account_link(session, body.provider_id, principal))


async def _queue_confirmation(
    session: AsyncSession, result: BookingResult, background_tasks: BackgroundTasks
) -> None:
    booking, appointment = result.booking, result.appointment
    if booking is None or appointment is None or booking.status != BookingStatus.CONFIRMED:
        return
    customer = await get_customer(session, booking.customer_id)
    if customer is None:
        logger.info("No customer profile for %s, skipping confirmation email", booking.customer_id)
        return
    # plain values only: the session is closed when the task runs
    background_tasks.add_task(
        send_booking_confirmation_email,
        to_email=customer.email,
        customer_name=customer.name,
        provider_name=appointment.provider_name,
        day=appointment.date,
        start_time=appointment.start_time,
        end_time=appointment.end_time,
        services=list(appointment.services),
        amount=booking.amount,
        currency=booking.currency,
        receipt_url=booking.receipt_url,
    )


@router.post("/webhooks/stripe", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    stripe_signature: str | None = Header(default=None, alias="stripe-signature"),
    session: AsyncSession = Depends(get_session),
) -> WebhookAck:
    """Verified payment processor notifications. At-least-once, any order."""
    payload = await request.body()
    event = verify_webhook(payload, stripe_signature)
    handled = await handle_webhook_event(session, event)
    warnings: list[str] = []
    if handled.error:
        warnings.append(handled.error)
    if handled.result is not None:
        warnings.extend(handled.result.warnings)
        if handled.outcome == PaymentOutcome.SUCCEEDED and handled.result.applied:
            await _queue_confirmation(session, handled.result, background_tasks)
    return WebhookAck(event_type=handled.event_type, handled=handled.handled, warnings=warnings)
