"""
Stripe Connect adapter.

Outbound: checkout sessions that charge the customer, send the money to the
provider's connected account and keep the platform fee; connected-account
onboarding. Inbound: verified webhook events translated into
``PaymentOutcomeEvent`` and applied to the booking engine.

Stripe's client is synchronous, so calls run in a worker thread.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    ConflictError,
    DomainError,
    InvalidInputError,
    InvalidTransition,
    PermissionDeniedError,
    UpstreamError,
)
from app.core.security import Principal
from app.models.booking import BookingStatus
from app.services.booking_service import (
    BookingResult,
    PaymentOutcome,
    PaymentOutcomeEvent,
    apply_payment_outcome,
    get_booking,
    mark_checkout_started,
)
from app.services.profile_service import (
    get_owned_provider,
    get_provider,
    set_payment_account,
    update_payment_account_status,
)

logger = logging.getLogger(__name__)


class WebhookSignatureError(InvalidInputError):
    status_code = 400


@dataclass
class CheckoutResult:
    url: str
    checkout_session_id: str
    booking_id: int


@dataclass
class WebhookResult:
    event_type: str
    handled: bool
    outcome: PaymentOutcome | None = None
    result: BookingResult | None = None
    error: str | None = None


def _configure() -> None:
    if not settings.stripe_enabled:
        raise UpstreamError("Payment processor is not configured")
    stripe.api_key = settings.stripe_secret_key


async def _call_stripe(fn, /, **params) -> Any:
    _configure()
    try:
        return await asyncio.to_thread(fn, **params)
    except stripe.StripeError as e:
        logger.error("Stripe call %s failed: %s", getattr(fn, "__qualname__", fn), e)
        raise UpstreamError(f"Payment processor error: {e.user_message or str(e)}") from e


def application_fee(amount: int) -> int:
    return round(amount * settings.platform_fee_percent / 100)


async def create_checkout_session(
    session: AsyncSession,
    booking_id: int,
    principal: Principal,
    customer_email: str | None = None,
) -> CheckoutResult:
    booking = await get_booking(session, booking_id)
    if booking.customer_id != principal.user_id and not principal.is_admin:
        raise PermissionDeniedError("Not authorized for this booking", details={"booking_id": booking_id})
    if booking.status != BookingStatus.PENDING:
        raise InvalidTransition("booking", booking.id, booking.status, "checkout")
    provider = await get_provider(session, booking.provider_id)
    if not provider.stripe_account_id:
        raise ConflictError(
            "Provider does not have a connected payment account",
            details={"provider_id": provider.id},
        )

    metadata = {
        "bookingId": str(booking.id),
        "slotId": str(booking.slot_id),
        "providerId": str(booking.provider_id),
        "customerId": booking.customer_id,
    }
    params: dict[str, Any] = {
        "payment_method_types": ["card"],
        "mode": "payment",
        "line_items": [
            {
                "price_data": {
                    "currency": booking.currency,
                    "product_data": {
                        "name": booking.service_name,
                        "description": f"Appointment booking for {booking.service_name}",
                    },
                    "unit_amount": booking.amount,
                },
                "quantity": 1,
            }
        ],
        "payment_intent_data": {
            "application_fee_amount": application_fee(booking.amount),
            "transfer_data": {"destination": provider.stripe_account_id},
            "metadata": metadata,
        },
        "success_url": f"{settings.app_url}/appointments?success=true",
        "cancel_url": f"{settings.app_url}/book/{provider.id}?canceled=true",
        "metadata": metadata,
    }
    if customer_email:
        params["customer_email"] = customer_email

    checkout = await _call_stripe(stripe.checkout.Session.create, **params)
    await mark_checkout_started(session, booking, checkout["id"])
    logger.info("Checkout session %s started for booking %s", checkout["id"], booking.id)
    return CheckoutResult(url=checkout["url"], checkout_session_id=checkout["id"], booking_id=booking.id)


async def create_connect_account(
    session: AsyncSession,
    provider_id: int,
    principal: Principal,
    email: str | None = None,
    name: str | None = None,
) -> tuple[str, bool]:
    """Returns (account id, already_existed)."""
    provider = await get_owned_provider(session, provider_id, principal)
    if provider.stripe_account_id:
        return provider.stripe_account_id, True
    account = await _call_stripe(
        stripe.Account.create,
        type="express",
        country=settings.stripe_connect_country,
        email=email,
        capabilities={"card_payments": {"requested": True}, "transfers": {"requested": True}},
        business_type="individual",
        business_profile={
            "name": name or provider.name,
            "product_description": f"Barber services by {provider.name}",
        },
    )
    await set_payment_account(session, provider, account["id"])
    logger.info("Created payment account %s for provider %s", account["id"], provider.id)
    return account["id"], False


async def create_account_link(session: AsyncSession, provider_id: int, principal: Principal) -> str:
    provider = await get_owned_provider(session, provider_id, principal)
    if not provider.stripe_account_id:
        raise ConflictError(
            "Provider does not have a connected payment account",
            details={"provider_id": provider.id},
        )
    link = await _call_stripe(
        stripe.AccountLink.create,
        account=provider.stripe_account_id,
        refresh_url=f"{settings.app_url}/barbers/dashboard?refresh=true",
        return_url=f"{settings.app_url}/barbers/dashboard?success=true",
        type="account_onboarding",
    )
    return link["url"]


def verify_webhook(payload: bytes, signature: str | None) -> dict[str, Any]:
    """Check the Stripe signature and return the event as a plain dict."""
    if not signature:
        raise WebhookSignatureError("Missing stripe-signature header")
    if not settings.stripe_webhook_secret:
        raise UpstreamError("Webhook secret not configured")
    try:
        stripe.Webhook.construct_event(payload, signature, settings.stripe_webhook_secret)
    except stripe.SignatureVerificationError as e:
        logger.warning("Invalid webhook signature: %s", e)
        raise WebhookSignatureError("Invalid webhook signature") from e
    except ValueError as e:
        raise WebhookSignatureError("Invalid webhook payload") from e
    return json.loads(payload)


def _int_or_none(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _event_from_object(obj: dict[str, Any], outcome: PaymentOutcome, **refs: Any) -> PaymentOutcomeEvent:
    metadata = obj.get("metadata") or {}
    return PaymentOutcomeEvent(
        slot_id=_int_or_none(metadata.get("slotId")),
        provider_id=_int_or_none(metadata.get("providerId")),
        booking_id=_int_or_none(metadata.get("bookingId")),
        outcome=outcome,
        **refs,
    )


def outcome_from_event(event: dict[str, Any]) -> PaymentOutcomeEvent | None:
    """Translate a Stripe event into a booking outcome, or None if it carries none."""
    event_type = event.get("type", "")
    obj = (event.get("data") or {}).get("object") or {}

    if event_type in ("checkout.session.completed", "checkout.session.async_payment_succeeded"):
        # Delayed payment methods complete the session before the money moves
        if obj.get("payment_status") == "unpaid":
            return None
        return _event_from_object(
            obj,
            PaymentOutcome.SUCCEEDED,
            external_reference=obj.get("payment_intent"),
            checkout_session_id=obj.get("id"),
        )
    if event_type in ("checkout.session.expired", "checkout.session.async_payment_failed"):
        return _event_from_object(
            obj,
            PaymentOutcome.FAILED,
            external_reference=obj.get("payment_intent"),
            checkout_session_id=obj.get("id"),
        )
    if event_type == "payment_intent.payment_failed":
        return _event_from_object(obj, PaymentOutcome.FAILED, external_reference=obj.get("id"))
    if event_type == "charge.refunded":
        return _event_from_object(
            obj,
            PaymentOutcome.REFUNDED,
            external_reference=obj.get("payment_intent"),
            receipt_ref=obj.get("receipt_url"),
        )
    return None


async def handle_webhook_event(session: AsyncSession, event: dict[str, Any]) -> WebhookResult:
    """Apply one verified event.

    Domain failures are logged and acknowledged so they do not block later
    events; anything else propagates and the processor redelivers.
    """
    event_type = event.get("type", "")
    logger.info("Processing webhook event %s (%s)", event.get("id"), event_type)

    if event_type == "account.updated":
        account = (event.get("data") or {}).get("object") or {}
        provider = await update_payment_account_status(
            session,
            account.get("id", ""),
            charges_enabled=bool(account.get("charges_enabled")),
            payouts_enabled=bool(account.get("payouts_enabled")),
            details_submitted=account.get("details_submitted"),
        )
        return WebhookResult(event_type=event_type, handled=provider is not None)

    outcome = outcome_from_event(event)
    if outcome is None:
        logger.info("Unhandled webhook event type: %s", event_type)
        return WebhookResult(event_type=event_type, handled=False)

    try:
        result = await apply_payment_outcome(session, outcome)
    except DomainError as e:
        logger.error("Failed to apply %s from %s: %s", outcome.outcome, event_type, e.message)
        return WebhookResult(event_type=event_type, handled=False, outcome=outcome.outcome, error=e.message)
    if result.inconsistent:
        logger.warning("Payment event %s left booking state inconsistent: %s", event_type, result.warnings)
    return WebhookResult(
        event_type=event_type,
        handled=result.applied,
        outcome=outcome.outcome,
        result=result,
    )
