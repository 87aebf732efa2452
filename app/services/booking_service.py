"""
Booking state machine.

A claim reserves the slot with a conditional write before any payment
happens, then creates the booking and its appointment. Payment outcomes,
cancellation, completion and reservation expiry move the three records
forward. The booking is the primary record; appointment updates are
secondary and run in a savepoint so their failure degrades the result
instead of undoing the booking change. The reconciliation sweep repairs
anything left behind.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import StrEnum

from sqlalchemy import case, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    AppointmentNotFound,
    BookingNotFound,
    InvalidTransition,
    PermissionDeniedError,
    SlotAlreadyBooked,
    SlotUnavailable,
)
from app.core.security import Principal
from app.core.timeutils import normalize_date, utc_naive_now
from app.models.appointment import APPOINTMENT_STATUS_FOR_BOOKING, Appointment, AppointmentStatus
from app.models.booking import ACTIVE_BOOKING_STATUSES, Booking, BookingStatus, PaymentStatus
from app.models.provider import Provider
from app.models.slot import Slot
from app.services.profile_service import get_owned_provider, get_provider, resolve_customer_profile
from app.services.slot_service import compare_and_set_slot, get_slot

logger = logging.getLogger(__name__)


class PaymentOutcome(StrEnum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"


@dataclass
class PaymentOutcomeEvent:
    """Asynchronous, at-least-once notification from the payment processor."""

    slot_id: int | None
    provider_id: int | None
    outcome: PaymentOutcome
    external_reference: str | None = None
    receipt_ref: str | None = None
    booking_id: int | None = None
    checkout_session_id: str | None = None


@dataclass
class BookingResult:
    booking: Booking | None
    appointment: Appointment | None = None
    warnings: list[str] = field(default_factory=list)
    # False when the call changed nothing (stale outcome, already completed)
    applied: bool = True
    inconsistent: bool = False

    @property
    def degraded(self) -> bool:
        return bool(self.warnings)


def _appointment_payment_status(payment_status: str) -> str:
    return "paid" if payment_status == PaymentStatus.SUCCEEDED else str(payment_status)


def _new_appointment(booking: Booking, slot: Slot, provider_name: str, customer_name: str) -> Appointment:
    return Appointment(
        customer_id=booking.customer_id,
        customer_name=customer_name,
        provider_id=booking.provider_id,
        provider_name=provider_name,
        date=slot.date,
        start_time=slot.start_time,
        end_time=slot.end_time,
        services=[booking.service_name],
        status=AppointmentStatus.PENDING,
        payment_status=PaymentStatus.PENDING,
        booking_id=booking.id,
    )


async def _release_slot(session: AsyncSession, slot_id: int, booking_id: int) -> bool:
    """Mark the slot free unless another active booking still holds it."""
    result = await session.execute(
        select(Booking.id)
        .where(
            Booking.slot_id == slot_id,
            Booking.id != booking_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
        .limit(1)
    )
    holder = result.scalar_one_or_none()
    if holder is not None:
        logger.warning("Slot %s still held by booking %s, not releasing", slot_id, holder)
        return False
    await compare_and_set_slot(session, slot_id, booked=False)
    return True


async def _sync_appointment(
    session: AsyncSession, booking: Booking
) -> tuple[Appointment | None, list[str]]:
    """Mirror the booking status onto its linked appointment (secondary write)."""
    if booking.appointment_id is None:
        logger.warning("Booking %s has no linked appointment", booking.id)
        return None, [f"Booking {booking.id} has no linked appointment"]
    target = APPOINTMENT_STATUS_FOR_BOOKING[booking.status]
    try:
        async with session.begin_nested():
            appointment = await session.get(Appointment, booking.appointment_id)
            if appointment is None:
                return None, [f"Appointment {booking.appointment_id} is missing"]
            appointment.status = target
            appointment.payment_status = _appointment_payment_status(booking.payment_status)
            if booking.external_reference:
                appointment.payment_reference = booking.external_reference
            session.add(appointment)
    except SQLAlchemyError as e:
        logger.exception("Appointment sync failed for booking %s", booking.id)
        return None, [f"Appointment update failed: {type(e).__name__}"]
    return appointment, []


async def _save_booking(session: AsyncSession, booking: Booking) -> None:
    booking.updated_at = utc_naive_now()
    session.add(booking)
    await session.flush()


async def claim_slot(
    session: AsyncSession,
    principal: Principal,
    slot_id: int,
    service_name: str,
    customer_name: str | None = None,
    customer_email: str | None = None,
) -> BookingResult:
    """Reserve ``slot_id`` for the principal and create a pending booking + appointment."""
    slot = await get_slot(session, slot_id)
    if slot.booked:
        raise SlotAlreadyBooked(slot_id)
    if not slot.available:
        raise SlotUnavailable(slot_id)
    provider = await get_provider(session, slot.provider_id)
    customer = await resolve_customer_profile(
        session, principal.user_id, name=customer_name, email=customer_email
    )

    # Conditional write closes the read-then-book race
    reserved = await compare_and_set_slot(
        session,
        slot_id,
        Slot.booked == False,  # noqa: E712
        Slot.available == True,  # noqa: E712
        booked=True,
    )
    if not reserved:
        await session.refresh(slot)
        logger.info("Claim on slot %s by %s lost the race", slot_id, principal.user_id)
        if slot.booked:
            raise SlotAlreadyBooked(slot_id)
        raise SlotUnavailable(slot_id)

    booking = Booking(
        slot_id=slot_id,
        provider_id=slot.provider_id,
        customer_id=principal.user_id,
        status=BookingStatus.PENDING,
        payment_status=PaymentStatus.PENDING,
        amount=slot.price,
        currency=settings.currency,
        service_name=service_name,
    )
    try:
        async with session.begin_nested():
            session.add(booking)
    except IntegrityError:
        # another active booking references this slot
        logger.warning("Slot %s already has an active booking", slot_id)
        raise SlotAlreadyBooked(slot_id) from None

    warnings: list[str] = []
    appointment = _new_appointment(booking, slot, provider.name, customer.name)
    try:
        async with session.begin_nested():
            session.add(appointment)
    except SQLAlchemyError as e:
        logger.exception("Failed to create appointment for booking %s", booking.id)
        appointment = None
        warnings.append(f"Appointment could not be created: {type(e).__name__}")
    else:
        booking.appointment_id = appointment.id
        await _save_booking(session, booking)

    logger.info(
        "Booking %s created: slot %s reserved for %s (pending payment)",
        booking.id,
        slot_id,
        principal.user_id,
    )
    return BookingResult(booking=booking, appointment=appointment, warnings=warnings)


async def _find_booking_for_event(session: AsyncSession, event: PaymentOutcomeEvent) -> Booking | None:
    if event.booking_id is not None:
        booking = await session.get(Booking, event.booking_id)
        if booking:
            if event.slot_id is not None and booking.slot_id != event.slot_id:
                logger.warning(
                    "Payment event slot %s does not match booking %s slot %s",
                    event.slot_id,
                    booking.id,
                    booking.slot_id,
                )
            return booking
    if event.external_reference:
        result = await session.execute(
            select(Booking).where(Booking.external_reference == event.external_reference)
        )
        booking = result.scalars().first()
        if booking:
            return booking
    if event.checkout_session_id:
        result = await session.execute(
            select(Booking).where(Booking.checkout_session_id == event.checkout_session_id)
        )
        booking = result.scalars().first()
        if booking:
            return booking
    if event.slot_id is not None:
        active_first = case((Booking.status.in_(ACTIVE_BOOKING_STATUSES), 0), else_=1)
        result = await session.execute(
            select(Booking)
            .where(Booking.slot_id == event.slot_id)
            .order_by(active_first, Booking.booked_at.desc(), Booking.id.desc())
        )
        return result.scalars().first()
    return None


def _record_payment_refs(booking: Booking, event: PaymentOutcomeEvent) -> None:
    if event.external_reference:
        booking.external_reference = event.external_reference
    if event.receipt_ref:
        booking.receipt_url = event.receipt_ref
    if event.checkout_session_id:
        booking.checkout_session_id = event.checkout_session_id


async def apply_payment_outcome(session: AsyncSession, event: PaymentOutcomeEvent) -> BookingResult:
    """Apply one processor outcome. Idempotent under redelivery and reordering."""
    booking = await _find_booking_for_event(session, event)
    if booking is None:
        logger.warning(
            "Payment %s for slot %s (ref %s) matches no booking",
            event.outcome,
            event.slot_id,
            event.external_reference,
        )
        return BookingResult(
            booking=None,
            applied=False,
            inconsistent=True,
            warnings=["No booking found for payment outcome"],
        )

    if event.outcome == PaymentOutcome.SUCCEEDED:
        return await _apply_success(session, booking, event)
    if event.outcome == PaymentOutcome.FAILED:
        return await _apply_failure(session, booking, event)
    return await _apply_refund(session, booking, event)


async def _apply_success(session: AsyncSession, booking: Booking, event: PaymentOutcomeEvent) -> BookingResult:
    first_success = True
    if booking.status == BookingStatus.REFUNDED:
        logger.info("Ignoring stale success for refunded booking %s", booking.id)
        return BookingResult(booking=booking, applied=False)

    if booking.status == BookingStatus.CANCELLED:
        # Payment completed after the booking was cancelled (late success,
        # expiry or retry after a failure). Revive only if the slot is free.
        revived = await compare_and_set_slot(
            session, booking.slot_id, Slot.booked == False, booked=True, available=True  # noqa: E712
        )
        if revived:
            try:
                async with session.begin_nested():
                    booking.status = BookingStatus.CONFIRMED
                    session.add(booking)
            except IntegrityError:
                await session.refresh(booking)
                revived = False
        if not revived:
            _record_payment_refs(booking, event)
            booking.payment_status = PaymentStatus.SUCCEEDED
            await _save_booking(session, booking)
            logger.error(
                "Payment succeeded for cancelled booking %s but slot %s is taken; refund required",
                booking.id,
                booking.slot_id,
            )
            return BookingResult(
                booking=booking,
                inconsistent=True,
                warnings=["Slot no longer available for this paid booking; refund required"],
            )
        logger.info("Revived cancelled booking %s after successful payment", booking.id)
    elif booking.status == BookingStatus.PENDING:
        booking.status = BookingStatus.CONFIRMED
        await compare_and_set_slot(session, booking.slot_id, booked=True, available=True)
    else:
        # confirmed or completed: duplicate delivery, re-assert the slot
        await compare_and_set_slot(session, booking.slot_id, booked=True, available=True)
        first_success = False

    booking.payment_status = PaymentStatus.SUCCEEDED
    _record_payment_refs(booking, event)
    await _save_booking(session, booking)
    appointment, warnings = await _sync_appointment(session, booking)
    logger.info("Payment succeeded for booking %s (slot %s)", booking.id, booking.slot_id)
    return BookingResult(booking=booking, appointment=appointment, warnings=warnings, applied=first_success)


async def _apply_failure(session: AsyncSession, booking: Booking, event: PaymentOutcomeEvent) -> BookingResult:
    if booking.status in (BookingStatus.CONFIRMED, BookingStatus.COMPLETED, BookingStatus.REFUNDED):
        logger.info("Ignoring stale failure for %s booking %s", booking.status, booking.id)
        return BookingResult(booking=booking, applied=False)

    booking.status = BookingStatus.CANCELLED
    if booking.payment_status in (PaymentStatus.PENDING, PaymentStatus.PROCESSING, PaymentStatus.FAILED):
        booking.payment_status = PaymentStatus.FAILED
    _record_payment_refs(booking, event)
    await _save_booking(session, booking)
    await _release_slot(session, booking.slot_id, booking.id)
    appointment, warnings = await _sync_appointment(session, booking)
    logger.info("Payment did not complete for booking %s; slot %s released", booking.id, booking.slot_id)
    return BookingResult(booking=booking, appointment=appointment, warnings=warnings)


async def _apply_refund(session: AsyncSession, booking: Booking, event: PaymentOutcomeEvent) -> BookingResult:
    booking.status = BookingStatus.REFUNDED
    booking.payment_status = PaymentStatus.REFUNDED
    _record_payment_refs(booking, event)
    await _save_booking(session, booking)
    await _release_slot(session, booking.slot_id, booking.id)
    appointment, warnings = await _sync_appointment(session, booking)
    logger.info("Booking %s refunded; slot %s released", booking.id, booking.slot_id)
    return BookingResult(booking=booking, appointment=appointment, warnings=warnings)


async def get_booking(session: AsyncSession, booking_id: int) -> Booking:
    booking = await session.get(Booking, booking_id)
    if not booking:
        raise BookingNotFound(booking_id)
    return booking


async def _authorize_booking(session: AsyncSession, booking: Booking, principal: Principal) -> None:
    if principal.is_admin or booking.customer_id == principal.user_id:
        return
    if principal.is_provider:
        provider = await session.get(Provider, booking.provider_id)
        if provider and provider.user_id == principal.user_id:
            return
    raise PermissionDeniedError("Not authorized for this booking", details={"booking_id": booking.id})


async def cancel_booking(session: AsyncSession, booking_id: int, principal: Principal) -> BookingResult:
    booking = await get_booking(session, booking_id)
    await _authorize_booking(session, booking, principal)

    if booking.status in (BookingStatus.COMPLETED, BookingStatus.REFUNDED):
        raise InvalidTransition("booking", booking.id, booking.status, BookingStatus.CANCELLED)

    if booking.status != BookingStatus.CANCELLED:
        booking.status = BookingStatus.CANCELLED
        if booking.payment_status in (PaymentStatus.PENDING, PaymentStatus.PROCESSING):
            booking.payment_status = PaymentStatus.CANCELLED
        await _save_booking(session, booking)
        logger.info("Booking %s cancelled by %s", booking.id, principal.user_id)

    # Re-asserted on every call so a repeated cancel converges too
    await _release_slot(session, booking.slot_id, booking.id)
    appointment, warnings = await _sync_appointment(session, booking)
    return BookingResult(booking=booking, appointment=appointment, warnings=warnings)


async def complete_appointment(
    session: AsyncSession, appointment_id: int, principal: Principal
) -> BookingResult:
    """Provider marks the service delivered. The slot is left as is."""
    appointment = await session.get(Appointment, appointment_id)
    if not appointment:
        raise AppointmentNotFound(appointment_id)
    await get_owned_provider(session, appointment.provider_id, principal)

    booking = None
    if appointment.booking_id is not None:
        booking = await session.get(Booking, appointment.booking_id)

    if appointment.status == AppointmentStatus.COMPLETED:
        return BookingResult(booking=booking, appointment=appointment, applied=False)
    if appointment.status not in (AppointmentStatus.PENDING, AppointmentStatus.PAID):
        raise InvalidTransition("appointment", appointment.id, appointment.status, AppointmentStatus.COMPLETED)

    appointment.status = AppointmentStatus.COMPLETED
    session.add(appointment)
    await session.flush()

    warnings: list[str] = []
    if booking is None:
        warnings.append(f"Appointment {appointment.id} has no linked booking")
    elif booking.is_active:
        try:
            async with session.begin_nested():
                booking.status = BookingStatus.COMPLETED
                booking.updated_at = utc_naive_now()
                session.add(booking)
        except SQLAlchemyError as e:
            logger.exception("Booking update failed while completing appointment %s", appointment.id)
            await session.refresh(booking)
            warnings.append(f"Booking update failed: {type(e).__name__}")
    logger.info("Appointment %s completed", appointment.id)
    return BookingResult(booking=booking, appointment=appointment, warnings=warnings)


async def mark_checkout_started(session: AsyncSession, booking: Booking, checkout_session_id: str) -> Booking:
    booking.checkout_session_id = checkout_session_id
    if booking.payment_status == PaymentStatus.PENDING:
        booking.payment_status = PaymentStatus.PROCESSING
    await _save_booking(session, booking)
    return booking


async def expire_stale_reservations(session: AsyncSession, timeout_minutes: int | None = None) -> int:
    """Cancel unpaid bookings older than the reservation timeout and free their slots."""
    timeout = settings.reservation_timeout_minutes if timeout_minutes is None else timeout_minutes
    cutoff = utc_naive_now() - timedelta(minutes=timeout)
    result = await session.execute(
        select(Booking).where(
            Booking.status == BookingStatus.PENDING,
            Booking.payment_status.in_((PaymentStatus.PENDING, PaymentStatus.PROCESSING)),
            Booking.booked_at < cutoff,
        )
    )
    expired = 0
    for booking in result.scalars().all():
        booking.status = BookingStatus.CANCELLED
        booking.payment_status = PaymentStatus.CANCELLED
        await _save_booking(session, booking)
        await _release_slot(session, booking.slot_id, booking.id)
        await _sync_appointment(session, booking)
        expired += 1
    if expired:
        logger.info("Expired %d unpaid reservation(s) older than %d minutes", expired, timeout)
    return expired


async def list_bookings_for_customer(
    session: AsyncSession, user_id: str
) -> list[tuple[Booking, Slot | None, Provider | None]]:
    result = await session.execute(
        select(Booking, Slot, Provider)
        .outerjoin(Slot, Slot.id == Booking.slot_id)
        .outerjoin(Provider, Provider.id == Booking.provider_id)
        .where(Booking.customer_id == user_id)
        .order_by(Booking.booked_at.desc())
    )
    return [(b, s, p) for b, s, p in result.all()]


async def list_appointments_for_customer(session: AsyncSession, user_id: str) -> list[Appointment]:
    result = await session.execute(
        select(Appointment)
        .where(Appointment.customer_id == user_id)
        .order_by(Appointment.date, Appointment.start_time)
    )
    return list(result.scalars().all())


async def list_appointments_for_provider(
    session: AsyncSession,
    provider_id: int,
    principal: Principal,
    status: str | None = None,
    day: date | str | int | None = None,
) -> list[Appointment]:
    await get_owned_provider(session, provider_id, principal)
    q = select(Appointment).where(Appointment.provider_id == provider_id)
    if status:
        q = q.where(Appointment.status == status)
    if day is not None:
        q = q.where(Appointment.date == normalize_date(day))
    result = await session.execute(q.order_by(Appointment.date, Appointment.start_time))
    return list(result.scalars().all())
