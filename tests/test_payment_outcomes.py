import pytest

from app.models.appointment import Appointment, AppointmentStatus
from app.models.booking import BookingStatus, PaymentStatus
from app.services.booking_service import (
    PaymentOutcome,
    PaymentOutcomeEvent,
    apply_payment_outcome,
    claim_slot,
)


async def _claim(session, principal, slot):
    result = await claim_slot(session, principal, slot.id, "Haircut")
    await session.commit()
    return result.booking


def _event(booking, outcome, **refs):
    return PaymentOutcomeEvent(
        slot_id=booking.slot_id,
        provider_id=booking.provider_id,
        booking_id=booking.id,
        outcome=outcome,
        **refs,
    )


@pytest.mark.asyncio
async def test_success_confirms_booking_and_appointment(session, slots, customer):
    booking = await _claim(session, customer, slots[0])

    result = await apply_payment_outcome(
        session, _event(booking, PaymentOutcome.SUCCEEDED, external_reference="pi_1")
    )
    await session.commit()

    assert result.applied and not result.degraded
    assert booking.status == BookingStatus.CONFIRMED
    assert booking.payment_status == PaymentStatus.SUCCEEDED
    assert booking.external_reference == "pi_1"
    appointment = await session.get(Appointment, booking.appointment_id)
    assert appointment.status == AppointmentStatus.PAID
    assert appointment.payment_status == "paid"
    assert appointment.payment_reference == "pi_1"
    await session.refresh(slots[0])
    assert slots[0].booked is True


@pytest.mark.asyncio
async def test_duplicate_success_changes_nothing(session, slots, customer):
    booking = await _claim(session, customer, slots[0])
    await apply_payment_outcome(session, _event(booking, PaymentOutcome.SUCCEEDED))
    await session.commit()

    again = await apply_payment_outcome(session, _event(booking, PaymentOutcome.SUCCEEDED))
    assert again.applied is False
    assert booking.status == BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_failure_after_success_is_ignored(session, slots, customer):
    booking = await _claim(session, customer, slots[0])
    await apply_payment_outcome(session, _event(booking, PaymentOutcome.SUCCEEDED))
    await session.commit()

    result = await apply_payment_outcome(session, _event(booking, PaymentOutcome.FAILED))
    await session.commit()
    assert result.applied is False
    assert booking.status == BookingStatus.CONFIRMED
    await session.refresh(slots[0])
    assert slots[0].booked is True


@pytest.mark.asyncio
async def test_failure_cancels_and_releases(session, slots, customer):
    booking = await _claim(session, customer, slots[0])

    result = await apply_payment_outcome(session, _event(booking, PaymentOutcome.FAILED))
    await session.commit()

    assert result.applied
    assert booking.status == BookingStatus.CANCELLED
    assert booking.payment_status == PaymentStatus.FAILED
    assert result.appointment.status == AppointmentStatus.CANCELLED
    await session.refresh(slots[0])
    assert slots[0].booked is False


@pytest.mark.asyncio
async def test_late_success_revives_when_slot_is_free(session, slots, customer):
    booking = await _claim(session, customer, slots[0])
    await apply_payment_outcome(session, _event(booking, PaymentOutcome.FAILED))
    await session.commit()

    result = await apply_payment_outcome(session, _event(booking, PaymentOutcome.SUCCEEDED))
    await session.commit()

    assert not result.inconsistent
    assert booking.status == BookingStatus.CONFIRMED
    assert result.appointment.status == AppointmentStatus.PAID
    await session.refresh(slots[0])
    assert slots[0].booked is True


@pytest.mark.asyncio
async def test_late_success_on_retaken_slot_needs_refund(session, slots, customer, other_customer):
    first = await _claim(session, customer, slots[0])
    await apply_payment_outcome(session, _event(first, PaymentOutcome.FAILED))
    await session.commit()
    second = await _claim(session, other_customer, slots[0])

    result = await apply_payment_outcome(
        session, _event(first, PaymentOutcome.SUCCEEDED, external_reference="pi_late")
    )
    await session.commit()

    assert result.inconsistent
    assert any("refund" in w for w in result.warnings)
    assert first.status == BookingStatus.CANCELLED
    assert first.payment_status == PaymentStatus.SUCCEEDED
    assert second.status == BookingStatus.PENDING
    await session.refresh(slots[0])
    assert slots[0].booked is True


@pytest.mark.asyncio
async def test_refund_releases_slot_and_blocks_later_success(session, slots, customer):
    booking = await _claim(session, customer, slots[0])
    await apply_payment_outcome(session, _event(booking, PaymentOutcome.SUCCEEDED, external_reference="pi_1"))
    await session.commit()

    # resolved by payment reference alone
    refund = PaymentOutcomeEvent(
        slot_id=None,
        provider_id=None,
        outcome=PaymentOutcome.REFUNDED,
        external_reference="pi_1",
        receipt_ref="https://receipts.example/r1",
    )
    result = await apply_payment_outcome(session, refund)
    await session.commit()

    assert booking.status == BookingStatus.REFUNDED
    assert booking.payment_status == PaymentStatus.REFUNDED
    assert booking.receipt_url == "https://receipts.example/r1"
    assert result.appointment.status == AppointmentStatus.REFUNDED
    await session.refresh(slots[0])
    assert slots[0].booked is False

    stale = await apply_payment_outcome(session, _event(booking, PaymentOutcome.SUCCEEDED))
    assert stale.applied is False
    assert booking.status == BookingStatus.REFUNDED


@pytest.mark.asyncio
async def test_outcome_resolved_by_slot_prefers_active_booking(session, slots, customer, other_customer):
    first = await _claim(session, customer, slots[0])
    await apply_payment_outcome(session, _event(first, PaymentOutcome.FAILED))
    await session.commit()
    second = await _claim(session, other_customer, slots[0])

    event = PaymentOutcomeEvent(slot_id=slots[0].id, provider_id=None, outcome=PaymentOutcome.SUCCEEDED)
    result = await apply_payment_outcome(session, event)
    await session.commit()

    assert result.booking.id == second.id
    assert second.status == BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_unknown_booking_is_reported(session, slots):
    event = PaymentOutcomeEvent(slot_id=None, provider_id=None, booking_id=9999, outcome=PaymentOutcome.SUCCEEDED)
    result = await apply_payment_outcome(session, event)
    assert result.booking is None
    assert result.applied is False
    assert result.inconsistent is True
