"""
Consistency repair for slot booked flags and appointment statuses.

Both passes are pure functions of current state: running them twice in a
row with no intervening change corrects nothing the second time.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.timeutils import normalize_date, today
from app.models.appointment import APPOINTMENT_STATUS_FOR_BOOKING, Appointment
from app.models.booking import ACTIVE_BOOKING_STATUSES, Booking, PaymentStatus
from app.models.slot import Slot
from app.services.slot_service import compare_and_set_slot, get_slots_for_date

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    provider_id: int
    date: date
    examined: int = 0
    corrected: int = 0
    corrected_slot_ids: list[int] = field(default_factory=list)


@dataclass
class ReconcileSummary:
    runs: int = 0
    examined: int = 0
    corrected: int = 0


@dataclass
class AppointmentSyncResult:
    examined: int = 0
    updated: int = 0
    unlinked: int = 0


async def reconcile_slots(session: AsyncSession, provider_id: int, day: date | str | int) -> ReconcileResult:
    """Make every slot's booked flag match the active bookings that reference it."""
    d = normalize_date(day)
    out = ReconcileResult(provider_id=provider_id, date=d)

    # Slots are read before bookings: a claim committing in between shows up
    # as a booking for a slot read as free, which is corrected towards booked.
    slots = await get_slots_for_date(session, provider_id, d)
    if not slots:
        return out
    result = await session.execute(
        select(Booking.slot_id).where(
            Booking.provider_id == provider_id,
            Booking.slot_id.in_([s.id for s in slots]),
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
    )
    should_be_booked = set(result.scalars().all())

    for slot in slots:
        out.examined += 1
        want = slot.id in should_be_booked
        observed = slot.booked
        if observed == want and (slot.available or not want):
            continue
        values = {"booked": want}
        if want:
            values["available"] = True
        if await compare_and_set_slot(session, slot.id, Slot.booked == observed, **values):
            out.corrected += 1
            out.corrected_slot_ids.append(slot.id)
            logger.warning(
                "Inconsistent slot %s (provider %s, %s %d): booked %s -> %s",
                slot.id,
                provider_id,
                d,
                slot.start_time,
                observed,
                want,
            )

    if out.corrected:
        logger.info(
            "Reconciled provider %s on %s: %d examined, %d corrected",
            provider_id,
            d,
            out.examined,
            out.corrected,
        )
    return out


async def reconcile_upcoming(session: AsyncSession, horizon_days: int | None = None) -> ReconcileSummary:
    """Reconcile every (provider, date) with slots from today to the horizon."""
    horizon = settings.reconcile_horizon_days if horizon_days is None else horizon_days
    start = today()
    end = start + timedelta(days=horizon)
    result = await session.execute(
        select(Slot.provider_id, Slot.date)
        .where(Slot.date >= start, Slot.date <= end)
        .distinct()
        .order_by(Slot.date, Slot.provider_id)
    )
    summary = ReconcileSummary()
    for provider_id, d in result.all():
        run = await reconcile_slots(session, provider_id, d)
        summary.runs += 1
        summary.examined += run.examined
        summary.corrected += run.corrected
    return summary


async def sync_appointment_statuses(session: AsyncSession) -> AppointmentSyncResult:
    """Align each linked appointment's status with its booking, by id only."""
    out = AppointmentSyncResult()
    result = await session.execute(
        select(Booking, Appointment).outerjoin(Appointment, Appointment.id == Booking.appointment_id)
    )
    for booking, appointment in result.all():
        out.examined += 1
        if appointment is None:
            out.unlinked += 1
            continue
        target = APPOINTMENT_STATUS_FOR_BOOKING[booking.status]
        if appointment.status == target and appointment.booking_id == booking.id:
            continue
        appointment.status = target
        appointment.booking_id = booking.id
        if booking.payment_status == PaymentStatus.SUCCEEDED:
            appointment.payment_status = "paid"
        session.add(appointment)
        out.updated += 1
    await session.flush()
    if out.unlinked:
        logger.warning("%d booking(s) have no linked appointment", out.unlinked)
    if out.updated:
        logger.info("Appointment sync updated %d appointment(s)", out.updated)
    return out
