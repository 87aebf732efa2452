import logging
from dataclasses import dataclass
from datetime import date, timedelta

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.timeutils import today
from app.models.booking import Booking
from app.models.slot import Slot

logger = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    deleted: int
    past_cutoff: date
    future_cutoff: date


async def cleanup_unused_slots(session: AsyncSession, retention_days: int | None = None) -> CleanupResult:
    """Delete unbooked slots dated before yesterday or beyond today + retention_days.

    Booked slots are never deleted. Slots any booking references are kept as
    booking history. The booked check is part of the DELETE itself, so a slot
    claimed while the sweep runs is evaluated on its current row.
    """
    retention = settings.cleanup_retention_days if retention_days is None else retention_days
    now = today()
    past_cutoff = now - timedelta(days=1)
    future_cutoff = now + timedelta(days=retention)
    referenced = select(Booking.id).where(Booking.slot_id == Slot.id).exists()
    result = await session.execute(
        delete(Slot)
        .where(
            Slot.booked == False,  # noqa: E712
            or_(Slot.date < past_cutoff, Slot.date > future_cutoff),
            ~referenced,
        )
        .execution_options(synchronize_session=False)
    )
    await session.flush()
    deleted = result.rowcount or 0
    logger.info(
        "Slot cleanup: deleted %d unused slot(s) outside %s..%s",
        deleted,
        past_cutoff,
        future_cutoff,
    )
    return CleanupResult(deleted=deleted, past_cutoff=past_cutoff, future_cutoff=future_cutoff)
