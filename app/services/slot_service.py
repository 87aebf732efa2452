import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import StrEnum

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import ConflictError, SlotNotFound
from app.core.security import Principal
from app.core.timeutils import normalize_date, today, utc_naive_now, weekday_name
from app.models.slot import Slot
from app.models.template import AvailabilityTemplate
from app.services.profile_service import get_owned_provider, get_provider

logger = logging.getLogger(__name__)


class GenerationStatus(StrEnum):
    EXISTING = "existing"
    GENERATED = "generated"
    NO_TEMPLATE = "no_template"


@dataclass
class GenerationResult:
    status: GenerationStatus
    slots: list[Slot]


@dataclass
class DaySlots:
    """Slots for one provider and date, partitioned for display."""

    date: date
    status: GenerationStatus
    available: list[Slot] = field(default_factory=list)
    booked: list[Slot] = field(default_factory=list)
    withdrawn: list[Slot] = field(default_factory=list)


@dataclass
class TemplateSyncResult:
    weekday: str
    dates_synced: int = 0
    withdrawn: int = 0
    restored: int = 0
    created: int = 0
    # Booked slots kept available although their time left the template
    overridden: list[Slot] = field(default_factory=list)


async def compare_and_set_slot(session: AsyncSession, slot_id: int, *conditions, **values) -> bool:
    """Single conditional write on one slot. Returns False if the conditions no longer hold."""
    stmt = (
        update(Slot)
        .where(Slot.id == slot_id, *conditions)
        .values(last_updated=utc_naive_now(), **values)
        .returning(Slot.id)
        .execution_options(synchronize_session="fetch")
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none() is not None


async def get_slot(session: AsyncSession, slot_id: int) -> Slot:
    slot = await session.get(Slot, slot_id)
    if not slot:
        raise SlotNotFound(slot_id)
    return slot


async def get_slots_for_date(session: AsyncSession, provider_id: int, d: date) -> list[Slot]:
    result = await session.execute(
        select(Slot)
        .where(Slot.provider_id == provider_id, Slot.date == d)
        .order_by(Slot.start_time)
    )
    return list(result.scalars().all())


async def get_template(session: AsyncSession, provider_id: int, weekday: str) -> AvailabilityTemplate | None:
    result = await session.execute(
        select(AvailabilityTemplate).where(
            AvailabilityTemplate.provider_id == provider_id,
            AvailabilityTemplate.weekday == weekday,
        )
    )
    return result.scalar_one_or_none()


async def _insert_slots(
    session: AsyncSession,
    provider_id: int,
    d: date,
    start_times: list[int],
    duration: int,
    price: int,
) -> bool:
    """Insert slots inside a savepoint. False if another writer created them first."""
    now = utc_naive_now()
    try:
        async with session.begin_nested():
            for start in start_times:
                session.add(
                    Slot(
                        provider_id=provider_id,
                        date=d,
                        start_time=start,
                        end_time=start + duration,
                        available=True,
                        booked=False,
                        price=price,
                        last_updated=now,
                    )
                )
    except IntegrityError:
        logger.info("Slots for provider %s on %s were created concurrently", provider_id, d)
        return False
    return True


async def generate_slots(
    session: AsyncSession,
    provider_id: int,
    day: date | str | int,
    duration: int | None = None,
    price: int | None = None,
) -> GenerationResult:
    """Expand the weekday template into slots for ``day``. Idempotent."""
    d = normalize_date(day)
    duration = duration or settings.slot_duration_minutes
    price = settings.default_slot_price_cents if price is None else price

    existing = await get_slots_for_date(session, provider_id, d)
    if existing:
        return GenerationResult(GenerationStatus.EXISTING, existing)

    await get_provider(session, provider_id)
    template = await get_template(session, provider_id, weekday_name(d))
    if not template or not template.start_times:
        logger.debug("No %s template for provider %s", weekday_name(d), provider_id)
        return GenerationResult(GenerationStatus.NO_TEMPLATE, [])

    created = await _insert_slots(session, provider_id, d, list(template.start_times), duration, price)
    slots = await get_slots_for_date(session, provider_id, d)
    if not created:
        return GenerationResult(GenerationStatus.EXISTING, slots)
    logger.info("Generated %d slots for provider %s on %s", len(slots), provider_id, d)
    return GenerationResult(GenerationStatus.GENERATED, slots)


async def seed_default_slots(
    session: AsyncSession,
    provider_id: int,
    day: date | str | int,
    price: int | None = None,
) -> GenerationResult:
    """Explicit fallback: fixed opening-to-closing schedule when no template exists."""
    d = normalize_date(day)
    existing = await get_slots_for_date(session, provider_id, d)
    if existing:
        return GenerationResult(GenerationStatus.EXISTING, existing)
    await get_provider(session, provider_id)
    duration = settings.slot_duration_minutes
    times = list(range(settings.default_opening_minute, settings.default_closing_minute, duration))
    price = settings.default_slot_price_cents if price is None else price
    created = await _insert_slots(session, provider_id, d, times, duration, price)
    slots = await get_slots_for_date(session, provider_id, d)
    if created:
        logger.info("Seeded %d default slots for provider %s on %s", len(slots), provider_id, d)
        return GenerationResult(GenerationStatus.GENERATED, slots)
    return GenerationResult(GenerationStatus.EXISTING, slots)


def partition_slots(d: date, status: GenerationStatus, slots: list[Slot]) -> DaySlots:
    out = DaySlots(date=d, status=status)
    for slot in slots:
        if slot.booked:
            out.booked.append(slot)
        elif not slot.available:
            out.withdrawn.append(slot)
        else:
            out.available.append(slot)
    return out


async def list_day_slots(session: AsyncSession, provider_id: int, day: date | str | int) -> DaySlots:
    """View-layer read: generates on first access, then partitions."""
    result = await generate_slots(session, provider_id, day)
    return partition_slots(normalize_date(day), result.status, result.slots)


async def set_slot_availability(
    session: AsyncSession, slot_id: int, available: bool, principal: Principal
) -> Slot:
    slot = await get_slot(session, slot_id)
    await get_owned_provider(session, slot.provider_id, principal)
    if available:
        await compare_and_set_slot(session, slot_id, available=True)
    else:
        withdrawn = await compare_and_set_slot(
            session, slot_id, Slot.booked == False, available=False  # noqa: E712
        )
        if not withdrawn:
            raise ConflictError(
                "A booked slot cannot be withdrawn", details={"slot_id": slot_id}
            )
    await session.refresh(slot)
    return slot


async def resync_weekday_slots(
    session: AsyncSession,
    provider_id: int,
    weekday: str,
    start_times: list[int],
    weeks: int | None = None,
) -> TemplateSyncResult:
    """Align already-generated future slots for ``weekday`` with a new template."""
    weeks = settings.template_sync_weeks if weeks is None else weeks
    start = today()
    end = start + timedelta(weeks=weeks)
    result = await session.execute(
        select(Slot)
        .where(Slot.provider_id == provider_id, Slot.date >= start, Slot.date <= end)
        .order_by(Slot.date, Slot.start_time)
    )
    by_date: dict[date, list[Slot]] = {}
    for slot in result.scalars().all():
        if weekday_name(slot.date) == weekday:
            by_date.setdefault(slot.date, []).append(slot)

    keep = set(start_times)
    sync = TemplateSyncResult(weekday=weekday)
    for d, day_slots in by_date.items():
        sync.dates_synced += 1
        present = set()
        for slot in day_slots:
            present.add(slot.start_time)
            if slot.start_time in keep:
                if not slot.available and await compare_and_set_slot(session, slot.id, available=True):
                    sync.restored += 1
            elif slot.booked:
                if not slot.available:
                    await compare_and_set_slot(session, slot.id, available=True)
                sync.overridden.append(slot)
            elif slot.available:
                if await compare_and_set_slot(
                    session, slot.id, Slot.booked == False, available=False  # noqa: E712
                ):
                    sync.withdrawn += 1
                else:
                    # booked between our read and the write
                    sync.overridden.append(slot)

        missing = [t for t in start_times if t not in present]
        if missing:
            duration = settings.slot_duration_minutes
            if await _insert_slots(
                session, provider_id, d, missing, duration, settings.default_slot_price_cents
            ):
                sync.created += len(missing)

    if sync.overridden:
        logger.warning(
            "Template edit for provider %s %s kept %d booked slot(s) available",
            provider_id,
            weekday,
            len(sync.overridden),
        )
    return sync
