from datetime import datetime, time, timezone

import pytest

from app.core.exceptions import ConflictError, PermissionDeniedError, ProviderNotFound
from app.services.booking_service import claim_slot
from app.services.slot_service import (
    GenerationStatus,
    _insert_slots,
    generate_slots,
    get_slots_for_date,
    list_day_slots,
    seed_default_slots,
    set_slot_availability,
)


@pytest.mark.asyncio
async def test_generate_slots_expands_template(session, provider, template, start_times, booking_day):
    result = await generate_slots(session, provider.id, booking_day)
    await session.commit()

    assert result.status == GenerationStatus.GENERATED
    assert [s.start_time for s in result.slots] == start_times
    for slot in result.slots:
        assert slot.end_time == slot.start_time + 30
        assert slot.available is True
        assert slot.booked is False
        assert slot.price == 2500
        assert slot.date == booking_day


@pytest.mark.asyncio
async def test_generate_slots_is_idempotent(session, provider, template, start_times, booking_day):
    first = await generate_slots(session, provider.id, booking_day)
    await session.commit()
    second = await generate_slots(session, provider.id, booking_day)

    assert second.status == GenerationStatus.EXISTING
    assert [s.id for s in second.slots] == [s.id for s in first.slots]
    assert len(await get_slots_for_date(session, provider.id, booking_day)) == len(start_times)


@pytest.mark.asyncio
async def test_generate_slots_accepts_epoch_milliseconds(session, provider, template, booking_day):
    noon = datetime.combine(booking_day, time(12, 0), tzinfo=timezone.utc)
    result = await generate_slots(session, provider.id, int(noon.timestamp() * 1000))
    assert result.status == GenerationStatus.GENERATED
    assert result.slots[0].date == booking_day


@pytest.mark.asyncio
async def test_generate_slots_without_template_creates_nothing(session, provider, booking_day):
    result = await generate_slots(session, provider.id, booking_day)
    assert result.status == GenerationStatus.NO_TEMPLATE
    assert result.slots == []
    assert await get_slots_for_date(session, provider.id, booking_day) == []


@pytest.mark.asyncio
async def test_generate_slots_unknown_provider(session, booking_day):
    with pytest.raises(ProviderNotFound):
        await generate_slots(session, 999, booking_day)


@pytest.mark.asyncio
async def test_insert_slots_reports_concurrent_creation(session, provider, template, start_times, booking_day):
    await generate_slots(session, provider.id, booking_day)
    await session.commit()

    created = await _insert_slots(session, provider.id, booking_day, [start_times[0]], 30, 2500)
    assert created is False
    # the outer transaction survives the failed savepoint
    assert len(await get_slots_for_date(session, provider.id, booking_day)) == len(start_times)


@pytest.mark.asyncio
async def test_seed_default_slots_uses_opening_hours(session, provider, booking_day):
    result = await seed_default_slots(session, provider.id, booking_day)
    assert result.status == GenerationStatus.GENERATED
    times = [s.start_time for s in result.slots]
    assert times[0] == 600
    assert times[-1] == 1170
    assert len(times) == 20

    again = await seed_default_slots(session, provider.id, booking_day)
    assert again.status == GenerationStatus.EXISTING


@pytest.mark.asyncio
async def test_list_day_slots_partitions(session, provider, template, start_times, booking_day, barber, customer):
    day = await list_day_slots(session, provider.id, booking_day.isoformat())
    await session.commit()
    first, second = day.available[0], day.available[1]

    await claim_slot(session, customer, first.id, "Haircut")
    await set_slot_availability(session, second.id, False, barber)
    await session.commit()

    day = await list_day_slots(session, provider.id, booking_day)
    assert day.status == GenerationStatus.EXISTING
    assert [s.id for s in day.booked] == [first.id]
    assert [s.id for s in day.withdrawn] == [second.id]
    assert len(day.available) == len(start_times) - 2


@pytest.mark.asyncio
async def test_booked_slot_cannot_be_withdrawn(session, provider, template, booking_day, barber, customer):
    result = await generate_slots(session, provider.id, booking_day)
    slot = result.slots[0]
    await claim_slot(session, customer, slot.id, "Haircut")
    await session.commit()

    with pytest.raises(ConflictError):
        await set_slot_availability(session, slot.id, False, barber)
    assert slot.available is True


@pytest.mark.asyncio
async def test_only_owner_edits_availability(session, provider, template, booking_day, customer, admin):
    result = await generate_slots(session, provider.id, booking_day)
    slot = result.slots[0]
    with pytest.raises(PermissionDeniedError):
        await set_slot_availability(session, slot.id, False, customer)

    updated = await set_slot_availability(session, slot.id, False, admin)
    assert updated.available is False
    restored = await set_slot_availability(session, slot.id, True, admin)
    assert restored.available is True

