import pytest

from app.core.exceptions import ConflictError, InvalidInputError, PermissionDeniedError
from app.core.timeutils import weekday_name
from app.models.template import TemplateWrite
from app.services.booking_service import claim_slot
from app.services.slot_service import generate_slots, get_slots_for_date
from app.services.template_service import list_templates, save_template, save_templates


def _by_time(slots):
    return {s.start_time: s for s in slots}


@pytest.mark.asyncio
async def test_save_template_normalizes_and_validates(session, provider, barber):
    template, sync = await save_template(session, provider.id, "tuesday", [600, 630], barber)
    assert template.weekday == "Tuesday"
    assert template.start_times == [600, 630]
    assert sync.dates_synced == 0

    with pytest.raises(InvalidInputError):
        await save_template(session, provider.id, "Tuesday", [630, 600], barber)
    with pytest.raises(InvalidInputError):
        await save_template(session, provider.id, "Someday", [600], barber)


@pytest.mark.asyncio
async def test_save_template_requires_owner(session, provider, customer):
    with pytest.raises(PermissionDeniedError):
        await save_template(session, provider.id, "Monday", [600], customer)


@pytest.mark.asyncio
async def test_template_edit_withdraws_restores_and_creates(session, provider, template, booking_day, barber):
    await generate_slots(session, provider.id, booking_day)
    await session.commit()
    weekday = weekday_name(booking_day)

    _, sync = await save_template(session, provider.id, weekday, [540, 600, 660], barber)
    await session.commit()
    assert sync.dates_synced == 1
    assert sync.withdrawn == 2
    assert sync.created == 1
    slots = _by_time(await get_slots_for_date(session, provider.id, booking_day))
    assert slots[570].available is False
    assert slots[630].available is False
    assert slots[660].available is True
    assert slots[540].available is True

    _, sync = await save_template(session, provider.id, weekday, [540, 570], barber)
    await session.commit()
    assert sync.restored == 1
    assert sync.withdrawn == 2
    slots = _by_time(await get_slots_for_date(session, provider.id, booking_day))
    assert slots[570].available is True
    assert slots[600].available is False
    assert slots[660].available is False


@pytest.mark.asyncio
async def test_template_edit_keeps_booked_slots(session, provider, template, booking_day, barber, customer):
    result = await generate_slots(session, provider.id, booking_day)
    booked = result.slots[1]
    await claim_slot(session, customer, booked.id, "Haircut")
    await session.commit()

    _, sync = await save_template(session, provider.id, weekday_name(booking_day), [540], barber)
    await session.commit()
    assert [s.id for s in sync.overridden] == [booked.id]
    slots = _by_time(await get_slots_for_date(session, provider.id, booking_day))
    assert slots[booked.start_time].booked is True
    assert slots[booked.start_time].available is True


@pytest.mark.asyncio
async def test_save_templates_rejects_duplicate_days(session, provider, barber):
    with pytest.raises(ConflictError):
        await save_templates(
            session,
            provider.id,
            [
                TemplateWrite(weekday="Monday", start_times=[600]),
                TemplateWrite(weekday="monday", start_times=[660]),
            ],
            barber,
        )
    assert await list_templates(session, provider.id) == []


@pytest.mark.asyncio
async def test_list_templates_in_week_order(session, provider, barber):
    await save_templates(
        session,
        provider.id,
        [
            TemplateWrite(weekday="Friday", start_times=[600]),
            TemplateWrite(weekday="Monday", start_times=[540, 600]),
        ],
        barber,
    )
    await session.commit()
    templates = await list_templates(session, provider.id)
    assert [t.weekday for t in templates] == ["Monday", "Friday"]
