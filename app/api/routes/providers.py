from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_principal, get_session
from app.api.schemas.slot import (
    DaySlotsResponse,
    TemplateRequest,
    TemplateSaveResponse,
    TemplateSyncInfo,
)
from app.core.security import Principal
from app.core.timeutils import normalize_date
from app.models.appointment import AppointmentPublic
from app.models.provider import Provider, ProviderCreate, ProviderPublic
from app.models.slot import SlotPublic
from app.models.template import AvailabilityTemplate, TemplatePublic, TemplateWrite
from app.services.booking_service import list_appointments_for_provider
from app.services.profile_service import find_or_create_provider, get_owned_provider, get_provider, list_active_providers
from app.services.slot_service import (
    DaySlots,
    TemplateSyncResult,
    list_day_slots,
    partition_slots,
    seed_default_slots,
)
from app.services.template_service import get_weekday_template, list_templates, save_template, save_templates

router = APIRouter(prefix="/providers", tags=["providers"])


def _provider_public(p: Provider) -> ProviderPublic:
    return ProviderPublic.model_validate(p)


def _day_response(provider_id: int, day: DaySlots) -> DaySlotsResponse:
    return DaySlotsResponse(
        provider_id=provider_id,
        date=day.date,
        status=day.status,
        available=[SlotPublic.model_validate(s) for s in day.available],
        booked=[SlotPublic.model_validate(s) for s in day.booked],
        withdrawn=[SlotPublic.model_validate(s) for s in day.withdrawn],
    )


def _template_response(template: AvailabilityTemplate, sync: TemplateSyncResult) -> TemplateSaveResponse:
    return TemplateSaveResponse(
        template=TemplatePublic.model_validate(template),
        sync=TemplateSyncInfo(
            weekday=sync.weekday,
            dates_synced=sync.dates_synced,
            withdrawn=sync.withdrawn,
            restored=sync.restored,
            created=sync.created,
            overridden=[SlotPublic.model_validate(s) for s in sync.overridden],
        ),
    )


@router.get("", response_model=list[ProviderPublic])
async def list_providers(session: AsyncSession = Depends(get_session)) -> list[ProviderPublic]:
    return [_provider_public(p) for p in await list_active_providers(session)]


@router.post("/me", response_model=ProviderPublic, status_code=status.HTTP_201_CREATED)
async def create_my_provider(
    body: ProviderCreate,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_principal),
) -> ProviderPublic:
    """Return the caller's provider profile, creating it on first call."""
    return _provider_public(await find_or_create_provider(session, principal, body))


@router.get("/{provider_id}", response_model=ProviderPublic)
async def read_provider(provider_id: int, session: AsyncSession = Depends(get_session)) -> ProviderPublic:
    return _provider_public(await get_provider(session, provider_id))


@router.get("/{provider_id}/templates", response_model=list[TemplatePublic])
async def read_templates(provider_id: int, session: AsyncSession = Depends(get_session)) -> list[TemplatePublic]:
    return [TemplatePublic.model_validate(t) for t in await list_templates(session, provider_id)]


@router.put("/{provider_id}/templates", response_model=list[TemplateSaveResponse])
async def replace_templates(
    provider_id: int,
    body: list[TemplateWrite],
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_principal),
) -> list[TemplateSaveResponse]:
    saved = await save_templates(session, provider_id, body, principal)
    return [_template_response(t, sync) for t, sync in saved]


@router.get("/{provider_id}/templates/{weekday}", response_model=TemplatePublic)
async def read_template(provider_id: int, weekday: str, session: AsyncSession = Depends(get_session)) -> TemplatePublic:
    return TemplatePublic.model_validate(await get_weekday_template(session, provider_id, weekday))


@router.put("/{provider_id}/templates/{weekday}", response_model=TemplateSaveResponse)
async def replace_template(
    provider_id: int,
    weekday: str,
    body: TemplateRequest,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_principal),
) -> TemplateSaveResponse:
    template, sync = await save_template(session, provider_id, weekday, body.start_times, principal)
    return _template_response(template, sync)


@router.get("/{provider_id}/slots", response_model=DaySlotsResponse)
async def read_day_slots(
    provider_id: int,
    date_param: str = Query(..., alias="date", description="YYYY-MM-DD or epoch milliseconds"),
    session: AsyncSession = Depends(get_session),
) -> DaySlotsResponse:
    """Slots for one date, generated from the weekday template on first access."""
    return _day_response(provider_id, await list_day_slots(session, provider_id, date_param))


@router.post("/{provider_id}/slots/seed", response_model=DaySlotsResponse)
async def seed_day_slots(
    provider_id: int,
    date_param: str = Query(..., alias="date"),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_principal),
) -> DaySlotsResponse:
    await get_owned_provider(session, provider_id, principal)
    day = normalize_date(date_param)
    result = await seed_default_slots(session, provider_id, day)
    return _day_response(provider_id, partition_slots(day, result.status, result.slots))


@router.get("/{provider_id}/appointments", response_model=list[AppointmentPublic])
async def read_provider_appointments(
    provider_id: int,
    status_param: str | None = Query(None, alias="status"),
    date_param: str | None = Query(None, alias="date"),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_principal),
) -> list[AppointmentPublic]:
    appointments = await list_appointments_for_provider(
        session, provider_id, principal, status=status_param, day=date_param
    )
    return [AppointmentPublic.model_validate(a) for a in appointments]
