import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError, TemplateNotFound
from app.core.security import Principal
from app.core.timeutils import WEEKDAYS, normalize_weekday, utc_naive_now, validate_start_times
from app.models.template import AvailabilityTemplate, TemplateWrite
from app.services.profile_service import get_owned_provider, get_provider
from app.services.slot_service import TemplateSyncResult, get_template, resync_weekday_slots

logger = logging.getLogger(__name__)


async def list_templates(session: AsyncSession, provider_id: int) -> list[AvailabilityTemplate]:
    await get_provider(session, provider_id)
    result = await session.execute(
        select(AvailabilityTemplate).where(AvailabilityTemplate.provider_id == provider_id)
    )
    templates = list(result.scalars().all())
    return sorted(templates, key=lambda t: WEEKDAYS.index(t.weekday))


async def _upsert_template(
    session: AsyncSession, provider_id: int, weekday: str, start_times: list[int]
) -> AvailabilityTemplate:
    template = await get_template(session, provider_id, weekday)
    if template:
        template.start_times = list(start_times)
        template.last_updated = utc_naive_now()
    else:
        template = AvailabilityTemplate(
            provider_id=provider_id, weekday=weekday, start_times=list(start_times)
        )
    session.add(template)
    await session.flush()
    return template


async def save_template(
    session: AsyncSession,
    provider_id: int,
    weekday: str,
    start_times: list[int],
    principal: Principal,
) -> tuple[AvailabilityTemplate, TemplateSyncResult]:
    """Replace one weekday's start times and re-sync generated slots for it."""
    await get_owned_provider(session, provider_id, principal)
    weekday = normalize_weekday(weekday)
    start_times = validate_start_times(start_times)
    template = await _upsert_template(session, provider_id, weekday, start_times)
    sync = await resync_weekday_slots(session, provider_id, weekday, start_times)
    logger.info(
        "Saved %s template for provider %s: %d times, %d withdrawn, %d restored, %d created",
        weekday,
        provider_id,
        len(start_times),
        sync.withdrawn,
        sync.restored,
        sync.created,
    )
    return template, sync


async def save_templates(
    session: AsyncSession,
    provider_id: int,
    templates: list[TemplateWrite],
    principal: Principal,
) -> list[tuple[AvailabilityTemplate, TemplateSyncResult]]:
    await get_owned_provider(session, provider_id, principal)
    seen: set[str] = set()
    normalized: list[tuple[str, list[int]]] = []
    # Validate everything before writing anything
    for item in templates:
        weekday = normalize_weekday(item.weekday)
        if weekday in seen:
            raise ConflictError(
                f"Duplicate template day: {weekday}", details={"weekday": weekday}
            )
        seen.add(weekday)
        normalized.append((weekday, validate_start_times(item.start_times)))

    out = []
    for weekday, start_times in normalized:
        out.append(await save_template(session, provider_id, weekday, start_times, principal))
    return out


async def get_weekday_template(session: AsyncSession, provider_id: int, weekday: str) -> AvailabilityTemplate:
    await get_provider(session, provider_id)
    weekday = normalize_weekday(weekday)
    template = await get_template(session, provider_id, weekday)
    if not template:
        raise TemplateNotFound(provider_id, weekday)
    return template
