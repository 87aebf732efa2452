import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_session, require_admin
from app.api.schemas.admin import (
    AppointmentSyncResponse,
    CleanupResponse,
    ExpireResponse,
    ReconcileRequest,
    ReconcileResponse,
)
from app.core.exceptions import InvalidInputError
from app.core.security import Principal
from app.services.booking_service import expire_stale_reservations
from app.services.cleanup_service import cleanup_unused_slots
from app.services.reconciliation_service import reconcile_slots, reconcile_upcoming, sync_appointment_statuses

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/reconcile", response_model=ReconcileResponse)
async def run_reconcile(
    body: ReconcileRequest | None = None,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_admin),
) -> ReconcileResponse:
    body = body or ReconcileRequest()
    if (body.provider_id is None) != (body.date is None):
        raise InvalidInputError("provider_id and date must be given together")
    if body.provider_id is not None:
        run = await reconcile_slots(session, body.provider_id, body.date)
        return ReconcileResponse(
            runs=1,
            examined=run.examined,
            corrected=run.corrected,
            corrected_slot_ids=run.corrected_slot_ids,
        )
    summary = await reconcile_upcoming(session, body.horizon_days)
    logger.info("Manual reconcile by %s: %s", principal.user_id, summary)
    return ReconcileResponse(runs=summary.runs, examined=summary.examined, corrected=summary.corrected)


@router.post("/cleanup", response_model=CleanupResponse)
async def run_cleanup(
    retention_days: int | None = None,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_admin),
) -> CleanupResponse:
    result = await cleanup_unused_slots(session, retention_days)
    return CleanupResponse(
        deleted=result.deleted, past_cutoff=result.past_cutoff, future_cutoff=result.future_cutoff
    )


@router.post("/expire-reservations", response_model=ExpireResponse)
async def run_expiry(
    timeout_minutes: int | None = None,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_admin),
) -> ExpireResponse:
    return ExpireResponse(expired=await expire_stale_reservations(session, timeout_minutes))


@router.post("/sync-appointments", response_model=AppointmentSyncResponse)
async def run_appointment_sync(
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_admin),
) -> AppointmentSyncResponse:
    result = await sync_appointment_statuses(session)
    return AppointmentSyncResponse(examined=result.examined, updated=result.updated, unlinked=result.unlinked)
