from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_principal, get_session
from app.api.schemas.slot import SlotAvailabilityRequest
from app.core.security import Principal
from app.models.slot import SlotPublic
from app.services.slot_service import get_slot, set_slot_availability

router = APIRouter(prefix="/slots", tags=["slots"])


@router.get("/{slot_id}", response_model=SlotPublic)
async def read_slot(slot_id: int, session: AsyncSession = Depends(get_session)) -> SlotPublic:
    return SlotPublic.model_validate(await get_slot(session, slot_id))


@router.patch("/{slot_id}/availability", response_model=SlotPublic)
async def update_slot_availability(
    slot_id: int,
    body: SlotAvailabilityRequest,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_principal),
) -> SlotPublic:
    """Offer or withdraw one slot. A booked slot cannot be withdrawn."""
    slot = await set_slot_availability(session, slot_id, body.available, principal)
    return SlotPublic.model_validate(slot)
