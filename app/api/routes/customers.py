from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_principal, get_session
from app.core.security import Principal
from app.models.customer import CustomerPublic, CustomerUpdate
from app.services.profile_service import resolve_customer_profile, update_customer_profile

router = APIRouter(prefix="/customers", tags=["customers"])


@router.get("/me", response_model=CustomerPublic)
async def read_my_profile(
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_principal),
) -> CustomerPublic:
    """Profile used for booking display; created with placeholders on first read."""
    return CustomerPublic.model_validate(await resolve_customer_profile(session, principal.user_id))


@router.put("/me", response_model=CustomerPublic)
async def update_my_profile(
    body: CustomerUpdate,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_principal),
) -> CustomerPublic:
    return CustomerPublic.model_validate(await update_customer_profile(session, principal, body))
