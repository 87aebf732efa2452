from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_principal, get_session
from app.api.routes.bookings import booking_response
from app.api.schemas.appointment import BookingResponse
from app.core.security import Principal
from app.models.appointment import AppointmentPublic
from app.services.booking_service import complete_appointment, list_appointments_for_customer

router = APIRouter(prefix="/appointments", tags=["appointments"])


@router.get("/me", response_model=list[AppointmentPublic])
async def list_my_appointments(
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_principal),
) -> list[AppointmentPublic]:
    appointments = await list_appointments_for_customer(session, principal.user_id)
    return [AppointmentPublic.model_validate(a) for a in appointments]


@router.post("/{appointment_id}/complete", response_model=BookingResponse)
async def mark_completed(
    appointment_id: int,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_principal),
) -> BookingResponse:
    """Provider marks the service delivered."""
    return booking_response(await complete_appointment(session, appointment_id, principal))
