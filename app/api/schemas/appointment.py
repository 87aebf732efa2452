from pydantic import BaseModel, EmailStr

from app.models.appointment import AppointmentPublic
from app.models.booking import BookingPublic
from app.models.provider import ProviderPublic
from app.models.slot import SlotPublic


class BookSlotRequest(BaseModel):
    slot_id: int
    service_name: str
    customer_name: str | None = None
    customer_email: EmailStr | None = None


class BookingResponse(BaseModel):
    booking: BookingPublic | None
    appointment: AppointmentPublic | None = None
    # non-empty when a secondary write failed and the sweep will repair it
    warnings: list[str] = []
    applied: bool = True


class BookingWithSlot(BaseModel):
    booking: BookingPublic
    slot: SlotPublic | None = None
    provider: ProviderPublic | None = None


class CheckoutRequest(BaseModel):
    customer_email: EmailStr | None = None


class CheckoutResponse(BaseModel):
    url: str
    checkout_session_id: str
    booking_id: int
