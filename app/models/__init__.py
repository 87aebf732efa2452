from app.models.provider import Provider, ProviderCreate, ProviderPublic
from app.models.customer import Customer, CustomerPublic, CustomerUpdate
from app.models.template import AvailabilityTemplate, TemplatePublic, TemplateWrite
from app.models.slot import Slot, SlotPublic
from app.models.booking import (
    ACTIVE_BOOKING_STATUSES,
    Booking,
    BookingPublic,
    BookingStatus,
    PaymentStatus,
)
from app.models.appointment import (
    APPOINTMENT_STATUS_FOR_BOOKING,
    Appointment,
    AppointmentPublic,
    AppointmentStatus,
)

__all__ = [
    "Provider",
    "ProviderCreate",
    "ProviderPublic",
    "Customer",
    "CustomerPublic",
    "CustomerUpdate",
    "AvailabilityTemplate",
    "TemplatePublic",
    "TemplateWrite",
    "Slot",
    "SlotPublic",
    "ACTIVE_BOOKING_STATUSES",
    "Booking",
    "BookingPublic",
    "BookingStatus",
    "PaymentStatus",
    "APPOINTMENT_STATUS_FOR_BOOKING",
    "Appointment",
    "AppointmentPublic",
    "AppointmentStatus",
]
