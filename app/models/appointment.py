import datetime as dt
from enum import StrEnum

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel

from app.core.timeutils import utc_naive_now
from app.models.booking import BookingStatus


class AppointmentStatus(StrEnum):
    PENDING = "pending"
    PAID = "paid"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


# Booking status -> provider-facing appointment vocabulary
APPOINTMENT_STATUS_FOR_BOOKING = {
    BookingStatus.PENDING: AppointmentStatus.PENDING,
    BookingStatus.CONFIRMED: AppointmentStatus.PAID,
    BookingStatus.COMPLETED: AppointmentStatus.COMPLETED,
    BookingStatus.CANCELLED: AppointmentStatus.CANCELLED,
    BookingStatus.REFUNDED: AppointmentStatus.REFUNDED,
}


class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    id: int | None = Field(default=None, primary_key=True)
    customer_id: str = Field(index=True)
    customer_name: str
    provider_id: int = Field(foreign_key="providers.id", index=True)
    provider_name: str
    date: dt.date = Field(index=True)
    start_time: int
    end_time: int
    services: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    status: str = Field(default=AppointmentStatus.PENDING, index=True)
    payment_status: str = "pending"
    payment_reference: str | None = None
    booking_id: int | None = Field(default=None, foreign_key="bookings.id", unique=True, index=True)
    created_at: dt.datetime = Field(default_factory=utc_naive_now, sa_type=DateTime(timezone=False))


class AppointmentPublic(SQLModel):
    id: int
    customer_id: str
    customer_name: str
    provider_id: int
    provider_name: str
    date: dt.date
    start_time: int
    end_time: int
    services: list[str]
    status: str
    payment_status: str
    booking_id: int | None = None
    created_at: dt.datetime
