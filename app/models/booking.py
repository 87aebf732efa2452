from datetime import datetime
from enum import StrEnum

from sqlalchemy import DateTime, Index, text
from sqlmodel import Field, SQLModel

from app.core.timeutils import utc_naive_now


class BookingStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


# Bookings in these states hold their slot
ACTIVE_BOOKING_STATUSES = (
    BookingStatus.PENDING,
    BookingStatus.CONFIRMED,
    BookingStatus.COMPLETED,
)

_ACTIVE_PREDICATE = "status IN ('pending', 'confirmed', 'completed')"


class Booking(SQLModel, table=True):
    __tablename__ = "bookings"
    __table_args__ = (
        # At most one active booking per slot
        Index(
            "uq_bookings_active_slot",
            "slot_id",
            unique=True,
            postgresql_where=text(_ACTIVE_PREDICATE),
            sqlite_where=text(_ACTIVE_PREDICATE),
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    slot_id: int = Field(foreign_key="slots.id", index=True)
    provider_id: int = Field(foreign_key="providers.id", index=True)
    customer_id: str = Field(index=True)
    booked_at: datetime = Field(default_factory=utc_naive_now, sa_type=DateTime(timezone=False))
    status: str = Field(default=BookingStatus.PENDING, index=True)
    payment_status: str = Field(default=PaymentStatus.PENDING)
    amount: int  # minor currency units
    currency: str = "usd"
    service_name: str
    external_reference: str | None = Field(default=None, index=True)  # payment intent id
    checkout_session_id: str | None = Field(default=None, index=True)
    receipt_url: str | None = None
    appointment_id: int | None = Field(default=None, index=True)
    updated_at: datetime = Field(default_factory=utc_naive_now, sa_type=DateTime(timezone=False))

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_BOOKING_STATUSES


class BookingPublic(SQLModel):
    id: int
    slot_id: int
    provider_id: int
    customer_id: str
    booked_at: datetime
    status: str
    payment_status: str
    amount: int
    currency: str
    service_name: str
    external_reference: str | None = None
    receipt_url: str | None = None
    appointment_id: int | None = None
