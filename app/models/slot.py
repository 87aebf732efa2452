import datetime as dt

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel

from app.core.timeutils import utc_naive_now


class Slot(SQLModel, table=True):
    """One bookable (provider, date, start time) unit.

    ``available`` is the provider's offer; ``booked`` is the reservation.
    A booked slot is always available.
    """

    __tablename__ = "slots"
    __table_args__ = (
        UniqueConstraint("provider_id", "date", "start_time", name="uq_slots_provider_date_start"),
    )

    id: int | None = Field(default=None, primary_key=True)
    provider_id: int = Field(foreign_key="providers.id", index=True)
    date: dt.date = Field(index=True)
    start_time: int  # minutes since midnight
    end_time: int
    available: bool = True
    booked: bool = Field(default=False, index=True)
    price: int  # minor currency units
    last_updated: dt.datetime = Field(default_factory=utc_naive_now, sa_type=DateTime(timezone=False))


class SlotPublic(SQLModel):
    id: int
    provider_id: int
    date: dt.date
    start_time: int
    end_time: int
    available: bool
    booked: bool
    price: int
    last_updated: dt.datetime
