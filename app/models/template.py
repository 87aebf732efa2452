from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel

from app.core.timeutils import utc_naive_now


class AvailabilityTemplate(SQLModel, table=True):
    """Recurring start times a provider offers on one weekday."""

    __tablename__ = "availability_templates"
    __table_args__ = (UniqueConstraint("provider_id", "weekday", name="uq_templates_provider_weekday"),)

    id: int | None = Field(default=None, primary_key=True)
    provider_id: int = Field(foreign_key="providers.id", index=True)
    weekday: str  # Monday..Sunday
    start_times: list[int] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    last_updated: datetime = Field(default_factory=utc_naive_now, sa_type=DateTime(timezone=False))


class TemplateWrite(SQLModel):
    weekday: str
    start_times: list[int]


class TemplatePublic(SQLModel):
    provider_id: int
    weekday: str
    start_times: list[int]
    last_updated: datetime
