from datetime import datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from app.core.timeutils import utc_naive_now


class ProviderBase(SQLModel):
    name: str = Field(index=True)
    description: str = ""


class Provider(ProviderBase, table=True):
    __tablename__ = "providers"
    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(unique=True, index=True)  # owner
    is_active: bool = True
    # Stripe Connect destination account
    stripe_account_id: str | None = Field(default=None, index=True)
    stripe_onboarding_complete: bool = False
    stripe_charges_enabled: bool = False
    stripe_payouts_enabled: bool = False
    stripe_account_created_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=False))
    created_at: datetime = Field(default_factory=utc_naive_now, sa_type=DateTime(timezone=False))


class ProviderCreate(ProviderBase):
    pass


class ProviderPublic(ProviderBase):
    id: int
    user_id: str
    is_active: bool
    stripe_charges_enabled: bool
    stripe_payouts_enabled: bool
