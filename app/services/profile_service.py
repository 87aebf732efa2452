import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import PermissionDeniedError, ProviderNotFound
from app.core.security import Principal
from app.core.timeutils import utc_naive_now
from app.models.customer import Customer, CustomerUpdate
from app.models.provider import Provider, ProviderCreate

logger = logging.getLogger(__name__)

GUEST_NAME = "Guest User"


def placeholder_email(user_id: str) -> str:
    return f"user-{user_id[:8]}@example.com"


async def get_customer(session: AsyncSession, user_id: str) -> Customer | None:
    result = await session.execute(select(Customer).where(Customer.user_id == user_id))
    return result.scalar_one_or_none()


async def resolve_customer_profile(
    session: AsyncSession,
    user_id: str,
    name: str | None = None,
    email: str | None = None,
) -> Customer:
    """Return the customer's profile, creating a minimal one if missing.

    Never raises for missing profile data; placeholder values fill the gaps.
    """
    customer = await get_customer(session, user_id)
    if customer:
        return customer
    logger.warning("Customer %s has no profile, creating a placeholder record", user_id)
    customer = Customer(
        user_id=user_id,
        name=name or GUEST_NAME,
        email=email or placeholder_email(user_id),
    )
    try:
        async with session.begin_nested():
            session.add(customer)
    except IntegrityError:
        # a concurrent request created it first
        existing = await get_customer(session, user_id)
        if existing is None:
            raise
        return existing
    await session.refresh(customer)
    return customer


async def list_active_providers(session: AsyncSession) -> list[Provider]:
    result = await session.execute(
        select(Provider).where(Provider.is_active == True).order_by(Provider.name)  # noqa: E712
    )
    return list(result.scalars().all())


async def get_provider(session: AsyncSession, provider_id: int) -> Provider:
    provider = await session.get(Provider, provider_id)
    if not provider:
        raise ProviderNotFound(provider_id)
    return provider


async def get_provider_for_user(session: AsyncSession, user_id: str) -> Provider | None:
    result = await session.execute(select(Provider).where(Provider.user_id == user_id))
    return result.scalar_one_or_none()


async def find_or_create_provider(
    session: AsyncSession, principal: Principal, data: ProviderCreate
) -> Provider:
    if not principal.is_provider:
        raise PermissionDeniedError("Only providers can create a provider profile")
    provider = await get_provider_for_user(session, principal.user_id)
    if provider:
        return provider
    provider = Provider(
        user_id=principal.user_id,
        name=data.name,
        description=data.description or f"Professional barber services by {data.name}",
    )
    try:
        async with session.begin_nested():
            session.add(provider)
    except IntegrityError:
        existing = await get_provider_for_user(session, principal.user_id)
        if existing is None:
            raise
        return existing
    await session.refresh(provider)
    logger.info("Created provider %s for user %s", provider.id, principal.user_id)
    return provider


async def get_owned_provider(
    session: AsyncSession, provider_id: int, principal: Principal
) -> Provider:
    """Load a provider the principal may manage (owner or admin)."""
    provider = await get_provider(session, provider_id)
    if principal.is_admin:
        return provider
    if not principal.is_provider or provider.user_id != principal.user_id:
        raise PermissionDeniedError(
            "Not authorized to manage this provider", details={"provider_id": provider_id}
        )
    return provider


async def update_payment_account_status(
    session: AsyncSession,
    stripe_account_id: str,
    charges_enabled: bool,
    payouts_enabled: bool,
    details_submitted: bool | None = None,
) -> Provider | None:
    result = await session.execute(
        select(Provider).where(Provider.stripe_account_id == stripe_account_id)
    )
    provider = result.scalars().first()
    if not provider:
        logger.warning("No provider for payment account %s", stripe_account_id)
        return None
    provider.stripe_charges_enabled = charges_enabled
    provider.stripe_payouts_enabled = payouts_enabled
    if details_submitted is not None:
        provider.stripe_onboarding_complete = details_submitted
    session.add(provider)
    await session.flush()
    return provider


async def set_payment_account(session: AsyncSession, provider: Provider, stripe_account_id: str) -> Provider:
    provider.stripe_account_id = stripe_account_id
    provider.stripe_account_created_at = utc_naive_now()
    session.add(provider)
    await session.flush()
    return provider


async def update_customer_profile(
    session: AsyncSession, principal: Principal, data: CustomerUpdate
) -> Customer:
    customer = await resolve_customer_profile(session, principal.user_id, name=data.name, email=data.email)
    if data.name:
        customer.name = data.name
    if data.email:
        customer.email = data.email
    session.add(customer)
    await session.flush()
    return customer
