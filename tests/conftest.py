import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENV", "test")
os.environ.setdefault("RUN_SWEEPS_IN_PROCESS", "false")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_dummy")

from datetime import timedelta  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

import app.models  # noqa: E402,F401 - register tables
from app.core.security import Principal, Role  # noqa: E402
from app.core.timeutils import today, weekday_name  # noqa: E402
from app.models.provider import Provider  # noqa: E402
from app.models.slot import Slot  # noqa: E402
from app.models.template import AvailabilityTemplate  # noqa: E402
from app.services.slot_service import generate_slots  # noqa: E402


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)

    # pysqlite does not emit BEGIN itself; take the write lock up front so
    # concurrent sessions serialize instead of failing on lock upgrade
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def barber() -> Principal:
    return Principal(user_id="barber-1", role=Role.PROVIDER)


@pytest.fixture
def customer() -> Principal:
    return Principal(user_id="customer-1", role=Role.CUSTOMER)


@pytest.fixture
def other_customer() -> Principal:
    return Principal(user_id="customer-2", role=Role.CUSTOMER)


@pytest.fixture
def admin() -> Principal:
    return Principal(user_id="admin-1", role=Role.ADMIN)


@pytest.fixture
def start_times() -> list[int]:
    return [540, 570, 600, 630]


@pytest.fixture
def booking_day():
    return today() + timedelta(days=3)


@pytest_asyncio.fixture
async def provider(session, barber) -> Provider:
    provider = Provider(name="Fade Masters", description="Cuts", user_id=barber.user_id)
    session.add(provider)
    await session.commit()
    return provider


@pytest_asyncio.fixture
async def template(session, provider, booking_day, start_times) -> AvailabilityTemplate:
    """Template for the weekday of ``booking_day``."""
    template = AvailabilityTemplate(
        provider_id=provider.id, weekday=weekday_name(booking_day), start_times=list(start_times)
    )
    session.add(template)
    await session.commit()
    return template


@pytest_asyncio.fixture
async def slots(session, provider, template, booking_day) -> list[Slot]:
    result = await generate_slots(session, provider.id, booking_day)
    await session.commit()
    return result.slots
