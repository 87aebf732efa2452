import asyncio
import logging
import os
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.routes import admin, appointments, bookings, customers, payments, providers, slots
from app.core.config import settings, _ENV_FILE
from app.core.db import async_session_maker
from app.core.exceptions import DomainError
from app.services.booking_service import expire_stale_reservations
from app.services.cleanup_service import cleanup_unused_slots
from app.services.reconciliation_service import reconcile_upcoming, sync_appointment_statuses

if os.getenv("ENV") != "production":
    logging.basicConfig(level=logging.DEBUG)
else:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}',
    )
logger = logging.getLogger(__name__)


async def _run_sweep(name: str, job: Callable[[AsyncSession], Awaitable[Any]]) -> None:
    """Run one sweep in its own session. Failures are logged; the next tick retries."""
    try:
        async with async_session_maker() as session:
            try:
                result = await job(session)
                await session.commit()
                logger.debug("Sweep %s finished: %s", name, result)
            except Exception:
                await session.rollback()
                raise
    except Exception as e:
        logger.exception("Sweep %s failed: %s", name, e)


async def _consistency_sweeps() -> None:
    await _run_sweep("expire-reservations", expire_stale_reservations)
    await _run_sweep("reconcile", reconcile_upcoming)
    await _run_sweep("sync-appointments", sync_appointment_statuses)


async def _cleanup_sweep() -> None:
    await _run_sweep("cleanup", cleanup_unused_slots)


async def _every(seconds: float, sweep: Callable[[], Awaitable[None]]) -> None:
    while True:
        await asyncio.sleep(seconds)
        await sweep()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Loading .env from: %s (exists: %s)", _ENV_FILE, _ENV_FILE.exists())
    if not settings.stripe_enabled:
        logger.warning("Stripe: NOT configured. Checkout and onboarding will fail until STRIPE_SECRET_KEY is set")
    if not settings.email_enabled:
        logger.warning("SMTP: NOT configured. Booking confirmation emails are disabled")

    tasks: list[asyncio.Task] = []
    if settings.run_sweeps_in_process:
        logger.info(
            "Sweeps: reconcile every %d min, cleanup every %d h (retention %d days)",
            settings.reconcile_interval_minutes,
            settings.cleanup_interval_hours,
            settings.cleanup_retention_days,
        )
        # Startup: run once
        await _consistency_sweeps()
        await _cleanup_sweep()
        tasks.append(asyncio.create_task(_every(settings.reconcile_interval_minutes * 60, _consistency_sweeps)))
        tasks.append(asyncio.create_task(_every(settings.cleanup_interval_hours * 60 * 60, _cleanup_sweep)))
    yield
    for task in tasks:
        task.cancel()
    for task in tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass


app = FastAPI(
    title="BarberBook API",
    description="Backend for BarberBook: availability, slots, bookings, payments",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Stripe-Signature"],
)

app.include_router(providers.router, prefix="/api/v1")
app.include_router(slots.router, prefix="/api/v1")
app.include_router(customers.router, prefix="/api/v1")
app.include_router(bookings.router, prefix="/api/v1")
app.include_router(appointments.router, prefix="/api/v1")
app.include_router(payments.router, prefix="/api/v1")
app.include_router(admin.router, prefix="/api/v1")


def _cors_headers(origin: str | None) -> dict[str, str]:
    """Add CORS headers to error responses so the browser doesn't block them."""
    headers = {
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
        "Access-Control-Allow-Headers": "Authorization, Content-Type, Stripe-Signature",
    }
    if origin and origin in settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = origin
    elif settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = settings.cors_origins_list[0]
    return headers


@app.exception_handler(DomainError)
async def domain_exception_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    else:
        logger.info("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.to_detail()},
        headers=_cors_headers(request.headers.get("origin")),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return actual error in JSON; include CORS so 500 responses are not blocked by browser."""
    origin = request.headers.get("origin")
    headers = _cors_headers(origin)
    if isinstance(exc, HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=headers,
        )
    logger.exception("Unhandled exception: %s", exc)
    detail = f"{type(exc).__name__}: {str(exc)}"
    return JSONResponse(
        status_code=500,
        content={"detail": detail},
        headers=headers,
    )


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
