import datetime as dt

from pydantic import BaseModel


class ReconcileRequest(BaseModel):
    # Both set: one (provider, date). Neither: every upcoming date.
    provider_id: int | None = None
    date: str | int | None = None
    horizon_days: int | None = None


class ReconcileResponse(BaseModel):
    runs: int
    examined: int
    corrected: int
    corrected_slot_ids: list[int] = []


class CleanupResponse(BaseModel):
    deleted: int
    past_cutoff: dt.date
    future_cutoff: dt.date


class ExpireResponse(BaseModel):
    expired: int


class AppointmentSyncResponse(BaseModel):
    examined: int
    updated: int
    unlinked: int
