import datetime as dt

from pydantic import BaseModel

from app.models.slot import SlotPublic
from app.models.template import TemplatePublic


class DaySlotsResponse(BaseModel):
    provider_id: int
    date: dt.date
    status: str  # existing | generated | no_template
    available: list[SlotPublic]
    booked: list[SlotPublic]
    withdrawn: list[SlotPublic]


class SlotAvailabilityRequest(BaseModel):
    available: bool


class TemplateRequest(BaseModel):
    start_times: list[int]


class TemplateSyncInfo(BaseModel):
    weekday: str
    dates_synced: int
    withdrawn: int
    restored: int
    created: int
    # booked slots kept although their time was removed from the template
    overridden: list[SlotPublic]


class TemplateSaveResponse(BaseModel):
    template: TemplatePublic
    sync: TemplateSyncInfo
