"""Availability, unit balance and transportation link schemas."""

import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, Field


class TimeSlot(BaseModel):
    start: str
    end: str
    duration_minutes: int


class BusySlot(BaseModel):
    appointment_id: int
    start: str
    end: str
    client_id: int
    status: str


class WorkingWindow(BaseModel):
    start: str
    end: str


class AvailabilityResponse(BaseModel):
    team_id: Optional[int] = None
    date: dt.date
    has_availability: bool
    reason: Optional[str] = None
    working_hours: Optional[WorkingWindow] = None
    available_slots: List[TimeSlot] = Field(default_factory=list)
    busy_slots: List[BusySlot] = Field(default_factory=list)


class UnitBalanceProjection(BaseModel):
    client_id: int
    speciality_id: int
    month_year: dt.date
    balance_found: bool
    total_allocated: int = 0
    total_used: int = 0
    available: int
    required: int
    projected: int
    insufficient: bool


class NEMTLinkCheck(BaseModel):
    valid: bool
    reason: str
