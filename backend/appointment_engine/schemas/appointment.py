import datetime as dt
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from appointment_engine.models.appointment import LocationType
from appointment_engine.schemas.validation import ConflictEntry, ValidationReport


class VisitAddress(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    client_id: int
    team_id: Optional[int] = None
    speciality_id: int
    date: dt.date
    scheduled_start: datetime
    scheduled_end: datetime
    duration_minutes: int
    units_required: int
    location_type: str
    address_street: Optional[str] = None
    address_city: Optional[str] = None
    address_state: Optional[str] = None
    address_zip: Optional[str] = None
    address_latitude: Optional[float] = None
    address_longitude: Optional[float] = None
    notes: Optional[str] = None
    completion_notes: Optional[str] = None
    status: str
    version: int
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    nemt_occurrence_id: Optional[int] = None


class CommandResponse(BaseModel):
    """Authoritative appointment state after a command, plus what validators said."""

    appointment: AppointmentResponse
    validation: ValidationReport = Field(default_factory=ValidationReport)
    conflicts: List[ConflictEntry] = Field(default_factory=list)


class GPSCapture(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class LocationOutcome(BaseModel):
    verified: bool
    distance_meters: Optional[float] = Field(None, ge=0)


class StartRequest(BaseModel):
    gps: Optional[GPSCapture] = None
    location: Optional[LocationOutcome] = None


class CompleteRequest(BaseModel):
    notes: Optional[str] = None
    gps: Optional[GPSCapture] = None
    location: Optional[LocationOutcome] = None


class CancelRequest(BaseModel):
    reason: str = ""


class OverrideTimesRequest(BaseModel):
    started_at: datetime
    completed_at: Optional[datetime] = None
    reason: str = ""


class LinkTransportationRequest(BaseModel):
    occurrence_id: int


class AppointmentCreate(BaseModel):
    client_id: int
    team_id: Optional[int] = None
    speciality_id: int
    date: dt.date
    start_time: dt.time
    duration_minutes: int = Field(..., gt=0, le=24 * 60)
    location_type: LocationType = LocationType.IN_HOME
    address: Optional[VisitAddress] = None
    notes: Optional[str] = None
    force: bool = False
    strict: bool = False
    reason: Optional[str] = None

    @model_validator(mode="after")
    def _fits_in_day(self) -> "AppointmentCreate":
        start_minutes = self.start_time.hour * 60 + self.start_time.minute
        if start_minutes + self.duration_minutes > 24 * 60:
            raise ValueError("Appointment must end on the same day it starts")
        return self


class RescheduleRequest(BaseModel):
    date: dt.date
    start_time: dt.time
    duration_minutes: Optional[int] = Field(None, gt=0, le=24 * 60)
    force: bool = False
    strict: bool = False
    reason: Optional[str] = None


class ReassignRequest(BaseModel):
    team_id: int
    reason: Optional[str] = None
    force: bool = False
