"""Schemas package initialization."""

from appointment_engine.schemas.appointment import (
    AppointmentCreate,
    AppointmentResponse,
    CancelRequest,
    CommandResponse,
    CompleteRequest,
    GPSCapture,
    LinkTransportationRequest,
    LocationOutcome,
    OverrideTimesRequest,
    ReassignRequest,
    RescheduleRequest,
    StartRequest,
    VisitAddress,
)
from appointment_engine.schemas.history import HistoryEntryResponse, HistoryListResponse
from appointment_engine.schemas.scheduling import (
    AvailabilityResponse,
    BusySlot,
    NEMTLinkCheck,
    TimeSlot,
    UnitBalanceProjection,
    WorkingWindow,
)
from appointment_engine.schemas.validation import (
    ConflictCheckRequest,
    ConflictEntry,
    ConflictResult,
    ConflictType,
    IssueSeverity,
    ValidationIssue,
    ValidationReport,
)

__all__ = [
    # Appointment
    "AppointmentCreate",
    "AppointmentResponse",
    "CommandResponse",
    "StartRequest",
    "CompleteRequest",
    "CancelRequest",
    "OverrideTimesRequest",
    "RescheduleRequest",
    "ReassignRequest",
    "LinkTransportationRequest",
    "GPSCapture",
    "LocationOutcome",
    "VisitAddress",
    # History
    "HistoryEntryResponse",
    "HistoryListResponse",
    # Scheduling
    "AvailabilityResponse",
    "TimeSlot",
    "BusySlot",
    "WorkingWindow",
    "UnitBalanceProjection",
    "NEMTLinkCheck",
    # Validation
    "ValidationIssue",
    "ValidationReport",
    "IssueSeverity",
    "ConflictEntry",
    "ConflictResult",
    "ConflictType",
    "ConflictCheckRequest",
]
