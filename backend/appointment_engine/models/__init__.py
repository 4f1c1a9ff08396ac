"""Models package initialization."""

from appointment_engine.models.appointment import (
    INACTIVE_STATUSES,
    TERMINAL_STATUSES,
    Appointment,
    AppointmentStatus,
    LocationType,
)
from appointment_engine.models.assignment_history import (
    ActorType,
    AssignmentHistoryEntry,
    HistoryAction,
)
from appointment_engine.models.nemt_occurrence import NEMTOccurrence, NEMTStatus
from appointment_engine.models.team import TeamQualification, TeamWorkingHours, Weekday
from appointment_engine.models.unit_balance import UnitBalance

__all__ = [
    # Appointment
    "Appointment",
    "AppointmentStatus",
    "LocationType",
    "TERMINAL_STATUSES",
    "INACTIVE_STATUSES",
    # Ledger
    "AssignmentHistoryEntry",
    "HistoryAction",
    "ActorType",
    # Transportation
    "NEMTOccurrence",
    "NEMTStatus",
    # Team schedule
    "TeamWorkingHours",
    "TeamQualification",
    "Weekday",
    # Quota
    "UnitBalance",
]
