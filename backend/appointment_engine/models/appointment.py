"""Appointment model for field-service visits."""

import datetime as dt
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Date, DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from appointment_engine.database import Base
from appointment_engine.utils.clock import units_for


class AppointmentStatus(str, Enum):
    """Appointment lifecycle status."""
    UNASSIGNED = "unassigned"
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    REJECTED = "rejected"
    LATE = "late"
    TERMINATED_BY_CLIENT = "terminated_by_client"
    TERMINATED_BY_STAFF = "terminated_by_staff"
    DELETED = "deleted"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
        AppointmentStatus.REJECTED,
        AppointmentStatus.TERMINATED_BY_CLIENT,
        AppointmentStatus.TERMINATED_BY_STAFF,
        AppointmentStatus.DELETED,
    }
)

# Bookings in these statuses no longer occupy their time slot.
INACTIVE_STATUSES = frozenset({AppointmentStatus.CANCELLED, AppointmentStatus.DELETED})


class LocationType(str, Enum):
    IN_HOME = "in_home"
    FACILITY = "facility"
    COMMUNITY = "community"
    REMOTE = "remote"


class Appointment(Base):
    """A scheduled visit of a team member to a client."""

    __tablename__ = "appointments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # Parties
    client_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    team_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    speciality_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # Schedule (tenant wall-clock)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    scheduled_start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    scheduled_end: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    # Visit address snapshot
    location_type: Mapped[str] = mapped_column(
        String(20), default=LocationType.IN_HOME.value, nullable=False
    )
    address_street: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    address_city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    address_state: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    address_zip: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    address_latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    address_longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    completion_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(30),
        default=AppointmentStatus.UNASSIGNED.value,
        nullable=False,
        index=True,
    )
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Transportation
    nemt_occurrence_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("nemt_occurrences.id"), nullable=True, index=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Appointment {self.id} ({self.status})>"

    @property
    def units_required(self) -> int:
        """Always derived from the duration, never stored."""
        return units_for(self.duration_minutes)

    @property
    def current_status(self) -> AppointmentStatus:
        return AppointmentStatus(self.status)

    @property
    def has_gps_address(self) -> bool:
        return self.address_latitude is not None and self.address_longitude is not None
