from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from appointment_engine.database import Base


class HistoryAction(str, Enum):
    ASSIGNED = "assigned"
    STARTED = "started"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    TIME_OVERRIDE = "time_override"
    TEAM_SWITCH = "team_switch"


class ActorType(str, Enum):
    USER = "user"
    TEAM = "team"
    SYSTEM = "system"


class AssignmentHistoryEntry(Base):
    __tablename__ = "assignment_history"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    appointment_id: Mapped[int] = mapped_column(
        ForeignKey("appointments.id"), nullable=False, index=True
    )
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    actor_type: Mapped[str] = mapped_column(String(10), nullable=False)
    actor_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    actor_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    team_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # JSON text: {"field": {"from": ..., "to": ...}}
    changes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    location_verified: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    distance_meters: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    actual_duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    def __repr__(self) -> str:
        return f"<AssignmentHistoryEntry {self.id} {self.action} appt={self.appointment_id}>"


@event.listens_for(AssignmentHistoryEntry, "before_update")
def _refuse_update(mapper, connection, target) -> None:
    raise PermissionError("Assignment history entries are append-only")


@event.listens_for(AssignmentHistoryEntry, "before_delete")
def _refuse_delete(mapper, connection, target) -> None:
    raise PermissionError("Assignment history entries are append-only")
