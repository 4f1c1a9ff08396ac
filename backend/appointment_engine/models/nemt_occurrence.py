"""Transportation (NEMT) occurrence model."""

from datetime import date, datetime, time
from enum import Enum
from typing import Optional

from sqlalchemy import Date, DateTime, Integer, String, Text, Time, func
from sqlalchemy.orm import Mapped, mapped_column

from appointment_engine.database import Base


class NEMTStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class NEMTOccurrence(Base):
    """One brokered transportation leg for a client."""

    __tablename__ = "nemt_occurrences"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    client_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    transportation_date: Mapped[date] = mapped_column(Date, nullable=False)
    pickup_time_from: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    pickup_time_to: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    return_time_from: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    return_time_to: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    broker_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=NEMTStatus.PENDING.value, nullable=False
    )
    appointment_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<NEMTOccurrence {self.id} {self.transportation_date} ({self.status})>"

    @property
    def is_cancelled(self) -> bool:
        return self.status == NEMTStatus.CANCELLED.value
