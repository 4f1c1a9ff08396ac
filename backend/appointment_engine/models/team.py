"""Team member scheduling configuration, owned by the schedule system."""

from datetime import time
from enum import Enum

from sqlalchemy import Integer, String, Time, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from appointment_engine.database import Base


class Weekday(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def from_index(cls, index: int) -> "Weekday":
        """Map ``date.weekday()`` (Monday=0) to a weekday."""
        return list(cls)[index]


class TeamWorkingHours(Base):
    """Working window of a team member for one weekday. No row means day off."""

    __tablename__ = "team_working_hours"
    __table_args__ = (UniqueConstraint("team_id", "day_of_week", name="uq_team_weekday"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    team_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    day_of_week: Mapped[str] = mapped_column(String(10), nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)

    def __repr__(self) -> str:
        return f"<TeamWorkingHours team={self.team_id} {self.day_of_week} {self.start_time}-{self.end_time}>"


class TeamQualification(Base):
    __tablename__ = "team_qualifications"
    __table_args__ = (UniqueConstraint("team_id", "speciality_id", name="uq_team_speciality"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    team_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    speciality_id: Mapped[int] = mapped_column(Integer, nullable=False)
