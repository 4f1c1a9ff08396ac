"""Bookable start-time slots for a team member on a given day."""

from datetime import date, time, timedelta
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from appointment_engine.config import settings
from appointment_engine.errors import ValidationUnavailable
from appointment_engine.models.appointment import Appointment
from appointment_engine.models.team import TeamQualification, TeamWorkingHours, Weekday
from appointment_engine.schemas.scheduling import (
    AvailabilityResponse,
    BusySlot,
    TimeSlot,
    WorkingWindow,
)
from appointment_engine.schemas.validation import IssueSeverity, ValidationIssue, ValidationReport
from appointment_engine.services.conflicts import ConflictDetector, overlaps
from appointment_engine.services.lookups import bounded_lookup
from appointment_engine.utils.clock import at, format_clock, window
from appointment_engine.utils.logging import get_logger

logger = get_logger("engine.availability")

SOURCE = "team_schedule"


def generate_slots(
    day: date,
    day_start: time,
    day_end: time,
    duration_minutes: int,
    granularity_minutes: int,
    busy: Sequence[Appointment] = (),
) -> List[TimeSlot]:
    """Candidate starts every ``granularity_minutes`` that fit inside the window
    and do not overlap any busy booking."""
    slots: List[TimeSlot] = []
    step = timedelta(minutes=granularity_minutes)
    length = timedelta(minutes=duration_minutes)
    cursor = at(day, day_start)
    limit = at(day, day_end)

    while cursor + length <= limit:
        end = cursor + length
        if not any(overlaps(cursor, end, b.scheduled_start, b.scheduled_end) for b in busy):
            slots.append(
                TimeSlot(
                    start=format_clock(cursor),
                    end=format_clock(end),
                    duration_minutes=duration_minutes,
                )
            )
        cursor += step
    return slots


class AvailabilityResolver:
    """Combines a member's weekly hours, qualifications and existing bookings."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def working_hours(self, team_id: int, day: date) -> Optional[TeamWorkingHours]:
        weekday = Weekday.from_index(day.weekday())
        result = await bounded_lookup(
            SOURCE,
            self.db.execute(
                select(TeamWorkingHours).where(
                    TeamWorkingHours.team_id == team_id,
                    TeamWorkingHours.day_of_week == weekday.value,
                )
            ),
        )
        return result.scalar_one_or_none()

    async def is_qualified(self, team_id: int, speciality_id: int) -> bool:
        """Members without qualification records are treated as unrestricted."""
        result = await bounded_lookup(
            SOURCE,
            self.db.execute(
                select(TeamQualification.speciality_id).where(
                    TeamQualification.team_id == team_id
                )
            ),
        )
        specialities = set(result.scalars().all())
        return not specialities or speciality_id in specialities

    async def resolve(
        self,
        team_id: Optional[int],
        day: date,
        speciality_id: Optional[int] = None,
        exclude_appointment_id: Optional[int] = None,
        duration_minutes: Optional[int] = None,
    ) -> AvailabilityResponse:
        duration = duration_minutes or settings.default_availability_duration_minutes
        granularity = settings.slot_granularity_minutes

        if team_id is None:
            return AvailabilityResponse(
                team_id=None,
                date=day,
                has_availability=True,
                working_hours=WorkingWindow(
                    start=format_clock(settings.open_shift_day_start),
                    end=format_clock(settings.open_shift_day_end),
                ),
                available_slots=generate_slots(
                    day,
                    settings.open_shift_day_start,
                    settings.open_shift_day_end,
                    duration,
                    granularity,
                ),
            )

        if speciality_id is not None and not await self.is_qualified(team_id, speciality_id):
            logger.info(
                "availability_not_qualified",
                team_id=team_id,
                speciality_id=speciality_id,
            )
            return AvailabilityResponse(
                team_id=team_id, date=day, has_availability=False, reason="not_qualified"
            )

        hours = await self.working_hours(team_id, day)
        if hours is None:
            return AvailabilityResponse(
                team_id=team_id, date=day, has_availability=False, reason="not_working"
            )

        bookings = await ConflictDetector(self.db).active_bookings(
            day, team_id=team_id, exclude_appointment_id=exclude_appointment_id
        )
        slots = generate_slots(day, hours.start_time, hours.end_time, duration, granularity, bookings)

        logger.info(
            "availability_resolved",
            team_id=team_id,
            date=day.isoformat(),
            slots=len(slots),
            busy=len(bookings),
        )
        return AvailabilityResponse(
            team_id=team_id,
            date=day,
            has_availability=bool(slots),
            reason=None if slots else "fully_booked",
            working_hours=WorkingWindow(
                start=format_clock(hours.start_time), end=format_clock(hours.end_time)
            ),
            available_slots=slots,
            busy_slots=[
                BusySlot(
                    appointment_id=b.id,
                    start=format_clock(b.scheduled_start),
                    end=format_clock(b.scheduled_end),
                    client_id=b.client_id,
                    status=b.status,
                )
                for b in bookings
            ],
        )

    async def check_working_hours(
        self, team_id: int, day: date, start: time, duration_minutes: int
    ) -> ValidationReport:
        """Advisory: does the visit fall inside the member's hours for that day?"""
        report = ValidationReport()
        try:
            hours = await self.working_hours(team_id, day)
        except ValidationUnavailable as e:
            report.add(
                ValidationIssue(
                    code="team_schedule_unavailable",
                    message=str(e),
                    severity=IssueSeverity.UNAVAILABLE,
                    source=SOURCE,
                )
            )
            return report

        visit_start, visit_end = window(day, start, duration_minutes)
        if hours is None:
            report.add(
                ValidationIssue(
                    code="outside_working_hours",
                    message=f"Team member {team_id} is not scheduled to work on {day:%A}",
                    severity=IssueSeverity.ADVISORY,
                    source=SOURCE,
                )
            )
        elif visit_start < at(day, hours.start_time) or visit_end > at(day, hours.end_time):
            report.add(
                ValidationIssue(
                    code="outside_working_hours",
                    message=(
                        f"Visit {format_clock(visit_start)}-{format_clock(visit_end)} is outside "
                        f"working hours {format_clock(hours.start_time)}-"
                        f"{format_clock(hours.end_time)}"
                    ),
                    severity=IssueSeverity.ADVISORY,
                    source=SOURCE,
                )
            )
        return report

    async def check_qualification(self, team_id: int, speciality_id: int) -> ValidationReport:
        report = ValidationReport()
        try:
            qualified = await self.is_qualified(team_id, speciality_id)
        except ValidationUnavailable as e:
            report.add(
                ValidationIssue(
                    code="team_schedule_unavailable",
                    message=str(e),
                    severity=IssueSeverity.UNAVAILABLE,
                    source=SOURCE,
                )
            )
            return report
        if not qualified:
            report.add(
                ValidationIssue(
                    code="not_qualified",
                    message=f"Team member {team_id} is not qualified for speciality {speciality_id}",
                    severity=IssueSeverity.ADVISORY,
                    source=SOURCE,
                )
            )
        return report
