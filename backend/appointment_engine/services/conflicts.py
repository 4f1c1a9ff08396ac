"""Double-booking detection for team members and clients."""

from datetime import date, datetime, time
from typing import List, Optional, Sequence

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from appointment_engine.models.appointment import INACTIVE_STATUSES, Appointment
from appointment_engine.schemas.validation import ConflictEntry, ConflictResult, ConflictType
from appointment_engine.services.lookups import bounded_lookup
from appointment_engine.utils.clock import format_clock, window
from appointment_engine.utils.logging import get_logger

logger = get_logger("engine.conflicts")


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open interval overlap; touching endpoints do not overlap."""
    return start_a < end_b and start_b < end_a


def detect_overlaps(
    bookings: Sequence[Appointment],
    proposed_start: datetime,
    proposed_end: datetime,
    team_id: Optional[int],
    client_id: Optional[int],
) -> ConflictResult:
    """Compare a proposed window against one snapshot of existing bookings."""
    result = ConflictResult()

    if team_id is not None:
        for appt in bookings:
            if appt.team_id != team_id:
                continue
            if not overlaps(appt.scheduled_start, appt.scheduled_end, proposed_start, proposed_end):
                continue
            result.conflicts.append(
                ConflictEntry(
                    type=ConflictType.TEAM_CONFLICT,
                    conflicting_appointment_id=appt.id,
                    message=(
                        f"Team member {team_id} already has appointment #{appt.id} with client "
                        f"{appt.client_id} from {format_clock(appt.scheduled_start)} to "
                        f"{format_clock(appt.scheduled_end)}"
                    ),
                    team_id=appt.team_id,
                    client_id=appt.client_id,
                    start_time=appt.scheduled_start,
                    end_time=appt.scheduled_end,
                    status=appt.status,
                )
            )

    if client_id is not None:
        for appt in bookings:
            if appt.client_id != client_id:
                continue
            if not overlaps(appt.scheduled_start, appt.scheduled_end, proposed_start, proposed_end):
                continue
            with_whom = f"team member {appt.team_id}" if appt.team_id else "an open shift"
            result.conflicts.append(
                ConflictEntry(
                    type=ConflictType.CLIENT_CONFLICT,
                    conflicting_appointment_id=appt.id,
                    message=(
                        f"Client {client_id} already has appointment #{appt.id} with {with_whom} "
                        f"from {format_clock(appt.scheduled_start)} to "
                        f"{format_clock(appt.scheduled_end)}"
                    ),
                    team_id=appt.team_id,
                    client_id=appt.client_id,
                    start_time=appt.scheduled_start,
                    end_time=appt.scheduled_end,
                    status=appt.status,
                )
            )

    return result


class ConflictDetector:
    """Finds overlapping bookings for a team member and a client on one day."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def active_bookings(
        self,
        day: date,
        team_id: Optional[int] = None,
        client_id: Optional[int] = None,
        exclude_appointment_id: Optional[int] = None,
    ) -> List[Appointment]:
        """One query for both parties, so team and client see the same snapshot."""
        parties = []
        if team_id is not None:
            parties.append(Appointment.team_id == team_id)
        if client_id is not None:
            parties.append(Appointment.client_id == client_id)
        if not parties:
            return []

        filters = [
            Appointment.date == day,
            Appointment.status.notin_([s.value for s in INACTIVE_STATUSES]),
            or_(*parties),
        ]
        if exclude_appointment_id is not None:
            filters.append(Appointment.id != exclude_appointment_id)

        query = (
            select(Appointment)
            .where(and_(*filters))
            .order_by(Appointment.scheduled_start, Appointment.id)
        )
        result = await bounded_lookup("bookings", self.db.execute(query))
        return list(result.scalars().all())

    async def find_conflicts(
        self,
        day: date,
        start: time,
        duration_minutes: int,
        client_id: Optional[int],
        team_id: Optional[int] = None,
        exclude_appointment_id: Optional[int] = None,
    ) -> ConflictResult:
        proposed_start, proposed_end = window(day, start, duration_minutes)
        bookings = await self.active_bookings(
            day,
            team_id=team_id,
            client_id=client_id,
            exclude_appointment_id=exclude_appointment_id,
        )
        result = detect_overlaps(bookings, proposed_start, proposed_end, team_id, client_id)
        logger.info(
            "conflict_check_completed",
            date=day.isoformat(),
            start=format_clock(proposed_start),
            end=format_clock(proposed_end),
            team_id=team_id,
            client_id=client_id,
            excluded=exclude_appointment_id,
            conflicts=len(result.conflicts),
        )
        return result
