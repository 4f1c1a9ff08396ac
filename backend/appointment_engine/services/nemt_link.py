"""Transportation pickup window matching."""

from datetime import date, datetime, time, timedelta
from typing import Optional

from appointment_engine.models.nemt_occurrence import NEMTOccurrence
from appointment_engine.schemas.scheduling import NEMTLinkCheck
from appointment_engine.utils.clock import format_clock

# Appointments may start up to this long before the pickup window opens.
PICKUP_LEAD = timedelta(hours=1)


class NEMTLinkValidator:
    """Decides whether an appointment start fits a transportation occurrence."""

    def check(
        self,
        transportation_date: date,
        pickup_time_from: Optional[time],
        pickup_time_to: Optional[time],
        appointment_date: date,
        appointment_start: time,
    ) -> NEMTLinkCheck:
        if appointment_date != transportation_date:
            return NEMTLinkCheck(
                valid=False,
                reason=(
                    f"Transportation is on {transportation_date.isoformat()} but the "
                    f"appointment is on {appointment_date.isoformat()}"
                ),
            )

        if pickup_time_from is None:
            return NEMTLinkCheck(valid=True, reason="Occurrence has no pickup window to match")

        pickup_to = pickup_time_to or pickup_time_from
        window_start = datetime.combine(appointment_date, pickup_time_from) - PICKUP_LEAD
        window_end = datetime.combine(appointment_date, pickup_to)
        start = datetime.combine(appointment_date, appointment_start)

        if window_start <= start <= window_end:
            return NEMTLinkCheck(
                valid=True,
                reason=(
                    f"Appointment start {format_clock(start)} is within "
                    f"{format_clock(window_start)}-{format_clock(window_end)}"
                ),
            )
        return NEMTLinkCheck(
            valid=False,
            reason=(
                "Appointment must be scheduled on the same day and within 1 hour of the "
                f"transportation pickup window ({format_clock(window_start)}-"
                f"{format_clock(window_end)})"
            ),
        )

    def check_occurrence(
        self, occurrence: NEMTOccurrence, appointment_date: date, appointment_start: time
    ) -> NEMTLinkCheck:
        return self.check(
            occurrence.transportation_date,
            occurrence.pickup_time_from,
            occurrence.pickup_time_to,
            appointment_date,
            appointment_start,
        )
