"""Creating appointments from the booking wizard."""

from datetime import datetime
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from appointment_engine.errors import ConflictDetected, EngineError, GuardViolation
from appointment_engine.models.appointment import Appointment, AppointmentStatus
from appointment_engine.models.assignment_history import HistoryAction
from appointment_engine.schemas.appointment import (
    AppointmentCreate,
    AppointmentResponse,
    CommandResponse,
)
from appointment_engine.schemas.validation import ValidationReport
from appointment_engine.services import field_rules
from appointment_engine.services.availability import AvailabilityResolver
from appointment_engine.services.booking_locks import booking_locks, party_key
from appointment_engine.services.conflicts import ConflictDetector
from appointment_engine.services.history_ledger import AssignmentHistoryLedger
from appointment_engine.services.unit_balance import UnitBalanceCalculator
from appointment_engine.utils.clock import local_now, window
from appointment_engine.utils.logging import AppointmentLogger
from appointment_engine.utils.security import ActorContext


class BookingService:
    """Books new appointments, holding the party locks from check to commit."""

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = local_now):
        self.db = db
        self.clock = clock
        self.ledger = AssignmentHistoryLedger(db)
        self.conflicts = ConflictDetector(db)
        self.availability = AvailabilityResolver(db)
        self.unit_balance = UnitBalanceCalculator(db)

    async def _validate(self, data: AppointmentCreate) -> ValidationReport:
        report = await self.unit_balance.check(
            data.client_id, data.speciality_id, data.date, data.duration_minutes
        )
        if data.team_id is not None:
            report.extend(
                await self.availability.check_qualification(data.team_id, data.speciality_id)
            )
            report.extend(
                await self.availability.check_working_hours(
                    data.team_id, data.date, data.start_time, data.duration_minutes
                )
            )
        return report

    async def create(self, data: AppointmentCreate, actor: ActorContext) -> CommandResponse:
        log = AppointmentLogger(None, actor.user_id)
        try:
            if not actor.is_admin:
                raise GuardViolation(
                    "Only administrators can book appointments",
                    code="forbidden",
                    forbidden=True,
                )

            keys = [party_key("client", data.client_id, data.date)]
            if data.team_id is not None:
                keys.append(party_key("team", data.team_id, data.date))

            async with booking_locks(self.db, keys):
                conflicts = await self.conflicts.find_conflicts(
                    data.date,
                    data.start_time,
                    data.duration_minutes,
                    client_id=data.client_id,
                    team_id=data.team_id,
                )
                if conflicts.has_conflict and not data.force:
                    raise ConflictDetected(
                        "The requested time overlaps existing appointments",
                        conflicts.conflicts,
                    )

                report = await self._validate(data)
                field_rules.require_clean(report, data.strict)

                now = self.clock()
                start, end = window(data.date, data.start_time, data.duration_minutes)
                address = data.address
                appointment = Appointment(
                    client_id=data.client_id,
                    team_id=data.team_id,
                    speciality_id=data.speciality_id,
                    date=data.date,
                    scheduled_start=start,
                    scheduled_end=end,
                    duration_minutes=data.duration_minutes,
                    location_type=data.location_type.value,
                    address_street=address.street if address else None,
                    address_city=address.city if address else None,
                    address_state=address.state if address else None,
                    address_zip=address.zip if address else None,
                    address_latitude=address.latitude if address else None,
                    address_longitude=address.longitude if address else None,
                    notes=data.notes,
                    status=(
                        AppointmentStatus.SCHEDULED.value
                        if data.team_id is not None
                        else AppointmentStatus.UNASSIGNED.value
                    ),
                    version=1,
                )
                self.db.add(appointment)
                await self.db.flush()
                log.appointment_id = appointment.id

                if data.team_id is not None:
                    await self.ledger.append(
                        appointment.id,
                        HistoryAction.ASSIGNED,
                        actor,
                        reason=data.reason,
                        team_id=data.team_id,
                        timestamp=now,
                    )
                if conflicts.has_conflict:
                    await self.ledger.append_conflict_override(
                        appointment.id, actor, conflicts, data.reason, data.team_id, now
                    )

                await self.db.commit()
                await self.db.refresh(appointment)
        except EngineError as e:
            await self.db.rollback()
            log.rejected("create", e.code, e.message)
            raise

        log.log(
            "appointment_booked",
            status=appointment.status,
            team_id=appointment.team_id,
            client_id=appointment.client_id,
            forced=conflicts.has_conflict,
            warnings=report.codes(),
        )
        return CommandResponse(
            appointment=AppointmentResponse.model_validate(appointment),
            validation=report,
            conflicts=conflicts.conflicts,
        )
