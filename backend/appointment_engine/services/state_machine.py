"""Guarded lifecycle commands for appointments.

Each command follows the same shape: load the appointment, check permission
and source status against the transition table, run the validators it needs,
then write the new state with a compare-and-swap on ``(id, version, status)``
and append to the ledger in the same transaction. A write that matches no row
means someone else changed the appointment after it was read, which surfaces
as ``StaleState``.
"""

from contextlib import asynccontextmanager
from datetime import date, datetime, time, timedelta
from typing import Any, AsyncIterator, Callable, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from appointment_engine.errors import (
    AppointmentNotFound,
    ConflictDetected,
    EngineError,
    GuardViolation,
    OccurrenceNotFound,
    StaleState,
    ValidationBlocking,
    ValidationUnavailable,
)
from appointment_engine.models.appointment import (
    INACTIVE_STATUSES,
    Appointment,
    AppointmentStatus,
)
from appointment_engine.models.assignment_history import AssignmentHistoryEntry, HistoryAction
from appointment_engine.models.nemt_occurrence import NEMTOccurrence
from appointment_engine.schemas.appointment import (
    AppointmentResponse,
    CommandResponse,
    GPSCapture,
    LocationOutcome,
)
from appointment_engine.schemas.validation import (
    ConflictResult,
    IssueSeverity,
    ValidationIssue,
    ValidationReport,
)
from appointment_engine.services import field_rules
from appointment_engine.services.availability import AvailabilityResolver
from appointment_engine.services.booking_locks import booking_locks, party_key
from appointment_engine.services.conflicts import ConflictDetector
from appointment_engine.services.history_ledger import AssignmentHistoryLedger, diff_fields
from appointment_engine.services.location_verification import verify_location
from appointment_engine.services.lookups import bounded_lookup
from appointment_engine.services.nemt_link import NEMTLinkValidator
from appointment_engine.services.time_override import TimeOverrideValidator
from appointment_engine.services.transitions import Command, Transition, transition_for
from appointment_engine.services.unit_balance import UnitBalanceCalculator
from appointment_engine.utils.clock import UNIT_MINUTES, at, local_now, to_local_naive, window
from appointment_engine.utils.logging import AppointmentLogger
from appointment_engine.utils.security import ActorContext

Clock = Callable[[], datetime]


def _unavailable(error: ValidationUnavailable) -> ValidationIssue:
    return ValidationIssue(
        code=f"{error.source}_unavailable",
        message=error.message,
        severity=IssueSeverity.UNAVAILABLE,
        source=error.source,
    )


class AppointmentStateMachine:
    """Applies lifecycle commands to persisted appointments."""

    def __init__(self, db: AsyncSession, clock: Clock = local_now):
        self.db = db
        self.clock = clock
        self.ledger = AssignmentHistoryLedger(db)
        self.conflicts = ConflictDetector(db)
        self.availability = AvailabilityResolver(db)
        self.unit_balance = UnitBalanceCalculator(db)
        self.override_validator = TimeOverrideValidator()
        self.nemt_validator = NEMTLinkValidator()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def load(self, appointment_id: int) -> Appointment:
        """Read the current persisted state, bypassing the identity map."""
        appointment = await self.db.get(Appointment, appointment_id, populate_existing=True)
        if appointment is None:
            raise AppointmentNotFound(appointment_id)
        return appointment

    @asynccontextmanager
    async def _command(
        self, command: Command, appointment_id: int, actor: ActorContext
    ) -> AsyncIterator[AppointmentLogger]:
        log = AppointmentLogger(appointment_id, actor.user_id)
        try:
            yield log
        except EngineError as e:
            await self.db.rollback()
            log.rejected(command.value, e.code, e.message)
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            log.error("appointment_command_failed", command=command.value, error=str(e))
            raise

    def _guard(self, command: Command, appointment: Appointment, actor: ActorContext) -> Transition:
        transition = transition_for(command)
        verb = command.value.replace("_", " ")
        if transition.admin_only and not actor.is_admin:
            raise GuardViolation(
                f"Only administrators can {verb} appointments",
                code="forbidden",
                forbidden=True,
            )
        current = appointment.current_status
        if not transition.allows(current):
            raise GuardViolation(
                f"Cannot {verb} an appointment in status '{current.value}'",
                code="invalid_status",
            )
        return transition

    async def _apply(self, appointment: Appointment, values: Dict[str, Any]) -> None:
        """Compare-and-swap against the version and status read by ``load``."""
        result = await self.db.execute(
            update(Appointment)
            .where(
                Appointment.id == appointment.id,
                Appointment.version == appointment.version,
                Appointment.status == appointment.status,
            )
            .values(version=appointment.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StaleState(
                f"Appointment {appointment.id} changed while the command was running; "
                "re-fetch and retry"
            )

    async def _finish(
        self,
        command: Command,
        appointment: Appointment,
        log: AppointmentLogger,
        from_status: str,
        report: Optional[ValidationReport] = None,
        conflicts: Optional[ConflictResult] = None,
    ) -> CommandResponse:
        await self.db.commit()
        await self.db.refresh(appointment)
        log.transition(command.value, from_status, appointment.status)
        return CommandResponse(
            appointment=AppointmentResponse.model_validate(appointment),
            validation=report or ValidationReport(),
            conflicts=list(conflicts.conflicts) if conflicts else [],
        )

    def _unchanged(self, appointment: Appointment) -> CommandResponse:
        return CommandResponse(appointment=AppointmentResponse.model_validate(appointment))

    async def _has_active_visit(self, team_id: int, exclude_id: int) -> bool:
        result = await bounded_lookup(
            "bookings",
            self.db.execute(
                select(Appointment.id)
                .where(
                    Appointment.team_id == team_id,
                    Appointment.status == AppointmentStatus.IN_PROGRESS.value,
                    Appointment.id != exclude_id,
                )
                .limit(1)
            ),
        )
        return result.scalar_one_or_none() is not None

    async def _advisories(
        self,
        appointment: Appointment,
        day: date,
        start: time,
        duration_minutes: int,
        team_id: Optional[int],
    ) -> ValidationReport:
        report = ValidationReport()
        report.extend(
            await self.unit_balance.check(
                appointment.client_id, appointment.speciality_id, day, duration_minutes
            )
        )
        if team_id is not None:
            report.extend(
                await self.availability.check_working_hours(team_id, day, start, duration_minutes)
            )
        return report

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, appointment_id: int) -> AppointmentResponse:
        return AppointmentResponse.model_validate(await self.load(appointment_id))

    async def history(self, appointment_id: int) -> list[AssignmentHistoryEntry]:
        await self.load(appointment_id)
        return await self.ledger.list(appointment_id)

    # ------------------------------------------------------------------
    # Field commands
    # ------------------------------------------------------------------

    async def start(
        self,
        appointment_id: int,
        actor: ActorContext,
        gps: Optional[GPSCapture] = None,
        location: Optional[LocationOutcome] = None,
    ) -> CommandResponse:
        async with self._command(Command.START, appointment_id, actor) as log:
            appointment = await self.load(appointment_id)
            transition = self._guard(Command.START, appointment, actor)
            if appointment.team_id is None:
                raise GuardViolation(
                    "Open shifts must be assigned before they can be started",
                    code="no_team_assigned",
                )
            if not (actor.is_admin or actor.is_assigned_to(appointment.team_id)):
                raise GuardViolation(
                    "Only the assigned team member can start this appointment",
                    code="not_assigned",
                    forbidden=True,
                )

            now = self.clock()
            report = ValidationReport()
            try:
                active = await self._has_active_visit(appointment.team_id, appointment.id)
            except ValidationUnavailable as e:
                report.add(_unavailable(e))
                active = False
            report.extend(field_rules.start_window_issues(appointment, now, active))
            field_rules.enforce(report)

            outcome = verify_location(appointment, gps, location)
            from_status = appointment.status
            await self._apply(
                appointment,
                {
                    "status": transition.target_for(appointment.current_status).value,
                    "started_at": now,
                },
            )
            await self.ledger.append(
                appointment.id,
                HistoryAction.STARTED,
                actor,
                team_id=appointment.team_id,
                location=outcome,
                timestamp=now,
            )
            log.log(
                "appointment_started",
                team_id=appointment.team_id,
                location_verified=outcome.verified if outcome else None,
            )
            return await self._finish(Command.START, appointment, log, from_status, report)

    async def complete(
        self,
        appointment_id: int,
        actor: ActorContext,
        notes: Optional[str] = None,
        gps: Optional[GPSCapture] = None,
        location: Optional[LocationOutcome] = None,
    ) -> CommandResponse:
        async with self._command(Command.COMPLETE, appointment_id, actor) as log:
            appointment = await self.load(appointment_id)
            transition = self._guard(Command.COMPLETE, appointment, actor)
            if not (actor.is_admin or actor.is_assigned_to(appointment.team_id)):
                raise GuardViolation(
                    "Only the assigned team member can complete this appointment",
                    code="not_assigned",
                    forbidden=True,
                )

            now = self.clock()
            report, actual_minutes = field_rules.completion_issues(appointment, now)
            outcome = verify_location(appointment, gps, location)
            from_status = appointment.status
            await self._apply(
                appointment,
                {
                    "status": transition.target_for(appointment.current_status).value,
                    "completed_at": now,
                    "completion_notes": notes,
                },
            )
            await self.ledger.append(
                appointment.id,
                HistoryAction.COMPLETED,
                actor,
                notes=notes,
                team_id=appointment.team_id,
                location=outcome,
                actual_duration_minutes=actual_minutes,
                timestamp=now,
            )
            return await self._finish(Command.COMPLETE, appointment, log, from_status, report)

    async def assign_to_self(self, appointment_id: int, actor: ActorContext) -> CommandResponse:
        async with self._command(Command.ASSIGN_TO_SELF, appointment_id, actor) as log:
            appointment = await self.load(appointment_id)
            transition = self._guard(Command.ASSIGN_TO_SELF, appointment, actor)
            if not actor.is_staff or actor.team_id is None:
                raise GuardViolation(
                    "Only team members can assign appointments to themselves",
                    code="not_staff",
                    forbidden=True,
                )
            if appointment.team_id is not None:
                raise GuardViolation(
                    "Appointment already has a team member assigned", code="already_assigned"
                )

            keys = [party_key("team", actor.team_id, appointment.date)]
            async with booking_locks(self.db, keys):
                now = self.clock()
                report = ValidationReport()
                try:
                    qualified = await self.availability.is_qualified(
                        actor.team_id, appointment.speciality_id
                    )
                except ValidationUnavailable as e:
                    report.add(_unavailable(e))
                    qualified = True
                report.extend(field_rules.self_assign_issues(appointment, now, qualified))
                field_rules.enforce(report)

                conflicts = await self.conflicts.find_conflicts(
                    appointment.date,
                    appointment.scheduled_start.time(),
                    appointment.duration_minutes,
                    client_id=None,
                    team_id=actor.team_id,
                    exclude_appointment_id=appointment.id,
                )
                if conflicts.has_conflict:
                    raise ConflictDetected(
                        "This open shift overlaps one of your existing appointments",
                        conflicts.conflicts,
                    )

                from_status = appointment.status
                await self._apply(
                    appointment,
                    {
                        "team_id": actor.team_id,
                        "status": transition.target_for(appointment.current_status).value,
                    },
                )
                await self.ledger.append(
                    appointment.id,
                    HistoryAction.ASSIGNED,
                    actor,
                    reason="self-assigned",
                    team_id=actor.team_id,
                    timestamp=now,
                )
                return await self._finish(
                    Command.ASSIGN_TO_SELF, appointment, log, from_status, report
                )

    # ------------------------------------------------------------------
    # Administrative commands
    # ------------------------------------------------------------------

    async def cancel(self, appointment_id: int, actor: ActorContext, reason: str) -> CommandResponse:
        async with self._command(Command.CANCEL, appointment_id, actor) as log:
            appointment = await self.load(appointment_id)
            transition = self._guard(Command.CANCEL, appointment, actor)
            reason = (reason or "").strip()
            if not reason:
                raise GuardViolation("A cancellation reason is required", code="reason_required")

            now = self.clock()
            from_status = appointment.status
            await self._apply(
                appointment,
                {
                    "status": transition.target_for(appointment.current_status).value,
                    "cancelled_at": now,
                    "cancellation_reason": reason,
                },
            )
            await self.ledger.append(
                appointment.id,
                HistoryAction.CANCELLED,
                actor,
                reason=reason,
                team_id=appointment.team_id,
                timestamp=now,
            )
            return await self._finish(Command.CANCEL, appointment, log, from_status)

    async def delete(self, appointment_id: int, actor: ActorContext) -> CommandResponse:
        async with self._command(Command.DELETE, appointment_id, actor) as log:
            appointment = await self.load(appointment_id)
            transition = self._guard(Command.DELETE, appointment, actor)
            from_status = appointment.status
            await self._apply(
                appointment,
                {"status": transition.target_for(appointment.current_status).value},
            )
            return await self._finish(Command.DELETE, appointment, log, from_status)

    async def override_times(
        self,
        appointment_id: int,
        actor: ActorContext,
        started_at: datetime,
        completed_at: Optional[datetime] = None,
        reason: str = "",
    ) -> CommandResponse:
        async with self._command(Command.OVERRIDE_TIMES, appointment_id, actor) as log:
            appointment = await self.load(appointment_id)
            self._guard(Command.OVERRIDE_TIMES, appointment, actor)
            reason = (reason or "").strip()
            if not reason:
                raise GuardViolation(
                    "A reason is required to override appointment times", code="reason_required"
                )

            started_at = to_local_naive(started_at)
            completed_at = to_local_naive(completed_at) if completed_at else None
            in_progress = appointment.current_status == AppointmentStatus.IN_PROGRESS

            if in_progress and completed_at is not None:
                raise ValidationBlocking(
                    "An appointment in progress has no completion time to override",
                    code="completion_time_not_allowed",
                )
            for value in (started_at, completed_at):
                if value is not None and value.date() != appointment.date:
                    raise ValidationBlocking(
                        f"Override times must fall on the appointment date "
                        f"{appointment.date.isoformat()}",
                        code="override_wrong_day",
                    )

            end = completed_at if completed_at is not None else appointment.completed_at
            if in_progress:
                end = None
            report = self.override_validator.validate(
                started_at.time(),
                end.time() if end is not None else None,
                appointment.units_required * UNIT_MINUTES,
            )
            field_rules.require_clean(report, strict=False)

            after: Dict[str, Any] = {"started_at": started_at}
            if completed_at is not None:
                after["completed_at"] = completed_at
            changes = diff_fields(
                {"started_at": appointment.started_at, "completed_at": appointment.completed_at},
                after,
            )
            if not changes:
                raise ValidationBlocking(
                    "Override times are identical to the recorded times",
                    code="override_no_change",
                )

            now = self.clock()
            from_status = appointment.status
            await self._apply(appointment, {name: diff["to"] for name, diff in changes.items()})
            await self.ledger.append(
                appointment.id,
                HistoryAction.TIME_OVERRIDE,
                actor,
                reason=reason,
                changes=changes,
                team_id=appointment.team_id,
                timestamp=now,
            )
            return await self._finish(Command.OVERRIDE_TIMES, appointment, log, from_status, report)

    async def reschedule(
        self,
        appointment_id: int,
        actor: ActorContext,
        day: date,
        start: time,
        duration_minutes: Optional[int] = None,
        force: bool = False,
        strict: bool = False,
        reason: Optional[str] = None,
    ) -> CommandResponse:
        async with self._command(Command.RESCHEDULE, appointment_id, actor) as log:
            appointment = await self.load(appointment_id)
            self._guard(Command.RESCHEDULE, appointment, actor)

            duration = duration_minutes or appointment.duration_minutes
            new_start, new_end = window(day, start, duration)
            if new_end > at(day, time(0)) + timedelta(days=1):
                raise ValidationBlocking(
                    "Appointment must end on the same day it starts", code="crosses_midnight"
                )

            changes = diff_fields(
                {
                    "date": appointment.date,
                    "scheduled_start": appointment.scheduled_start,
                    "scheduled_end": appointment.scheduled_end,
                    "duration_minutes": appointment.duration_minutes,
                },
                {
                    "date": day,
                    "scheduled_start": new_start,
                    "scheduled_end": new_end,
                    "duration_minutes": duration,
                },
            )
            if not changes:
                raise ValidationBlocking(
                    "Appointment is already scheduled at that time", code="reschedule_no_change"
                )

            # A linked ride must still cover the new start
            if appointment.nemt_occurrence_id is not None:
                occurrence = await self.db.get(NEMTOccurrence, appointment.nemt_occurrence_id)
                if occurrence is not None:
                    self._require_nemt_fit(occurrence, day, start)

            keys = [party_key("client", appointment.client_id, day)]
            if appointment.team_id is not None:
                keys.append(party_key("team", appointment.team_id, day))

            async with booking_locks(self.db, keys):
                conflicts = await self.conflicts.find_conflicts(
                    day,
                    start,
                    duration,
                    client_id=appointment.client_id,
                    team_id=appointment.team_id,
                    exclude_appointment_id=appointment.id,
                )
                if conflicts.has_conflict and not force:
                    raise ConflictDetected(
                        "The new time overlaps existing appointments", conflicts.conflicts
                    )
                report = await self._advisories(
                    appointment, day, start, duration, appointment.team_id
                )
                field_rules.require_clean(report, strict)

                now = self.clock()
                from_status = appointment.status
                await self._apply(
                    appointment,
                    {
                        "date": day,
                        "scheduled_start": new_start,
                        "scheduled_end": new_end,
                        "duration_minutes": duration,
                    },
                )
                await self.ledger.append(
                    appointment.id,
                    HistoryAction.TIME_OVERRIDE,
                    actor,
                    reason=reason or "rescheduled",
                    changes=changes,
                    team_id=appointment.team_id,
                    timestamp=now,
                )
                if conflicts.has_conflict:
                    await self.ledger.append_conflict_override(
                        appointment.id, actor, conflicts, reason, appointment.team_id, now
                    )
                return await self._finish(
                    Command.RESCHEDULE, appointment, log, from_status, report, conflicts
                )

    async def reassign(
        self,
        appointment_id: int,
        actor: ActorContext,
        team_id: int,
        reason: Optional[str] = None,
        force: bool = False,
    ) -> CommandResponse:
        async with self._command(Command.REASSIGN, appointment_id, actor) as log:
            appointment = await self.load(appointment_id)
            transition = self._guard(Command.REASSIGN, appointment, actor)
            if appointment.team_id == team_id:
                raise GuardViolation(
                    f"Appointment is already assigned to team member {team_id}",
                    code="already_assigned",
                )

            keys = [party_key("team", team_id, appointment.date)]
            async with booking_locks(self.db, keys):
                conflicts = await self.conflicts.find_conflicts(
                    appointment.date,
                    appointment.scheduled_start.time(),
                    appointment.duration_minutes,
                    client_id=None,
                    team_id=team_id,
                    exclude_appointment_id=appointment.id,
                )
                if conflicts.has_conflict and not force:
                    raise ConflictDetected(
                        f"Team member {team_id} is already booked at this time",
                        conflicts.conflicts,
                    )

                report = ValidationReport()
                report.extend(
                    await self.availability.check_qualification(team_id, appointment.speciality_id)
                )
                report.extend(
                    await self.availability.check_working_hours(
                        team_id,
                        appointment.date,
                        appointment.scheduled_start.time(),
                        appointment.duration_minutes,
                    )
                )

                now = self.clock()
                from_status = appointment.status
                previous_team = appointment.team_id
                await self._apply(
                    appointment,
                    {
                        "team_id": team_id,
                        "status": transition.target_for(appointment.current_status).value,
                    },
                )
                await self.ledger.append(
                    appointment.id,
                    HistoryAction.TEAM_SWITCH,
                    actor,
                    reason=reason,
                    changes={"team_id": {"from": previous_team, "to": team_id}},
                    team_id=team_id,
                    timestamp=now,
                )
                if conflicts.has_conflict:
                    await self.ledger.append_conflict_override(
                        appointment.id, actor, conflicts, reason, team_id, now
                    )
                return await self._finish(
                    Command.REASSIGN, appointment, log, from_status, report, conflicts
                )

    # ------------------------------------------------------------------
    # Transportation
    # ------------------------------------------------------------------

    async def _occurrence(self, occurrence_id: int) -> NEMTOccurrence:
        occurrence = await self.db.get(NEMTOccurrence, occurrence_id, populate_existing=True)
        if occurrence is None:
            raise OccurrenceNotFound(occurrence_id)
        return occurrence

    async def _linked_elsewhere(self, occurrence_id: int, appointment_id: int) -> Optional[int]:
        result = await self.db.execute(
            select(Appointment.id)
            .where(
                Appointment.nemt_occurrence_id == occurrence_id,
                Appointment.id != appointment_id,
                Appointment.status.notin_([s.value for s in INACTIVE_STATUSES]),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    def _require_nemt_fit(self, occurrence: NEMTOccurrence, day: date, start: time) -> None:
        check = self.nemt_validator.check_occurrence(occurrence, day, start)
        if check.valid:
            return
        report = ValidationReport()
        report.add(
            ValidationIssue(
                code="nemt_window_mismatch",
                message=check.reason,
                severity=IssueSeverity.ERROR,
                source="nemt_link",
            )
        )
        raise ValidationBlocking(check.reason, report=report, code="nemt_window_mismatch")

    async def link_transportation(
        self, appointment_id: int, actor: ActorContext, occurrence_id: int
    ) -> CommandResponse:
        async with self._command(Command.LINK_TRANSPORTATION, appointment_id, actor) as log:
            async with booking_locks(self.db, [party_key("nemt", occurrence_id)]):
                appointment = await self.load(appointment_id)
                self._guard(Command.LINK_TRANSPORTATION, appointment, actor)
                occurrence = await self._occurrence(occurrence_id)

                if occurrence.is_cancelled:
                    raise ValidationBlocking(
                        f"Transportation occurrence {occurrence_id} is cancelled",
                        code="occurrence_cancelled",
                    )
                holder = await self._linked_elsewhere(occurrence_id, appointment.id)
                if holder is not None:
                    raise GuardViolation(
                        f"Transportation occurrence {occurrence_id} is already linked to "
                        f"appointment {holder}",
                        code="occurrence_already_linked",
                    )

                self._require_nemt_fit(
                    occurrence, appointment.date, appointment.scheduled_start.time()
                )

                if appointment.nemt_occurrence_id == occurrence.id:
                    return self._unchanged(appointment)

                if appointment.nemt_occurrence_id is not None:
                    previous = await self.db.get(NEMTOccurrence, appointment.nemt_occurrence_id)
                    if previous is not None and previous.appointment_id == appointment.id:
                        previous.appointment_id = None

                from_status = appointment.status
                await self._apply(appointment, {"nemt_occurrence_id": occurrence.id})
                occurrence.appointment_id = appointment.id
                log.log("transportation_linked", occurrence_id=occurrence.id, reason=check.reason)
                return await self._finish(
                    Command.LINK_TRANSPORTATION, appointment, log, from_status
                )

    async def unlink_transportation(
        self, appointment_id: int, actor: ActorContext
    ) -> CommandResponse:
        async with self._command(Command.UNLINK_TRANSPORTATION, appointment_id, actor) as log:
            appointment = await self.load(appointment_id)
            self._guard(Command.UNLINK_TRANSPORTATION, appointment, actor)
            if appointment.nemt_occurrence_id is None:
                return self._unchanged(appointment)

            occurrence_id = appointment.nemt_occurrence_id
            from_status = appointment.status
            await self._apply(appointment, {"nemt_occurrence_id": None})
            occurrence = await self.db.get(NEMTOccurrence, occurrence_id)
            if occurrence is not None and occurrence.appointment_id == appointment.id:
                occurrence.appointment_id = None
            log.log("transportation_unlinked", occurrence_id=occurrence_id)
            return await self._finish(
                Command.UNLINK_TRANSPORTATION, appointment, log, from_status
            )
