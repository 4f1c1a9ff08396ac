"""Field-staff timing rules for starting, self-assigning and completing visits.

These produce advisory issues. When ``settings.enforce_field_rules`` is on,
``enforce`` turns the first of them into a ``GuardViolation`` instead.
"""

from datetime import datetime, timedelta
from typing import Optional

from appointment_engine.config import settings
from appointment_engine.errors import GuardViolation, ValidationBlocking
from appointment_engine.models.appointment import Appointment
from appointment_engine.schemas.validation import IssueSeverity, ValidationIssue, ValidationReport
from appointment_engine.utils.clock import UNIT_MINUTES

SOURCE = "field_rules"


def _advisory(code: str, message: str) -> ValidationIssue:
    return ValidationIssue(code=code, message=message, severity=IssueSeverity.ADVISORY, source=SOURCE)


def minutes_until(start: datetime, now: datetime) -> int:
    return int((start - now).total_seconds() // 60)


def start_window_issues(
    appointment: Appointment, now: datetime, has_active_visit: bool
) -> ValidationReport:
    report = ValidationReport()

    if now.date() != appointment.date:
        report.add(_advisory("not_today", "Can only start appointments scheduled for today"))
    else:
        early = settings.start_early_window_minutes
        until = minutes_until(appointment.scheduled_start, now)
        if until > early:
            report.add(
                _advisory(
                    "too_early",
                    f"Cannot start appointment more than {early} minutes before scheduled "
                    f"start time. Try again in {until - early} minutes.",
                )
            )

    if now > appointment.scheduled_end:
        report.add(_advisory("already_ended", "Cannot start an appointment that has already ended"))

    if has_active_visit:
        report.add(
            _advisory(
                "has_active_appointment",
                "You have another appointment in progress. Please complete it first.",
            )
        )
    return report


def self_assign_issues(appointment: Appointment, now: datetime, qualified: bool) -> ValidationReport:
    report = ValidationReport()
    if not qualified:
        report.add(_advisory("not_qualified", "You are not qualified for this appointment type"))

    window = settings.self_assign_window_minutes
    if minutes_until(appointment.scheduled_start, now) > window:
        report.add(
            _advisory(
                "too_early",
                f"Can only assign to self within {window} minutes of start time",
            )
        )
    return report


def completion_issues(
    appointment: Appointment, now: datetime
) -> tuple[ValidationReport, Optional[int]]:
    """Early-completion advisory plus the actual visit length in minutes."""
    report = ValidationReport()
    if appointment.started_at is None:
        return report, None

    actual = max(int((now - appointment.started_at).total_seconds() // 60), 0)
    planned = appointment.units_required * UNIT_MINUTES
    if now < appointment.started_at + timedelta(minutes=planned):
        report.add(
            _advisory(
                "early_completion",
                f"Visit is being completed after {actual} minutes; "
                f"{planned} minutes were planned",
            )
        )
    return report, actual


def enforce(report: ValidationReport) -> None:
    """Refuse on the first field-rule issue when field rules are enforced."""
    if not settings.enforce_field_rules:
        return
    for issue in report.issues():
        if issue.source == SOURCE:
            raise GuardViolation(issue.message, code=issue.code)


def require_clean(report: ValidationReport, strict: bool) -> None:
    """Blocking errors always refuse; in strict mode every other issue does too."""
    if report.has_blocking:
        raise ValidationBlocking(report.errors[0].message, report=report)
    if strict and not report.is_clean:
        raise ValidationBlocking(
            "Command refused in strict mode: " + "; ".join(report.codes()),
            report=report,
            code="strict_validation",
        )
