"""Backdated time correction checks.

The rules form an ordered list and the first rule that matches wins; later
rules are not evaluated. Keep the order when adding rules, it is observable
in the responses.
"""

from dataclasses import dataclass
from datetime import time
from typing import Callable, Optional, Sequence

from appointment_engine.schemas.validation import IssueSeverity, ValidationIssue, ValidationReport
from appointment_engine.utils.clock import minutes_of

SOURCE = "time_override"

NIGHT_START = 21 * 60
EVENING_START = 18 * 60
EARLY_CUTOFF = 7 * 60
DRIFT_FACTOR = 1.5


def _seconds_of(clock: time) -> int:
    return minutes_of(clock) * 60 + clock.second


@dataclass(frozen=True)
class OverrideWindow:
    start: time
    end: Optional[time]
    planned_minutes: int

    @property
    def start_minutes(self) -> int:
        return minutes_of(self.start)

    @property
    def end_minutes(self) -> Optional[int]:
        return minutes_of(self.end) if self.end is not None else None

    @property
    def actual_seconds(self) -> Optional[int]:
        if self.end is None:
            return None
        return _seconds_of(self.end) - _seconds_of(self.start)

    @property
    def actual_minutes(self) -> Optional[int]:
        seconds = self.actual_seconds
        return seconds // 60 if seconds is not None else None


@dataclass(frozen=True)
class OverrideRule:
    code: str
    severity: IssueSeverity
    applies: Callable[[OverrideWindow], bool]
    message: Callable[[OverrideWindow], str]


def _end_before_start(w: OverrideWindow) -> bool:
    return w.end is not None and w.end < w.start


def _night(w: OverrideWindow) -> bool:
    if w.start_minutes >= NIGHT_START:
        return True
    return w.end is not None and w.end_minutes >= NIGHT_START


def _am_pm_confusion(w: OverrideWindow) -> bool:
    if w.end is None:
        return False
    return (w.start.hour == 11 and w.end.hour < 11) or (w.start.hour == 12 and w.end.hour > 12)


def _evening(w: OverrideWindow) -> bool:
    return w.start_minutes >= EVENING_START


def _early(w: OverrideWindow) -> bool:
    return w.start_minutes < EARLY_CUTOFF


def _duration_drift(w: OverrideWindow) -> bool:
    actual = w.actual_seconds
    if actual is None or w.planned_minutes <= 0:
        return False
    return actual > w.planned_minutes * 60 * DRIFT_FACTOR


OVERRIDE_RULES: Sequence[OverrideRule] = (
    OverrideRule(
        code="end_before_start",
        severity=IssueSeverity.ERROR,
        applies=_end_before_start,
        message=lambda w: "End time cannot be before start time",
    ),
    OverrideRule(
        code="night_override",
        severity=IssueSeverity.CONFIRM,
        applies=_night,
        message=lambda w: (
            "You are setting a night time override. This is unusual for most "
            "appointments. Please double-check if this is correct."
        ),
    ),
    OverrideRule(
        code="am_pm_confusion",
        severity=IssueSeverity.CONFIRM,
        applies=_am_pm_confusion,
        message=lambda w: (
            "Your time selection suggests possible AM/PM confusion. "
            "Please verify the times are correct."
        ),
    ),
    OverrideRule(
        code="evening_start",
        severity=IssueSeverity.ADVISORY,
        applies=_evening,
        message=lambda w: (
            "You are setting an evening start time. Please confirm this is "
            "intentional and matches the actual appointment time."
        ),
    ),
    OverrideRule(
        code="early_start",
        severity=IssueSeverity.ADVISORY,
        applies=_early,
        message=lambda w: (
            "You are setting a very early start time. Please confirm this is "
            "intentional and matches the actual appointment time."
        ),
    ),
    OverrideRule(
        code="duration_drift",
        severity=IssueSeverity.ADVISORY,
        applies=_duration_drift,
        message=lambda w: (
            f"This override is significantly longer ({w.actual_minutes} minutes) "
            f"than the planned duration ({w.planned_minutes} minutes). "
            "Please verify this is correct."
        ),
    ),
)


class TimeOverrideValidator:
    """Stateless checker for proposed start/end clock times."""

    def __init__(self, rules: Sequence[OverrideRule] = OVERRIDE_RULES):
        self.rules = rules

    def validate(self, start: time, end: Optional[time], planned_minutes: int) -> ValidationReport:
        report = ValidationReport()
        window = OverrideWindow(start=start, end=end, planned_minutes=planned_minutes)
        for rule in self.rules:
            if rule.applies(window):
                report.add(
                    ValidationIssue(
                        code=rule.code,
                        message=rule.message(window),
                        severity=rule.severity,
                        source=SOURCE,
                    )
                )
                break
        return report


def validate_override_times(start: time, end: Optional[time], planned_minutes: int) -> ValidationReport:
    return TimeOverrideValidator().validate(start, end, planned_minutes)
