"""Validation and conflict reporting schemas."""

import datetime as dt
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class IssueSeverity(str, Enum):
    ERROR = "error"
    # Blocking-class: surfaced for re-confirmation, does not block.
    CONFIRM = "confirm"
    ADVISORY = "advisory"
    UNAVAILABLE = "unavailable"


class ValidationIssue(BaseModel):
    code: str
    message: str
    severity: IssueSeverity
    source: Optional[str] = None


class ValidationReport(BaseModel):
    """Everything the validators found, collected rather than fail-fast."""

    errors: List[ValidationIssue] = Field(default_factory=list)
    strong_warnings: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)
    unavailable: List[ValidationIssue] = Field(default_factory=list)

    def add(self, issue: ValidationIssue) -> None:
        bucket = {
            IssueSeverity.ERROR: self.errors,
            IssueSeverity.CONFIRM: self.strong_warnings,
            IssueSeverity.ADVISORY: self.warnings,
            IssueSeverity.UNAVAILABLE: self.unavailable,
        }[issue.severity]
        bucket.append(issue)

    def extend(self, other: "ValidationReport") -> None:
        for issue in other.issues():
            self.add(issue)

    def issues(self) -> List[ValidationIssue]:
        return [*self.errors, *self.strong_warnings, *self.warnings, *self.unavailable]

    def codes(self) -> List[str]:
        return [issue.code for issue in self.issues()]

    @property
    def has_blocking(self) -> bool:
        return bool(self.errors)

    @property
    def requires_confirmation(self) -> bool:
        return bool(self.strong_warnings)

    @property
    def is_clean(self) -> bool:
        return not self.issues()


class ConflictType(str, Enum):
    TEAM_CONFLICT = "team_conflict"
    CLIENT_CONFLICT = "client_conflict"


class ConflictEntry(BaseModel):
    type: ConflictType
    conflicting_appointment_id: int
    message: str
    team_id: Optional[int] = None
    client_id: Optional[int] = None
    start_time: datetime
    end_time: datetime
    status: str


class ConflictResult(BaseModel):
    conflicts: List[ConflictEntry] = Field(default_factory=list)

    @property
    def has_conflict(self) -> bool:
        return bool(self.conflicts)

    def ids(self) -> List[int]:
        return [c.conflicting_appointment_id for c in self.conflicts]


class ConflictCheckRequest(BaseModel):
    date: dt.date
    start_time: dt.time
    duration: int = Field(..., gt=0, description="Duration in minutes")
    team_id: Optional[int] = None
    client_id: int
    exclude_appointment_id: Optional[int] = None

    @model_validator(mode="after")
    def _fits_in_day(self) -> "ConflictCheckRequest":
        start_minutes = self.start_time.hour * 60 + self.start_time.minute
        if start_minutes + self.duration > 24 * 60:
            raise ValueError("Appointment must end on the same day it starts")
        return self
