"""Engine error taxonomy.

Every refusal the engine can produce is one of these exceptions. The HTTP layer
renders them through a single handler registered in ``main.py``; services and
tests work with the exceptions directly.
"""

from typing import Any, Dict, List, Optional

from fastapi import status


class EngineError(Exception):
    """Base class for all engine refusals."""

    code: str = "engine_error"
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def payload(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"detail": self.message, "code": self.code}
        body.update(self.payload())
        return body


class NotFound(EngineError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class AppointmentNotFound(NotFound):
    def __init__(self, appointment_id: int) -> None:
        super().__init__(f"Appointment {appointment_id} not found")
        self.appointment_id = appointment_id


class OccurrenceNotFound(NotFound):
    code = "occurrence_not_found"

    def __init__(self, occurrence_id: int) -> None:
        super().__init__(f"Transportation occurrence {occurrence_id} not found")
        self.occurrence_id = occurrence_id


class GuardViolation(EngineError):
    """Wrong status or insufficient permission for the requested command."""

    code = "guard_violation"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str, code: Optional[str] = None, forbidden: bool = False) -> None:
        super().__init__(message, code)
        self.forbidden = forbidden
        if forbidden:
            self.status_code = status.HTTP_403_FORBIDDEN


class StaleState(EngineError):
    """The appointment changed between the guard check and the write."""

    code = "stale_state"
    status_code = status.HTTP_409_CONFLICT


class ValidationBlocking(EngineError):
    code = "validation_blocking"
    status_code = 422

    def __init__(self, message: str, report: Any = None, code: Optional[str] = None) -> None:
        super().__init__(message, code)
        self.report = report

    def payload(self) -> Dict[str, Any]:
        if self.report is None:
            return {}
        return {"validation": self.report.model_dump()}


class ConflictDetected(EngineError):
    code = "conflict_detected"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str, conflicts: List[Any]) -> None:
        super().__init__(message)
        self.conflicts = conflicts

    def payload(self) -> Dict[str, Any]:
        return {"conflicts": [c.model_dump() for c in self.conflicts]}


class ValidationUnavailable(EngineError):
    """A dependent lookup timed out or failed."""

    code = "validation_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, source: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"{source} lookup is unavailable")
        self.source = source

    def payload(self) -> Dict[str, Any]:
        return {"source": self.source}
