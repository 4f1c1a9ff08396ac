"""Structured logging utilities."""

import logging
import sys
from typing import Any, Optional

import structlog


def setup_logging(debug: bool = False) -> None:
    """Configure structured logging for the application."""

    log_level = logging.DEBUG if debug else logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer() if debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance for the given name."""
    return structlog.get_logger(name)


class AppointmentLogger:
    """Specialized logger for appointment lifecycle events."""

    def __init__(self, appointment_id: Optional[int], actor_id: Optional[int] = None):
        self.logger = get_logger("engine.appointment")
        self.appointment_id = appointment_id
        self.actor_id = actor_id

    def log(self, event: str, **kwargs: Any) -> None:
        """Log an appointment event."""
        self.logger.info(
            event, appointment_id=self.appointment_id, actor_id=self.actor_id, **kwargs
        )

    def error(self, event: str, **kwargs: Any) -> None:
        """Log an appointment error."""
        self.logger.error(
            event, appointment_id=self.appointment_id, actor_id=self.actor_id, **kwargs
        )

    def transition(self, command: str, from_status: str, to_status: str) -> None:
        """Log an applied status transition."""
        self.logger.info(
            "appointment_transition",
            appointment_id=self.appointment_id,
            actor_id=self.actor_id,
            command=command,
            from_status=from_status,
            to_status=to_status,
        )

    def rejected(self, command: str, code: str, reason: str) -> None:
        """Log a refused command."""
        self.logger.warning(
            "appointment_command_rejected",
            appointment_id=self.appointment_id,
            actor_id=self.actor_id,
            command=command,
            code=code,
            reason=reason,
        )
