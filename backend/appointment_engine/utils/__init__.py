"""Utils package initialization."""

from appointment_engine.utils.clock import local_now, units_for
from appointment_engine.utils.logging import AppointmentLogger, get_logger, setup_logging
from appointment_engine.utils.security import (
    ActorContext,
    Role,
    decode_actor_token,
    get_current_actor,
)

__all__ = [
    # Security
    "ActorContext",
    "Role",
    "decode_actor_token",
    "get_current_actor",
    # Clock
    "local_now",
    "units_for",
    # Logging
    "get_logger",
    "setup_logging",
    "AppointmentLogger",
]
