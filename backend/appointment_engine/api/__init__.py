"""API package initialization."""

from appointment_engine.api.appointments import router as appointments_router
from appointment_engine.api.clients import router as clients_router
from appointment_engine.api.team import router as team_router

__all__ = [
    "appointments_router",
    "clients_router",
    "team_router",
]
