import os
import tempfile
from datetime import date, datetime, time
from typing import Any, Optional

_DB_DIR = tempfile.mkdtemp(prefix="appointment-engine-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'engine.db')}"

import pytest
import pytest_asyncio

from appointment_engine.database import async_session_maker, drop_db, init_db
from appointment_engine.models.appointment import Appointment, AppointmentStatus
from appointment_engine.utils.clock import window
from appointment_engine.utils.security import ActorContext, Role

# Monday
VISIT_DAY = date(2025, 3, 17)

ADMIN = ActorContext(user_id=1, roles=frozenset({Role.ADMIN}), name="Ada Admin")
SUPERADMIN = ActorContext(user_id=2, roles=frozenset({Role.SUPERADMIN}), name="Sue Super")
STAFF = ActorContext(user_id=10, roles=frozenset({Role.STAFF}), team_id=7, name="Sam Staff")
OTHER_STAFF = ActorContext(user_id=11, roles=frozenset({Role.STAFF}), team_id=8, name="Olu Staff")


def at(clock: str, day: date = VISIT_DAY) -> datetime:
    hour, minute = clock.split(":")
    return datetime.combine(day, time(int(hour), int(minute)))


def fixed_clock(moment: datetime):
    return lambda: moment


@pytest_asyncio.fixture
async def database():
    await init_db()
    yield
    await drop_db()


@pytest_asyncio.fixture
async def db(database):
    async with async_session_maker() as session:
        yield session


async def add_appointment(
    session,
    start: str = "09:00",
    duration_minutes: int = 60,
    status: AppointmentStatus = AppointmentStatus.SCHEDULED,
    team_id: Optional[int] = 7,
    client_id: int = 100,
    speciality_id: int = 3,
    day: date = VISIT_DAY,
    **extra: Any,
) -> Appointment:
    begin, end = window(day, start, duration_minutes)
    appointment = Appointment(
        client_id=client_id,
        team_id=team_id,
        speciality_id=speciality_id,
        date=day,
        scheduled_start=begin,
        scheduled_end=end,
        duration_minutes=duration_minutes,
        status=status.value,
        version=1,
        **extra,
    )
    session.add(appointment)
    await session.commit()
    await session.refresh(appointment)
    return appointment
