import json
from datetime import date, time

import pytest

from appointment_engine.errors import ConflictDetected, GuardViolation, ValidationBlocking
from appointment_engine.models.appointment import AppointmentStatus as S
from appointment_engine.models.assignment_history import HistoryAction
from appointment_engine.models.unit_balance import UnitBalance
from appointment_engine.schemas.appointment import AppointmentCreate, VisitAddress
from appointment_engine.services.booking_service import BookingService
from appointment_engine.services.state_machine import AppointmentStateMachine

from conftest import ADMIN, STAFF, VISIT_DAY, add_appointment, at, fixed_clock


def booking(**overrides):
    data = dict(
        client_id=100,
        team_id=7,
        speciality_id=3,
        date=VISIT_DAY,
        start_time=time(9, 0),
        duration_minutes=60,
    )
    data.update(overrides)
    return AppointmentCreate(**data)


def service(db):
    return BookingService(db, clock=fixed_clock(at("07:00")))


async def seed_balance(db, remaining):
    db.add(
        UnitBalance(
            client_id=100,
            speciality_id=3,
            month_year=date(2025, 3, 1),
            total_allocated=40,
            total_used=40 - remaining,
            total_remaining=remaining,
        )
    )
    await db.commit()


@pytest.mark.asyncio
async def test_booking_with_member_is_scheduled(db):
    result = await service(db).create(booking(), ADMIN)

    appointment = result.appointment
    assert appointment.status == S.SCHEDULED.value
    assert appointment.version == 1
    assert appointment.units_required == 4
    assert appointment.scheduled_end == at("10:00")

    entries = await AppointmentStateMachine(db).history(appointment.id)
    assert [(e.action, e.team_id) for e in entries] == [(HistoryAction.ASSIGNED.value, 7)]


@pytest.mark.asyncio
async def test_booking_without_member_is_an_open_shift(db):
    result = await service(db).create(booking(team_id=None), ADMIN)

    assert result.appointment.status == S.UNASSIGNED.value
    assert result.appointment.team_id is None
    assert await AppointmentStateMachine(db).history(result.appointment.id) == []


@pytest.mark.asyncio
async def test_booking_snapshots_the_address(db):
    address = VisitAddress(street="1 Pike St", city="Seattle", latitude=47.6, longitude=-122.3)

    result = await service(db).create(booking(address=address, notes="Ring twice"), ADMIN)

    assert result.appointment.address_city == "Seattle"
    assert result.appointment.address_latitude == 47.6
    assert result.appointment.notes == "Ring twice"


@pytest.mark.asyncio
async def test_insufficient_units_do_not_block_booking(db):
    await seed_balance(db, remaining=8)

    result = await service(db).create(booking(duration_minutes=135), ADMIN)

    assert result.appointment.status == S.SCHEDULED.value
    assert "insufficient_units" in result.validation.codes()
    assert not result.validation.has_blocking


@pytest.mark.asyncio
async def test_strict_booking_refuses_advisories(db):
    await seed_balance(db, remaining=8)

    with pytest.raises(ValidationBlocking) as exc:
        await service(db).create(booking(team_id=None, duration_minutes=135, strict=True), ADMIN)

    assert exc.value.code == "strict_validation"
    assert exc.value.report.codes() == ["insufficient_units"]


@pytest.mark.asyncio
async def test_overlapping_booking_is_refused(db):
    existing = await add_appointment(db, start="09:30", client_id=200)

    with pytest.raises(ConflictDetected) as exc:
        await service(db).create(booking(), ADMIN)

    assert [c.conflicting_appointment_id for c in exc.value.conflicts] == [existing.id]


@pytest.mark.asyncio
async def test_back_to_back_booking_is_allowed(db):
    await add_appointment(db, start="08:00", client_id=200)

    result = await service(db).create(booking(), ADMIN)
    assert result.conflicts == []


@pytest.mark.asyncio
async def test_forced_booking_is_annotated(db):
    existing = await add_appointment(db, start="09:30", client_id=200)

    result = await service(db).create(booking(force=True, reason="urgent visit"), ADMIN)

    assert [c.conflicting_appointment_id for c in result.conflicts] == [existing.id]
    entries = await AppointmentStateMachine(db).history(result.appointment.id)
    override = next(e for e in entries if e.action == HistoryAction.TIME_OVERRIDE.value)
    assert override.reason == "conflict override: urgent visit"
    assert json.loads(override.changes)["conflicting_appointment_ids"]["to"] == [existing.id]


@pytest.mark.asyncio
async def test_only_admins_book(db):
    with pytest.raises(GuardViolation) as exc:
        await service(db).create(booking(), STAFF)

    assert exc.value.forbidden


def test_booking_must_end_the_same_day():
    with pytest.raises(ValueError):
        booking(start_time=time(23, 30), duration_minutes=60)
