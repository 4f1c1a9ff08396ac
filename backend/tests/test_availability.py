from datetime import time

import pytest

from appointment_engine.models.appointment import AppointmentStatus
from appointment_engine.models.team import TeamQualification, TeamWorkingHours, Weekday
from appointment_engine.services.availability import AvailabilityResolver, generate_slots

from conftest import VISIT_DAY, add_appointment


async def seed_hours(db, team_id=7, weekday=Weekday.MONDAY, start=time(9, 0), end=time(12, 0)):
    db.add(TeamWorkingHours(team_id=team_id, day_of_week=weekday.value, start_time=start, end_time=end))
    await db.commit()


def starts(response):
    return [slot.start for slot in response.available_slots]


def test_slots_fit_inside_the_window():
    slots = generate_slots(VISIT_DAY, time(9, 0), time(10, 0), 30, 15)
    assert [(s.start, s.end) for s in slots] == [
        ("09:00", "09:30"),
        ("09:15", "09:45"),
        ("09:30", "10:00"),
    ]


def test_weekday_mapping_starts_on_monday():
    assert Weekday.from_index(VISIT_DAY.weekday()) == Weekday.MONDAY


@pytest.mark.asyncio
async def test_day_off_has_no_availability(db):
    await seed_hours(db, weekday=Weekday.TUESDAY)

    response = await AvailabilityResolver(db).resolve(7, VISIT_DAY)

    assert response.has_availability is False
    assert response.reason == "not_working"
    assert response.available_slots == []


@pytest.mark.asyncio
async def test_existing_bookings_remove_overlapping_slots(db):
    await seed_hours(db)
    busy = await add_appointment(db, start="10:00", duration_minutes=60)
    await add_appointment(db, start="09:00", status=AppointmentStatus.CANCELLED)

    response = await AvailabilityResolver(db).resolve(7, VISIT_DAY, duration_minutes=60)

    assert starts(response) == ["09:00", "11:00"]
    assert [b.appointment_id for b in response.busy_slots] == [busy.id]
    assert response.working_hours.start == "09:00"
    assert response.working_hours.end == "12:00"


@pytest.mark.asyncio
async def test_excluded_appointment_frees_its_slot(db):
    await seed_hours(db)
    busy = await add_appointment(db, start="10:00", duration_minutes=60)

    response = await AvailabilityResolver(db).resolve(
        7, VISIT_DAY, exclude_appointment_id=busy.id, duration_minutes=60
    )

    assert "10:00" in starts(response)
    assert response.busy_slots == []


@pytest.mark.asyncio
async def test_other_members_bookings_do_not_block(db):
    await seed_hours(db)
    await add_appointment(db, start="09:00", team_id=8, client_id=101)

    response = await AvailabilityResolver(db).resolve(7, VISIT_DAY, duration_minutes=180)
    assert starts(response) == ["09:00"]


@pytest.mark.asyncio
async def test_fully_booked_day(db):
    await seed_hours(db, end=time(10, 0))
    await add_appointment(db, start="09:00", duration_minutes=60)

    response = await AvailabilityResolver(db).resolve(7, VISIT_DAY)

    assert response.has_availability is False
    assert response.reason == "fully_booked"


@pytest.mark.asyncio
async def test_unqualified_member_has_no_availability(db):
    await seed_hours(db)
    db.add(TeamQualification(team_id=7, speciality_id=4))
    await db.commit()

    response = await AvailabilityResolver(db).resolve(7, VISIT_DAY, speciality_id=3)

    assert response.has_availability is False
    assert response.reason == "not_qualified"


@pytest.mark.asyncio
async def test_member_without_qualification_records_is_unrestricted(db):
    await seed_hours(db)

    response = await AvailabilityResolver(db).resolve(7, VISIT_DAY, speciality_id=3)
    assert response.has_availability


@pytest.mark.asyncio
async def test_open_shift_uses_default_day_without_filtering(db):
    await add_appointment(db, start="07:00", team_id=None, status=AppointmentStatus.UNASSIGNED)

    response = await AvailabilityResolver(db).resolve(None, VISIT_DAY, duration_minutes=15)

    assert response.available_slots[0].start == "07:00"
    assert response.available_slots[-1].start == "19:45"
    assert len(response.available_slots) == 52
    assert response.busy_slots == []


@pytest.mark.asyncio
async def test_working_hours_check_is_advisory(db):
    await seed_hours(db)
    resolver = AvailabilityResolver(db)

    inside = await resolver.check_working_hours(7, VISIT_DAY, time(9, 0), 180)
    outside = await resolver.check_working_hours(7, VISIT_DAY, time(11, 30), 60)

    assert inside.is_clean
    assert outside.codes() == ["outside_working_hours"]
    assert not outside.has_blocking
