from datetime import time

import pytest

from appointment_engine.errors import GuardViolation, OccurrenceNotFound, ValidationBlocking
from appointment_engine.models.appointment import AppointmentStatus as S
from appointment_engine.models.nemt_occurrence import NEMTOccurrence, NEMTStatus
from appointment_engine.services.state_machine import AppointmentStateMachine

from conftest import STAFF, VISIT_DAY, add_appointment


async def add_occurrence(db, pickup_from=time(9, 0), pickup_to=time(9, 30), day=VISIT_DAY, **extra):
    occurrence = NEMTOccurrence(
        client_id=100,
        transportation_date=day,
        pickup_time_from=pickup_from,
        pickup_time_to=pickup_to,
        **extra,
    )
    db.add(occurrence)
    await db.commit()
    await db.refresh(occurrence)
    return occurrence


async def reload_occurrence(db, occurrence_id):
    return await db.get(NEMTOccurrence, occurrence_id, populate_existing=True)


@pytest.mark.asyncio
async def test_link_sets_both_sides(db):
    appointment = await add_appointment(db, start="08:05")
    occurrence = await add_occurrence(db)

    result = await AppointmentStateMachine(db).link_transportation(appointment.id, STAFF, occurrence.id)

    assert result.appointment.nemt_occurrence_id == occurrence.id
    assert result.appointment.version == 2
    assert (await reload_occurrence(db, occurrence.id)).appointment_id == appointment.id


@pytest.mark.asyncio
async def test_link_outside_pickup_window_is_blocking(db):
    appointment = await add_appointment(db, start="07:59")
    occurrence = await add_occurrence(db)
    sm = AppointmentStateMachine(db)

    with pytest.raises(ValidationBlocking) as exc:
        await sm.link_transportation(appointment.id, STAFF, occurrence.id)

    assert exc.value.code == "nemt_window_mismatch"
    assert exc.value.report.codes() == ["nemt_window_mismatch"]
    assert (await sm.load(appointment.id)).nemt_occurrence_id is None
    assert (await reload_occurrence(db, occurrence.id)).appointment_id is None


@pytest.mark.asyncio
async def test_link_refuses_cancelled_occurrence(db):
    appointment = await add_appointment(db)
    occurrence = await add_occurrence(db, status=NEMTStatus.CANCELLED.value)

    with pytest.raises(ValidationBlocking) as exc:
        await AppointmentStateMachine(db).link_transportation(appointment.id, STAFF, occurrence.id)

    assert exc.value.code == "occurrence_cancelled"


@pytest.mark.asyncio
async def test_occurrence_has_a_single_active_holder(db):
    first = await add_appointment(db)
    second = await add_appointment(db, client_id=101, team_id=8)
    occurrence = await add_occurrence(db)
    sm = AppointmentStateMachine(db)

    await sm.link_transportation(first.id, STAFF, occurrence.id)
    with pytest.raises(GuardViolation) as exc:
        await sm.link_transportation(second.id, STAFF, occurrence.id)

    assert exc.value.code == "occurrence_already_linked"
    assert (await sm.load(second.id)).nemt_occurrence_id is None


@pytest.mark.asyncio
async def test_cancelled_holder_releases_occurrence(db):
    occurrence = await add_occurrence(db)
    await add_appointment(db, status=S.CANCELLED, nemt_occurrence_id=occurrence.id)
    second = await add_appointment(db, client_id=101)

    result = await AppointmentStateMachine(db).link_transportation(second.id, STAFF, occurrence.id)
    assert result.appointment.nemt_occurrence_id == occurrence.id


@pytest.mark.asyncio
async def test_relinking_moves_off_previous_occurrence(db):
    appointment = await add_appointment(db)
    old = await add_occurrence(db)
    new = await add_occurrence(db, pickup_from=time(8, 30), pickup_to=time(9, 0))
    sm = AppointmentStateMachine(db)

    await sm.link_transportation(appointment.id, STAFF, old.id)
    result = await sm.link_transportation(appointment.id, STAFF, new.id)

    assert result.appointment.nemt_occurrence_id == new.id
    assert (await reload_occurrence(db, old.id)).appointment_id is None
    assert (await reload_occurrence(db, new.id)).appointment_id == appointment.id


@pytest.mark.asyncio
async def test_linking_same_occurrence_twice_is_a_no_op(db):
    appointment = await add_appointment(db)
    occurrence = await add_occurrence(db)
    sm = AppointmentStateMachine(db)

    await sm.link_transportation(appointment.id, STAFF, occurrence.id)
    again = await sm.link_transportation(appointment.id, STAFF, occurrence.id)

    assert again.appointment.version == 2


@pytest.mark.asyncio
async def test_link_refused_for_terminal_appointment(db):
    appointment = await add_appointment(db, status=S.COMPLETED)
    occurrence = await add_occurrence(db)

    with pytest.raises(GuardViolation) as exc:
        await AppointmentStateMachine(db).link_transportation(appointment.id, STAFF, occurrence.id)

    assert exc.value.code == "invalid_status"


@pytest.mark.asyncio
async def test_link_unknown_occurrence(db):
    appointment = await add_appointment(db)

    with pytest.raises(OccurrenceNotFound):
        await AppointmentStateMachine(db).link_transportation(appointment.id, STAFF, 404)


@pytest.mark.asyncio
async def test_unlink_clears_both_sides(db):
    appointment = await add_appointment(db)
    occurrence = await add_occurrence(db)
    sm = AppointmentStateMachine(db)
    await sm.link_transportation(appointment.id, STAFF, occurrence.id)

    result = await sm.unlink_transportation(appointment.id, STAFF)

    assert result.appointment.nemt_occurrence_id is None
    assert result.appointment.version == 3
    assert (await reload_occurrence(db, occurrence.id)).appointment_id is None


@pytest.mark.asyncio
async def test_unlink_is_allowed_from_terminal_status(db):
    occurrence = await add_occurrence(db)
    appointment = await add_appointment(db, status=S.COMPLETED, nemt_occurrence_id=occurrence.id)
    occurrence.appointment_id = appointment.id
    await db.commit()

    result = await AppointmentStateMachine(db).unlink_transportation(appointment.id, STAFF)

    assert result.appointment.nemt_occurrence_id is None
    assert (await reload_occurrence(db, occurrence.id)).appointment_id is None


@pytest.mark.asyncio
async def test_unlink_without_link_is_a_no_op(db):
    appointment = await add_appointment(db)

    result = await AppointmentStateMachine(db).unlink_transportation(appointment.id, STAFF)

    assert result.appointment.version == 1
    assert result.appointment.nemt_occurrence_id is None
