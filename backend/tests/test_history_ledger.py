import json
from datetime import timedelta

import pytest

from appointment_engine.models.assignment_history import (
    ActorType,
    AssignmentHistoryEntry,
    HistoryAction,
)
from appointment_engine.schemas.appointment import LocationOutcome
from appointment_engine.schemas.history import HistoryEntryResponse
from appointment_engine.services.history_ledger import AssignmentHistoryLedger, diff_fields
from appointment_engine.utils.security import ActorContext

from conftest import ADMIN, STAFF, add_appointment, at


def test_diff_fields_keeps_only_changes():
    diff = diff_fields(
        {"started_at": at("09:00"), "completed_at": at("10:00")},
        {"started_at": at("09:05"), "completed_at": at("10:00")},
    )
    assert diff == {"started_at": {"from": at("09:00"), "to": at("09:05")}}


@pytest.mark.asyncio
async def test_entries_are_listed_newest_first(db):
    appointment = await add_appointment(db)
    ledger = AssignmentHistoryLedger(db)

    first = await ledger.append(appointment.id, HistoryAction.ASSIGNED, ADMIN, timestamp=at("08:00"))
    second = await ledger.append(appointment.id, HistoryAction.STARTED, STAFF, timestamp=at("09:00"))
    # Same timestamp as ``second``; arrival order breaks the tie.
    third = await ledger.append(appointment.id, HistoryAction.TIME_OVERRIDE, ADMIN, timestamp=at("09:00"))
    await db.commit()

    entries = await ledger.list(appointment.id)
    assert [e.id for e in entries] == [third.id, second.id, first.id]


@pytest.mark.asyncio
async def test_entries_are_scoped_to_their_appointment(db):
    one = await add_appointment(db)
    two = await add_appointment(db, start="13:00")
    ledger = AssignmentHistoryLedger(db)

    await ledger.append(one.id, HistoryAction.ASSIGNED, ADMIN)
    await ledger.append(two.id, HistoryAction.ASSIGNED, ADMIN)
    await db.commit()

    assert len(await ledger.list(one.id)) == 1


@pytest.mark.asyncio
async def test_append_records_actor_diff_and_location(db):
    appointment = await add_appointment(db)
    ledger = AssignmentHistoryLedger(db)

    entry = await ledger.append(
        appointment.id,
        HistoryAction.TIME_OVERRIDE,
        ADMIN,
        reason="clocked in late",
        changes={"started_at": {"from": at("09:00"), "to": at("09:10")}},
        location=LocationOutcome(verified=True, distance_meters=12.5),
        timestamp=at("12:00"),
    )
    await db.commit()

    assert entry.actor_type == ActorType.USER.value
    assert entry.actor_name == "Ada Admin"
    assert json.loads(entry.changes) == {
        "started_at": {"from": "2025-03-17T09:00:00", "to": "2025-03-17T09:10:00"}
    }
    assert entry.location_verified is True
    assert entry.distance_meters == 12.5

    response = HistoryEntryResponse.model_validate(entry)
    assert response.changes["started_at"]["to"] == "2025-03-17T09:10:00"


@pytest.mark.asyncio
async def test_actor_types(db):
    appointment = await add_appointment(db)
    ledger = AssignmentHistoryLedger(db)

    staff_entry = await ledger.append(appointment.id, HistoryAction.STARTED, STAFF)
    system_entry = await ledger.append(appointment.id, HistoryAction.CANCELLED, ActorContext.system())

    assert staff_entry.actor_type == ActorType.TEAM.value
    assert system_entry.actor_type == ActorType.SYSTEM.value
    assert system_entry.actor_id is None


@pytest.mark.asyncio
async def test_entries_refuse_updates(db):
    appointment = await add_appointment(db)
    entry = await AssignmentHistoryLedger(db).append(appointment.id, HistoryAction.ASSIGNED, ADMIN)
    await db.commit()

    entry.reason = "rewritten"
    with pytest.raises(PermissionError):
        await db.flush()
    await db.rollback()


@pytest.mark.asyncio
async def test_entries_refuse_deletes(db):
    appointment = await add_appointment(db)
    entry = await AssignmentHistoryLedger(db).append(appointment.id, HistoryAction.ASSIGNED, ADMIN)
    await db.commit()
    entry_id = entry.id

    await db.delete(entry)
    with pytest.raises(PermissionError):
        await db.flush()
    await db.rollback()

    remaining = await db.get(AssignmentHistoryEntry, entry_id)
    assert remaining is not None


def test_ledger_has_no_mutation_api():
    assert not hasattr(AssignmentHistoryLedger, "update")
    assert not hasattr(AssignmentHistoryLedger, "delete")


@pytest.mark.asyncio
async def test_conflict_override_annotation(db):
    from appointment_engine.schemas.validation import ConflictEntry, ConflictResult, ConflictType

    appointment = await add_appointment(db)
    conflicts = ConflictResult(
        conflicts=[
            ConflictEntry(
                type=ConflictType.CLIENT_CONFLICT,
                conflicting_appointment_id=99,
                message="Client 100 already has appointment #99",
                start_time=at("09:00"),
                end_time=at("09:00") + timedelta(hours=1),
                status="scheduled",
            )
        ]
    )

    entry = await AssignmentHistoryLedger(db).append_conflict_override(
        appointment.id, ADMIN, conflicts, reason="family request"
    )

    assert entry.action == HistoryAction.TIME_OVERRIDE.value
    assert entry.reason == "conflict override: family request"
    assert json.loads(entry.changes)["conflicting_appointment_ids"]["to"] == [99]
