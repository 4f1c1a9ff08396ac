"""Append-only audit ledger of appointment lifecycle events."""

import json
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from appointment_engine.models.assignment_history import (
    ActorType,
    AssignmentHistoryEntry,
    HistoryAction,
)
from appointment_engine.schemas.appointment import LocationOutcome
from appointment_engine.schemas.validation import ConflictResult
from appointment_engine.utils.clock import local_now
from appointment_engine.utils.logging import get_logger
from appointment_engine.utils.security import ActorContext

logger = get_logger("engine.ledger")

FieldDiff = Dict[str, Dict[str, Any]]


def _encode(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return str(value)


def diff_fields(before: Dict[str, Any], after: Dict[str, Any]) -> FieldDiff:
    """Build ``{"field": {"from": old, "to": new}}`` for every field that changed."""
    return {
        name: {"from": before.get(name), "to": value}
        for name, value in after.items()
        if before.get(name) != value
    }


def actor_type_for(actor: ActorContext) -> ActorType:
    if actor.user_id is None:
        return ActorType.SYSTEM
    if actor.is_staff and not actor.is_admin and actor.team_id is not None:
        return ActorType.TEAM
    return ActorType.USER


class AssignmentHistoryLedger:
    """Writes and reads ledger entries. There is no update or delete."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(
        self,
        appointment_id: int,
        action: HistoryAction,
        actor: ActorContext,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
        changes: Optional[FieldDiff] = None,
        team_id: Optional[int] = None,
        location: Optional[LocationOutcome] = None,
        actual_duration_minutes: Optional[int] = None,
        timestamp: Optional[datetime] = None,
    ) -> AssignmentHistoryEntry:
        entry = AssignmentHistoryEntry(
            appointment_id=appointment_id,
            timestamp=timestamp or local_now(),
            actor_type=actor_type_for(actor).value,
            actor_id=actor.user_id,
            actor_name=actor.name,
            team_id=team_id,
            action=action.value,
            reason=reason,
            notes=notes,
            changes=json.dumps(changes, default=_encode) if changes else None,
            location_verified=location.verified if location else None,
            distance_meters=location.distance_meters if location else None,
            actual_duration_minutes=actual_duration_minutes,
        )
        self.db.add(entry)
        await self.db.flush()

        logger.info(
            "history_entry_appended",
            appointment_id=appointment_id,
            action=action.value,
            actor_id=actor.user_id,
            entry_id=entry.id,
        )
        return entry

    async def list(self, appointment_id: int) -> List[AssignmentHistoryEntry]:
        """Entries for one appointment, newest first."""
        result = await self.db.execute(
            select(AssignmentHistoryEntry)
            .where(AssignmentHistoryEntry.appointment_id == appointment_id)
            .order_by(AssignmentHistoryEntry.timestamp.desc(), AssignmentHistoryEntry.id.desc())
        )
        return list(result.scalars().all())

    async def append_conflict_override(
        self,
        appointment_id: int,
        actor: ActorContext,
        conflicts: ConflictResult,
        reason: Optional[str] = None,
        team_id: Optional[int] = None,
        timestamp: Optional[datetime] = None,
    ) -> AssignmentHistoryEntry:
        """Annotate a booking that was forced through known conflicts."""
        return await self.append(
            appointment_id,
            HistoryAction.TIME_OVERRIDE,
            actor,
            reason=f"conflict override: {reason or 'forced by caller'}",
            notes="; ".join(c.message for c in conflicts.conflicts),
            changes={"conflicting_appointment_ids": {"from": None, "to": conflicts.ids()}},
            team_id=team_id,
            timestamp=timestamp,
        )
