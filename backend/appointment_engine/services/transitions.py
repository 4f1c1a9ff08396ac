"""The appointment transition table.

Every command checks its source status here and nowhere else.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Mapping, Optional

from appointment_engine.models.appointment import TERMINAL_STATUSES, AppointmentStatus as S


class Command(str, Enum):
    START = "start"
    COMPLETE = "complete"
    CANCEL = "cancel"
    ASSIGN_TO_SELF = "assign_to_self"
    DELETE = "delete"
    OVERRIDE_TIMES = "override_times"
    LINK_TRANSPORTATION = "link_transportation"
    UNLINK_TRANSPORTATION = "unlink_transportation"
    RESCHEDULE = "reschedule"
    REASSIGN = "reassign"


@dataclass(frozen=True)
class Transition:
    command: Command
    allowed_from: FrozenSet[S]
    # None keeps the current status
    target: Optional[S] = None
    admin_only: bool = False
    # Status-specific targets that win over ``target``
    promotions: Mapping[S, S] = field(default_factory=dict)

    def allows(self, status: S) -> bool:
        return status in self.allowed_from

    def target_for(self, status: S) -> S:
        if status in self.promotions:
            return self.promotions[status]
        return self.target or status


ALL_STATUSES = frozenset(S)
NON_TERMINAL = ALL_STATUSES - TERMINAL_STATUSES
MOVABLE = frozenset({S.UNASSIGNED, S.SCHEDULED, S.CONFIRMED, S.PENDING, S.LATE})

TRANSITIONS: Dict[Command, Transition] = {
    t.command: t
    for t in (
        Transition(Command.START, frozenset({S.SCHEDULED}), S.IN_PROGRESS),
        Transition(Command.COMPLETE, frozenset({S.IN_PROGRESS}), S.COMPLETED),
        Transition(
            Command.CANCEL,
            frozenset({S.SCHEDULED, S.UNASSIGNED}),
            S.CANCELLED,
            admin_only=True,
        ),
        Transition(Command.ASSIGN_TO_SELF, frozenset({S.UNASSIGNED}), S.SCHEDULED),
        Transition(
            Command.DELETE,
            ALL_STATUSES
            - {S.COMPLETED, S.IN_PROGRESS, S.CANCELLED, S.REJECTED, S.NO_SHOW, S.DELETED},
            S.DELETED,
            admin_only=True,
        ),
        Transition(
            Command.OVERRIDE_TIMES,
            frozenset({S.IN_PROGRESS, S.COMPLETED, S.TERMINATED_BY_CLIENT, S.TERMINATED_BY_STAFF}),
            admin_only=True,
        ),
        Transition(Command.LINK_TRANSPORTATION, NON_TERMINAL),
        Transition(Command.UNLINK_TRANSPORTATION, ALL_STATUSES),
        Transition(Command.RESCHEDULE, MOVABLE, admin_only=True),
        Transition(
            Command.REASSIGN,
            MOVABLE,
            admin_only=True,
            promotions={S.UNASSIGNED: S.SCHEDULED},
        ),
    )
}


def transition_for(command: Command) -> Transition:
    return TRANSITIONS[command]
