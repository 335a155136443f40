"""Round lifecycle: statuses, legacy status mapping and transition guards.

Main path: voting → closed → selected → watched → rated. A pick can also be
made straight from voting. Rounds abandoned without a pick go to discarded
from voting or closed. Undoing "watched" returns the round to selected.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from movienight.errors import ValidationError
from movienight.models.tables import Round


class RoundStatus(str, Enum):
    VOTING = "voting"
    CLOSED = "closed"
    SELECTED = "selected"
    WATCHED = "watched"
    RATED = "rated"
    DISCARDED = "discarded"


# Historical persisted values and the status they mean today
LEGACY_STATUSES = {
    "picked": RoundStatus.SELECTED.value,
}

TRANSITIONS: dict[RoundStatus, frozenset[RoundStatus]] = {
    RoundStatus.VOTING: frozenset({RoundStatus.CLOSED, RoundStatus.SELECTED, RoundStatus.DISCARDED}),
    RoundStatus.CLOSED: frozenset({RoundStatus.SELECTED, RoundStatus.DISCARDED}),
    RoundStatus.SELECTED: frozenset({RoundStatus.WATCHED}),
    RoundStatus.WATCHED: frozenset({RoundStatus.RATED, RoundStatus.SELECTED}),
    RoundStatus.RATED: frozenset(),
    RoundStatus.DISCARDED: frozenset(),
}


def normalize_status(status: str) -> str:
    """Map a stored status to the current vocabulary. Unknown values pass through."""
    return LEGACY_STATUSES.get(status, status)


def predecessors(target: RoundStatus) -> list[RoundStatus]:
    """Statuses from which `target` can be reached, in lifecycle order."""
    return [s for s in RoundStatus if target in TRANSITIONS[s]]


def can_transition(current: str, target: RoundStatus) -> bool:
    try:
        status = RoundStatus(normalize_status(current))
    except ValueError:
        return False
    return target in TRANSITIONS[status]


def require_transition(current: str, target: RoundStatus) -> None:
    """Raise ValidationError naming the required predecessor when `current → target` is illegal."""
    if can_transition(current, target):
        return
    required = " or ".join(f"'{s.value}'" for s in predecessors(target))
    raise ValidationError(
        f"Round is in '{normalize_status(current)}' status; "
        f"moving to '{target.value}' requires {required}",
        status=normalize_status(current),
        required_status=[s.value for s in predecessors(target)],
    )


@dataclass
class RoundView:
    """A round as handed to callers, with its status in the current vocabulary."""
    round_id: str
    group_id: str
    status: str
    started_by: str
    attendees: Optional[list[str]]
    created_at: datetime
    closed_at: Optional[datetime] = None
    watched_at: Optional[datetime] = None
    rated_at: Optional[datetime] = None
    pick_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: Round) -> "RoundView":
        return cls(
            round_id=row.round_id,
            group_id=row.group_id,
            status=normalize_status(row.status),
            started_by=row.started_by,
            attendees=list(row.attendees) if row.attendees is not None else None,
            created_at=row.created_at,
            closed_at=row.closed_at,
            watched_at=row.watched_at,
            rated_at=row.rated_at,
            pick_id=row.pick_id,
        )

    def to_dict(self) -> dict:
        return {
            "round_id": self.round_id,
            "group_id": self.group_id,
            "status": self.status,
            "started_by": self.started_by,
            "attendees": self.attendees,
            "created_at": _iso(self.created_at),
            "closed_at": _iso(self.closed_at),
            "watched_at": _iso(self.watched_at),
            "rated_at": _iso(self.rated_at),
            "pick_id": self.pick_id,
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
