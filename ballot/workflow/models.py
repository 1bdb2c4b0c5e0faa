"""
Ballot - Workflow Models.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, ClassVar


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class WorkflowStatus(IntEnum):
    """Ordered phases of a ballot. The value is the phase index."""

    REGISTERING_VOTERS = 0
    PROPOSALS_REGISTRATION_STARTED = 1
    PROPOSALS_REGISTRATION_ENDED = 2
    VOTING_SESSION_STARTED = 3
    VOTING_SESSION_ENDED = 4
    VOTES_TALLIED = 5

    @property
    def label(self) -> str:
        """Public phase name, e.g. ``RegisteringVoters``."""
        return "".join(part.capitalize() for part in self.name.split("_"))

    def successor(self) -> WorkflowStatus | None:
        """The next phase, or None once tallied."""
        if self is WorkflowStatus.VOTES_TALLIED:
            return None
        return WorkflowStatus(self + 1)


@dataclass
class Voter:
    """A registered identity and its single ballot."""

    identity: str
    is_registered: bool = False
    has_voted: bool = False
    voted_proposal_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class Proposal:
    id: int
    description: str
    author: str = ""
    vote_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ─── Events ───────────────────────────────────────────────────────────


@dataclass(kw_only=True)
class BallotEvent:
    """Base notification emitted after a committed change."""

    event_type: ClassVar[str] = "BallotEvent"

    caller: str
    timestamp: str = field(default_factory=now_iso)

    def payload(self) -> dict[str, Any]:
        """Event-specific fields, without caller and timestamp."""
        data = asdict(self)
        data.pop("caller")
        data.pop("timestamp")
        return data

    def to_dict(self) -> dict[str, Any]:
        return {"event": self.event_type, **asdict(self)}


@dataclass(kw_only=True)
class WorkflowStatusChange(BallotEvent):
    """Phase transition. Statuses are 0-indexed phase positions."""

    event_type: ClassVar[str] = "WorkflowStatusChange"

    previous_status: int
    new_status: int


@dataclass(kw_only=True)
class VoterRegistered(BallotEvent):
    event_type: ClassVar[str] = "VoterRegistered"

    identity: str


@dataclass(kw_only=True)
class ProposalRegistered(BallotEvent):
    event_type: ClassVar[str] = "ProposalRegistered"

    proposal_id: int
    description: str


@dataclass(kw_only=True)
class Voted(BallotEvent):
    event_type: ClassVar[str] = "Voted"

    voter: str
    proposal_id: int


EVENT_TYPES: dict[str, type[BallotEvent]] = {
    cls.event_type: cls
    for cls in (WorkflowStatusChange, VoterRegistered, ProposalRegistered, Voted)
}
