"""
Ballot - Workflow Process.

Single-organizer ballot state machine: voter registration, proposal
collection, a one-person-one-vote session and a deterministic tally.
Persistence hooks in as a recorder that sees each event before it is
applied; transports subscribe to the events after commit.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Any, Callable

from ballot.exceptions import (
    AlreadyRegistered,
    AlreadyVoted,
    InvalidInput,
    InvalidPhase,
    NotTalliedYet,
    NoWinner,
    ProposalNotFound,
    Unauthorized,
)
from ballot.workflow.models import (
    BallotEvent,
    Proposal,
    ProposalRegistered,
    Voted,
    Voter,
    VoterRegistered,
    WorkflowStatus,
    WorkflowStatusChange,
)

logger = logging.getLogger("ballot.workflow")

Subscriber = Callable[[BallotEvent], None]


class BallotProcess:
    """
    Workflow state machine and tally engine for one ballot.

    Phases advance strictly in order:

      RegisteringVoters -> ProposalsRegistrationStarted ->
      ProposalsRegistrationEnded -> VotingSessionStarted ->
      VotingSessionEnded -> VotesTallied

    Every operation receives the caller identity explicitly. Only the
    organizer drives transitions and registers voters; only registered
    voters submit proposals and vote. Authorization is checked before
    the phase, and every precondition is validated before any state
    changes, so a failed call leaves the process untouched.

    Each accepted operation builds its event, hands it to the recorders,
    applies the change and then notifies subscribers. A recorder that
    raises aborts the operation before anything is applied. Mutations
    and queries share one re-entrant lock, held for the whole sequence.
    """

    def __init__(self, organizer: str, require_proposals: bool = True):
        if not organizer or not organizer.strip():
            raise InvalidInput("Organizer identity must not be empty")

        self.organizer = organizer
        self.require_proposals = require_proposals

        self._status = WorkflowStatus.REGISTERING_VOTERS
        self._voters: dict[str, Voter] = {}
        self._proposals: list[Proposal] = []
        self._winner_id: int | None = None
        self._history: list[WorkflowStatusChange] = []
        self._recorders: list[Subscriber] = []
        self._subscribers: list[Subscriber] = []
        self._lock = threading.RLock()

        logger.debug("BallotProcess created (organizer=%s)", organizer)

    @property
    def status(self) -> WorkflowStatus:
        with self._lock:
            return self._status

    # ─── Observers ────────────────────────────────────────────────

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register an event callback. Returns a function that removes it."""
        return self._register(self._subscribers, callback)

    def add_recorder(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a pre-commit recorder. Returns a function that removes it.

        Recorders receive each event before the state changes. If one
        raises, the operation fails with that exception and the process
        stays as it was.
        """
        return self._register(self._recorders, callback)

    def _register(self, callbacks: list[Subscriber], callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            callbacks.append(callback)

        def remove() -> None:
            with self._lock:
                if callback in callbacks:
                    callbacks.remove(callback)

        return remove

    # ─── Registration ─────────────────────────────────────────────

    def register_voter(self, caller: str, identity: str) -> Voter:
        """Register ``identity``. Surrounding whitespace is not part of an identity."""
        with self._lock:
            self._require_organizer(caller, "register voters")
            self._require_phase(WorkflowStatus.REGISTERING_VOTERS, "register voters")
            identity = (identity or "").strip()
            if not identity:
                raise InvalidInput("Voter identity must not be empty")
            if identity in self._voters:
                raise AlreadyRegistered(f"Voter {identity} is already registered")

            voter = Voter(identity=identity, is_registered=True)
            event = VoterRegistered(caller=caller, identity=identity)
            self._record(event)

            self._voters[identity] = voter
            logger.info("Voter registered: %s", identity)

            self._emit(event)
            return replace(voter)

    def start_proposal_registration(self, caller: str) -> WorkflowStatusChange:
        with self._lock:
            self._require_organizer(caller, "start proposal registration")
            self._require_phase(WorkflowStatus.REGISTERING_VOTERS, "start proposal registration")
            return self._advance(caller)

    def register_proposal(self, caller: str, description: str) -> Proposal:
        """Append a proposal. Ids are sequential from 1 in registration order."""
        with self._lock:
            self._require_voter(caller, "register proposals")
            self._require_phase(WorkflowStatus.PROPOSALS_REGISTRATION_STARTED, "register proposals")
            if not description or not description.strip():
                raise InvalidInput("Proposal description must not be empty")

            proposal = Proposal(
                id=len(self._proposals) + 1,
                description=description,
                author=caller,
            )
            event = ProposalRegistered(
                caller=caller,
                proposal_id=proposal.id,
                description=description,
            )
            self._record(event)

            self._proposals.append(proposal)
            logger.info("Proposal #%d registered by %s", proposal.id, caller)

            self._emit(event)
            return replace(proposal)

    def stop_proposal_registration(self, caller: str) -> WorkflowStatusChange:
        with self._lock:
            self._require_organizer(caller, "stop proposal registration")
            self._require_phase(WorkflowStatus.PROPOSALS_REGISTRATION_STARTED, "stop proposal registration")
            if self.require_proposals and not self._proposals:
                raise InvalidInput("At least one proposal is required before closing registration")
            return self._advance(caller)

    # ─── Voting ───────────────────────────────────────────────────

    def start_voting_session(self, caller: str) -> WorkflowStatusChange:
        with self._lock:
            self._require_organizer(caller, "start the voting session")
            self._require_phase(WorkflowStatus.PROPOSALS_REGISTRATION_ENDED, "start the voting session")
            return self._advance(caller)

    def vote(self, caller: str, proposal_id: int) -> Voter:
        """Cast the caller's single ballot for ``proposal_id``."""
        with self._lock:
            voter = self._require_voter(caller, "vote")
            self._require_phase(WorkflowStatus.VOTING_SESSION_STARTED, "vote")
            if voter.has_voted:
                raise AlreadyVoted(f"Voter {caller} has already voted")
            proposal = self._find_proposal(proposal_id)

            event = Voted(caller=caller, voter=caller, proposal_id=proposal.id)
            self._record(event)

            voter.has_voted = True
            voter.voted_proposal_id = proposal.id
            proposal.vote_count += 1
            logger.info("Vote recorded: %s -> proposal #%d", caller, proposal.id)

            self._emit(event)
            return replace(voter)

    def stop_voting_session(self, caller: str) -> WorkflowStatusChange:
        with self._lock:
            self._require_organizer(caller, "stop the voting session")
            self._require_phase(WorkflowStatus.VOTING_SESSION_STARTED, "stop the voting session")
            return self._advance(caller)

    # ─── Tally ────────────────────────────────────────────────────

    def count_votes(self, caller: str) -> WorkflowStatusChange:
        """
        Select the winner and close the ballot.

        Proposals are scanned in ascending id order. A later proposal
        replaces the running winner only with a strictly greater vote
        count, so ties go to the lowest id. With no proposals the tally
        still completes and records no winner.
        """
        with self._lock:
            self._require_organizer(caller, "count votes")
            self._require_phase(WorkflowStatus.VOTING_SESSION_ENDED, "count votes")

            winner: Proposal | None = None
            for proposal in self._proposals:
                if winner is None or proposal.vote_count > winner.vote_count:
                    winner = proposal

            change = self._advance(caller, winner_id=winner.id if winner else None)
            if winner:
                logger.info(
                    "Tally complete: proposal #%d wins with %d vote(s)",
                    winner.id,
                    winner.vote_count,
                )
            else:
                logger.warning("Tally complete without proposals, no winner recorded")
            return change

    def get_winner(self) -> Proposal:
        with self._lock:
            if self._status != WorkflowStatus.VOTES_TALLIED:
                raise NotTalliedYet(f"Votes are not tallied yet (status: {self._status.label})")
            if self._winner_id is None:
                raise NoWinner("The tally recorded no winning proposal")
            return replace(self._proposals[self._winner_id - 1])

    def get_results(self) -> dict[str, Any]:
        """Per-proposal counts, winner id and totals after the tally."""
        with self._lock:
            if self._status != WorkflowStatus.VOTES_TALLIED:
                raise NotTalliedYet(f"Votes are not tallied yet (status: {self._status.label})")
            return {
                "winner_id": self._winner_id,
                "total_votes": sum(p.vote_count for p in self._proposals),
                "ballots_cast": sum(1 for v in self._voters.values() if v.has_voted),
                "registered_voters": len(self._voters),
                "proposals": [p.to_dict() for p in self._proposals],
            }

    # ─── Query API ────────────────────────────────────────────────

    def get_voting_status(self) -> str:
        with self._lock:
            return self._status.label

    def get_proposal_count(self) -> int:
        with self._lock:
            return len(self._proposals)

    def get_proposal(self, proposal_id: int) -> Proposal:
        with self._lock:
            return replace(self._find_proposal(proposal_id))

    def get_proposals(self) -> list[Proposal]:
        with self._lock:
            return [replace(p) for p in self._proposals]

    def get_voter(self, identity: str) -> Voter:
        """Voter record for ``identity``; unknown identities read as unregistered."""
        with self._lock:
            voter = self._voters.get(identity)
            return replace(voter) if voter else Voter(identity=identity)

    def get_voters(self) -> list[Voter]:
        with self._lock:
            return [replace(v) for v in self._voters.values()]

    def get_history(self) -> list[WorkflowStatusChange]:
        with self._lock:
            return list(self._history)

    def snapshot(self) -> dict[str, Any]:
        """Consistent view of the whole process state."""
        with self._lock:
            return {
                "organizer": self.organizer,
                "status": self._status.label,
                "status_index": int(self._status),
                "winner_id": self._winner_id,
                "voters": [v.to_dict() for v in self._voters.values()],
                "proposals": [p.to_dict() for p in self._proposals],
                "history": [c.to_dict() for c in self._history],
            }

    # ─── Internal ─────────────────────────────────────────────────

    def _require_organizer(self, caller: str, action: str) -> None:
        if caller != self.organizer:
            raise Unauthorized(f"Only the organizer can {action}")

    def _require_voter(self, caller: str, action: str) -> Voter:
        voter = self._voters.get(caller)
        if voter is None or not voter.is_registered:
            raise Unauthorized(f"Only registered voters can {action}")
        return voter

    def _require_phase(self, expected: WorkflowStatus, action: str) -> None:
        if self._status != expected:
            raise InvalidPhase(
                f"Cannot {action} during {self._status.label} (requires {expected.label})"
            )

    def _find_proposal(self, proposal_id: int) -> Proposal:
        if (
            isinstance(proposal_id, bool)
            or not isinstance(proposal_id, int)
            or not 1 <= proposal_id <= len(self._proposals)
        ):
            raise ProposalNotFound(f"Unknown proposal id: {proposal_id}")
        return self._proposals[proposal_id - 1]

    def _advance(self, caller: str, winner_id: int | None = None) -> WorkflowStatusChange:
        previous = self._status
        new = previous.successor()
        if new is None:
            raise InvalidPhase(f"No phase follows {previous.label}")

        change = WorkflowStatusChange(
            caller=caller,
            previous_status=int(previous),
            new_status=int(new),
        )
        self._record(change)

        self._status = new
        if new == WorkflowStatus.VOTES_TALLIED:
            self._winner_id = winner_id
        self._history.append(change)
        logger.info("Workflow status: %s -> %s", previous.label, new.label)

        self._emit(change)
        return change

    def _record(self, event: BallotEvent) -> None:
        for callback in list(self._recorders):
            callback(event)

    def _emit(self, event: BallotEvent) -> None:
        for callback in list(self._subscribers):
            callback(event)
