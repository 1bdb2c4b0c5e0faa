"""
Ballot - Custom Exceptions.

Typed error hierarchy shared by the workflow core, the audit ledger
and the transport layers (REST and CLI).
"""


class BallotError(Exception):
    """Base exception for all ballot errors."""


class Unauthorized(BallotError):
    """Caller lacks the required role or registration."""


class InvalidPhase(BallotError):
    """Operation attempted outside its required workflow phase."""


class AlreadyRegistered(BallotError):
    """Identity is already a registered voter."""


class AlreadyVoted(BallotError):
    """Voter has already cast a ballot."""


class ProposalNotFound(BallotError):
    """Proposal id does not reference a registered proposal."""


class InvalidInput(BallotError):
    """Raised for empty descriptions, empty identities and similar input."""


class NotTalliedYet(BallotError):
    """Winner requested before the votes were counted."""


class NoWinner(BallotError):
    """The tally completed without any proposal to elect."""


class LedgerError(BallotError):
    """Base exception for audit ledger operations."""


class LedgerIntegrityError(LedgerError):
    """Raised when the event hash chain does not verify."""
