"""
Ballot - Workflow Layer.

Provides the ballot state machine, its records and its event types.
"""

from .models import (
    BallotEvent,
    Proposal,
    ProposalRegistered,
    Voted,
    Voter,
    VoterRegistered,
    WorkflowStatus,
    WorkflowStatusChange,
)
from .process import BallotProcess
