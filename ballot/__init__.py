"""
Ballot - Single-organizer voting workflow.

Voter registration, proposal collection, a one-person-one-vote session
and a deterministic tally, with a hash-chained audit ledger.
"""

__version__ = "1.0.0"

from ballot.workflow import BallotProcess, WorkflowStatus

__all__ = ["BallotProcess", "WorkflowStatus", "__version__"]
