"""
Ballot - Workflow Router.

REST endpoints mirroring the ballot operations. The caller identity
comes from the identity header on every mutating request.

Every handler that touches the process lock runs off the event loop:
reads are plain ``def`` handlers, mutations go through run_in_threadpool.
"""

import logging

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from ballot.api_deps import get_ledger, get_process, require_caller
from ballot.ledger import BallotLedger
from ballot.models import (
    LedgerReportResponse,
    ProposalRequest,
    ProposalResponse,
    ResultsResponse,
    StatusChangeResponse,
    StatusResponse,
    VoteRequest,
    VoterRequest,
    VoterResponse,
)
from ballot.workflow import BallotProcess, WorkflowStatus, WorkflowStatusChange

logger = logging.getLogger("ballot.api")
router = APIRouter(prefix="/v1/ballot", tags=["ballot"])


def _change_response(change: WorkflowStatusChange) -> StatusChangeResponse:
    return StatusChangeResponse(
        previous_status=change.previous_status,
        new_status=change.new_status,
        status=WorkflowStatus(change.new_status).label,
        timestamp=change.timestamp,
    )


# ─── Status ──────────────────────────────────────────────────────────


@router.get("/status", response_model=StatusResponse)
def voting_status(process: BallotProcess = Depends(get_process)):
    """Current workflow phase."""
    status = process.status
    return StatusResponse(status=status.label, index=int(status))


@router.get("/history", response_model=list[StatusChangeResponse])
def status_history(process: BallotProcess = Depends(get_process)):
    """Every phase transition, in call order."""
    return [_change_response(c) for c in process.get_history()]


# ─── Voters ──────────────────────────────────────────────────────────


@router.post("/voters", response_model=VoterResponse)
async def register_voter(
    request: VoterRequest,
    caller: str = Depends(require_caller),
    process: BallotProcess = Depends(get_process),
):
    voter = await run_in_threadpool(process.register_voter, caller, request.identity)
    return VoterResponse(**voter.to_dict())


@router.get("/voters/{identity}", response_model=VoterResponse)
def get_voter(identity: str, process: BallotProcess = Depends(get_process)):
    return VoterResponse(**process.get_voter(identity).to_dict())


# ─── Proposals ───────────────────────────────────────────────────────


@router.post("/proposals/start", response_model=StatusChangeResponse)
async def start_proposal_registration(
    caller: str = Depends(require_caller),
    process: BallotProcess = Depends(get_process),
):
    change = await run_in_threadpool(process.start_proposal_registration, caller)
    return _change_response(change)


@router.post("/proposals", response_model=ProposalResponse)
async def register_proposal(
    request: ProposalRequest,
    caller: str = Depends(require_caller),
    process: BallotProcess = Depends(get_process),
):
    proposal = await run_in_threadpool(process.register_proposal, caller, request.description)
    return ProposalResponse(**proposal.to_dict())


@router.post("/proposals/stop", response_model=StatusChangeResponse)
async def stop_proposal_registration(
    caller: str = Depends(require_caller),
    process: BallotProcess = Depends(get_process),
):
    change = await run_in_threadpool(process.stop_proposal_registration, caller)
    return _change_response(change)


@router.get("/proposals", response_model=list[ProposalResponse])
def list_proposals(process: BallotProcess = Depends(get_process)):
    return [ProposalResponse(**p.to_dict()) for p in process.get_proposals()]


@router.get("/proposals/{proposal_id}", response_model=ProposalResponse)
def get_proposal(proposal_id: int, process: BallotProcess = Depends(get_process)):
    return ProposalResponse(**process.get_proposal(proposal_id).to_dict())


# ─── Voting Session ──────────────────────────────────────────────────


@router.post("/session/start", response_model=StatusChangeResponse)
async def start_voting_session(
    caller: str = Depends(require_caller),
    process: BallotProcess = Depends(get_process),
):
    change = await run_in_threadpool(process.start_voting_session, caller)
    return _change_response(change)


@router.post("/votes", response_model=VoterResponse)
async def cast_vote(
    request: VoteRequest,
    caller: str = Depends(require_caller),
    process: BallotProcess = Depends(get_process),
):
    voter = await run_in_threadpool(process.vote, caller, request.proposal_id)
    return VoterResponse(**voter.to_dict())


@router.post("/session/stop", response_model=StatusChangeResponse)
async def stop_voting_session(
    caller: str = Depends(require_caller),
    process: BallotProcess = Depends(get_process),
):
    change = await run_in_threadpool(process.stop_voting_session, caller)
    return _change_response(change)


# ─── Tally ───────────────────────────────────────────────────────────


@router.post("/tally", response_model=StatusChangeResponse)
async def count_votes(
    caller: str = Depends(require_caller),
    process: BallotProcess = Depends(get_process),
):
    change = await run_in_threadpool(process.count_votes, caller)
    return _change_response(change)


@router.get("/winner", response_model=ProposalResponse)
def get_winner(process: BallotProcess = Depends(get_process)):
    return ProposalResponse(**process.get_winner().to_dict())


@router.get("/results", response_model=ResultsResponse)
def get_results(process: BallotProcess = Depends(get_process)):
    return ResultsResponse(**process.get_results())


# ─── Ledger ──────────────────────────────────────────────────────────


@router.get("/ledger/verify", response_model=LedgerReportResponse)
async def verify_ledger(ledger: BallotLedger = Depends(get_ledger)):
    """Check the hash chain of the recorded events."""
    report = await run_in_threadpool(ledger.verify_integrity)
    if not report["valid"]:
        logger.error("Ledger integrity violation: %s", report["violations"])
    return LedgerReportResponse(**report)
