"""
Ballot - API Models.
Centralized Pydantic models for request/response validation.
"""

from pydantic import BaseModel, Field, field_validator


class VoterRequest(BaseModel):
    identity: str = Field(..., max_length=200, description="Opaque identity of the voter")

    @field_validator("identity")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Must not be empty or whitespace only")
        return v.strip()


class VoterResponse(BaseModel):
    identity: str
    is_registered: bool
    has_voted: bool
    voted_proposal_id: int | None = None


class ProposalRequest(BaseModel):
    description: str = Field(..., max_length=5000, description="Proposal text")


class ProposalResponse(BaseModel):
    id: int
    description: str
    author: str
    vote_count: int


class VoteRequest(BaseModel):
    proposal_id: int = Field(..., description="Id of the proposal to vote for (1-based)")


class StatusResponse(BaseModel):
    status: str
    index: int


class StatusChangeResponse(BaseModel):
    previous_status: int
    new_status: int
    status: str
    timestamp: str


class ResultsResponse(BaseModel):
    winner_id: int | None
    total_votes: int
    ballots_cast: int
    registered_voters: int
    proposals: list[ProposalResponse]


class LedgerReportResponse(BaseModel):
    valid: bool
    violations: list[dict]
    events_checked: int
