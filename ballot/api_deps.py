"""
Ballot - API Dependencies.
Shared dependencies for FastAPI routes.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from ballot import config
from ballot.ledger import BallotLedger
from ballot.workflow import BallotProcess


def get_process(request: Request) -> BallotProcess:
    """Inject the ballot process from app state."""
    return request.app.state.process


def get_ledger(request: Request) -> BallotLedger:
    """Inject the audit ledger from app state."""
    return request.app.state.ledger


async def require_caller(request: Request) -> str:
    """Extract the caller identity from the identity header."""
    identity = request.headers.get(config.IDENTITY_HEADER)
    if not identity or not identity.strip():
        raise HTTPException(
            status_code=401,
            detail=f"Missing {config.IDENTITY_HEADER} header",
        )
    return identity.strip()
