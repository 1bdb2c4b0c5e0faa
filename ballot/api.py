"""
Ballot - REST API.

FastAPI server exposing the ballot workflow.
Main entry point for initialization and routing.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ballot import __version__, config
from ballot.exceptions import (
    AlreadyRegistered,
    AlreadyVoted,
    BallotError,
    InvalidInput,
    InvalidPhase,
    LedgerIntegrityError,
    NotTalliedYet,
    NoWinner,
    ProposalNotFound,
    Unauthorized,
)
from ballot.ledger import BallotLedger
from ballot.routes import ballot as ballot_router

logger = logging.getLogger("uvicorn.error")

ERROR_STATUS = {
    Unauthorized: 403,
    ProposalNotFound: 404,
    NoWinner: 404,
    InvalidPhase: 409,
    AlreadyRegistered: 409,
    AlreadyVoted: 409,
    NotTalliedYet: 409,
    LedgerIntegrityError: 409,
    InvalidInput: 422,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the ledger and rebuild the ballot on startup."""
    db_path = config.DB_PATH  # Read at runtime, not import time
    logger.info("Starting lifespan with DB_PATH: %s", db_path)

    ledger = BallotLedger.open(db_path)
    if not ledger.is_initialized():
        ledger.initialize(config.ORGANIZER, require_proposals=config.REQUIRE_PROPOSALS)
    elif ledger.organizer != config.ORGANIZER:
        logger.warning(
            "Ledger organizer %s overrides BALLOT_ORGANIZER=%s",
            ledger.organizer,
            config.ORGANIZER,
        )

    app.state.ledger = ledger
    app.state.process = ledger.replay()

    try:
        yield
    finally:
        ledger.close()


app = FastAPI(
    title="Ballot - Workflow API",
    description="Single-organizer ballot: voter registration, proposals, "
    "one-person-one-vote session and deterministic tally.",
    version=__version__,
    lifespan=lifespan,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=[config.IDENTITY_HEADER, "Content-Type"],
)


# ─── Exception Handlers ──────────────────────────────────────────────


@app.exception_handler(BallotError)
async def ballot_error_handler(request: Request, exc: BallotError) -> JSONResponse:
    status_code = next(
        (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)),
        500,
    )
    if status_code == 500:
        logger.error("Ballot error: %s", exc)
    else:
        logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


@app.exception_handler(Exception)
async def universal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(status_code=500, content={"detail": "An unexpected server error occurred."})


# ─── Routes ──────────────────────────────────────────────────────────


@app.get("/", tags=["health"])
async def root_node() -> dict:
    return {
        "service": "ballot",
        "version": __version__,
        "status": "operational",
    }


@app.get("/health", tags=["health"])
async def health_check(request: Request) -> dict:
    """Simple status check for load balancers."""
    return {
        "status": "healthy",
        "ballot": request.app.state.process.get_voting_status(),
        "version": __version__,
    }


app.include_router(ballot_router.router)
