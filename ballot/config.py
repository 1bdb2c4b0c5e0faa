"""
Ballot - Configuration.
Shared settings and paths for the entire codebase.
"""

import os
from pathlib import Path

# Base Paths
BALLOT_DIR = Path(os.environ.get("BALLOT_HOME", str(Path.home() / ".ballot")))

# Database Configuration
DEFAULT_DB_PATH = BALLOT_DIR / "ballot.db"
DB_PATH = os.environ.get("BALLOT_DB", str(DEFAULT_DB_PATH))

# Workflow Configuration
ORGANIZER = os.environ.get("BALLOT_ORGANIZER", "organizer")
REQUIRE_PROPOSALS = os.environ.get("BALLOT_REQUIRE_PROPOSALS", "1") not in ("0", "false", "no")

# API Configuration
ALLOWED_ORIGINS = os.environ.get(
    "BALLOT_ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:5173"
).split(",")
IDENTITY_HEADER = os.environ.get("BALLOT_IDENTITY_HEADER", "X-Ballot-Identity")

# Logging
LOG_LEVEL = os.environ.get("BALLOT_LOG_LEVEL", "WARNING").upper()


def reload() -> None:
    """Re-read every setting from the environment."""
    global BALLOT_DIR, DEFAULT_DB_PATH, DB_PATH, ORGANIZER, REQUIRE_PROPOSALS
    global ALLOWED_ORIGINS, IDENTITY_HEADER, LOG_LEVEL

    BALLOT_DIR = Path(os.environ.get("BALLOT_HOME", str(Path.home() / ".ballot")))
    DEFAULT_DB_PATH = BALLOT_DIR / "ballot.db"
    DB_PATH = os.environ.get("BALLOT_DB", str(DEFAULT_DB_PATH))
    ORGANIZER = os.environ.get("BALLOT_ORGANIZER", "organizer")
    REQUIRE_PROPOSALS = os.environ.get("BALLOT_REQUIRE_PROPOSALS", "1") not in ("0", "false", "no")
    ALLOWED_ORIGINS = os.environ.get(
        "BALLOT_ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:5173"
    ).split(",")
    IDENTITY_HEADER = os.environ.get("BALLOT_IDENTITY_HEADER", "X-Ballot-Identity")
    LOG_LEVEL = os.environ.get("BALLOT_LOG_LEVEL", "WARNING").upper()
