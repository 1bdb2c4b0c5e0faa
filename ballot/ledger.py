"""
Ballot - Audit Ledger.

Tamper-evident SQLite record of every ballot event. Each row is chained
to the previous one with SHA-256, and the whole ballot can be rebuilt by
replaying the chain through a fresh BallotProcess.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Callable

from ballot.exceptions import BallotError, LedgerError, LedgerIntegrityError
from ballot.workflow.models import (
    EVENT_TYPES,
    BallotEvent,
    ProposalRegistered,
    Voted,
    VoterRegistered,
    WorkflowStatusChange,
)
from ballot.workflow.process import BallotProcess

logger = logging.getLogger("ballot.ledger")

SCHEMA = """
CREATE TABLE IF NOT EXISTS ballot_meta (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS ballot_events (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    event_type TEXT NOT NULL,
    caller     TEXT NOT NULL,
    payload    TEXT NOT NULL,
    timestamp  TEXT NOT NULL,
    prev_hash  TEXT NOT NULL,
    hash       TEXT NOT NULL
);
"""


def _transition_ops(process: BallotProcess) -> dict[int, Callable[[str], WorkflowStatusChange]]:
    """Map a previous phase index to the operation that leaves it."""
    return {
        0: process.start_proposal_registration,
        1: process.stop_proposal_registration,
        2: process.start_voting_session,
        3: process.stop_voting_session,
        4: process.count_votes,
    }


class BallotLedger:
    """
    Hash-chained event store for a single ballot.

    Usage:
        ledger = BallotLedger.open("ballot.db")
        ledger.initialize("alice")
        process = ledger.replay()   # rebuilt and attached
        process.register_voter("alice", "bob")   # recorded
    """

    GENESIS_HASH = "0" * 64

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self._lock = threading.Lock()
        self.conn.executescript(SCHEMA)
        self.conn.commit()

    @classmethod
    def open(cls, db_path: str | Path) -> BallotLedger:
        """Open (or create) a ledger database at ``db_path``."""
        path = Path(db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(path), timeout=10, check_same_thread=False)
        return cls(conn)

    def close(self) -> None:
        self.conn.close()

    # ─── Metadata ─────────────────────────────────────────────────

    def initialize(self, organizer: str, require_proposals: bool = True) -> None:
        """Bind this ledger to an organizer. Fails if already bound."""
        if self.is_initialized():
            raise LedgerError(f"Ledger already initialized for organizer {self.organizer}")
        if not organizer or not organizer.strip():
            raise LedgerError("Organizer identity must not be empty")

        with self._lock:
            self.conn.executemany(
                "INSERT INTO ballot_meta (key, value) VALUES (?, ?)",
                [
                    ("organizer", organizer),
                    ("require_proposals", "1" if require_proposals else "0"),
                ],
            )
            self.conn.commit()
        logger.info("Ledger initialized for organizer %s", organizer)

    def is_initialized(self) -> bool:
        return self._get_meta("organizer") is not None

    @property
    def organizer(self) -> str:
        value = self._get_meta("organizer")
        if value is None:
            raise LedgerError("Ledger is not initialized")
        return value

    @property
    def require_proposals(self) -> bool:
        return self._get_meta("require_proposals") != "0"

    def _get_meta(self, key: str) -> str | None:
        row = self.conn.execute(
            "SELECT value FROM ballot_meta WHERE key = ?", (key,)
        ).fetchone()
        return row[0] if row else None

    # ─── Recording ────────────────────────────────────────────────

    def _compute_hash(self, prev_hash: str, event_type: str, caller: str, payload: str, ts: str) -> str:
        """Deterministic hash of one event row."""
        data = f"{prev_hash}:{event_type}:{caller}:{payload}:{ts}"
        return hashlib.sha256(data.encode("utf-8")).hexdigest()

    def append(self, event: BallotEvent) -> int:
        """Seal ``event`` onto the chain. Raises LedgerError if it cannot be stored."""
        payload = json.dumps(event.payload(), sort_keys=True)
        with self._lock:
            try:
                row = self.conn.execute(
                    "SELECT hash FROM ballot_events ORDER BY id DESC LIMIT 1"
                ).fetchone()
                prev_hash = row[0] if row else self.GENESIS_HASH
                entry_hash = self._compute_hash(
                    prev_hash, event.event_type, event.caller, payload, event.timestamp
                )
                cursor = self.conn.execute(
                    """
                    INSERT INTO ballot_events
                    (event_type, caller, payload, timestamp, prev_hash, hash)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (event.event_type, event.caller, payload, event.timestamp, prev_hash, entry_hash),
                )
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                logger.error("Failed to record %s: %s", event.event_type, e)
                raise LedgerError(f"Failed to record {event.event_type}") from e

        logger.debug("Sealed %s #%d [%s...]", event.event_type, cursor.lastrowid, entry_hash[:8])
        return cursor.lastrowid

    def attach(self, process: BallotProcess) -> Callable[[], None]:
        """
        Record every future event of ``process``.

        The ledger is a pre-commit recorder: an event that cannot be
        sealed aborts the operation, so the process never runs ahead
        of the chain.
        """
        return process.add_recorder(self.append)

    # ─── Reading ──────────────────────────────────────────────────

    def events(self) -> list[BallotEvent]:
        """All recorded events, oldest first."""
        rows = self.conn.execute(
            "SELECT event_type, caller, payload, timestamp FROM ballot_events ORDER BY id ASC"
        ).fetchall()

        result = []
        for event_type, caller, payload, ts in rows:
            cls = EVENT_TYPES.get(event_type)
            if cls is None:
                raise LedgerError(f"Unknown event type in ledger: {event_type}")
            result.append(cls(caller=caller, timestamp=ts, **json.loads(payload)))
        return result

    def status_changes(self) -> list[WorkflowStatusChange]:
        return [e for e in self.events() if isinstance(e, WorkflowStatusChange)]

    def verify_integrity(self) -> dict[str, Any]:
        """Audit the full chain for breaks and tampered rows."""
        violations = []
        rows = self.conn.execute(
            "SELECT id, event_type, caller, payload, timestamp, prev_hash, hash "
            "FROM ballot_events ORDER BY id ASC"
        ).fetchall()

        expected_prev = self.GENESIS_HASH
        for e_id, e_type, caller, payload, ts, p_hash, c_hash in rows:
            if p_hash != expected_prev:
                violations.append({
                    "event_id": e_id,
                    "type": "chain_break",
                    "expected": expected_prev,
                    "actual": p_hash,
                })

            computed = self._compute_hash(p_hash, e_type, caller, payload, ts)
            if computed != c_hash:
                violations.append({
                    "event_id": e_id,
                    "type": "hash_mismatch",
                    "computed": computed,
                    "stored": c_hash,
                })
            expected_prev = c_hash

        return {
            "valid": not violations,
            "violations": violations,
            "events_checked": len(rows),
        }

    # ─── Replay ───────────────────────────────────────────────────

    def replay(self, attach: bool = True) -> BallotProcess:
        """
        Rebuild the ballot by re-running every recorded operation.

        The chain is verified first. The rebuilt process is attached to
        this ledger unless ``attach`` is False.
        """
        report = self.verify_integrity()
        if not report["valid"]:
            raise LedgerIntegrityError(f"Ledger violation: {report['violations']}")

        process = BallotProcess(self.organizer, require_proposals=self.require_proposals)
        ops = _transition_ops(process)

        for event in self.events():
            try:
                if isinstance(event, VoterRegistered):
                    process.register_voter(event.caller, event.identity)
                elif isinstance(event, ProposalRegistered):
                    proposal = process.register_proposal(event.caller, event.description)
                    if proposal.id != event.proposal_id:
                        raise LedgerError(
                            f"Proposal id mismatch on replay: {proposal.id} != {event.proposal_id}"
                        )
                elif isinstance(event, Voted):
                    process.vote(event.voter, event.proposal_id)
                elif isinstance(event, WorkflowStatusChange):
                    op = ops.get(event.previous_status)
                    if op is None:
                        raise LedgerError(f"Invalid recorded transition from {event.previous_status}")
                    change = op(event.caller)
                    if change.new_status != event.new_status:
                        raise LedgerError(
                            f"Transition mismatch on replay: {change.new_status} != {event.new_status}"
                        )
            except LedgerError:
                raise
            except BallotError as e:
                raise LedgerError(f"Replay of {event.event_type} failed: {e}") from e

        logger.debug("Replayed ballot to status %s", process.get_voting_status())
        if attach:
            self.attach(process)
        return process
