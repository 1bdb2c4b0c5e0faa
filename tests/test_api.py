"""
Ballot - API Tests.

Tests for the FastAPI REST endpoints.
"""

import pytest
from fastapi.testclient import TestClient

import ballot.config

from conftest import ORGANIZER

HEADER = "X-Ballot-Identity"


def as_(identity):
    return {HEADER: identity}


@pytest.fixture
def client(tmp_path, monkeypatch):
    """Create a test client over an isolated ledger database."""
    monkeypatch.setenv("BALLOT_DB", str(tmp_path / "api.db"))
    monkeypatch.setenv("BALLOT_ORGANIZER", ORGANIZER)
    ballot.config.reload()

    from ballot.api import app

    with TestClient(app) as c:
        yield c


@pytest.fixture
def voting_client(client):
    """Three voters, three proposals, voting session open."""
    for v in ("voter1", "voter2", "voter3"):
        assert client.post("/v1/ballot/voters", json={"identity": v}, headers=as_(ORGANIZER)).status_code == 200
    client.post("/v1/ballot/proposals/start", headers=as_(ORGANIZER))
    for v, desc in zip(("voter1", "voter2", "voter3"), ("Prop A", "Prop B", "Prop C")):
        client.post("/v1/ballot/proposals", json={"description": desc}, headers=as_(v))
    client.post("/v1/ballot/proposals/stop", headers=as_(ORGANIZER))
    client.post("/v1/ballot/session/start", headers=as_(ORGANIZER))
    return client


class TestHealth:
    def test_root(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        assert resp.json()["service"] == "ballot"

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["ballot"] == "RegisteringVoters"


class TestStatus:
    def test_initial_status(self, client):
        resp = client.get("/v1/ballot/status")
        assert resp.json() == {"status": "RegisteringVoters", "index": 0}

    def test_transition_response(self, client):
        resp = client.post("/v1/ballot/proposals/start", headers=as_(ORGANIZER))
        assert resp.status_code == 200
        data = resp.json()
        assert data["previous_status"] == 0
        assert data["new_status"] == 1
        assert data["status"] == "ProposalsRegistrationStarted"


class TestAuth:
    def test_missing_identity_header(self, client):
        resp = client.post("/v1/ballot/voters", json={"identity": "voter1"})
        assert resp.status_code == 401

    def test_non_organizer_forbidden(self, client):
        resp = client.post("/v1/ballot/voters", json={"identity": "voter2"}, headers=as_("voter1"))
        assert resp.status_code == 403
        assert resp.json()["error"] == "Unauthorized"


class TestErrors:
    def test_duplicate_voter_conflict(self, client):
        client.post("/v1/ballot/voters", json={"identity": "voter1"}, headers=as_(ORGANIZER))
        resp = client.post("/v1/ballot/voters", json={"identity": "voter1"}, headers=as_(ORGANIZER))
        assert resp.status_code == 409
        assert resp.json()["error"] == "AlreadyRegistered"

    def test_empty_identity_rejected(self, client):
        resp = client.post("/v1/ballot/voters", json={"identity": "  "}, headers=as_(ORGANIZER))
        assert resp.status_code == 422

    def test_padded_identity_is_the_same_voter(self, client):
        resp = client.post("/v1/ballot/voters", json={"identity": "voter1 "}, headers=as_(ORGANIZER))
        assert resp.status_code == 200
        assert resp.json()["identity"] == "voter1"

        resp = client.post("/v1/ballot/voters", json={"identity": "voter1"}, headers=as_(ORGANIZER))
        assert resp.status_code == 409

        client.post("/v1/ballot/proposals/start", headers=as_(ORGANIZER))
        resp = client.post("/v1/ballot/proposals", json={"description": "Prop A"}, headers=as_("voter1"))
        assert resp.status_code == 200
        assert resp.json()["author"] == "voter1"

    def test_vote_before_session(self, client):
        client.post("/v1/ballot/voters", json={"identity": "voter1"}, headers=as_(ORGANIZER))
        resp = client.post("/v1/ballot/votes", json={"proposal_id": 1}, headers=as_("voter1"))
        assert resp.status_code == 409
        assert resp.json()["error"] == "InvalidPhase"

    def test_empty_description(self, client):
        client.post("/v1/ballot/voters", json={"identity": "voter1"}, headers=as_(ORGANIZER))
        client.post("/v1/ballot/proposals/start", headers=as_(ORGANIZER))
        resp = client.post("/v1/ballot/proposals", json={"description": ""}, headers=as_("voter1"))
        assert resp.status_code == 422
        assert resp.json()["error"] == "InvalidInput"

    def test_unknown_proposal(self, voting_client):
        resp = voting_client.post("/v1/ballot/votes", json={"proposal_id": 7}, headers=as_("voter1"))
        assert resp.status_code == 404
        assert resp.json()["error"] == "ProposalNotFound"

    def test_double_vote(self, voting_client):
        voting_client.post("/v1/ballot/votes", json={"proposal_id": 1}, headers=as_("voter1"))
        resp = voting_client.post("/v1/ballot/votes", json={"proposal_id": 2}, headers=as_("voter1"))
        assert resp.status_code == 409
        assert resp.json()["error"] == "AlreadyVoted"

    def test_winner_before_tally(self, voting_client):
        resp = voting_client.get("/v1/ballot/winner")
        assert resp.status_code == 409
        assert resp.json()["error"] == "NotTalliedYet"


class TestBallotFlow:
    def test_full_flow(self, voting_client):
        c = voting_client
        assert c.post("/v1/ballot/votes", json={"proposal_id": 2}, headers=as_("voter1")).status_code == 200
        assert c.post("/v1/ballot/votes", json={"proposal_id": 2}, headers=as_("voter2")).status_code == 200
        assert c.post("/v1/ballot/votes", json={"proposal_id": 1}, headers=as_("voter3")).status_code == 200

        voter = c.get("/v1/ballot/voters/voter1").json()
        assert voter["has_voted"] is True
        assert voter["voted_proposal_id"] == 2

        c.post("/v1/ballot/session/stop", headers=as_(ORGANIZER))
        resp = c.post("/v1/ballot/tally", headers=as_(ORGANIZER))
        assert resp.json()["previous_status"] == 4
        assert resp.json()["new_status"] == 5

        winner = c.get("/v1/ballot/winner").json()
        assert winner["id"] == 2
        assert winner["description"] == "Prop B"
        assert winner["vote_count"] == 2

        results = c.get("/v1/ballot/results").json()
        assert results["total_votes"] == 3
        assert results["ballots_cast"] == 3

        history = c.get("/v1/ballot/history").json()
        assert [(h["previous_status"], h["new_status"]) for h in history][-1] == (4, 5)
        assert c.get("/v1/ballot/status").json()["status"] == "VotesTallied"

    def test_proposal_listing(self, voting_client):
        proposals = voting_client.get("/v1/ballot/proposals").json()
        assert [p["id"] for p in proposals] == [1, 2, 3]
        assert voting_client.get("/v1/ballot/proposals/2").json()["description"] == "Prop B"
        assert voting_client.get("/v1/ballot/proposals/9").status_code == 404

    def test_ledger_verifies(self, voting_client):
        report = voting_client.get("/v1/ballot/ledger/verify").json()
        assert report["valid"] is True
        assert report["events_checked"] == 9


def test_state_survives_restart(tmp_path, monkeypatch):
    monkeypatch.setenv("BALLOT_DB", str(tmp_path / "restart.db"))
    monkeypatch.setenv("BALLOT_ORGANIZER", ORGANIZER)
    ballot.config.reload()

    from ballot.api import app

    with TestClient(app) as c:
        c.post("/v1/ballot/voters", json={"identity": "voter1"}, headers=as_(ORGANIZER))
        c.post("/v1/ballot/proposals/start", headers=as_(ORGANIZER))

    with TestClient(app) as c:
        assert c.get("/v1/ballot/status").json()["status"] == "ProposalsRegistrationStarted"
        assert c.get("/v1/ballot/voters/voter1").json()["is_registered"] is True
