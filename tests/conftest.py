import pytest

from ballot import config
from ballot.workflow import BallotProcess

ORGANIZER = "organizer"
VOTERS = ["voter1", "voter2", "voter3"]


@pytest.fixture(autouse=True)
def reset_ballot_config(monkeypatch):
    """Reset config from environment between every test."""
    for var in (
        "BALLOT_DB",
        "BALLOT_HOME",
        "BALLOT_ORGANIZER",
        "BALLOT_REQUIRE_PROPOSALS",
        "BALLOT_IDENTITY",
        "BALLOT_IDENTITY_HEADER",
    ):
        monkeypatch.delenv(var, raising=False)
    config.reload()
    yield
    config.reload()


@pytest.fixture
def process():
    """A fresh ballot in RegisteringVoters."""
    return BallotProcess(ORGANIZER)


@pytest.fixture
def proposals_open(process):
    """Three registered voters, proposal registration open."""
    for v in VOTERS:
        process.register_voter(ORGANIZER, v)
    process.start_proposal_registration(ORGANIZER)
    return process


@pytest.fixture
def voting_open(proposals_open):
    """Proposals A/B/C registered, voting session open."""
    process = proposals_open
    for voter, desc in zip(VOTERS, ["Prop A", "Prop B", "Prop C"]):
        process.register_proposal(voter, desc)
    process.stop_proposal_registration(ORGANIZER)
    process.start_voting_session(ORGANIZER)
    return process
