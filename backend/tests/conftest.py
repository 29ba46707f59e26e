import os
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Keep app startup (init_db) off any on-disk database
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import badman.models  # noqa: F401  registers every table before create_all
from badman.database import get_session
from badman.main import app
from badman.models.player import Player
from badman.models.sub_event import EnrollmentPhase, GameType, TournamentSubEvent
from badman.models.tournament import TournamentEvent, TournamentPhase
from badman.services.tournament_api_client import VendorDraw, VendorEntry, VendorEvent, VendorPlayer

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. sqlite:///:memory: with StaticPool so every session shares one database
# 2. check_same_thread=False for TestClient's worker thread
# 3. Tables created and dropped per test so tests never see each other's rows
# 4. App dependency overridden to use test_engine (see client_fixture)
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="engine")
def engine_fixture():
    return test_engine


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Provide a test database session on freshly created tables."""
    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session

    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Provide a test client with overridden database session

    The override is set BEFORE TestClient() and stays in place for the whole
    test, so the app never touches its own engine.
    """
    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


# ============================================================================
# Builders
# ============================================================================


@pytest.fixture(name="tournament")
def tournament_fixture(session: Session) -> TournamentEvent:
    tournament = TournamentEvent(
        name="Spring Open",
        visual_code="T-SPRING",
        phase=TournamentPhase.ENROLLMENT_OPEN,
        enrollment_open_date=datetime.utcnow() - timedelta(days=1),
        enrollment_close_date=datetime.utcnow() + timedelta(days=14),
    )
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return tournament


@pytest.fixture(name="make_sub_event")
def make_sub_event_fixture(session: Session, tournament: TournamentEvent):
    def make(**kwargs) -> TournamentSubEvent:
        values = {
            "event_id": tournament.id,
            "name": "HE A",
            "game_type": GameType.S,
            "enrollment_phase": EnrollmentPhase.OPEN,
        }
        values.update(kwargs)
        sub_event = TournamentSubEvent(**values)
        session.add(sub_event)
        session.commit()
        session.refresh(sub_event)
        return sub_event

    return make


@pytest.fixture(name="make_player")
def make_player_fixture(session: Session):
    counter = {"n": 0}

    def make(**kwargs) -> Player:
        counter["n"] += 1
        values = {
            "first_name": f"Player{counter['n']}",
            "last_name": "Test",
            "member_id": f"M{counter['n']:04d}",
        }
        values.update(kwargs)
        player = Player(**values)
        session.add(player)
        session.commit()
        session.refresh(player)
        return player

    return make


# ============================================================================
# Vendor API fake
# ============================================================================


class FakeVendorClient:
    """Serves canned vendor records the way TournamentApiClient returns them."""

    def __init__(self, events=None, draws=None, entries=None, matches=None):
        self.events = events or []
        self.draws = draws or {}
        self.entries = entries or {}
        self.matches = matches or {}
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.closed = True

    def get_tournament_events(self, code, event_code=None):
        return list(self.events)

    def get_tournament_draws(self, code, event_code, draw_code=None):
        return list(self.draws.get(event_code, []))

    def get_draw_entries(self, code, draw_code):
        return list(self.entries.get(draw_code, []))

    def get_draw_matches(self, code, draw_code):
        return list(self.matches.get(draw_code, []))


def _member(member_id):
    return VendorPlayer(member_id=member_id, first_name="First", last_name="Last", gender_id=1)


@pytest.fixture(name="vendor")
def vendor_fixture():
    """Two events: a singles poule (draw 11) and a mixed knock-out (draw 21)."""
    return FakeVendorClient(
        events=[
            VendorEvent(code="1", name="HE A", level_id=2, gender_id=1, game_type_id=1),
            VendorEvent(code="2", name="GD B", level_id=3, gender_id=3, game_type_id=2),
        ],
        draws={
            "1": [VendorDraw(code="11", event_code="1", name="HE A - Poule", type_id=3, size=3)],
            "2": [VendorDraw(code="21", event_code="2", name="GD B - KO", type_id=0, size=2)],
        },
        entries={
            "11": [VendorEntry(_member("101")), VendorEntry(_member("102")), VendorEntry(_member("103"))],
            "21": [
                VendorEntry(_member("201"), _member("202")),
                VendorEntry(_member("203"), _member("204")),
            ],
        },
    )
