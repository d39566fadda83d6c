import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import powgate.main as main_module
from powgate.database import Base, get_db
from powgate.main import app
from powgate.middleware.rate_limit import limiter
from powgate.models.used_challenge import UsedChallenge  # noqa: F401
from powgate.services.challenge_generator import ChallengeGenerator
from powgate.services.replay_store import InMemoryReplayStore
from powgate.services.solver import Solver
from powgate.services.verifier import Verifier
from tests.test_utils import TEST_SECRET, FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def replay_store(clock):
    return InMemoryReplayStore(clock=clock)


@pytest.fixture
def generator(clock):
    return ChallengeGenerator(TEST_SECRET, ttl_seconds=300, clock=clock)


@pytest.fixture
def verifier(replay_store, clock):
    return Verifier(TEST_SECRET, replay_store=replay_store, clock=clock)


@pytest.fixture
def solver():
    return Solver()


@pytest.fixture
def db_session():
    """Create a fresh in-memory database for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db_session):
    """Create a test client with the test database and disabled rate limiting."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    # Disable rate limiting for tests
    limiter.enabled = False

    # Point startup table creation at the test database
    original_engine = main_module.engine
    main_module.engine = db_session.get_bind()

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    limiter.enabled = True
    main_module.engine = original_engine
