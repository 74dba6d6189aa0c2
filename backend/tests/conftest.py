"""
Pytest fixtures shared by the store, orchestrator and HTTP tests.
"""
import os

# IMPORTANT: Set environment variables BEFORE any imports from linkify so
# Settings (lru_cached) and the module-level engine see the test config.
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-jwt-secret-0123456789abcdef"
os.environ["PERPLEXITY_API_KEY"] = "test-key"
os.environ["FRONTEND_URL"] = "http://frontend.test"
os.environ.pop("REDIS_URL", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from linkify.core.config import get_settings
from linkify.core.db import Base, get_db
from linkify.services.enrichment import EnrichmentOrchestrator
from linkify.services.identity import issue_session_token
from linkify.services.locks import LocalKeyedLock
from linkify.services.store import RecordStore

from tests.fixtures.llm_fixtures import FakeCompletionClient


@pytest.fixture
def engine():
    """Fresh in-memory database per test; StaticPool keeps one shared connection."""
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def store(db_session):
    return RecordStore(db_session)


@pytest.fixture
def fake_completion():
    return FakeCompletionClient()


@pytest.fixture
def orchestrator(store, fake_completion):
    return EnrichmentOrchestrator(store, fake_completion, LocalKeyedLock(), get_settings())


@pytest.fixture
def user(store):
    """A signed-up user whose AccountCompany exists with an empty analysis."""
    u = store.create_user(
        google_id="google-sub-1",
        email="alice@acme.io",
        name="Alice",
        avatar_url=None,
        company_domain="acme.io",
    )
    store.get_or_create_account_company("acme.io", owner_user_id=u.id)
    return u


@pytest.fixture
def other_user(store):
    return store.create_user(
        google_id="google-sub-2",
        email="bob@initech.com",
        name="Bob",
        avatar_url=None,
        company_domain="initech.com",
    )


@pytest.fixture
def auth_headers(user):
    return {"Authorization": f"Bearer {issue_session_token(user)}"}


@pytest.fixture
def client(session_factory, fake_completion):
    """
    FastAPI test client wired to the per-test database and the fake
    completion client.
    """
    from linkify.main import app
    from linkify.api.deps import get_completion

    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_completion] = lambda: fake_completion
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
