"""Test configuration and fixtures."""

import os

# Set environment variables before importing application code
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["LOG_FORMAT"] = "console"
os.environ["AAD_AUTHORITY"] = "https://login.example.test/tenant-1/v2.0"
os.environ["AAD_ALLOWED_AUDIENCES"] = "api://db-distribution"
os.environ["AAD_ALLOWED_GROUPS_ADMINS"] = "grp-admins"
os.environ["AAD_ALLOWED_GROUPS_AUDITORS"] = "grp-auditors"
os.environ["RUNNER_BEARER_TOKEN"] = "runner-secret"
os.environ["AZURE_STORAGE_BACKUPS_PREFIX"] = "raw-backups"

from datetime import datetime, timedelta, timezone
from typing import Dict, Generator, List, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from db_distribution.api import app
from db_distribution.auth.azure_jwt import Authenticator
from db_distribution.auth.deps import get_authenticator
from db_distribution.auth.principal import AuthenticatedPrincipal, RunnerIdentity
from db_distribution.config import Settings, get_settings
from db_distribution.db.base import Base, get_db
from db_distribution.db.models import ServerModel
from db_distribution.db.services import DatabaseService, ServerService
from db_distribution.errors import Unauthenticated, Unavailable
from db_distribution.storage.broker import CredentialBroker, get_credential_broker

ADMIN = AuthenticatedPrincipal(
    subject_id="oid-admin",
    username="ada@example.com",
    email="ada@example.com",
    groups=frozenset({"grp-admins"}),
)
AUDITOR = AuthenticatedPrincipal(
    subject_id="oid-auditor",
    username="aud@example.com",
    email="aud@example.com",
    groups=frozenset({"grp-auditors"}),
)
ALICE = AuthenticatedPrincipal(
    subject_id="oid-alice",
    username="alice@example.com",
    email="alice@example.com",
    groups=frozenset({"grp-developers"}),
)
BOB = AuthenticatedPrincipal(
    subject_id="oid-bob",
    username="bob@example.com",
    email="bob@example.com",
)
RUNNER = RunnerIdentity(runner_id="runner-1")

TOKENS = {
    "admin-token": ADMIN,
    "auditor-token": AUDITOR,
    "alice-token": ALICE,
    "bob-token": BOB,
}

PINNED_NOW = datetime(2024, 3, 5, 14, 7, 30, tzinfo=timezone.utc)


class FakeAuthenticator(Authenticator):
    """Maps fixed bearer tokens to principals."""

    def authenticate(self, token: str) -> AuthenticatedPrincipal:
        try:
            return TOKENS[token]
        except KeyError:
            raise Unauthenticated("Invalid JWT")


class FakeCredentialBroker(CredentialBroker):
    """Records every issuance and returns recognizable URLs."""

    def __init__(self):
        self.reads: List[Tuple[str, timedelta]] = []
        self.writes: List[Tuple[str, timedelta]] = []
        self.ready = True

    def issue_read_url(self, key: str, ttl: timedelta) -> str:
        self.reads.append((key, ttl))
        return f"https://storage.test/backups/{key}?sp=r&sig=fake"

    def issue_write_url(self, key: str, ttl: timedelta) -> str:
        self.writes.append((key, ttl))
        return f"https://storage.test/backups/{key}?sp=cw&sig=fake"

    def check_ready(self) -> None:
        if not self.ready:
            raise Unavailable("Storage not reachable")


@pytest.fixture
def test_settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def engine():
    """A fresh in-memory database per test."""
    from db_distribution.db import models  # noqa: F401

    test_engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def broker() -> FakeCredentialBroker:
    return FakeCredentialBroker()


@pytest.fixture
def client(session_factory, broker, test_settings) -> Generator[TestClient, None, None]:
    """TestClient wired to the test database, fake identity and fake storage."""

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_credential_broker] = lambda: broker
    app.dependency_overrides[get_authenticator] = FakeAuthenticator
    app.dependency_overrides[get_settings] = lambda: test_settings
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Dict[str, Dict[str, str]]:
    return {
        "admin": {"Authorization": "Bearer admin-token"},
        "auditor": {"Authorization": "Bearer auditor-token"},
        "alice": {"Authorization": "Bearer alice-token"},
        "bob": {"Authorization": "Bearer bob-token"},
        "runner": {"Authorization": "Bearer runner-secret", "X-Runner-Id": "runner-1"},
    }


@pytest.fixture
def server(db_session) -> ServerModel:
    """An active server with CRM (active) and LEGACY (inactive) registered."""
    sql01 = ServerService(db_session).create("SQL 01", "sql01.corp.local")
    databases = DatabaseService(db_session)
    databases.create(sql01.id, "CRM")
    databases.create(sql01.id, "LEGACY", is_active=False)
    db_session.refresh(sql01)
    return sql01
