"""
tests/conftest.py -- Shared test fixtures for Teamgate.

This module provides:
  - make_user() / seed_org(): insert users and teams straight through OrgStore,
    with one precomputed bcrypt hash so fixtures stay fast
  - store / add_user / actor_of / auth_service / user_service / team_service:
    function-scoped, each on a fresh in-memory database
  - org: a seeded organization (admin, two managers, two teams, employees)
  - api_client: TestClient over the real app with a patched lifespan

Design: the API fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. The named URI (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the process.

The DEBUG env var must be set before any core/auth import so get_settings()
generates JWT_SECRET and does not demand DATABASE_URL.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta

# CRITICAL: Set DEBUG before any core/auth import so get_settings() runs in
# dev mode instead of raising ValueError for the missing secret.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.service import AuthService
from auth.tokens import hash_password, issue_access_token
from core.config import get_settings
from org.models import Role, Team, User
from org.policy import Actor
from org.service import TeamService, UserService
from org.store import OrgStore

PASSWORD = "correct-horse-42"
_PASSWORD_HASH = hash_password(PASSWORD)


# ---------------------------------------------------------------------------
# Seeding helpers
# ---------------------------------------------------------------------------


def make_user(
    store: OrgStore,
    email: str,
    role: Role = Role.employee,
    team_id: int | None = None,
    created_by_id: int | None = None,
) -> int:
    """Insert a user whose password is PASSWORD and return its id."""
    local = email.split("@")[0]
    return store.create_user(
        User(
            email=email,
            password_hash=_PASSWORD_HASH,
            first_name=local.capitalize(),
            last_name="Test",
            role=role,
            team_id=team_id,
            created_by_id=created_by_id,
        )
    )


@dataclass
class Org:
    """Ids of a small seeded organization.

    team_a: manager_a, alice, bob
    team_b: manager_b, carol
    manager_x manages nothing; dave has no team.
    """

    admin: int
    manager_a: int
    manager_b: int
    manager_x: int
    team_a: int
    team_b: int
    alice: int
    bob: int
    carol: int
    dave: int


def seed_org(store: OrgStore) -> Org:
    admin = make_user(store, "admin@acme.io", Role.admin)
    team_a = store.create_team(Team(name="Platform", created_by_id=admin))
    team_b = store.create_team(Team(name="Payments", created_by_id=admin))
    manager_a = make_user(store, "mara@acme.io", Role.manager, created_by_id=admin)
    manager_b = make_user(store, "mbert@acme.io", Role.manager, created_by_id=admin)
    manager_x = make_user(store, "mxavier@acme.io", Role.manager, created_by_id=admin)
    store.add_team_manager(team_a, manager_a)
    store.add_team_manager(team_b, manager_b)
    return Org(
        admin=admin,
        manager_a=manager_a,
        manager_b=manager_b,
        manager_x=manager_x,
        team_a=team_a,
        team_b=team_b,
        alice=make_user(store, "alice@acme.io", team_id=team_a, created_by_id=admin),
        bob=make_user(store, "bob@acme.io", team_id=team_a, created_by_id=admin),
        carol=make_user(store, "carol@acme.io", team_id=team_b, created_by_id=admin),
        dave=make_user(store, "dave@acme.io", created_by_id=admin),
    )


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_rate_limits() -> None:
    """Start every test with empty slowapi counters."""
    limiter.reset()


@pytest.fixture
def store() -> Generator[OrgStore, None, None]:
    s = OrgStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def org(store: OrgStore) -> Org:
    return seed_org(store)


@pytest.fixture
def add_user(store: OrgStore):
    """Return make_user bound to the test store: add_user(email, role=..., team_id=...)."""

    def _add(email: str, role: Role = Role.employee, team_id: int | None = None, created_by_id: int | None = None) -> int:
        return make_user(store, email, role, team_id=team_id, created_by_id=created_by_id)

    return _add


@pytest.fixture
def actor_of(store: OrgStore):
    """Return a function mapping a user id to its current Actor."""

    def _actor(user_id: int) -> Actor:
        user = store.get_user(user_id)
        assert user is not None, f"user {user_id} missing"
        return Actor.from_user(user)

    return _actor


@pytest.fixture
def auth_service(store: OrgStore) -> AuthService:
    return AuthService(store, get_settings())


@pytest.fixture
def user_service(store: OrgStore) -> UserService:
    return UserService(store)


@pytest.fixture
def team_service(store: OrgStore) -> TeamService:
    return TeamService(store)


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(store: OrgStore):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store and services into app.state so routes hit an
    isolated in-memory database instead of DATABASE_URL.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.store = store
        app.state.auth_service = AuthService(store, get_settings())
        app.state.user_service = UserService(store)
        app.state.team_service = TeamService(store)
        yield

    return test_lifespan


@dataclass
class ApiContext:
    client: TestClient
    store: OrgStore
    org: Org

    def token_for(self, user_id: int) -> str:
        return issue_access_token(user_id, get_settings().jwt_secret, timedelta(hours=1))

    def auth(self, user_id: int) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token_for(user_id)}"}


@pytest.fixture
def api_client() -> Generator[ApiContext, None, None]:
    """Yield an ApiContext over a freshly seeded organization.

    Function-scoped: write tests (deletes, refresh rotation) would otherwise
    leak state into each other.
    """
    store = OrgStore(f"sqlite:///file:teamgate_api_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")
    org = seed_org(store)
    app.router.lifespan_context = _patch_lifespan(store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiContext(client=client, store=store, org=org)

    store.close()
