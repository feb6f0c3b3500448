"""
tests/conftest.py -- Shared test fixtures for AdminBoard integration tests.

This module provides:
  - make_stores(): isolated named in-memory DB shared by AccessStore + LogStore
  - _patch_lifespan(): wires test stores and a live audit writer into app.state
  - app_client: module-scoped TestClient plus the seeded admin's token
  - make_user(): a user holding exactly the given permissions
  - call_action(): POST an action and wait for its audit record to land

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool and the audit writer
writes from a worker thread. Plain :memory: DBs are per-connection and would
present a blank schema to each thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.

Shared-cache SQLite does not wait on locks, so call_action() drains the audit
writer before returning. The next request never races a log insert.

DEBUG must be set before any core/auth import so get_settings() generates
SECRET_KEY in dev mode instead of raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: set before any core/auth import; get_settings() is cached on first use.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("CRON_SECRET", "test-cron-secret-0123456789")
os.environ.setdefault("SIGN_IN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from audit.store import LogStore
from audit.writer import AuditLogWriter
from auth.models import Role, User
from auth.store import AccessStore
from auth.tokens import create_access_token, hash_password
from maintenance.seed import seed_defaults

ADMIN_EMAIL = "admin@admin.com"
ADMIN_PASSWORD = "adminpass123"


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def db_url(name: str) -> str:
    return f"sqlite:///file:test_{name}?mode=memory&cache=shared&uri=true"


def make_stores(name: str) -> tuple[AccessStore, LogStore]:
    """Create an AccessStore and LogStore on one named shared-memory database.

    Both stores must point at the same database: the log query joins users
    and entities.
    """
    url = db_url(name)
    return AccessStore(db_url=url), LogStore(db_url=url)


def make_user(
    store: AccessStore,
    email: str,
    permissions: Iterable[str] = (),
    entity_ids: Iterable[int] = (),
    name: str | None = None,
    is_active: bool = True,
    password: str = "userpass123",
) -> tuple[User, str]:
    """Create a user whose only role grants exactly `permissions`. Returns (user, token)."""
    role_ids: list[int] = []
    permissions = list(permissions)
    if permissions:
        role_ids.append(store.create_role(Role(name=f"role for {email}", permissions=permissions)))
    uid = store.create_user(
        User(
            name=name or email.split("@")[0],
            email=email,
            hashed_password=hash_password(password),
            is_active=is_active,
        ),
        role_ids=role_ids,
        entity_ids=entity_ids,
    )
    token = create_access_token(user_id=uid, email=email, expire_seconds=3600)
    return store.get_user(uid), token


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def drain_audit(client: TestClient) -> None:
    """Block until every queued audit record has been written."""
    client.portal.call(client.app.state.audit_writer.drain)


def call_action(client: TestClient, token: str | None, name: str, body: dict | None = None):
    """POST /api/actions/{name}, wait for audit writes, return the Response."""
    headers = auth_headers(token) if token else {}
    resp = client.post(f"/api/actions/{name}", json=body, headers=headers)
    drain_audit(client)
    return resp


def _patch_lifespan(store: AccessStore, log_store: LogStore):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state and runs a real audit writer
    on the TestClient's event loop.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.access_store = store
        app.state.log_store = log_store
        app.state.audit_writer = AuditLogWriter(log_store)
        await app.state.audit_writer.start()
        yield
        await app.state.audit_writer.stop(timeout=2.0)

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@dataclass
class AppHarness:
    client: TestClient
    store: AccessStore
    log_store: LogStore
    admin: User
    admin_token: str


@pytest.fixture(scope="module")
def app_client(request) -> Generator[AppHarness, None, None]:
    """Yield an AppHarness wired to a fresh seeded database for this module.

    follow_redirects=False so tests can assert on the middleware's 302.
    base_url uses localhost to pass TrustedHostMiddleware.
    """
    store, log_store = make_stores(request.module.__name__.rsplit(".", 1)[-1])
    admin = seed_defaults(store, ADMIN_EMAIL, ADMIN_PASSWORD)
    token = create_access_token(user_id=admin.id, email=admin.email, expire_seconds=3600)

    app.router.lifespan_context = _patch_lifespan(store, log_store)

    with TestClient(app, base_url="http://localhost", follow_redirects=False, raise_server_exceptions=True) as client:
        yield AppHarness(client=client, store=store, log_store=log_store, admin=admin, admin_token=token)

    log_store.close()
    store.close()


@pytest.fixture
def stores() -> Generator[tuple[AccessStore, LogStore], None, None]:
    """Function-scoped (AccessStore, LogStore) on a database no other test sees."""
    store, log_store = make_stores(f"unit_{uuid.uuid4().hex}")
    yield store, log_store
    log_store.close()
    store.close()
