"""
tests/conftest.py -- Shared test fixtures for tenant-rbac.

This module provides:
  - FakeAccessor / RaisingAccessor: in-memory SchemaAccessor substitutes for
    unit tests of rbac/checks.py and rbac/gate.py (no database involved)
  - store: a fresh in-memory RBACStore per test
  - seed_world(): the two-tenant dataset shared by store and API tests
  - api_client: TestClient over the real app with a patched lifespan
  - identity_token(): mints a token the way the external provider would

Design: the API fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread.

The DEBUG env var must be set before any core/auth import so get_settings()
auto-generates IDENTITY_SECRET in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

# Set DEBUG before any core/auth import so get_settings() can auto-generate
# IDENTITY_SECRET in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")
# The limiter's memory storage is process-wide; keep it out of the way of
# the API suites, which share one client address.
os.environ.setdefault("API_RATE_LIMIT", "10000/minute")
# TestClient sends Host: testserver.
os.environ.setdefault("ALLOWED_HOSTS", '["testserver"]')

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from api.main import app
from core.config import get_settings
from rbac.models import Permission, PermissionGrant, PermissionRecord, Role, RoleGrant, Tenant, User, UserRoleGrant
from rbac.store import RBACStore

STANDARD_KEYS = (
    "role.read",
    "role.create",
    "role.update",
    "role.delete",
    "permission.assign",
    "user.read",
    "user.assign_role",
)


# ---------------------------------------------------------------------------
# SchemaAccessor fakes
# ---------------------------------------------------------------------------


class FakeAccessor:
    """Dict-backed SchemaAccessor.

    role_tenants:     role_id -> stored tenant id (any representation)
    role_permissions: role_id -> permission keys
    user_roles:       user_id -> role ids

    calls records every query so tests can assert what the gate asked for.
    """

    def __init__(
        self,
        role_tenants: Optional[dict[int, object]] = None,
        role_permissions: Optional[dict[int, list[str]]] = None,
        user_roles: Optional[dict[int, list[int]]] = None,
    ) -> None:
        self.role_tenants = role_tenants or {}
        self.role_permissions = role_permissions or {}
        self.user_roles = user_roles or {}
        self.calls: list[tuple] = []

    def user_roles_in_tenant(self, user_id, tenant_id, *, limit=None, embed_permissions=True):
        self.calls.append(("user_roles_in_tenant", user_id, tenant_id, limit, embed_permissions))
        grants = []
        for role_id in self.user_roles.get(user_id, []):
            stored = self.role_tenants.get(role_id)
            if stored is None or int(stored) != tenant_id:
                continue
            permissions = None
            if embed_permissions:
                permissions = [
                    PermissionGrant(permission_id=i, permission=PermissionRecord(key=key))
                    for i, key in enumerate(self.role_permissions.get(role_id, []), start=1)
                ]
            grants.append(UserRoleGrant(role_id=role_id, role=RoleGrant(id=role_id, tenant_id=stored, permissions=permissions)))
        return grants[:limit] if limit is not None else grants

    def role_tenant_id(self, role_id):
        self.calls.append(("role_tenant_id", role_id))
        return self.role_tenants.get(role_id)


class RaisingAccessor:
    """SchemaAccessor whose every query fails like a dropped connection."""

    def __init__(self, exc: Exception | None = None) -> None:
        self.exc = exc or ConnectionError("store unreachable")

    def user_roles_in_tenant(self, user_id, tenant_id, *, limit=None, embed_permissions=True):
        raise self.exc

    def role_tenant_id(self, role_id):
        raise self.exc


class ShapeAccessor:
    """SchemaAccessor that returns a fixed, possibly malformed, grant list."""

    def __init__(self, grants, role_tenant=None) -> None:
        self.grants = grants
        self.role_tenant = role_tenant

    def user_roles_in_tenant(self, user_id, tenant_id, *, limit=None, embed_permissions=True):
        return self.grants

    def role_tenant_id(self, role_id):
        return self.role_tenant


# ---------------------------------------------------------------------------
# Real store fixtures
# ---------------------------------------------------------------------------


@dataclass
class World:
    """Ids of the seeded two-tenant dataset.

    acme:    admin (Admin: every key), viewer (Viewer: role.read, user.read)
    globex:  outsider (Admin: every key)
    nobody:  orphan (no roles), target (no roles)
    """

    acme: int = 0
    globex: int = 0
    acme_admin_role: int = 0
    acme_viewer_role: int = 0
    globex_admin_role: int = 0
    admin: int = 0
    viewer: int = 0
    outsider: int = 0
    orphan: int = 0
    target: int = 0
    permissions: dict[str, int] = field(default_factory=dict)


def seed_world(store: RBACStore) -> World:
    w = World()
    w.permissions = {key: store.create_permission(Permission(key=key, description=key)) for key in STANDARD_KEYS}
    w.acme = store.create_tenant(Tenant(name="Acme"))
    w.globex = store.create_tenant(Tenant(name="Globex"))

    w.acme_admin_role = store.create_role(Role(tenant_id=w.acme, name="Admin"))
    w.acme_viewer_role = store.create_role(Role(tenant_id=w.acme, name="Viewer"))
    w.globex_admin_role = store.create_role(Role(tenant_id=w.globex, name="Admin"))
    for key in STANDARD_KEYS:
        store.assign_permission(w.acme_admin_role, w.permissions[key])
        store.assign_permission(w.globex_admin_role, w.permissions[key])
    store.assign_permission(w.acme_viewer_role, w.permissions["role.read"])
    store.assign_permission(w.acme_viewer_role, w.permissions["user.read"])

    w.admin = store.create_user(User(auth_id="auth-admin", email="admin@acme.test"))
    w.viewer = store.create_user(User(auth_id="auth-viewer", email="viewer@acme.test"))
    w.outsider = store.create_user(User(auth_id="auth-outsider", email="ops@globex.test"))
    w.orphan = store.create_user(User(auth_id="auth-orphan", email="orphan@nowhere.test"))
    w.target = store.create_user(User(auth_id="auth-target", email="new@acme.test"))
    store.assign_role(w.admin, w.acme_admin_role)
    store.assign_role(w.viewer, w.acme_viewer_role)
    store.assign_role(w.outsider, w.globex_admin_role)
    return w


@pytest.fixture
def store() -> Generator[RBACStore, None, None]:
    s = RBACStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def world(store: RBACStore) -> World:
    return seed_world(store)


# ---------------------------------------------------------------------------
# Identity tokens
# ---------------------------------------------------------------------------


def identity_token(subject: str, expires_in: int = 3600, secret: Optional[str] = None, **claims) -> str:
    """Encode a token the way the external identity provider would."""
    settings = get_settings()
    payload = {
        "sub": subject,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        **claims,
    }
    return jwt.encode(payload, secret or settings.identity_secret, algorithm=settings.identity_algorithm)


def bearer(subject: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {identity_token(subject)}"}


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(store: RBACStore):
    """Return a lifespan that wires the pre-seeded test store into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.store = store
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, RBACStore, World], None, None]:
    """Yield (client, store, world) for API integration tests.

    Each test module gets its own named in-memory database so state created
    in one module never leaks into another.
    """
    db_name = request.module.__name__.replace(".", "_")
    store = RBACStore(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    w = seed_world(store)

    app.router.lifespan_context = _patch_lifespan(store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, store, w

    store.close()
