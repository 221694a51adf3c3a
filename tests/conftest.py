# tests/conftest.py

"""
Pytest configuration and shared fixtures for testing.
Everything runs against the in-memory store; no Supabase needed.
"""

import os

# Must be set before core.config is imported
os.environ["STORE_BACKEND"] = "memory"
os.environ.setdefault("AUDIT_WEBHOOK_URL", "")
os.environ.setdefault("SEND_INVITATION_EMAILS", "false")

from datetime import datetime, timedelta, timezone
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from core.audit import AuditEmitter
from core.principal_state import new_principal
from core.store import MemoryStore
from dependencies.auth import AuthIdentity, get_identity
from main import create_app
from models.enums import FullRole, UserStatus
from services.invitations import InvitationWorkflow
from services.permission_requests import PermissionRequestWorkflow
from services.principals import PrincipalService


class FrozenClock:
    """Callable clock the services read instead of the wall clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


# ============================================================
# Service-level fixtures
# ============================================================
@pytest.fixture
def clock():
    return FrozenClock(datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def audit(store):
    return AuditEmitter(store=store, persist=True, webhook_url="")


@pytest.fixture
def principals(store, audit, clock):
    return PrincipalService(store, audit, clock=clock)


@pytest.fixture
def requests_workflow(store, principals, audit, clock):
    return PermissionRequestWorkflow(store, principals, audit, clock=clock)


@pytest.fixture
def invitations(store, principals, audit, clock):
    return InvitationWorkflow(store, principals, audit, clock=clock)


@pytest.fixture
def make_principal(principals, clock):
    """Create and persist an ACTIVE principal with the given role."""

    def _make(principal_id: str, role: FullRole, email: str = None, department: str = None):
        principal = new_principal(
            principal_id=principal_id,
            email=email or f"{principal_id}@example.com",
            role=role,
            display_name=principal_id.title(),
            department=department,
            status=UserStatus.active,
            now=clock(),
        )
        return principals.create(principal)

    return _make


@pytest.fixture
def super_admin(make_principal):
    return make_principal("root", FullRole.super_admin)


@pytest.fixture
def admin(make_principal):
    return make_principal("admin", FullRole.admin)


@pytest.fixture
def sales_user(make_principal):
    return make_principal("sam", FullRole.sales)


# ============================================================
# HTTP fixtures
# ============================================================
@pytest.fixture(scope="function")
def app():
    """Create a test FastAPI application backed by a fresh MemoryStore."""
    return create_app(store=MemoryStore())


@pytest.fixture(scope="function")
def client(app) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI application."""
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def registry(app):
    return app.state.registry


@pytest.fixture
def seed(registry):
    """Persist an ACTIVE principal in the app's store."""

    def _seed(principal_id: str, role: FullRole, email: str = None):
        principal = new_principal(
            principal_id=principal_id,
            email=email or f"{principal_id}@example.com",
            role=role,
            display_name=principal_id.title(),
            status=UserStatus.active,
        )
        return registry.principals.create(principal)

    return _seed


@pytest.fixture
def login(app):
    """Make every request authenticate as the given identity."""

    def _login(principal_id: str, email: str = None):
        identity = AuthIdentity(id=principal_id, email=email or f"{principal_id}@example.com")
        app.dependency_overrides[get_identity] = lambda: identity
        return identity

    return _login
