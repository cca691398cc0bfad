"""Pytest fixtures for the warden test suite.

Provides reusable test fixtures for:
- In-memory SQLite database, recreated for every test
- Tenants seeded with the permission catalog and system roles
- Identities with ADMIN, USER or custom permission sets
- AuthContext objects for service-level tests
- Test clients authenticated with real sessions and access tokens
- A recording alert dispatcher for hand-off tests

Usage:
    def test_admin_endpoint(client, admin, auth_headers):
        response = client.get("/api/v1/roles", headers=auth_headers(admin))
        assert response.status_code == 200
"""

import os
import sys
from pathlib import Path

# Set environment variables BEFORE any imports to ensure they take effect
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-key-256-bits-minimum-length-required-for-security")
os.environ.setdefault("PASSWORD_PEPPER", "test-pepper-secret-key-32-chars-long")
os.environ.setdefault("INTERNAL_API_SECRET", "test-internal-secret")
os.environ.setdefault("AUDIT_CHAIN_KEY", "test-audit-chain-key")
os.environ["ALERT_DISPATCH_MODE"] = "disabled"
os.environ.setdefault("LOG_JSON", "false")
# Set very high rate limits for testing (effectively disable rate limiting)
os.environ.setdefault("RATE_LIMIT_MAX_ATTEMPTS", "10000")
os.environ.setdefault("RATE_LIMIT_WINDOW", "1")
os.environ.setdefault("LOCKOUT_THRESHOLD", "10000")

backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))

from typing import Callable, Dict, Generator, Iterable, List, Optional

import pytest
from fastapi.testclient import TestClient
from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from warden.alerts.dispatch import DISPATCHER_KEY, AlertDispatcher
from warden.auth.context import AuthContext
from warden.auth.password import hash_password
from warden.auth.service import issue_access_token
from warden.database import SessionLocal, engine, get_db
from warden.main import app
from warden.models import Base
from warden.models.identity import Identity
from warden.models.role import IdentityRole, Role, RolePermission
from warden.models.tenant import Tenant
from warden.rbac.permissions import ADMIN_ROLE_NAME, USER_ROLE_NAME
from warden.rbac.resolver import PermissionResolver
from warden.rbac.service import seed_permissions, seed_system_roles
from warden.sessions.service import SessionStore

TEST_PASSWORD = "SecureP@ss123"


class RecordingDispatcher(AlertDispatcher):
    """Collects (tenant_id, audit_log_id) pairs instead of enqueueing them."""

    def __init__(self):
        self.events = []

    def dispatch(self, tenant_id: int, audit_log_id: int) -> None:
        self.events.append((tenant_id, audit_log_id))


class FakePipeline:
    """Queues commands and runs them against FakeRedis on execute()"""

    def __init__(self, redis):
        self.redis = redis
        self.calls = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self

        return queue

    def execute(self):
        results = [getattr(self.redis, name)(*args, **kwargs) for name, args, kwargs in self.calls]
        self.calls = []
        return results


class FakeRedis:
    """The handful of Redis commands the throttle issues, in memory"""

    def __init__(self):
        self.values = {}
        self.sorted_sets = {}
        self.ttls = {}

    def pipeline(self):
        return FakePipeline(self)

    def ttl(self, key):
        return self.ttls.get(key, -1) if key in self.values else -2

    def setex(self, key, seconds, value):
        self.values[key] = value
        self.ttls[key] = seconds

    def incr(self, key):
        self.values[key] = int(self.values.get(key, 0)) + 1
        return self.values[key]

    def expire(self, key, seconds):
        self.ttls[key] = seconds
        return True

    def zadd(self, key, mapping):
        self.sorted_sets.setdefault(key, {}).update(mapping)
        return len(mapping)

    def zcard(self, key):
        return len(self.sorted_sets.get(key, {}))

    def zremrangebyscore(self, key, low, high):
        members = self.sorted_sets.get(key, {})
        stale = [member for member, score in members.items() if low <= score <= high]
        for member in stale:
            del members[member]
        return len(stale)

    def delete(self, *keys):
        for key in keys:
            self.values.pop(key, None)
            self.sorted_sets.pop(key, None)
            self.ttls.pop(key, None)

    def scan_iter(self, pattern):
        prefix = pattern.rstrip("*")
        return [key for key in list(self.values) + list(self.sorted_sets) if key.startswith(prefix)]


@pytest.fixture(scope="function", autouse=True)
def reset_rate_limiter():
    """Reset login throttling state before each test (when Redis is running)."""
    from warden.auth.rate_limit import login_throttle

    if login_throttle.redis:
        try:
            login_throttle.clear()
        except RedisError:
            pass  # Redis went away; the throttle is open in the app too
    yield


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database for each test.

    Creates all tables before the test and drops them after.
    """
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


def _create_tenant(db: Session, code: str, name: str) -> Tenant:
    seed_permissions(db)
    tenant = Tenant(code=code, name=name)
    db.add(tenant)
    db.flush()
    seed_system_roles(db, tenant.id)
    db.commit()
    db.refresh(tenant)
    return tenant


@pytest.fixture(scope="function")
def tenant(db_session: Session) -> Tenant:
    """Tenant "acme" with the permission catalog and ADMIN/USER roles."""
    return _create_tenant(db_session, "acme", "Acme")


@pytest.fixture(scope="function")
def other_tenant(db_session: Session, tenant: Tenant) -> Tenant:
    """Second tenant "globex" for isolation tests."""
    return _create_tenant(db_session, "globex", "Globex")


@pytest.fixture(scope="function")
def make_identity(db_session: Session) -> Callable[..., Identity]:
    """Factory for identities.

    Args:
        tenant: Tenant of the identity
        email: Email address
        roles: Names of system roles to assign (ADMIN, USER)
        permissions: Permission ids granted through a dedicated custom role
        password: Plain password (TEST_PASSWORD by default)
    """
    counter = {"n": 0}

    def _make(
        tenant: Tenant,
        email: str,
        roles: Iterable[str] = (),
        permissions: Optional[Iterable[int]] = None,
        password: str = TEST_PASSWORD,
        is_active: bool = True,
    ) -> Identity:
        identity = Identity(
            tenant_id=tenant.id,
            email=email,
            name=email.split("@")[0].title(),
            password_hash=hash_password(password),
            is_active=is_active,
        )
        db_session.add(identity)
        db_session.flush()

        for role_name in roles:
            role = (
                db_session.query(Role)
                .filter(Role.tenant_id == tenant.id, Role.name == role_name)
                .one()
            )
            db_session.add(IdentityRole(identity=identity, role=role))

        if permissions is not None:
            counter["n"] += 1
            role = Role(tenant_id=tenant.id, name=f"custom-{counter['n']}", is_system=False)
            role.grants = [RolePermission(permission_id=int(p)) for p in sorted(set(permissions))]
            db_session.add(role)
            db_session.flush()
            db_session.add(IdentityRole(identity=identity, role=role))

        db_session.commit()
        db_session.refresh(identity)
        return identity

    return _make


@pytest.fixture(scope="function")
def admin(tenant: Tenant, make_identity) -> Identity:
    """Identity with the ADMIN system role (every permission)."""
    return make_identity(tenant, "admin@acme.com", roles=[ADMIN_ROLE_NAME])


@pytest.fixture(scope="function")
def member(tenant: Tenant, make_identity) -> Identity:
    """Identity with the USER system role (view, read, create, edit, submit)."""
    return make_identity(tenant, "member@acme.com", roles=[USER_ROLE_NAME])


@pytest.fixture(scope="function")
def make_auth(db_session: Session) -> Callable[..., AuthContext]:
    """Build an AuthContext backed by a real session, as get_auth_context would."""

    def _make(identity: Identity, ip_address: str = "203.0.113.10") -> AuthContext:
        issued = SessionStore(db_session).create_session(
            identity.id, device_info="pytest", ip_address=ip_address
        )
        db_session.commit()
        return AuthContext(
            identity=identity,
            tenant_id=identity.tenant_id,
            session_id=issued.session_id,
            permissions=PermissionResolver(db_session).resolve(identity.id, identity.tenant_id),
            ip_address=ip_address,
            user_agent="pytest",
        )

    return _make


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Unauthenticated test client sharing the test database session."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def auth_headers(db_session: Session) -> Callable[[Identity], Dict[str, str]]:
    """Authorization header for an identity, backed by a new session."""

    def _headers(identity: Identity) -> Dict[str, str]:
        issued = SessionStore(db_session).create_session(identity.id, device_info="pytest")
        db_session.commit()
        return {"Authorization": f"Bearer {issue_access_token(identity, issued.session)}"}

    return _headers


@pytest.fixture(scope="function")
def recorded_alerts(db_session: Session) -> List:
    """Replace alert dispatch on the test session with a recorder.

    Returns the list of (tenant_id, audit_log_id) pairs dispatched after commit.
    """
    dispatcher = RecordingDispatcher()
    db_session.info[DISPATCHER_KEY] = dispatcher
    return dispatcher.events
