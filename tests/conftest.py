import sys
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest
import sqlalchemy as sa
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.append(str(PROJECT_ROOT))

from vattenmiljo_crm.auth.types import AuthUser, Role, Session, derive_display_name  # noqa: E402
from vattenmiljo_crm.config import Settings  # noqa: E402
from vattenmiljo_crm.db.models import Base  # noqa: E402
from vattenmiljo_crm.exceptions import IdentityProviderError  # noqa: E402
from vattenmiljo_crm.main import create_app  # noqa: E402


def make_settings(**overrides: Any) -> Settings:
    """Return settings suitable for tests, with optional overrides."""
    base = Settings(
        firebase_project_id="test-project",
        firebase_credentials=None,
        firebase_storage_bucket=None,
        firebase_web_api_key="test-key",
        auth_cookie_name="auth-user",
        session_max_age_seconds=3600,
        cookie_secure=False,
        setup_enabled=True,
        backup_retention_days=30,
        customer_files_prefix="customer-files/",
        cors_origins=("http://localhost:3000",),
        auth_rate_limit=100,
        auth_rate_window_seconds=60,
        redis_url=None,
        sentry_dsn=None,
        sentry_environment="test",
        log_level="INFO",
    )
    return replace(base, **overrides)


class FakeIdentityProvider:
    """In-process stand-in for the Firebase-backed identity provider."""

    def __init__(self) -> None:
        self.sessions: dict[str, Session] = {}
        self.created: list[dict[str, Any]] = []
        self.signed_out: list[str] = []
        self.create_error: Exception | None = None
        self.sign_out_error: Exception | None = None

    def add_session(
        self,
        token: str,
        role: Role = Role.INTERNAL,
        uid: str = "uid-1",
        email: str = "user@example.com",
        name: str = "User",
        active: bool = True,
    ) -> Session:
        user = AuthUser(id=uid, email=email, name=name, role=role, is_active=active)
        session = Session(
            user=user,
            access_token=token,
            expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        )
        self.sessions[token] = session
        return session

    def _lookup(self, token: str) -> Session:
        session = self.sessions.get(token)
        if session is None:
            raise IdentityProviderError("INVALID_ID_TOKEN", provider_code="INVALID_ARGUMENT")
        return session

    def verify_id_token(self, token: str) -> Session:
        return self._lookup(token)

    def verify_session_cookie(self, cookie: str) -> Session:
        return self._lookup(cookie)

    def create_user(
        self,
        email: str,
        password: str,
        name: str | None = None,
        role: Role = Role.ADMIN,
        email_confirmed: bool = True,
    ) -> AuthUser:
        self.created.append(
            {
                "email": email,
                "password": password,
                "name": name,
                "role": role,
                "email_confirmed": email_confirmed,
            }
        )
        if self.create_error is not None:
            raise self.create_error
        return AuthUser(
            id=f"uid-{len(self.created)}",
            email=email,
            name=derive_display_name(name, email),
            role=role,
        )

    def create_session_cookie(self, id_token: str, expires_in: timedelta) -> str:
        session = self._lookup(id_token)
        cookie = f"cookie-{id_token}"
        self.sessions[cookie] = session
        return cookie

    def sign_out(self, uid: str) -> None:
        if self.sign_out_error is not None:
            raise self.sign_out_error
        self.signed_out.append(uid)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def engine() -> sa.Engine:
    """Return an in-memory SQLite engine with the schema created."""
    engine = sa.create_engine(
        "sqlite://",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def client(settings: Settings, provider: FakeIdentityProvider) -> TestClient:
    """Return a TestClient for an app wired to the fake identity provider."""
    app = create_app(settings, identity_provider=provider)  # type: ignore[arg-type]
    return TestClient(app)
