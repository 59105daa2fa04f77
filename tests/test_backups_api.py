from __future__ import annotations

from datetime import datetime, timezone

import pytest
import sqlalchemy as sa
from fastapi.testclient import TestClient

from conftest import FakeIdentityProvider, make_settings
from vattenmiljo_crm.auth.types import Role
from vattenmiljo_crm.backups.service import BackupService
from vattenmiljo_crm.backups.storage import InMemoryBackupStorage
from vattenmiljo_crm.main import create_app

AUTH = {"Authorization": "Bearer token"}


class RecordingBackupService:
    """Backup collaborator that records retention requests."""

    def __init__(self, deleted: int = 0, error: Exception | None = None) -> None:
        self.deleted = deleted
        self.error = error
        self.calls: list[int] = []

    def delete_old_backups(self, retention_days: int = 30) -> int:
        self.calls.append(retention_days)
        if self.error is not None:
            raise self.error
        return self.deleted


def _client(provider: FakeIdentityProvider, service: object) -> TestClient:
    app = create_app(make_settings(), identity_provider=provider, backup_service=service)  # type: ignore[arg-type]
    return TestClient(app)


def test_cleanup_requires_session(provider: FakeIdentityProvider) -> None:
    """Return 401 when no session is present."""
    service = RecordingBackupService()
    client = _client(provider, service)

    response = client.post("/api/backups/cleanup", json={"retentionDays": 10})

    assert response.status_code == 401
    assert response.json()["error"] == "Unauthorized"
    assert service.calls == []


def test_cleanup_rejects_unknown_token(provider: FakeIdentityProvider) -> None:
    service = RecordingBackupService()
    client = _client(provider, service)

    response = client.post("/api/backups/cleanup", json={}, headers=AUTH)

    assert response.status_code == 401


@pytest.mark.parametrize("role", [Role.SALESPERSON, Role.INSTALLER, Role.ADMIN])
def test_cleanup_requires_internal_role(provider: FakeIdentityProvider, role: Role) -> None:
    """Return 403 for every role other than internal."""
    provider.add_session("token", role=role)
    service = RecordingBackupService()
    client = _client(provider, service)

    response = client.post("/api/backups/cleanup", json={"retentionDays": 10}, headers=AUTH)

    assert response.status_code == 403
    assert response.json()["error"] == "Insufficient permissions"
    assert service.calls == []


def test_cleanup_rejects_inactive_account(provider: FakeIdentityProvider) -> None:
    provider.add_session("token", role=Role.INTERNAL, active=False)
    service = RecordingBackupService()
    client = _client(provider, service)

    response = client.post("/api/backups/cleanup", json={}, headers=AUTH)

    assert response.status_code == 401
    assert response.json()["error"] == "Account is inactive"


def test_cleanup_forwards_retention_days(provider: FakeIdentityProvider) -> None:
    """Forward the requested retention and echo the deleted count."""
    provider.add_session("token", role=Role.INTERNAL)
    service = RecordingBackupService(deleted=7)
    client = _client(provider, service)

    response = client.post("/api/backups/cleanup", json={"retentionDays": 45}, headers=AUTH)

    assert response.status_code == 200
    assert service.calls == [45]
    assert response.json() == {"message": "Cleaned up 7 old backups", "deletedCount": 7}


@pytest.mark.parametrize("body", [None, {}])
def test_cleanup_defaults_to_thirty_days(
    provider: FakeIdentityProvider, body: dict[str, int] | None
) -> None:
    provider.add_session("token", role=Role.INTERNAL)
    service = RecordingBackupService()
    client = _client(provider, service)

    response = client.post("/api/backups/cleanup", json=body, headers=AUTH)

    assert response.status_code == 200
    assert service.calls == [30]
    assert response.json()["deletedCount"] == 0


def test_cleanup_reports_errors(provider: FakeIdentityProvider) -> None:
    """Answer collaborator failures with 500 and the error message."""
    provider.add_session("token", role=Role.INTERNAL)
    service = RecordingBackupService(error=RuntimeError("Failed to fetch old backups"))
    client = _client(provider, service)

    response = client.post("/api/backups/cleanup", json={}, headers=AUTH)

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to fetch old backups"}


def test_cleanup_generic_error_message(provider: FakeIdentityProvider) -> None:
    provider.add_session("token", role=Role.INTERNAL)
    client = _client(provider, RecordingBackupService(error=RuntimeError()))

    response = client.post("/api/backups/cleanup", json={}, headers=AUTH)

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to cleanup backups"}


def test_cleanup_without_backup_service(provider: FakeIdentityProvider) -> None:
    provider.add_session("token", role=Role.INTERNAL)
    client = _client(provider, None)

    response = client.post("/api/backups/cleanup", json={}, headers=AUTH)

    assert response.status_code == 500
    assert response.json()["error"] == "Backups are not configured"


JSON_HEADERS = {"Content-Type": "application/json"}


@pytest.mark.parametrize(
    "content",
    ["{not json", '{"retentionDays": "abc"}', '{"retentionDays": -1}', "[1, 2]"],
)
@pytest.mark.parametrize("path", ["/api/backups/cleanup", "/api/backups"])
def test_anonymous_request_with_bad_body_is_unauthorized(
    provider: FakeIdentityProvider, path: str, content: str
) -> None:
    """Check the session before looking at the body."""
    service = RecordingBackupService()
    client = _client(provider, service)

    response = client.post(path, content=content, headers=JSON_HEADERS)

    assert response.status_code == 401
    assert response.json()["error"] == "Unauthorized"
    assert service.calls == []


def test_salesperson_with_bad_body_is_forbidden(provider: FakeIdentityProvider) -> None:
    provider.add_session("token", role=Role.SALESPERSON)
    client = _client(provider, RecordingBackupService())

    response = client.post(
        "/api/backups/cleanup", content="{not json", headers={**AUTH, **JSON_HEADERS}
    )

    assert response.status_code == 403


@pytest.mark.parametrize("content", ["{not json", "[1, 2]", "null"])
def test_cleanup_rejects_unparsable_body(provider: FakeIdentityProvider, content: str) -> None:
    provider.add_session("token", role=Role.INTERNAL)
    service = RecordingBackupService()
    client = _client(provider, service)

    response = client.post(
        "/api/backups/cleanup", content=content, headers={**AUTH, **JSON_HEADERS}
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid request body"}
    assert service.calls == []


@pytest.mark.parametrize("retention", ["abc", -1, 1.5, True, [30]])
def test_cleanup_rejects_invalid_retention_days(
    provider: FakeIdentityProvider, retention: object
) -> None:
    provider.add_session("token", role=Role.INTERNAL)
    service = RecordingBackupService()
    client = _client(provider, service)

    response = client.post("/api/backups/cleanup", json={"retentionDays": retention}, headers=AUTH)

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid retentionDays"}
    assert service.calls == []


def _real_service(engine: sa.Engine) -> BackupService:
    clock = lambda: datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)  # noqa: E731
    return BackupService(engine, InMemoryBackupStorage(), clock=clock)


def test_create_and_list_backups(provider: FakeIdentityProvider, engine: sa.Engine) -> None:
    """Run a full backup and read it back from the history."""
    provider.add_session("token", role=Role.INTERNAL)
    client = _client(provider, _real_service(engine))

    created = client.post("/api/backups", json={}, headers=AUTH)

    assert created.status_code == 200
    body = created.json()
    assert body["message"] == "Backup created successfully"
    assert sorted(b["type"] for b in body["backup"]) == ["database", "files"]

    history = client.get("/api/backups", params={"limit": 10}, headers=AUTH)

    assert history.status_code == 200
    backups = history.json()["backups"]
    assert len(backups) == 2
    assert {b["status"] for b in backups} == {"completed"}


def test_create_database_backup_only(provider: FakeIdentityProvider, engine: sa.Engine) -> None:
    provider.add_session("token", role=Role.INTERNAL)
    client = _client(provider, _real_service(engine))

    response = client.post("/api/backups", json={"type": "database"}, headers=AUTH)

    assert response.status_code == 200
    backup = response.json()["backup"]
    assert backup["type"] == "database"
    assert backup["storage_location"].startswith("backups/2026/3/backup-database-")


def test_create_backup_rejects_unknown_type(
    provider: FakeIdentityProvider, engine: sa.Engine
) -> None:
    provider.add_session("token", role=Role.INTERNAL)
    client = _client(provider, _real_service(engine))

    response = client.post("/api/backups", json={"type": "tape"}, headers=AUTH)

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid backup type"}


def test_backup_history_requires_internal(
    provider: FakeIdentityProvider, engine: sa.Engine
) -> None:
    provider.add_session("token", role=Role.SALESPERSON)
    client = _client(provider, _real_service(engine))

    response = client.get("/api/backups", headers=AUTH)

    assert response.status_code == 403


@pytest.mark.parametrize("body", [{"type": 5}, {"type": None}])
def test_create_backup_rejects_wrongly_typed_type(
    provider: FakeIdentityProvider, engine: sa.Engine, body: dict[str, object]
) -> None:
    provider.add_session("token", role=Role.INTERNAL)
    client = _client(provider, _real_service(engine))

    response = client.post("/api/backups", json=body, headers=AUTH)

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid backup type"}


def test_create_backup_rejects_unparsable_body(
    provider: FakeIdentityProvider, engine: sa.Engine
) -> None:
    provider.add_session("token", role=Role.INTERNAL)
    client = _client(provider, _real_service(engine))

    response = client.post("/api/backups", content="{not json", headers={**AUTH, **JSON_HEADERS})

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid request body"}
