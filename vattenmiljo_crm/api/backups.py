from __future__ import annotations

import logging
from typing import cast

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, StrictInt, ValidationError

from vattenmiljo_crm.api.body import JsonBody, read_json_body
from vattenmiljo_crm.auth.dependencies import get_app_settings, require_roles
from vattenmiljo_crm.auth.types import AuthUser, Role
from vattenmiljo_crm.backups.service import BackupService, BackupType
from vattenmiljo_crm.config import Settings
from vattenmiljo_crm.exceptions import CrmError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/backups")
BACKUP_ROLES = (Role.INTERNAL,)
INVALID_BODY = "Invalid request body"


def get_backup_service(request: Request) -> BackupService:
    """Return the backup service configured for this app."""
    service = getattr(request.app.state, "backup_service", None)
    if service is None:
        raise CrmError("Backups are not configured")
    return cast(BackupService, service)


# --- Schemas ---


class CleanupRequest(BaseModel):
    """Request to remove old completed backups."""

    model_config = ConfigDict(populate_by_name=True)

    retention_days: StrictInt | None = Field(
        default=None, alias="retentionDays", ge=0, description="Keep backups newer than this"
    )


class CreateBackupRequest(BaseModel):
    """Request to run a backup."""

    type: str = Field(default=BackupType.FULL.value, description="database, files or full")


# --- Endpoints ---


@router.get("")
def backup_history(
    limit: int = Query(default=50, ge=1, le=500),
    _user: AuthUser = Depends(require_roles(*BACKUP_ROLES)),
    service: BackupService = Depends(get_backup_service),
) -> JSONResponse:
    """List recent backup runs."""
    try:
        history = service.get_backup_history(limit)
    except Exception:
        logger.exception("Backup history error")
        return JSONResponse(status_code=500, content={"error": "Failed to fetch backup history"})
    return JSONResponse(content={"backups": [item.to_payload() for item in history]})


@router.post("")
def create_backup(
    _user: AuthUser = Depends(require_roles(*BACKUP_ROLES)),
    service: BackupService = Depends(get_backup_service),
    body: JsonBody = Depends(read_json_body),
) -> JSONResponse:
    """Run a database, files or full backup."""
    if body.malformed:
        return JSONResponse(status_code=400, content={"error": INVALID_BODY})
    try:
        request = CreateBackupRequest.model_validate(body.fields)
        backup_type = BackupType(request.type)
    except (ValidationError, ValueError):
        return JSONResponse(status_code=400, content={"error": "Invalid backup type"})

    try:
        result = service.create_backup(backup_type)
    except Exception as exc:
        logger.exception("Backup creation error")
        return JSONResponse(
            status_code=500, content={"error": str(exc) or "Failed to create backup"}
        )

    payload = [r.to_payload() for r in result] if isinstance(result, list) else result.to_payload()
    return JSONResponse(content={"message": "Backup created successfully", "backup": payload})


@router.post("/cleanup")
def cleanup_backups(
    _user: AuthUser = Depends(require_roles(*BACKUP_ROLES)),
    settings: Settings = Depends(get_app_settings),
    service: BackupService = Depends(get_backup_service),
    body: JsonBody = Depends(read_json_body),
) -> JSONResponse:
    """Delete completed backups older than the retention window."""
    if body.malformed:
        return JSONResponse(status_code=400, content={"error": INVALID_BODY})
    try:
        request = CleanupRequest.model_validate(body.fields)
    except ValidationError:
        return JSONResponse(status_code=400, content={"error": "Invalid retentionDays"})

    retention_days = settings.backup_retention_days
    if request.retention_days is not None:
        retention_days = request.retention_days

    try:
        deleted_count = service.delete_old_backups(retention_days)
    except Exception as exc:
        logger.exception("Backup cleanup error")
        return JSONResponse(
            status_code=500, content={"error": str(exc) or "Failed to cleanup backups"}
        )

    return JSONResponse(
        content={
            "message": f"Cleaned up {deleted_count} old backups",
            "deletedCount": deleted_count,
        }
    )
