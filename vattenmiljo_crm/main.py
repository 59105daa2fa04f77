from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vattenmiljo_crm.api.auth import router as auth_router
from vattenmiljo_crm.api.backups import router as backups_router
from vattenmiljo_crm.api.dashboard import router as dashboard_router
from vattenmiljo_crm.api.errors import crm_error_handler
from vattenmiljo_crm.auth.identity import IdentityProvider
from vattenmiljo_crm.auth.session import SessionAccessor
from vattenmiljo_crm.auth.throttle import build_throttle
from vattenmiljo_crm.backups.service import BackupService
from vattenmiljo_crm.backups.storage import (
    BackupStorage,
    FirebaseBackupStorage,
    InMemoryBackupStorage,
)
from vattenmiljo_crm.config import Settings, get_settings
from vattenmiljo_crm.db.engine import get_engine
from vattenmiljo_crm.exceptions import CrmError
from vattenmiljo_crm.middlewares import RouteGuardMiddleware

logger = logging.getLogger(__name__)


def build_backup_service(settings: Settings, provider: IdentityProvider) -> BackupService | None:
    """Wire the backup service, or return None when no database is configured."""
    try:
        engine = get_engine()
    except RuntimeError as exc:
        logger.warning("Backups disabled: %s", exc)
        return None

    storage: BackupStorage
    if settings.firebase_storage_bucket:
        storage = FirebaseBackupStorage(provider.app, settings.firebase_storage_bucket)
    else:
        logger.warning("FIREBASE_STORAGE_BUCKET not set; backup archives are kept in memory")
        storage = InMemoryBackupStorage()
    return BackupService(engine, storage, files_prefix=settings.customer_files_prefix)


def create_app(
    settings: Settings | None = None,
    identity_provider: IdentityProvider | None = None,
    backup_service: BackupService | None = None,
) -> FastAPI:
    """Assemble the API with explicitly constructed collaborators."""
    settings = settings or get_settings()
    if identity_provider is None:
        identity_provider = IdentityProvider.from_settings(settings)
        if backup_service is None:
            backup_service = build_backup_service(settings, identity_provider)

    app = FastAPI(title="Vattenmiljö CRM API", version="1.0.0")
    app.state.settings = settings
    app.state.identity_provider = identity_provider
    app.state.session_accessor = SessionAccessor(identity_provider, settings.auth_cookie_name)
    app.state.backup_service = backup_service
    app.state.throttle = build_throttle(settings)

    app.add_middleware(RouteGuardMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(CrmError, crm_error_handler)

    app.include_router(auth_router)
    app.include_router(backups_router)
    app.include_router(dashboard_router)

    @app.get("/health")
    def health() -> dict[str, bool]:
        """Liveness probe."""
        return {"ok": True}

    return app
