"""Backup creation, history and retention.

Every backup run is recorded in `backup_logs`: a row is inserted as
`started` before any work happens and is then marked `completed` (with size
and storage location) or `failed` (with the error message). Retention only
ever removes `completed` rows, together with their stored archives.
"""

from __future__ import annotations

import gzip
import io
import json
import logging
import uuid
import zipfile
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable

import sqlalchemy as sa

from vattenmiljo_crm.backups.storage import BackupStorage
from vattenmiljo_crm.db.models import BackupLog

logger = logging.getLogger(__name__)


class BackupType(str, Enum):
    DATABASE = "database"
    FILES = "files"
    FULL = "full"


class BackupStatus(str, Enum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class BackupResult:
    id: str
    type: str
    status: str
    started_at: datetime
    size_bytes: int | None = None
    storage_location: str | None = None
    completed_at: datetime | None = None
    error_message: str | None = None

    def to_payload(self) -> dict[str, object]:
        return {
            "id": self.id,
            "type": self.type,
            "status": self.status,
            "size_bytes": self.size_bytes,
            "storage_location": self.storage_location,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "error_message": self.error_message,
        }


class BackupService:
    def __init__(
        self,
        engine: sa.Engine,
        storage: BackupStorage,
        files_prefix: str = "customer-files/",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._engine = engine
        self._storage = storage
        self._files_prefix = files_prefix
        self._clock = clock

    # --- Log bookkeeping ---

    def _log_start(self, backup_type: BackupType) -> tuple[uuid.UUID, datetime]:
        log_id = uuid.uuid4()
        started_at = self._clock()
        try:
            with self._engine.begin() as conn:
                conn.execute(
                    sa.insert(BackupLog).values(
                        id=log_id,
                        backup_type=backup_type.value,
                        status=BackupStatus.STARTED.value,
                        started_at=started_at,
                    )
                )
        except sa.exc.SQLAlchemyError as exc:
            raise RuntimeError("Failed to create backup log entry") from exc
        return log_id, started_at

    def _mark_completed(
        self,
        log_id: uuid.UUID,
        size_bytes: int,
        storage_location: str,
        metadata: dict[str, Any] | None = None,
    ) -> datetime:
        completed_at = self._clock()
        with self._engine.begin() as conn:
            conn.execute(
                sa.update(BackupLog)
                .where(BackupLog.id == log_id)
                .values(
                    {
                        BackupLog.status: BackupStatus.COMPLETED.value,
                        BackupLog.completed_at: completed_at,
                        BackupLog.size_bytes: size_bytes,
                        BackupLog.storage_location: storage_location,
                        # mapped to the "metadata" column
                        BackupLog.metadata_json: metadata,
                    }
                )
            )
        return completed_at

    def _mark_failed(self, log_id: uuid.UUID, message: str) -> None:
        with self._engine.begin() as conn:
            conn.execute(
                sa.update(BackupLog)
                .where(BackupLog.id == log_id)
                .values(
                    status=BackupStatus.FAILED.value,
                    completed_at=self._clock(),
                    error_message=message,
                )
            )

    # --- Backups ---

    def _export_database(self) -> str:
        """Dump every table in the database as JSON."""
        metadata = sa.MetaData()
        with self._engine.connect() as conn:
            metadata.reflect(bind=conn)
            tables = {
                table.name: [dict(row) for row in conn.execute(sa.select(table)).mappings()]
                for table in metadata.sorted_tables
            }
        payload = {"tables": tables, "exported_at": self._clock().isoformat()}
        return json.dumps(payload, indent=2, default=str)

    def create_database_backup(self) -> BackupResult:
        log_id, started_at = self._log_start(BackupType.DATABASE)
        try:
            compressed = gzip.compress(self._export_database().encode("utf-8"))
            stamp = int(self._clock().timestamp() * 1000)
            path = (
                f"backups/{started_at.year}/{started_at.month}/"
                f"backup-{BackupType.DATABASE.value}-{stamp}.gz"
            )
            location = self._storage.upload(path, compressed, "application/gzip")
            completed_at = self._mark_completed(log_id, len(compressed), location)
        except Exception as exc:
            self._mark_failed(log_id, str(exc))
            raise

        logger.info("Database backup %s stored at %s", log_id, location)
        return BackupResult(
            id=str(log_id),
            type=BackupType.DATABASE.value,
            status=BackupStatus.COMPLETED.value,
            started_at=started_at,
            size_bytes=len(compressed),
            storage_location=location,
            completed_at=completed_at,
        )

    def create_files_backup(self) -> BackupResult:
        log_id, started_at = self._log_start(BackupType.FILES)
        try:
            objects = self._storage.list_objects(self._files_prefix)
            buffer = io.BytesIO()
            with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                for obj in objects:
                    archive.writestr(obj.name, self._storage.download(obj.name))
            data = buffer.getvalue()
            path = f"backups/files-{int(self._clock().timestamp() * 1000)}.zip"
            location = self._storage.upload(path, data, "application/zip")
            completed_at = self._mark_completed(
                log_id, len(data), location, {"files_backed_up": len(objects)}
            )
        except Exception as exc:
            self._mark_failed(log_id, str(exc))
            raise

        logger.info("Files backup %s archived %d files", log_id, len(objects))
        return BackupResult(
            id=str(log_id),
            type=BackupType.FILES.value,
            status=BackupStatus.COMPLETED.value,
            started_at=started_at,
            size_bytes=len(data),
            storage_location=location,
            completed_at=completed_at,
        )

    def create_full_backup(self) -> list[BackupResult]:
        """Run database and files backups; failed parts are logged and left out."""
        results: list[BackupResult] = []
        for run in (self.create_database_backup, self.create_files_backup):
            try:
                results.append(run())
            except Exception:
                logger.exception("Backup failed")
        return results

    def create_backup(self, backup_type: BackupType) -> BackupResult | list[BackupResult]:
        if backup_type is BackupType.DATABASE:
            return self.create_database_backup()
        if backup_type is BackupType.FILES:
            return self.create_files_backup()
        return self.create_full_backup()

    # --- History and retention ---

    def get_backup_history(self, limit: int = 50) -> list[BackupResult]:
        """Return the newest backup runs first."""
        query = sa.select(BackupLog).order_by(sa.desc(BackupLog.started_at)).limit(limit)
        with self._engine.connect() as conn:
            rows = conn.execute(query).mappings().all()
        return [
            BackupResult(
                id=str(row["id"]),
                type=row["backup_type"],
                status=row["status"],
                started_at=row["started_at"],
                size_bytes=row["size_bytes"],
                storage_location=row["storage_location"],
                completed_at=row["completed_at"],
                error_message=row["error_message"],
            )
            for row in rows
        ]

    def delete_old_backups(self, retention_days: int = 30) -> int:
        """Delete completed backups older than the retention window; return how many.

        A log entry is only removed once its archive is gone, so entries whose
        object could not be deleted are retried on the next run.
        """
        cutoff = self._clock() - timedelta(days=retention_days)
        query = sa.select(BackupLog.id, BackupLog.storage_location).where(
            BackupLog.started_at < cutoff,
            BackupLog.status == BackupStatus.COMPLETED.value,
        )
        with self._engine.connect() as conn:
            old_backups = conn.execute(query).all()

        if not old_backups:
            return 0

        deleted = 0
        for backup in old_backups:
            if backup.storage_location:
                try:
                    self._storage.delete(backup.storage_location)
                except Exception:
                    logger.exception(
                        "Failed to delete backup object %s; keeping its log entry",
                        backup.storage_location,
                    )
                    continue
            with self._engine.begin() as conn:
                conn.execute(sa.delete(BackupLog).where(BackupLog.id == backup.id))
            deleted += 1

        logger.info("Deleted %d backups older than %d days", deleted, retention_days)
        return deleted
