from __future__ import annotations

import datetime as dt
import uuid
from typing import Any

import sqlalchemy as sa
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class BackupLog(Base):
    __tablename__ = "backup_logs"
    __table_args__ = (
        sa.CheckConstraint(
            "backup_type IN ('database', 'files')", name="ck_backup_logs_backup_type"
        ),
        sa.CheckConstraint(
            "status IN ('started', 'completed', 'failed')", name="ck_backup_logs_status"
        ),
        sa.Index("ix_backup_logs_started_at", "started_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid(), primary_key=True, default=uuid.uuid4)
    backup_type: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    status: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    size_bytes: Mapped[int | None] = mapped_column(sa.BigInteger(), nullable=True)
    storage_location: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    started_at: Mapped[dt.datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: dt.datetime.now(dt.timezone.utc),
        nullable=False,
    )
    completed_at: Mapped[dt.datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    error_message: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", sa.JSON(), nullable=True
    )
