"""create backup_logs

Revision ID: 3b8d1f0c2a71
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "3b8d1f0c2a71"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the backup run log."""
    op.create_table(
        "backup_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("backup_type", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("size_bytes", sa.BigInteger(), nullable=True),
        sa.Column("storage_location", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.CheckConstraint(
            "backup_type IN ('database', 'files')", name="ck_backup_logs_backup_type"
        ),
        sa.CheckConstraint(
            "status IN ('started', 'completed', 'failed')", name="ck_backup_logs_status"
        ),
    )
    op.create_index("ix_backup_logs_started_at", "backup_logs", ["started_at"])


def downgrade() -> None:
    """Drop the backup run log."""
    op.drop_index("ix_backup_logs_started_at", table_name="backup_logs")
    op.drop_table("backup_logs")
