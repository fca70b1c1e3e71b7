"""Initial schema with delayed_jobs table and reservation views

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JOB_STATUSES = (
    "Pending",
    "Working",
    "Completed",
    "Failed - Rescheduled",
    "Failed - Attempts Exceeded",
)

# Rows that may still be reserved
RUNNABLE = (
    "status NOT IN ('Completed', 'Failed - Attempts Exceeded') "
    "AND attempts < max_attempts"
)


def upgrade() -> None:
    op.create_table(
        "delayed_jobs",
        sa.Column("id", sa.Uuid, nullable=False),
        sa.Column("priority", sa.Integer, nullable=False, server_default="0"),
        sa.Column("queue", sa.String(255), nullable=True),
        sa.Column("run_at", sa.DateTime, nullable=True),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer, nullable=False, server_default="10"),
        sa.Column("payload", sa.JSON, nullable=False),
        sa.Column("tags", sa.JSON, nullable=False),
        sa.Column("locked_at", sa.DateTime, nullable=True),
        sa.Column("locked_by", sa.String(255), nullable=True),
        sa.Column(
            "status",
            sa.Enum(*JOB_STATUSES, name="delayed_job_status", create_constraint=True),
            nullable=False,
            server_default="Pending",
        ),
        sa.Column("failed_at", sa.DateTime, nullable=True),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("completed_at", sa.DateTime, nullable=True),
        sa.Column("run_time", sa.Float, nullable=False, server_default="0"),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column(
            "created_at",
            sa.DateTime,
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime,
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_index("ix_delayed_jobs_queue", "delayed_jobs", ["queue"])
    op.create_index("ix_delayed_jobs_status", "delayed_jobs", ["status"])

    # Ready jobs and jobs held by one worker
    op.execute(f"""
        CREATE INDEX ix_delayed_jobs_locked_by_run_at
        ON delayed_jobs (locked_by, run_at)
        WHERE {RUNNABLE}
    """)

    # Locks older than the max run time
    op.execute(f"""
        CREATE INDEX ix_delayed_jobs_locked_at_run_at
        ON delayed_jobs (locked_at, run_at)
        WHERE {RUNNABLE}
    """)


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS ix_delayed_jobs_locked_at_run_at")
    op.execute("DROP INDEX IF EXISTS ix_delayed_jobs_locked_by_run_at")
    op.drop_index("ix_delayed_jobs_status")
    op.drop_index("ix_delayed_jobs_queue")

    op.drop_table("delayed_jobs")

    op.execute("DROP TYPE IF EXISTS delayed_job_status")
