"""create jobs table

Revision ID: 3b6f1c2a9d40
Revises:
Create Date: 2026-10-18 09:12:41.508213

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3b6f1c2a9d40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "jobs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("type", sa.Text, nullable=False, comment="Job type identifier"),
        sa.Column(
            "payload",
            sa.JSON,
            nullable=False,
            comment="Job-specific parameters",
        ),
        sa.Column(
            "status",
            sa.Text,
            nullable=False,
            server_default="pending",
            comment="Job status: pending|processing|completed|failed|cancelled",
        ),
        sa.Column(
            "priority",
            sa.Integer,
            nullable=False,
            server_default="5",
            comment="Higher is claimed first",
        ),
        sa.Column(
            "attempts",
            sa.Integer,
            nullable=False,
            server_default="0",
            comment="Claims made so far",
        ),
        sa.Column(
            "max_attempts",
            sa.Integer,
            nullable=False,
            server_default="3",
            comment="Claims allowed before dead-lettering",
        ),
        sa.Column(
            "next_retry_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            comment="Earliest time the job may be claimed",
        ),
        # Results
        sa.Column("result", sa.JSON, nullable=True, comment="Handler result"),
        sa.Column("error_message", sa.Text, nullable=True, comment="Last failure reason"),
        sa.Column(
            "error_stack", sa.Text, nullable=True, comment="Traceback of the last failure"
        ),
        sa.Column("metadata", sa.JSON, nullable=True, comment="Caller-supplied context"),
        sa.Column("created_by", sa.Text, nullable=True, comment="Initiating actor"),
        # Timestamps
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("started_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        # Constraints
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'cancelled')",
            name="jobs_status_check",
        ),
        sa.CheckConstraint("attempts >= 0", name="jobs_attempts_check"),
    )

    # Claim query: eligible pending rows ordered by priority then age
    op.create_index(
        "ix_jobs_status_next_retry_at", "jobs", ["status", "next_retry_at"]
    )
    op.create_index(
        "ix_jobs_status_priority_created_at",
        "jobs",
        ["status", "priority", "created_at"],
    )
    op.create_index("ix_jobs_type", "jobs", ["type"])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_jobs_type", table_name="jobs")
    op.drop_index("ix_jobs_status_priority_created_at", table_name="jobs")
    op.drop_index("ix_jobs_status_next_retry_at", table_name="jobs")
    op.drop_table("jobs")
