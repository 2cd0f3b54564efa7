"""
Job queue models.
"""

from datetime import UTC, datetime
from enum import Enum, IntEnum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, CheckConstraint, Index, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from portal.infra.database import Base, UTCDateTime


def utcnow() -> datetime:
    return datetime.now(UTC)


class JobStatus(str, Enum):
    """Job status enumeration."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @classmethod
    def terminal(cls) -> tuple["JobStatus", ...]:
        return (cls.COMPLETED, cls.FAILED, cls.CANCELLED)


class JobPriority(IntEnum):
    """Named priority levels. Higher values are claimed first."""

    LOW = 0
    NORMAL = 5
    HIGH = 10
    CRITICAL = 15


class Job(Base):
    """
    A unit of deferred work.

    The row is the only source of truth for a job's state. It moves through
    pending -> processing -> completed | pending (retry) | failed, or
    pending -> cancelled; terminal rows are never updated again.
    """

    __tablename__ = "jobs"

    # Core fields
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    type: Mapped[str] = mapped_column(
        Text, nullable=False, comment="Job type identifier"
    )
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Job-specific parameters",
    )

    # Job state
    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=JobStatus.PENDING.value,
        comment="Job status: pending|processing|completed|failed|cancelled",
    )
    priority: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=JobPriority.NORMAL.value,
        comment="Higher is claimed first",
    )
    attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Claims made so far"
    )
    max_attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=3, comment="Claims allowed before dead-lettering"
    )
    next_retry_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
        comment="Earliest time the job may be claimed",
    )

    # Results
    result: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True, comment="Handler result"
    )
    error_message: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Last failure reason"
    )
    error_stack: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Traceback of the last failure"
    )

    # Audit
    # "metadata" is reserved on declarative classes
    job_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSON, nullable=True, comment="Caller-supplied context"
    )
    created_by: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Initiating actor"
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow
    )
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'cancelled')",
            name="jobs_status_check",
        ),
        CheckConstraint("attempts >= 0", name="jobs_attempts_check"),
        Index("ix_jobs_status_next_retry_at", "status", "next_retry_at"),
        Index("ix_jobs_status_priority_created_at", "status", "priority", "created_at"),
        Index("ix_jobs_type", "type"),
    )

    def is_terminal(self) -> bool:
        return self.status in {s.value for s in JobStatus.terminal()}

    def can_retry(self) -> bool:
        """Whether another failure would put the job back to pending."""
        return self.attempts < self.max_attempts

    def __repr__(self) -> str:
        return f"<Job {self.id} type={self.type} status={self.status} attempts={self.attempts}/{self.max_attempts}>"
