"""
Durable job table shared by every worker process
"""
from enum import Enum
import uuid

from sqlalchemy import Column, String, DateTime, Integer, Text, Index

from taskreminder.db.base import Base
from taskreminder.utils.timezone import utcnow


REMINDER_JOB_KIND = "send_whatsapp_reminder"


class JobStatus(str, Enum):
    SCHEDULED = "scheduled"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class JobOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


OUTSTANDING_STATUSES = (JobStatus.SCHEDULED.value, JobStatus.RUNNING.value)


class Job(Base):
    """A unit of work that becomes claimable at ``fire_at``.

    ``locked_by``/``lock_expires_at`` form the lease; a running job whose
    lease has expired is claimable again.
    """
    __tablename__ = "scheduled_jobs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    kind = Column(String, nullable=False)
    payload = Column(String, nullable=False)
    fire_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(String, nullable=False, default=JobStatus.SCHEDULED.value)

    locked_by = Column(String, nullable=True)
    locked_at = Column(DateTime(timezone=True), nullable=True)
    lock_expires_at = Column(DateTime(timezone=True), nullable=True)

    attempts = Column(Integer, nullable=False, default=0)
    last_run_outcome = Column(String, nullable=True)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    finished_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_scheduled_jobs_status_fire_at", "status", "fire_at"),
        Index("ix_scheduled_jobs_kind_payload", "kind", "payload"),
    )

    def __repr__(self) -> str:
        return f"<Job {self.id} kind={self.kind} payload={self.payload} status={self.status}>"
