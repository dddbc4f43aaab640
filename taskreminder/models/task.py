from enum import Enum
import uuid

from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, Index
from sqlalchemy.orm import relationship

from taskreminder.db.base import Base
from taskreminder.reminders.exceptions import InvalidStatusTransition
from taskreminder.reminders.recurrence_models import RecurrenceMode, ReminderOffset
from taskreminder.utils.timezone import utcnow


class TaskStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    STOPPED = "stopped"


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.STOPPED})


class Task(Base):
    """A deadline the owner wants to be reminded about, once or weekly"""
    __tablename__ = "tasks"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    deadline = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=True)
    recurrence_mode = Column(String, nullable=False, default=RecurrenceMode.SINGLE.value)
    offset = Column(String, nullable=False)
    status = Column(String, nullable=False, default=TaskStatus.PENDING.value)
    current_job_id = Column(String(36), nullable=True)
    last_sent_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    user = relationship("User", back_populates="tasks")

    # Concurrent writers (API edit vs. a firing reminder) are detected on flush
    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_tasks_user_status", "user_id", "status"),
    )

    @property
    def mode(self) -> RecurrenceMode:
        return RecurrenceMode(self.recurrence_mode)

    @property
    def reminder_offset(self) -> ReminderOffset:
        return ReminderOffset(self.offset)

    @property
    def is_pending(self) -> bool:
        return self.status == TaskStatus.PENDING.value

    def transition_to(self, status: TaskStatus) -> None:
        """Move to ``status``; completed and stopped tasks never change again."""
        status = TaskStatus(status)
        current = TaskStatus(self.status)
        if current == status:
            return
        if current in TERMINAL_STATUSES:
            raise InvalidStatusTransition(current.value, status.value)
        self.status = status.value
