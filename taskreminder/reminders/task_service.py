"""
Task management on top of the reminder scheduler: every change to a task's
timing cancels its outstanding job and plans a new one.
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from taskreminder.crud.task import task as crud_task
from taskreminder.models.task import Task, TaskStatus
from taskreminder.utils.timezone import to_utc_aware, utcnow
from .config import settings
from .exceptions import (
    InvalidStatusTransition, NoUpcomingOccurrence, ReminderError,
    TaskConflict, TaskNotFound, TaskValidationError,
)
from .job_models import REMINDER_JOB_KIND
from .metrics import reminder_tasks_created_total
from .recurrence_models import RecurrenceCalculator, RecurrenceMode, parse_mode, parse_offset
from .repository import cancel_jobs, schedule_job
from .schemas import TaskCreate, TaskUpdate

logger = logging.getLogger(__name__)

# Fields whose change invalidates the scheduled reminder
SCHEDULING_FIELDS = frozenset({"deadline", "offset", "recurrence_mode", "end_date", "status"})
STOP_RETRIES = 3


class TaskReminderService:
    """Create, edit, stop and delete tasks while keeping one live job per task"""

    def __init__(
        self,
        db: Session,
        late_delay: Optional[timedelta] = None,
        now: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.late_delay = late_delay or timedelta(seconds=settings.LATE_FIRE_DELAY_SECONDS)
        self.now = now

    def get_task(self, task_id: str, user_id: str) -> Task:
        task = crud_task.get_for_user(self.db, task_id, user_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    def list_tasks(self, user_id: str, include_completed: bool = False) -> List[Task]:
        return crud_task.list_for_user(self.db, user_id, include_completed=include_completed)

    def create_task(self, user_id: str, data: TaskCreate) -> Task:
        if not data.name or not data.name.strip():
            raise TaskValidationError("Required fields are missing")
        offset = parse_offset(data.offset)
        mode = self._parse_mode(data.recurrence_mode)
        deadline = to_utc_aware(data.deadline)
        end_date = self._validate_end_date(mode, deadline, to_utc_aware(data.end_date))

        task = Task(
            id=str(uuid.uuid4()),
            user_id=user_id,
            name=data.name.strip(),
            deadline=deadline,
            end_date=end_date,
            recurrence_mode=mode.value,
            offset=offset.value,
            status=TaskStatus.PENDING.value,
        )
        try:
            self._schedule(task)
            crud_task.save(self.db, task)
        except Exception:
            self.db.rollback()
            raise
        reminder_tasks_created_total.inc()
        logger.info(f"📝 [Tasks] Created task {task.id} for user {user_id} job={task.current_job_id}")
        return task

    def update_task(self, task_id: str, user_id: str, data: TaskUpdate) -> Task:
        changes = data.model_dump(exclude_unset=True)
        try:
            task = self.get_task(task_id, user_id)
            if "name" in changes:
                if not changes["name"] or not changes["name"].strip():
                    raise TaskValidationError("Task name cannot be empty")
                task.name = changes["name"].strip()
            if changes.get("deadline") is not None:
                task.deadline = to_utc_aware(changes["deadline"])
            if changes.get("offset") is not None:
                task.offset = parse_offset(changes["offset"]).value
            if changes.get("recurrence_mode") is not None:
                task.recurrence_mode = self._parse_mode(changes["recurrence_mode"]).value
            if "end_date" in changes:
                task.end_date = to_utc_aware(changes["end_date"])
            if changes.get("status") is not None:
                # Refuses to resume a stopped or completed task
                task.transition_to(changes["status"])

            if task.mode is RecurrenceMode.PERIODIC:
                self._validate_end_date(task.mode, to_utc_aware(task.deadline), to_utc_aware(task.end_date))

            if SCHEDULING_FIELDS.intersection(changes):
                cancel_jobs(self.db, REMINDER_JOB_KIND, task.id, commit=False)
                if task.is_pending:
                    self._schedule(task)
                else:
                    task.current_job_id = None
            crud_task.save(self.db, task)
        except StaleDataError:
            self.db.rollback()
            raise TaskConflict(task_id)
        except ReminderError:
            self.db.rollback()
            raise
        logger.info(f"✏️  [Tasks] Updated task {task.id} status={task.status} job={task.current_job_id}")
        return task

    def stop_task(self, task_id: str, user_id: str) -> Task:
        """Stop a pending task for good. Wins over a reminder firing at the same time."""
        for attempt in range(STOP_RETRIES):
            task = self.get_task(task_id, user_id)
            if not task.is_pending:
                raise InvalidStatusTransition(task.status, TaskStatus.STOPPED.value)
            cancel_jobs(self.db, REMINDER_JOB_KIND, task.id, commit=False)
            task.transition_to(TaskStatus.STOPPED)
            task.current_job_id = None
            try:
                crud_task.save(self.db, task)
            except StaleDataError:
                self.db.rollback()
                logger.info(f"[Tasks] Task {task_id} changed while stopping; retrying ({attempt + 1})")
                continue
            logger.info(f"🛑 [Tasks] Stopped task {task.id}")
            return task
        raise TaskConflict(task_id)

    def delete_task(self, task_id: str, user_id: str) -> None:
        task = self.get_task(task_id, user_id)
        cancel_jobs(self.db, REMINDER_JOB_KIND, task.id, commit=False)
        try:
            crud_task.delete(self.db, task)
        except StaleDataError:
            self.db.rollback()
            raise TaskConflict(task_id)
        logger.info(f"🗑️  [Tasks] Deleted task {task_id}")

    def _schedule(self, task: Task) -> None:
        plan = RecurrenceCalculator.compute_initial_fire_time(
            task.deadline,
            task.offset,
            task.recurrence_mode,
            end_date=task.end_date,
            now=self.now(),
            late_delay=self.late_delay,
        )
        if not plan.has_occurrence:
            raise NoUpcomingOccurrence()
        task.deadline = plan.deadline
        job = schedule_job(self.db, plan.fire_at, REMINDER_JOB_KIND, task.id, commit=False)
        task.current_job_id = job.id

    @staticmethod
    def _parse_mode(value: str) -> RecurrenceMode:
        try:
            return parse_mode(value)
        except ValueError as e:
            raise TaskValidationError(str(e))

    @staticmethod
    def _validate_end_date(
        mode: RecurrenceMode,
        deadline: datetime,
        end_date: Optional[datetime],
    ) -> Optional[datetime]:
        if mode is not RecurrenceMode.PERIODIC:
            return end_date
        if end_date is None:
            raise TaskValidationError("End date (end_date) is required for weekly reminders")
        if end_date < deadline:
            raise TaskValidationError("End date must be the same as or after the deadline")
        return end_date
