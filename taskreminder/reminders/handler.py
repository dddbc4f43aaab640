"""
Reminder job handler: sends the WhatsApp message and moves the task on
to its next cycle, or to completed.
"""
import logging
from datetime import datetime
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from taskreminder.crud.task import task as crud_task, user as crud_user
from taskreminder.models.task import Task, TaskStatus
from taskreminder.utils.timezone import format_local, utcnow
from .config import settings
from .dispatcher import MessagingGateway
from .exceptions import DeliveryFailure
from .job_models import Job, JobOutcome, REMINDER_JOB_KIND
from .recurrence_models import RecurrenceCalculator, RecurrenceMode
from .repository import schedule_job
from .runner import JobDefinition

logger = logging.getLogger(__name__)

ADVANCE_RETRIES = 3


def build_reminder_message(task: Task, tz_name: Optional[str] = None) -> str:
    return f"Reminder: {task.name}\nDeadline: {format_local(task.deadline, tz_name)}"


class ReminderJobHandler:
    """Runs one ``send_whatsapp_reminder`` job.

    Delivery failures are reported as a failed outcome so the job store can
    retry the same job; the task is left untouched in that case.
    """

    def __init__(
        self,
        gateway: MessagingGateway,
        tz_name: Optional[str] = None,
        now: Callable[[], datetime] = utcnow,
    ):
        self.gateway = gateway
        self.tz_name = tz_name
        self.now = now

    def __call__(self, db: Session, job: Job) -> JobOutcome:
        task_id = job.payload
        task = crud_task.get(db, task_id)
        if task is None:
            logger.info(f"[Reminders] Task {task_id} no longer exists; skipping job={job.id}")
            return JobOutcome.SKIPPED
        if not task.is_pending:
            logger.info(f"[Reminders] Task {task_id} is {task.status}; skipping job={job.id}")
            return JobOutcome.SKIPPED
        if task.current_job_id != job.id:
            # Superseded by an edit, or a duplicate run after a lease expiry
            logger.info(
                f"[Reminders] Job {job.id} is stale for task {task_id} (current={task.current_job_id}); skipping"
            )
            return JobOutcome.SKIPPED

        user = crud_user.get(db, task.user_id)
        if user is None:
            logger.info(f"[Reminders] Owner {task.user_id} of task {task_id} not found; skipping")
            return JobOutcome.SKIPPED

        try:
            self.gateway.send(user.phone, build_reminder_message(task, self.tz_name))
        except DeliveryFailure as e:
            logger.error(f"❌ [Reminders] Failed to send reminder for task {task_id}: {e.reason}")
            return JobOutcome.FAILED

        sent_at = self.now()
        for attempt in range(ADVANCE_RETRIES):
            try:
                self._advance(db, task, sent_at)
                db.commit()
                return JobOutcome.SUCCEEDED
            except StaleDataError:
                db.rollback()
            # Saved by someone else while we were sending. A stop, delete or
            # reschedule wins; any other edit still needs this send recorded.
            task = crud_task.get(db, task_id)
            if task is None or not task.is_pending or task.current_job_id != job.id:
                logger.warning(
                    f"⚠️  [Reminders] Task {task_id} changed during delivery; keeping the concurrent update"
                )
                return JobOutcome.SUCCEEDED
            logger.info(f"[Reminders] Task {task_id} edited during delivery; re-applying send ({attempt + 1})")

        logger.error(f"❌ [Reminders] Could not record send for task {task_id} job={job.id} after {ADVANCE_RETRIES} tries")
        return JobOutcome.SUCCEEDED

    def _advance(self, db: Session, task: Task, now: datetime) -> None:
        task.last_sent_at = now
        if task.mode is RecurrenceMode.SINGLE:
            task.transition_to(TaskStatus.COMPLETED)
            task.current_job_id = None
        else:
            plan = RecurrenceCalculator.compute_next_periodic(task.deadline, task.offset, task.end_date)
            if plan.has_occurrence:
                task.deadline = plan.deadline
                next_job = schedule_job(db, plan.fire_at, REMINDER_JOB_KIND, task.id, commit=False)
                task.current_job_id = next_job.id
                logger.info(f"🔁 [Reminders] Task {task.id} advanced to deadline={plan.deadline}")
            else:
                task.transition_to(TaskStatus.COMPLETED)
                task.current_job_id = None
                logger.info(f"🏁 [Reminders] Task {task.id} reached its end date; completed")
        crud_task.save(db, task, commit=False)


def on_reminder_exhausted(db: Session, job: Job) -> None:
    """Called once the store gives up on a job; drops the task's dangling reference."""
    task = crud_task.get(db, job.payload)
    if task is None or task.current_job_id != job.id:
        return
    task.current_job_id = None
    try:
        crud_task.save(db, task)
    except StaleDataError:
        db.rollback()
        return
    logger.warning(f"⚠️  [Reminders] Gave up on job={job.id}; task {task.id} has no scheduled reminder")


def reminder_job_definitions(
    gateway: MessagingGateway,
    concurrency: Optional[int] = None,
    tz_name: Optional[str] = None,
) -> Dict[str, JobDefinition]:
    """Handler registrations to hand to a JobRunner."""
    return {
        REMINDER_JOB_KIND: JobDefinition(
            handler=ReminderJobHandler(gateway, tz_name=tz_name),
            concurrency=concurrency or settings.DEFAULT_CONCURRENCY,
            on_exhausted=on_reminder_exhausted,
        ),
    }
