import logging
import threading
from typing import Optional

from celery import shared_task

from taskreminder.core.config import settings as core_settings
from taskreminder.db.session import SessionLocal
from .celery_app import celery_app  # noqa: F401
from .dispatcher import FonnteGateway
from .handler import reminder_job_definitions
from .runner import JobRunner

logger = logging.getLogger(__name__)

_runner: Optional[JobRunner] = None
_runner_lock = threading.Lock()


def get_runner() -> JobRunner:
    """One runner per worker process, built on first use."""
    global _runner
    with _runner_lock:
        if _runner is None:
            _runner = JobRunner(
                SessionLocal,
                reminder_job_definitions(FonnteGateway(), tz_name=core_settings.DEFAULT_TIMEZONE),
            )
        return _runner


@shared_task(name="reminders.poll_due_jobs")
def poll_due_jobs_task() -> int:
    """Run one poll tick and wait for the claimed jobs. Returns number dispatched."""
    runner = get_runner()
    futures = runner.run_once()
    runner.drain()
    if futures:
        logger.info(f"[Reminders] Beat tick dispatched {len(futures)} job(s)")
    return len(futures)
