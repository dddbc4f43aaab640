from celery import Celery
from .config import settings


celery_app = Celery(
    "reminders",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_acks_late=True,
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    worker_prefetch_multiplier=1,
    include=["taskreminder.reminders.tasks"],
)

# Celery Beat drives the poll tick instead of the standalone worker loop
celery_app.conf.beat_schedule = {
    "poll-due-jobs": {
        "task": "reminders.poll_due_jobs",
        "schedule": settings.POLL_INTERVAL_SECONDS,
    },
}
