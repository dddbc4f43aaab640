#!/usr/bin/env python3
"""
Standalone reminder worker: ``python -m taskreminder.reminders.worker``.

Run as many replicas as needed; they coordinate through the job table.
"""
import logging
import signal
import threading

from taskreminder.core.config import settings as core_settings
from taskreminder.db.session import SessionLocal
from .config import settings
from .dispatcher import FonnteGateway
from .handler import reminder_job_definitions
from .runner import JobRunner

logging.basicConfig(
    level=getattr(logging, core_settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def build_runner() -> JobRunner:
    return JobRunner(
        SessionLocal,
        reminder_job_definitions(FonnteGateway(), tz_name=core_settings.DEFAULT_TIMEZONE),
        poll_interval=settings.POLL_INTERVAL_SECONDS,
        max_concurrency=settings.MAX_CONCURRENCY,
    )


def main() -> None:
    stop_event = threading.Event()

    def _handle_signal(signum, _frame):
        logger.info(f"🛑 [Worker] Received signal {signum}; shutting down")
        stop_event.set()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    build_runner().run_forever(stop_event)


if __name__ == "__main__":
    main()
