"""Task reminder scheduler (planner, job store, runner, WhatsApp handler).

Tasks are created through the HTTP API in ``service``; reminder jobs are
stored in the shared database and executed by one or more worker processes
(``worker`` for a standalone poll loop, or Celery beat via ``celery_app``).
"""
