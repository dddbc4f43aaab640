"""
Errors raised by the reminder scheduler and the task service in front of it.
"""
from typing import Optional


class ReminderError(Exception):
    """Base class for all reminder scheduling errors."""


class InvalidOffset(ReminderError):
    def __init__(self, token: object):
        self.token = token
        super().__init__(f"Invalid reminder offset: {token!r}")


class NoUpcomingOccurrence(ReminderError):
    def __init__(self, message: str = "No upcoming reminder before end date"):
        super().__init__(message)


class DeliveryFailure(ReminderError):
    """Messaging gateway could not deliver a reminder."""

    def __init__(self, reason: str, response: Optional[dict] = None):
        self.reason = reason
        self.response = response
        super().__init__(reason)


class InvalidStatusTransition(ReminderError):
    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(
            f"Task cannot move from '{current}' to '{requested}'; stopped and completed are final"
        )


class TaskValidationError(ReminderError):
    pass


class TaskNotFound(ReminderError):
    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task {task_id} not found")


class TaskConflict(ReminderError):
    """The task was modified concurrently; the caller should reload and retry."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task {task_id} was modified concurrently")
