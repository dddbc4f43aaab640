from .user import User
from .task import Task, TaskStatus, TERMINAL_STATUSES
from taskreminder.reminders.job_models import Job
