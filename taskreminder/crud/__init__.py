from .task import task, user
