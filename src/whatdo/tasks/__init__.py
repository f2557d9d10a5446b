"""Task model and the WHATDO.yaml codec."""

from whatdo.tasks.model import Task, TaskTree

__all__ = ["Task", "TaskTree"]
