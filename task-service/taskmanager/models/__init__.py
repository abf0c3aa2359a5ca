from .Task import Task
from .TaskCreate import Submission, TaskCreate
from .TaskResult import SubmittedTask, TaskResult
from .TaskUpdate import TaskUpdate

__all__ = [
    "Task",
    "TaskCreate",
    "Submission",
    "SubmittedTask",
    "TaskResult",
    "TaskUpdate",
]
