"""Domain models and DTOs."""

from src.domain.create_models import TaskCreate, UserCreate
from src.domain.task import DEFAULT_TASK_TYPE, Task, TaskType, normalize_title
from src.domain.update_models import TaskDoneUpdate, TaskTypeUpdate
from src.domain.user import Session, User


__all__ = [
    "DEFAULT_TASK_TYPE",
    "Session",
    "Task",
    "TaskCreate",
    "TaskDoneUpdate",
    "TaskType",
    "TaskTypeUpdate",
    "User",
    "UserCreate",
    "normalize_title",
]
