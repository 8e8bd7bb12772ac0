"""Update models for database operations."""

from pydantic import BaseModel

from src.domain.task import TaskType


class TaskDoneUpdate(BaseModel):
    """Partial update of a task's completion flag."""

    done: bool


class TaskTypeUpdate(BaseModel):
    """Partial update of a task's category."""

    type: TaskType
