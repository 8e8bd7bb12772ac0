"""Task domain models and enums."""

from enum import StrEnum

from pydantic import BaseModel, Field, field_validator


class TaskType(StrEnum):
    """Category tag a user can attach to a task."""

    LIGHTNING = "lightning"
    CLOUD = "cloud"
    QUESTION = "question"


DEFAULT_TASK_TYPE = TaskType.QUESTION


class Task(BaseModel):
    """Task data transfer object, mirrored from the store."""

    id: str = Field(..., description="Unique task ID assigned by the store")
    title: str = Field(..., description="Task title")
    done: bool = Field(default=False, description="Completion flag")
    created_at: str = Field(..., description="Creation timestamp (ISO format), newest first ordering key")
    type: TaskType = Field(default=DEFAULT_TASK_TYPE, description="Task category")

    @field_validator("type", mode="before")
    @classmethod
    def default_missing_type(cls, v: object) -> object:
        """Treat a missing category as a question."""
        return DEFAULT_TASK_TYPE if v is None or v == "" else v


def normalize_title(title: str | None) -> str | None:
    """Return the trimmed title, or None when nothing is left to store."""
    if title is None:
        return None
    trimmed = title.strip()
    return trimmed or None
