"""Pydantic models for creating records in database."""

import re

from pydantic import BaseModel, Field, field_validator

from src.core.config import Constants
from src.domain.task import TaskType


_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class TaskCreate(BaseModel):
    """Insert payload for a task: only user-supplied fields."""

    title: str = Field(..., min_length=1, description="Trimmed task title")
    type: TaskType | None = Field(default=None, description="Optional task category")

    @field_validator("title")
    @classmethod
    def validate_title_not_blank(cls, v: str) -> str:
        """Reject titles that are empty after trimming."""
        v = v.strip()
        if not v:
            raise ValueError("Title cannot be empty")
        return v


class UserCreate(BaseModel):
    """Pydantic model for registering a user."""

    email: str = Field(..., description="Login email")
    password: str = Field(..., description="Plain-text password (hashed before storage)")

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Validate and normalize the email address."""
        v = v.strip().lower()
        if not _EMAIL_PATTERN.match(v):
            raise ValueError("Invalid email address")
        return v

    @field_validator("password")
    @classmethod
    def validate_password_length(cls, v: str) -> str:
        """Validate password is long enough."""
        if len(v) < Constants.MIN_PASSWORD_LENGTH:
            msg = f"Password must be at least {Constants.MIN_PASSWORD_LENGTH} characters"
            raise ValueError(msg)
        return v
