"""User and session domain models."""

from pydantic import BaseModel, Field, field_validator


class User(BaseModel):
    """User data transfer object."""

    id: str = Field(..., description="Unique user ID")
    email: str = Field(..., description="Login email (lower-cased)")
    created_at: str = Field(..., description="Registration timestamp (ISO format)")

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Emails are compared case-insensitively."""
        return v.strip().lower()


class Session(BaseModel):
    """Authenticated identity carried in a signed session cookie."""

    user_id: str = Field(..., description="ID of the signed-in user")
    email: str = Field(..., description="Email of the signed-in user")
    issued_at: str = Field(..., description="When the session was issued (ISO format)")
