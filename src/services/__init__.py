from src.services import (
    notification_service,
    session_service,
    task_service,
    user_service,
)


__all__ = [
    "notification_service",
    "session_service",
    "task_service",
    "user_service",
]
