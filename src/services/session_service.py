"""Session service: signed session tokens and the current-identity lookup."""

import logging
from datetime import UTC, datetime

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from pydantic import ValidationError

from src.core.config import Constants, settings
from src.domain.user import Session, User


logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "quicktask_session"
_SESSION_SALT = "quicktask-session"


def _serializer() -> URLSafeTimedSerializer:
    secret = settings.secret_key or Constants.DEV_SECRET_KEY
    return URLSafeTimedSerializer(str(secret), salt=_SESSION_SALT)


def issue_token(user: User) -> str:
    """Create a signed session token for a user.

    Args:
        user: The authenticated user

    Returns:
        Token suitable for the session cookie
    """
    session = Session(
        user_id=user.id,
        email=user.email,
        issued_at=datetime.now(UTC).isoformat().replace("+00:00", "Z"),
    )
    logger.info("Issued session", extra={"operation": "issue_session", "user_id": user.id})
    return _serializer().dumps(session.model_dump())


def get_current_session(token: str | None) -> Session | None:
    """Resolve a session token into the current identity.

    Args:
        token: Raw cookie value, if any

    Returns:
        Session, or None when the token is missing, tampered with, or expired
    """
    if not token:
        return None

    try:
        data = _serializer().loads(token, max_age=settings.session_max_age_seconds)
    except SignatureExpired:
        logger.info("Session expired", extra={"operation": "get_current_session"})
        return None
    except BadSignature:
        logger.warning("Session signature invalid", extra={"operation": "get_current_session"})
        return None

    try:
        return Session.model_validate(data)
    except ValidationError:
        logger.warning("Session payload invalid", extra={"operation": "get_current_session"})
        return None
