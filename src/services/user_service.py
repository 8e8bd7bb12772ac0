"""User service for registration and password authentication."""

import hashlib
import logging
import secrets

from src.core import db_client
from src.core.config import Constants
from src.core.db_client import sanitize_param
from src.core.logging import span
from src.domain.create_models import UserCreate
from src.domain.user import User


logger = logging.getLogger(__name__)

_HASH_ALGORITHM = "pbkdf2_sha256"


def hash_password(password: str, *, salt: str | None = None, iterations: int | None = None) -> str:
    """Hash a password as ``pbkdf2_sha256$<iterations>$<salt>$<hex digest>``."""
    salt = salt or secrets.token_hex(16)
    iterations = iterations or Constants.PASSWORD_HASH_ITERATIONS
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), iterations)
    return f"{_HASH_ALGORITHM}${iterations}${salt}${digest.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against a stored hash in constant time."""
    try:
        algorithm, iterations, salt, expected = password_hash.split("$")
    except ValueError:
        return False
    if algorithm != _HASH_ALGORITHM or not iterations.isdigit():
        return False
    candidate = hash_password(password, salt=salt, iterations=int(iterations))
    return secrets.compare_digest(candidate.rsplit("$", 1)[1], expected)


async def get_user_by_email(*, email: str) -> dict | None:
    """Return the raw user record for an email, or None."""
    return await db_client.get_first_record(
        collection=Constants.USERS_COLLECTION,
        filter_query=f'email = "{sanitize_param(email.strip().lower())}"',
    )


async def create_user(*, email: str, password: str) -> User:
    """Register a new user.

    Args:
        email: Login email
        password: Plain-text password (at least 8 characters)

    Returns:
        Created user

    Raises:
        ValueError: If the email is invalid or taken, or the password is too short
        db_client.DatabaseError: If database operation fails
    """
    with span("user_service.create_user"):
        data = UserCreate(email=email, password=password)

        if await get_user_by_email(email=data.email):
            msg = f"User with email {data.email} already exists"
            logger.warning("Registration rejected", extra={"operation": "create_user", "reason": "duplicate"})
            raise ValueError(msg)

        record = await db_client.create_record(
            collection=Constants.USERS_COLLECTION,
            data={"email": data.email, "password_hash": hash_password(data.password)},
        )
        logger.info("Registered user", extra={"operation": "create_user", "user_id": record["id"]})
        return User.model_validate(record)


async def authenticate(*, email: str, password: str) -> User | None:
    """Return the user when the credentials match, otherwise None."""
    with span("user_service.authenticate"):
        record = await get_user_by_email(email=email)
        if record is None or not verify_password(password, record["password_hash"]):
            logger.warning("Authentication failed", extra={"operation": "authenticate"})
            return None
        logger.info("Authenticated user", extra={"operation": "authenticate", "user_id": record["id"]})
        return User.model_validate(record)
