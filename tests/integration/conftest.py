"""Pytest configuration and fixtures for integration tests."""

import pytest

from src.core.config import Constants
from src.domain.user import Session, User
from src.services import user_service


@pytest.fixture
async def users(sqlite_db, monkeypatch) -> dict[str, User]:
    """Two registered users in a fresh SQLite database."""
    monkeypatch.setattr(Constants, "PASSWORD_HASH_ITERATIONS", 1_000)
    alice = await user_service.create_user(email="alice@example.com", password="securepass123")
    bob = await user_service.create_user(email="bob@example.com", password="securepass123")
    return {"alice": alice, "bob": bob}


def session_for(user: User) -> Session:
    return Session(user_id=user.id, email=user.email, issued_at="2026-01-01T00:00:00Z")


@pytest.fixture
def alice_session(users) -> Session:
    return session_for(users["alice"])


@pytest.fixture
def bob_session(users) -> Session:
    return session_for(users["bob"])
