"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncIterator
from pathlib import Path

import pytest

from src.core import db_client
from src.core.change_feed import change_feed
from src.core.config import settings
from src.domain.user import Session
from src.services import notification_service


@pytest.fixture
def session() -> Session:
    """Signed-in identity used by most tests."""
    return Session(user_id="1", email="alice@example.com", issued_at="2026-01-01T00:00:00Z")


@pytest.fixture
def other_session() -> Session:
    """A second, unrelated identity."""
    return Session(user_id="2", email="bob@example.com", issued_at="2026-01-01T00:00:00Z")


@pytest.fixture(autouse=True)
def reset_notification_centers():
    """Notification centers are process-global; give every test a clean slate."""
    notification_service._centers.clear()
    yield
    notification_service._centers.clear()


@pytest.fixture
async def sqlite_db(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AsyncIterator[Path]:
    """Fresh on-disk SQLite database with the schema applied."""
    db_path = tmp_path / "quicktask-test.db"
    monkeypatch.setattr(settings, "sqlite_db_path", str(db_path))

    await db_client.init_db()
    yield db_path

    await change_feed.drain()
    await db_client.close_connection()
