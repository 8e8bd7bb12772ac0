"""Pytest configuration and fixtures for unit tests."""

import pytest

from src.core.config import Constants
from tests.unit.mocks import InMemoryDBClient


@pytest.fixture
def in_memory_db():
    """Provides a fresh InMemoryDBClient for each test."""
    return InMemoryDBClient()


@pytest.fixture
def patched_db(monkeypatch, in_memory_db):
    """Patches src.core.db_client functions to use InMemoryDBClient."""

    # Patch all db_client functions
    monkeypatch.setattr("src.core.db_client.create_record", in_memory_db.create_record)
    monkeypatch.setattr("src.core.db_client.get_record", in_memory_db.get_record)
    monkeypatch.setattr("src.core.db_client.update_record", in_memory_db.update_record)
    monkeypatch.setattr("src.core.db_client.delete_record", in_memory_db.delete_record)
    monkeypatch.setattr("src.core.db_client.list_records", in_memory_db.list_records)
    monkeypatch.setattr("src.core.db_client.get_first_record", in_memory_db.get_first_record)

    return in_memory_db


@pytest.fixture
def fast_password_hashing(monkeypatch):
    """Keep PBKDF2 cheap in unit tests."""
    monkeypatch.setattr(Constants, "PASSWORD_HASH_ITERATIONS", 1_000)


@pytest.fixture
def sample_user_data():
    """Returns sample user data for testing."""
    return {
        "email": "test@example.com",
        "password": "securepass123",
    }
