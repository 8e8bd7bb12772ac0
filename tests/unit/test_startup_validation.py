"""Tests for startup validation functions."""

from unittest.mock import AsyncMock, Mock, patch

import pytest

from src.main import check_redis_connectivity, validate_startup_configuration


@pytest.mark.asyncio
async def test_check_redis_connectivity_disabled() -> None:
    """Test Redis check when Redis is not configured."""
    mock_redis = Mock()
    mock_redis.is_available = False
    mock_redis.ping = AsyncMock()

    with patch("src.main.redis_client", mock_redis):
        await check_redis_connectivity()

    mock_redis.ping.assert_not_called()


@pytest.mark.asyncio
async def test_check_redis_connectivity_success() -> None:
    """Test successful Redis connectivity check."""
    mock_redis = Mock()
    mock_redis.is_available = True
    mock_redis.ping = AsyncMock(return_value=True)

    with patch("src.main.redis_client", mock_redis):
        await check_redis_connectivity()
        mock_redis.ping.assert_called_once()


@pytest.mark.asyncio
async def test_check_redis_connectivity_unreachable_does_not_fail() -> None:
    """Test an unreachable Redis only logs a warning."""
    mock_redis = Mock()
    mock_redis.is_available = True
    mock_redis.ping = AsyncMock(return_value=False)

    with patch("src.main.redis_client", mock_redis):
        await check_redis_connectivity()


@pytest.mark.asyncio
async def test_validate_startup_configuration_missing_secret_in_production() -> None:
    """Test validation fails and exits when production has no secret key."""

    def mock_require_credential(field: str, name: str) -> str:
        raise ValueError(f"{name} credential not configured")

    with (
        patch("src.main.settings") as mock_settings,
        pytest.raises(SystemExit) as exc_info,
    ):
        mock_settings.is_production = True
        mock_settings.require_credential.side_effect = mock_require_credential
        await validate_startup_configuration()

    exc = exc_info.value
    assert isinstance(exc, SystemExit)
    assert exc.code == 1


@pytest.mark.asyncio
async def test_validate_startup_configuration_development_without_secret() -> None:
    """Test development startup only warns about the fallback secret."""
    mock_redis = Mock()
    mock_redis.is_available = False

    with (
        patch("src.main.settings") as mock_settings,
        patch("src.main.redis_client", mock_redis),
    ):
        mock_settings.is_production = False
        mock_settings.secret_key = None
        await validate_startup_configuration()

        mock_settings.require_credential.assert_not_called()
