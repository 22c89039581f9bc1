"""Tests for HTTP client helpers."""

import aiohttp
import pytest

from rotator.http_client import (
    DEFAULT_TIMEOUT,
    VAULT_TIMEOUT,
    create_client_session,
    get_default_timeout,
    timeout_from_seconds,
)


class TestTimeouts:
    """Test timeout presets."""

    def test_default_timeout(self):
        assert DEFAULT_TIMEOUT.total == 30
        assert DEFAULT_TIMEOUT.connect == 10
        assert get_default_timeout() is DEFAULT_TIMEOUT

    def test_vault_timeout_is_shorter(self):
        assert VAULT_TIMEOUT.total < DEFAULT_TIMEOUT.total

    def test_from_seconds(self):
        assert timeout_from_seconds(5).total == 5

    @pytest.mark.parametrize("seconds", [0, -1])
    def test_from_seconds_rejects_non_positive(self, seconds):
        with pytest.raises(ValueError):
            timeout_from_seconds(seconds)


class TestCreateClientSession:
    """Test session factory."""

    @pytest.mark.asyncio
    async def test_default_timeout(self):
        session = create_client_session()
        try:
            assert isinstance(session, aiohttp.ClientSession)
            assert session.timeout is DEFAULT_TIMEOUT
        finally:
            await session.close()

    @pytest.mark.asyncio
    async def test_custom_timeout(self):
        timeout = timeout_from_seconds(3)
        session = create_client_session(timeout=timeout)
        try:
            assert session.timeout is timeout
        finally:
            await session.close()
