"""
Standardized HTTP client configuration with proper timeouts.

Provides consistent timeout and session management for every aiohttp user
in the rotator (the Vault backend and the HTTP target). Sessions should be
created through these helpers instead of constructing them directly.

Usage:
    from rotator.http_client import create_client_session, timeout_from_seconds

    async with create_client_session() as session:
        async with session.get(url) as resp:
            ...

    # Single total budget, as configured for API targets
    session = create_client_session(timeout=timeout_from_seconds(30))
    try:
        ...
    finally:
        await session.close()
"""

from __future__ import annotations

import aiohttp
from aiohttp import ClientTimeout

__all__ = [
    "DEFAULT_TIMEOUT",
    "VAULT_TIMEOUT",
    "get_default_timeout",
    "timeout_from_seconds",
    "create_client_session",
]

# Default timeout for most HTTP requests (30 seconds total)
DEFAULT_TIMEOUT = ClientTimeout(
    total=30,  # Total time for the entire request
    connect=10,  # Time to establish connection
    sock_read=20,  # Time to read response
)

# Secret store calls are small; fail fast when Vault is unreachable
VAULT_TIMEOUT = ClientTimeout(
    total=15,
    connect=5,
    sock_read=10,
)


def get_default_timeout() -> ClientTimeout:
    """Get the default timeout configuration."""
    return DEFAULT_TIMEOUT


def timeout_from_seconds(seconds: float) -> ClientTimeout:
    """Build a timeout with a single total budget.

    Args:
        seconds: Total time allowed for one request, connect included.

    Raises:
        ValueError: If seconds is not positive.
    """
    if seconds <= 0:
        raise ValueError("timeout must be positive")
    return ClientTimeout(total=seconds)


def create_client_session(
    timeout: ClientTimeout | None = None,
    **kwargs,
) -> aiohttp.ClientSession:
    """Create an aiohttp ClientSession with proper timeout configuration.

    Args:
        timeout: Optional custom timeout. Uses DEFAULT_TIMEOUT if not specified.
        **kwargs: Additional arguments passed to ClientSession.

    Returns:
        Configured aiohttp.ClientSession.
    """
    if timeout is None:
        timeout = DEFAULT_TIMEOUT
    return aiohttp.ClientSession(timeout=timeout, **kwargs)
