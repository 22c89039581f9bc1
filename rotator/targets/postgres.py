"""
PostgreSQL target.

Changes role passwords over one long-lived admin connection and verifies a
new password by logging in with it on a separate, short-lived connection.

``ALTER USER ... WITH PASSWORD`` does not accept bind parameters, so the
identity is quoted as an identifier and the password escaped as a literal.
The statement text is never logged.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional
from urllib.parse import quote

import asyncpg

from rotator.config import PostgresTargetConfig
from rotator.exceptions import (
    BackendUnavailableError,
    CredentialUpdateError,
    VerificationFailedError,
)
from rotator.logging_config import get_logger
from rotator.targets.base import BaseTarget

logger = get_logger(__name__)

POSTGRES_KIND = "postgres"
POSTGRES_SERVICE = "PostgreSQL"


def build_dsn(
    host: str,
    port: int,
    username: str,
    password: str,
    database: str,
    ssl_mode: str,
) -> str:
    """Build a ``postgresql://`` DSN with the user and password URL-quoted."""
    user_part = quote(username, safe="")
    password_part = quote(password, safe="")
    return (
        f"postgresql://{user_part}:{password_part}@{host}:{port}/"
        f"{quote(database, safe='')}?sslmode={ssl_mode}"
    )


def quote_identifier(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def escape_literal(value: str) -> str:
    return value.replace("'", "''")


async def _close_quietly(connection: Any, identity: str) -> None:
    """Close a verification connection without masking the check's outcome."""
    try:
        await connection.close()
    except (OSError, asyncio.TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
        logger.warning("Failed to close verification connection", identity=identity, error=str(e))


class PostgresTarget(BaseTarget):
    """Target that rotates PostgreSQL role passwords."""

    kind = POSTGRES_KIND

    def __init__(self, config: PostgresTargetConfig, connection: Any):
        self.config = config
        self._conn = connection

    def __repr__(self) -> str:
        return f"PostgresTarget(host={self.config.host!r}, port={self.config.port})"

    @classmethod
    async def connect(cls, config: PostgresTargetConfig, admin_password: str) -> PostgresTarget:
        """Open and check the admin connection.

        Raises:
            BackendUnavailableError: If the server cannot be reached or
                rejects the admin credentials.
        """
        logger.info("Connecting to PostgreSQL", host=config.host, port=config.port)
        dsn = build_dsn(
            config.host,
            config.port,
            config.username,
            admin_password,
            config.database,
            config.ssl_mode,
        )
        try:
            connection = await asyncpg.connect(dsn)
        except (OSError, asyncio.TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise BackendUnavailableError(POSTGRES_SERVICE, f"admin connection failed: {e}") from e

        try:
            version = await connection.fetchval("SELECT version()")
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            await connection.close()
            raise BackendUnavailableError(POSTGRES_SERVICE, f"admin connection check failed: {e}") from e

        logger.debug("Connected to PostgreSQL", version=version)
        return cls(config, connection)

    async def update_credential(self, identity: str, new_value: str) -> None:
        logger.info("Updating PostgreSQL role password", identity=identity)
        statement = (
            f"ALTER USER {quote_identifier(identity)} "
            f"WITH PASSWORD '{escape_literal(new_value)}'"
        )
        try:
            await self._conn.execute(statement)
        except asyncpg.PostgresError as e:
            raise CredentialUpdateError(POSTGRES_KIND, identity, str(e)) from e
        except (OSError, asyncpg.InterfaceError) as e:
            raise BackendUnavailableError(POSTGRES_SERVICE, f"ALTER USER failed: {e}") from e
        logger.info("Updated PostgreSQL role password", identity=identity)

    async def verify_credential(
        self,
        identity: str,
        value: str,
        scope: Optional[str] = None,
    ) -> None:
        """Log in as ``identity`` with ``value`` and run ``SELECT 1``.

        ``scope`` selects the database; defaults to the configured one.
        """
        database = scope or self.config.database
        dsn = build_dsn(
            self.config.host,
            self.config.port,
            identity,
            value,
            database,
            self.config.ssl_mode,
        )
        try:
            connection = await asyncpg.connect(dsn)
        except (OSError, asyncio.TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise VerificationFailedError(POSTGRES_KIND, identity, f"login failed: {e}") from e
        try:
            result = await connection.fetchval("SELECT 1")
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise VerificationFailedError(POSTGRES_KIND, identity, f"query failed: {e}") from e
        finally:
            await _close_quietly(connection, identity)
        if result != 1:
            raise VerificationFailedError(POSTGRES_KIND, identity, f"unexpected result {result!r}")
        logger.info("Verified new PostgreSQL password", identity=identity, database=database)

    async def close(self) -> None:
        if self._conn is not None and not self._conn.is_closed():
            await self._conn.close()
