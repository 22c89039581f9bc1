"""
Credential targets.

A target is the system that actually enforces a rotated credential: a
PostgreSQL role or an account behind a REST API. ``create_target`` builds the
one selected by configuration.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Optional

from rotator.exceptions import ConfigurationError, RotatorError
from rotator.logging_config import get_logger
from rotator.rotation import select_credential_key
from rotator.targets.api import ApiTarget
from rotator.targets.postgres import PostgresTarget

if TYPE_CHECKING:
    from rotator.config import Config, PostgresTargetConfig
    from rotator.protocols import SecretStore, Target

logger = get_logger(__name__)


class TargetType(str, Enum):
    POSTGRES = "postgres"
    API = "api"

    @classmethod
    def parse(cls, name: str) -> TargetType:
        """Parse a target name; ``postgresql`` is accepted as an alias."""
        lowered = name.strip().lower()
        if lowered == "postgresql":
            return cls.POSTGRES
        try:
            return cls(lowered)
        except ValueError:
            raise ConfigurationError(
                "targets", f"unknown target type '{name}', supported: postgres, api"
            ) from None


async def resolve_admin_password(config: PostgresTargetConfig, store: SecretStore) -> str:
    """Find the PostgreSQL admin password.

    ``password_path`` is read from the secret store and wins over an inline
    ``password``.
    """
    if config.password_path:
        try:
            record = await store.read(config.password_path)
        except RotatorError as e:
            raise ConfigurationError(
                "targets.postgres",
                f"cannot read admin password from '{config.password_path}': {e}",
            ) from e
        if not record.data:
            raise ConfigurationError(
                "targets.postgres", f"no password found in secret at '{config.password_path}'"
            )
        key = select_credential_key(record.data)
        if key in record.data:
            return record.data[key]
        return next(iter(record.data.values()))
    if config.password:
        return config.password
    raise ConfigurationError("targets.postgres", "set password_path or password")


async def create_target(
    config: Config,
    store: SecretStore,
    target_type: Optional[str] = None,
) -> Optional[Target]:
    """Build the configured target, or None when no target is configured.

    Without an explicit ``target_type`` PostgreSQL is preferred over the API
    target, and the legacy ``database`` section is used as a last resort.
    """
    postgres_config = config.postgres_target()
    api_config = config.targets.api

    if target_type is not None:
        selected = TargetType.parse(target_type)
        if selected is TargetType.POSTGRES and postgres_config is None:
            raise ConfigurationError("targets.postgres", "section is not configured")
        if selected is TargetType.API and api_config is None:
            raise ConfigurationError("targets.api", "section is not configured")
    elif postgres_config is not None:
        selected = TargetType.POSTGRES
    elif api_config is not None:
        selected = TargetType.API
    else:
        return None

    if selected is TargetType.POSTGRES:
        if not postgres_config.host or not postgres_config.username:
            raise ConfigurationError("targets.postgres", "host and username are required")
        admin_password = await resolve_admin_password(postgres_config, store)
        return await PostgresTarget.connect(postgres_config, admin_password)

    if not api_config.endpoint:
        raise ConfigurationError("targets.api", "endpoint is required")
    if not api_config.base_url and not api_config.endpoint.startswith(("http://", "https://")):
        raise ConfigurationError("targets.api", "base_url is required for relative endpoints")
    logger.info("Creating API target", base_url=api_config.base_url)
    return ApiTarget(api_config)


__all__ = [
    "TargetType",
    "create_target",
    "resolve_admin_password",
    "PostgresTarget",
    "ApiTarget",
]
