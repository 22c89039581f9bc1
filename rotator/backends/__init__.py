"""
Secret store implementations.

One class per storage system, all satisfying ``rotator.protocols.SecretStore``.
``create_backend`` picks the implementation named by the configuration.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from rotator.backends.aws import AwsSecretsBackend
from rotator.backends.file import FileBackend
from rotator.backends.vault import VaultBackend, VaultClient
from rotator.exceptions import ConfigurationError
from rotator.logging_config import get_logger

if TYPE_CHECKING:
    from rotator.config import Config
    from rotator.protocols import SecretStore

logger = get_logger(__name__)


class BackendType(str, Enum):
    VAULT = "vault"
    AWS = "aws"
    FILE = "file"

    @classmethod
    def parse(cls, name: str) -> BackendType:
        """Parse a backend name case-insensitively.

        Raises:
            ConfigurationError: For unknown names.
        """
        try:
            return cls(name.strip().lower())
        except ValueError:
            supported = ", ".join(member.value for member in cls)
            raise ConfigurationError(
                "backend", f"unknown backend '{name}', supported: {supported}"
            ) from None


def create_backend(config: Config) -> SecretStore:
    """Build the secret store selected by ``config.backend``."""
    backend_type = BackendType.parse(config.backend)
    logger.debug("Creating secret store", backend=backend_type.value)

    if backend_type is BackendType.VAULT:
        if not config.vault.address:
            raise ConfigurationError("vault", "address is not set (VAULT_ADDR or vault.address)")
        if not config.vault.token:
            raise ConfigurationError("vault", "token is not set (VAULT_TOKEN or vault.token)")
        client = VaultClient(config.vault.address, config.vault.token)
        return VaultBackend(client, mount=config.vault.mount)

    if backend_type is BackendType.AWS:
        return AwsSecretsBackend(region=config.aws.region)

    return FileBackend(config.file.directory)


__all__ = [
    "BackendType",
    "create_backend",
    "VaultBackend",
    "VaultClient",
    "AwsSecretsBackend",
    "FileBackend",
]
