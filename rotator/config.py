"""
Configuration for the secret rotator.

Settings come from three layers, lowest precedence first:

1. Built-in defaults on the dataclasses below
2. A YAML file (``--config``, ``$ROTATOR_CONFIG`` or ``rotator-config.yaml``
   found by walking up from the working directory); with no file present,
   environment variables are read instead
3. Command-line overrides applied by the CLI

Validation of value ranges happens in ``__post_init__``. Missing connection
settings (a Vault token, a database host) are only reported when the backend
or target that needs them is built, so ``rotator gen-password`` against a file
store never complains about Vault.

Example config:

    backend: vault
    vault:
      address: http://127.0.0.1:8200
      token: hvs.example
      mount: secret
    rotation:
      period_months: 6
      secret_length: 32
    targets:
      postgres:
        host: localhost
        database: postgres
        username: postgres
        password_path: admin/postgres
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from rotator.exceptions import ConfigurationError
from rotator.logging_config import get_logger

logger = get_logger(__name__)

CONFIG_FILENAME = "rotator-config.yaml"
CONFIG_ENV_VAR = "ROTATOR_CONFIG"

DEFAULT_BACKEND = "vault"
DEFAULT_MOUNT = "secret"
DEFAULT_REGION = "us-east-1"
DEFAULT_FILE_DIRECTORY = "~/.rotator/secrets"
DEFAULT_PERIOD_MONTHS = 6
DEFAULT_SECRET_LENGTH = 32
DEFAULT_DB_PORT = 5432
DEFAULT_SSL_MODE = "prefer"
DEFAULT_API_TIMEOUT = 30

SSL_MODES = frozenset({"disable", "allow", "prefer", "require", "verify-ca", "verify-full"})


@dataclass
class VaultConfig:
    address: Optional[str] = None
    token: Optional[str] = field(default=None, repr=False)
    mount: str = DEFAULT_MOUNT


@dataclass
class AwsConfig:
    region: str = DEFAULT_REGION


@dataclass
class FileConfig:
    directory: str = DEFAULT_FILE_DIRECTORY


@dataclass
class RotationConfig:
    """Global rotation policy.

    Attributes:
        period_months: Default rotation period when a secret has no override.
        secret_length: Length of generated secrets.
    """

    period_months: int = DEFAULT_PERIOD_MONTHS
    secret_length: int = DEFAULT_SECRET_LENGTH

    def __post_init__(self) -> None:
        if self.period_months < 1:
            raise ConfigurationError("rotation", "period_months must be at least 1")
        if self.secret_length < 1:
            raise ConfigurationError("rotation", "secret_length must be at least 1")


@dataclass
class PostgresTargetConfig:
    """Admin connection used to change PostgreSQL role passwords.

    ``password_path`` names a secret in the configured store holding the
    admin password and wins over an inline ``password``.
    """

    host: str = ""
    port: int = DEFAULT_DB_PORT
    database: str = "postgres"
    username: str = ""
    password_path: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    ssl_mode: str = DEFAULT_SSL_MODE

    def __post_init__(self) -> None:
        if not 0 < self.port < 65536:
            raise ConfigurationError("targets.postgres", f"invalid port {self.port}")
        if self.ssl_mode not in SSL_MODES:
            raise ConfigurationError(
                "targets.postgres",
                f"ssl_mode must be one of {', '.join(sorted(SSL_MODES))}",
            )


@dataclass
class ApiTargetConfig:
    """REST endpoint that accepts credential changes.

    ``endpoint`` may contain ``{username}``; an absolute endpoint URL is used
    as-is and ``base_url`` is ignored.
    """

    base_url: str = ""
    endpoint: str = ""
    method: str = "POST"
    password_field: str = "password"
    username_field: Optional[str] = None
    additional_fields: dict[str, str] = field(default_factory=dict)
    auth_header: Optional[str] = field(default=None, repr=False)
    headers: dict[str, str] = field(default_factory=dict)
    timeout_seconds: int = DEFAULT_API_TIMEOUT

    def __post_init__(self) -> None:
        if self.timeout_seconds <= 0:
            raise ConfigurationError("targets.api", "timeout_seconds must be positive")
        # YAML decodes numbers and booleans; aiohttp only accepts str header values
        self.headers = _string_map(self.headers, "targets.api.headers")
        self.additional_fields = _string_map(self.additional_fields, "targets.api.additional_fields")


@dataclass
class TargetsConfig:
    postgres: Optional[PostgresTargetConfig] = None
    api: Optional[ApiTargetConfig] = None


@dataclass
class Config:
    """Complete rotator configuration."""

    backend: str = DEFAULT_BACKEND
    vault: VaultConfig = field(default_factory=VaultConfig)
    aws: AwsConfig = field(default_factory=AwsConfig)
    file: FileConfig = field(default_factory=FileConfig)
    rotation: RotationConfig = field(default_factory=RotationConfig)
    # Legacy top-level database section, superseded by targets.postgres
    database: Optional[PostgresTargetConfig] = None
    targets: TargetsConfig = field(default_factory=TargetsConfig)

    def postgres_target(self) -> Optional[PostgresTargetConfig]:
        """The PostgreSQL target settings, honouring the legacy section."""
        return self.targets.postgres or self.database

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Config:
        """Build a Config from decoded YAML."""
        if not isinstance(raw, Mapping):
            raise ConfigurationError("config", "top level must be a mapping")
        targets_raw = _section(raw, "targets")
        try:
            return cls(
                backend=str(raw.get("backend", DEFAULT_BACKEND)).lower(),
                vault=VaultConfig(**_section(raw, "vault")),
                aws=AwsConfig(**_section(raw, "aws")),
                file=FileConfig(**_section(raw, "file")),
                rotation=RotationConfig(**_section(raw, "rotation")),
                database=_optional(PostgresTargetConfig, raw.get("database")),
                targets=TargetsConfig(
                    postgres=_optional(PostgresTargetConfig, targets_raw.get("postgres")),
                    api=_optional(ApiTargetConfig, targets_raw.get("api")),
                ),
            )
        except TypeError as e:
            # Unknown or misspelled keys surface as unexpected keyword arguments
            raise ConfigurationError("config", str(e)) from e

    @classmethod
    def from_file(cls, path: str | os.PathLike[str]) -> Config:
        """Load configuration from a YAML file.

        Raises:
            ConfigurationError: If the file cannot be read or parsed.
        """
        config_path = Path(path).expanduser()
        try:
            text = config_path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError("config", f"cannot read {config_path}: {e}") from e
        try:
            raw = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError("config", f"invalid YAML in {config_path}: {e}") from e
        logger.debug("Loaded configuration file", path=str(config_path))
        return cls.from_dict(raw)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> Config:
        """Build configuration from environment variables."""
        env = os.environ if environ is None else environ

        database = None
        if env.get("DB_HOST"):
            database = PostgresTargetConfig(
                host=env["DB_HOST"],
                port=_env_int(env, "DB_PORT", DEFAULT_DB_PORT),
                database=env.get("DB_NAME", "postgres"),
                username=env.get("DB_USERNAME", ""),
                password_path=env.get("DB_PASSWORD_PATH") or None,
                password=env.get("DB_PASSWORD") or None,
                ssl_mode=env.get("DB_SSL_MODE", DEFAULT_SSL_MODE),
            )

        return cls(
            backend=env.get("SECRET_BACKEND", DEFAULT_BACKEND).lower(),
            vault=VaultConfig(
                address=env.get("VAULT_ADDR") or None,
                token=env.get("VAULT_TOKEN") or None,
                mount=env.get("VAULT_MOUNT", DEFAULT_MOUNT),
            ),
            aws=AwsConfig(region=env.get("AWS_REGION", DEFAULT_REGION)),
            file=FileConfig(directory=env.get("ROTATOR_FILE_DIR", DEFAULT_FILE_DIRECTORY)),
            rotation=RotationConfig(
                period_months=_env_int(env, "ROTATION_PERIOD_MONTHS", DEFAULT_PERIOD_MONTHS),
                secret_length=_env_int(env, "SECRET_LENGTH", DEFAULT_SECRET_LENGTH),
            ),
            database=database,
        )

    @staticmethod
    def create_sample(path: str | os.PathLike[str]) -> Path:
        """Write a sample configuration file and return its path."""
        sample = Config(
            vault=VaultConfig(address="http://127.0.0.1:8200", token="your-vault-token"),
            targets=TargetsConfig(
                postgres=PostgresTargetConfig(
                    host="localhost",
                    database="postgres",
                    username="postgres",
                    password_path="admin/postgres",
                ),
                api=ApiTargetConfig(
                    base_url="https://api.example.com",
                    endpoint="/api/v1/users/{username}/password",
                    auth_header="Bearer your-api-token",
                ),
            ),
        )
        out = Path(path).expanduser()
        try:
            out.parent.mkdir(parents=True, exist_ok=True)
            out.write_text(yaml.safe_dump(sample.to_dict(), sort_keys=False), encoding="utf-8")
        except OSError as e:
            raise ConfigurationError("config", f"cannot write {out}: {e}") from e
        return out

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(asdict(self))

    def apply_overrides(
        self,
        backend: Optional[str] = None,
        vault_addr: Optional[str] = None,
        vault_token: Optional[str] = None,
        vault_mount: Optional[str] = None,
    ) -> Config:
        """Apply command-line overrides in place and return self."""
        if backend:
            self.backend = backend.lower()
        if vault_addr:
            self.vault.address = vault_addr
        if vault_token:
            self.vault.token = vault_token
        if vault_mount:
            self.vault.mount = vault_mount
        return self


def find_config(start: Optional[Path] = None) -> Optional[Path]:
    """Walk up from ``start`` looking for rotator-config.yaml."""
    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def load_config(
    path: Optional[str | os.PathLike[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Config:
    """Resolve and load configuration.

    An explicit ``path`` must exist. Otherwise ``$ROTATOR_CONFIG`` and then a
    discovered ``rotator-config.yaml`` are tried before falling back to
    environment variables.
    """
    env = os.environ if environ is None else environ
    if path is not None:
        return Config.from_file(path)
    if env.get(CONFIG_ENV_VAR):
        return Config.from_file(env[CONFIG_ENV_VAR])
    discovered = find_config()
    if discovered is not None:
        return Config.from_file(discovered)
    logger.debug("No configuration file found, using environment")
    return Config.from_env(env)


def _section(raw: Mapping[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigurationError("config", f"section '{name}' must be a mapping")
    return dict(value)


def _optional(cls: type, value: Any) -> Any:
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise ConfigurationError("config", f"{cls.__name__} section must be a mapping")
    return cls(**value)


def _string_map(value: Any, component: str) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(component, "must be a mapping")
    result: dict[str, str] = {}
    for key, item in value.items():
        if isinstance(item, (Mapping, list, tuple)):
            raise ConfigurationError(component, f"value for '{key}' must be a scalar")
        if isinstance(item, bool):
            item = "true" if item else "false"
        result[str(key)] = "" if item is None else str(item)
    return result


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    value = env.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Ignoring non-integer environment value", variable=name)
        return default


def _drop_none(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _drop_none(v) for k, v in value.items() if v is not None and v != {}}
    return value


__all__ = [
    "Config",
    "VaultConfig",
    "AwsConfig",
    "FileConfig",
    "RotationConfig",
    "PostgresTargetConfig",
    "ApiTargetConfig",
    "TargetsConfig",
    "find_config",
    "load_config",
    "CONFIG_FILENAME",
]
