"""
rotator: automatic secret rotation

Rotates credentials held in a pluggable secret store and optionally pushes
the new value to the system that enforces it.

SECRET STORES:
- HashiCorp Vault KV v2 (aiohttp, token auth)
- AWS Secrets Manager (boto3, tags as metadata)
- Local JSON files (development and tests)

TARGETS:
- PostgreSQL roles (asyncpg, ALTER USER + login check)
- REST APIs (configurable method, body and headers)

ROTATION:
- Opt-in per secret via custom metadata (rotation_enabled, last_rotated,
  rotation_period_months)
- Due detection with a 30-day month
- read -> generate -> write -> update target -> verify -> stamp
"""

from __future__ import annotations

import importlib
from typing import Any

from rotator.__version__ import __version__

_EXPORT_MAP = {
    'Config': ('rotator.config', 'Config'),
    'load_config': ('rotator.config', 'load_config'),
    'SecretRecord': ('rotator.models', 'SecretRecord'),
    'CredentialUpdate': ('rotator.models', 'CredentialUpdate'),
    'SecretStore': ('rotator.protocols', 'SecretStore'),
    'Target': ('rotator.protocols', 'Target'),
    'BackendType': ('rotator.backends', 'BackendType'),
    'create_backend': ('rotator.backends', 'create_backend'),
    'VaultBackend': ('rotator.backends', 'VaultBackend'),
    'VaultClient': ('rotator.backends', 'VaultClient'),
    'AwsSecretsBackend': ('rotator.backends', 'AwsSecretsBackend'),
    'FileBackend': ('rotator.backends', 'FileBackend'),
    'TargetType': ('rotator.targets', 'TargetType'),
    'create_target': ('rotator.targets', 'create_target'),
    'PostgresTarget': ('rotator.targets', 'PostgresTarget'),
    'ApiTarget': ('rotator.targets', 'ApiTarget'),
    'generate_secret': ('rotator.rotation', 'generate_secret'),
    'is_rotation_due': ('rotator.rotation', 'is_rotation_due'),
    'rotate_secret': ('rotator.rotation', 'rotate_secret'),
    'flag_for_rotation': ('rotator.rotation', 'flag_for_rotation'),
    'scan_for_rotation': ('rotator.rotation', 'scan_for_rotation'),
    'rotate_due_secrets': ('rotator.rotation', 'rotate_due_secrets'),
    'EnvUpdater': ('rotator.env_updater', 'EnvUpdater'),
    'RotatorError': ('rotator.exceptions', 'RotatorError'),
    'RotationError': ('rotator.exceptions', 'RotationError'),
}

def __getattr__(name: str) -> Any:
    """Lazily import public symbols so boto3/asyncpg load only when used."""
    try:
        module_name, attr_name = _EXPORT_MAP[name]
    except KeyError as exc:
        raise AttributeError(f"module 'rotator' has no attribute {name!r}") from exc
    module = importlib.import_module(module_name)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value

def __dir__() -> list[str]:
    return sorted(set(globals()) | set(__all__))

__all__ = ["__version__", *_EXPORT_MAP]
