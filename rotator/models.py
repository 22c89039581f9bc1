"""
Data shapes exchanged between the rotation engine, secret stores and targets.

Rotation state lives in a reserved subset of string keys inside a secret's
custom metadata. Keeping everything as plain strings lets the same keys work
on Vault custom metadata, AWS resource tags and the file store.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from rotator.exceptions import MalformedPayloadError

# Reserved metadata keys
ROTATION_ENABLED_KEY = "rotation_enabled"
LAST_ROTATED_KEY = "last_rotated"
ROTATION_PERIOD_KEY = "rotation_period_months"
TARGET_USERNAME_KEY = "target_username"
LEGACY_TARGET_USERNAME_KEY = "database_username"


@dataclass
class SecretRecord:
    """A secret as read from a store.

    ``path`` is relative to the store's mount; ``metadata`` is None when the
    backend could not attach any.
    """

    path: str
    data: dict[str, str] = field(default_factory=dict)
    metadata: Optional[dict[str, str]] = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the file store. Contains secret values."""
        return {"data": dict(self.data), "metadata": dict(self.metadata or {})}


@dataclass(frozen=True)
class CredentialUpdate:
    """New credential handed to a target for the duration of one rotation."""

    identity: str
    new_value: str = field(repr=False)


def target_identity_from(metadata: Optional[Mapping[str, str]]) -> Optional[str]:
    if not metadata:
        return None
    return metadata.get(TARGET_USERNAME_KEY) or metadata.get(LEGACY_TARGET_USERNAME_KEY) or None


def coerce_string_map(raw: Any, source: str) -> dict[str, str]:
    """Normalize a decoded payload into a ``str -> str`` mapping.

    Scalars are stringified (JSON booleans become ``"true"``/``"false"``),
    ``None`` values become empty strings; nested containers are rejected.

    Raises:
        MalformedPayloadError: If ``raw`` is not a flat mapping.
    """
    if not isinstance(raw, Mapping):
        raise MalformedPayloadError(source, f"expected an object, got {type(raw).__name__}")

    result: dict[str, str] = {}
    for key, value in raw.items():
        if isinstance(value, (dict, list, tuple)):
            raise MalformedPayloadError(source, f"value for '{key}' is not a scalar")
        if isinstance(value, bool):
            result[str(key)] = "true" if value else "false"
        elif value is None:
            result[str(key)] = ""
        else:
            result[str(key)] = str(value)
    return result


def parse_json_map(text: str, source: str) -> dict[str, str]:
    """Decode a JSON document into a string mapping.

    Raises:
        MalformedPayloadError: If ``text`` is not JSON or not a flat object.
    """
    if not isinstance(text, (str, bytes)):
        raise MalformedPayloadError(source, "payload is not a string")
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedPayloadError(source, f"invalid JSON: {e.msg}", str(text)) from e
    return coerce_string_map(raw, source)


def normalize_path(path: str) -> str:
    """Strip surrounding separators so paths compose with a single ``/``."""
    return path.strip().strip("/")


def join_path(base: str, child: str) -> str:
    """Join a listing prefix and a child name the way scans report them."""
    base = normalize_path(base)
    if not base:
        return child
    return f"{base}/{child}"
