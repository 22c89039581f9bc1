"""
HashiCorp Vault KV version 2 backend.

Speaks the KV v2 HTTP API directly over aiohttp:

    GET/POST  /v1/<mount>/data/<path>       secret data ({"data": {...}})
    GET/POST  /v1/<mount>/metadata/<path>   custom metadata
    LIST      /v1/<mount>/metadata/<path>   child enumeration

Authentication is a static token sent in ``X-Vault-Token``.
"""

from __future__ import annotations

import json
from typing import Any, Mapping, Optional

import aiohttp

from rotator.backends.base import BaseSecretStore
from rotator.exceptions import (
    BackendUnavailableError,
    MalformedPayloadError,
    SecretNotFoundError,
)
from rotator.http_client import VAULT_TIMEOUT, create_client_session
from rotator.logging_config import get_logger
from rotator.models import SecretRecord, coerce_string_map, normalize_path

logger = get_logger(__name__)

VAULT_KIND = "HashiCorp Vault"


class VaultClient:
    """Thin async client for the KV v2 endpoints of one Vault server.

    The aiohttp session is created on first use and owned by the client
    unless one is injected.
    """

    def __init__(
        self,
        address: str,
        token: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
    ):
        self.address = address.rstrip("/")
        self._token = token
        self._session = session
        self._owns_session = session is None
        self._timeout = timeout or VAULT_TIMEOUT

    def __repr__(self) -> str:
        return f"VaultClient(address={self.address!r})"

    def data_url(self, mount: str, path: str) -> str:
        return f"{self.address}/v1/{normalize_path(mount)}/data/{normalize_path(path)}"

    def metadata_url(self, mount: str, path: str) -> str:
        return f"{self.address}/v1/{normalize_path(mount)}/metadata/{normalize_path(path)}"

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = create_client_session(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _request(
        self,
        method: str,
        url: str,
        path: str,
        payload: Optional[dict[str, Any]] = None,
    ) -> tuple[int, str]:
        """Send one request and return (status, body text).

        Transport errors become BackendUnavailableError; status handling is
        left to the caller.
        """
        session = self._get_session()
        headers = {"X-Vault-Token": self._token}
        logger.debug("Vault request", method=method, url=url)
        try:
            async with session.request(method, url, headers=headers, json=payload) as resp:
                body = await resp.text()
                return resp.status, body
        except aiohttp.ClientError as e:
            raise BackendUnavailableError(VAULT_KIND, f"{method} {path}: {e}") from e
        except TimeoutError as e:
            raise BackendUnavailableError(VAULT_KIND, f"{method} {path}: request timed out") from e

    @staticmethod
    def _raise_for_status(status: int, body: str, method: str, path: str) -> None:
        if status == 404:
            raise SecretNotFoundError(VAULT_KIND, path)
        if status < 200 or status >= 300:
            reason = f"{method} {path} returned {status}"
            errors = _extract_errors(body)
            if errors:
                reason = f"{reason}: {errors}"
            raise BackendUnavailableError(VAULT_KIND, reason, status_code=status)

    @staticmethod
    def _decode(body: str, path: str) -> dict[str, Any]:
        try:
            decoded = json.loads(body) if body else {}
        except json.JSONDecodeError as e:
            raise MalformedPayloadError(f"{VAULT_KIND} {path}", f"invalid JSON: {e.msg}", body) from e
        if not isinstance(decoded, dict):
            raise MalformedPayloadError(f"{VAULT_KIND} {path}", "response is not an object")
        return decoded

    async def read_secret(self, mount: str, path: str) -> dict[str, Any]:
        """Return the ``data`` envelope of a KV v2 read (data + metadata)."""
        status, body = await self._request("GET", self.data_url(mount, path), path)
        self._raise_for_status(status, body, "GET", path)
        envelope = self._decode(body, path).get("data")
        if not isinstance(envelope, dict):
            raise MalformedPayloadError(f"{VAULT_KIND} {path}", "missing 'data' envelope")
        return envelope

    async def write_secret(self, mount: str, path: str, data: Mapping[str, str]) -> None:
        status, body = await self._request(
            "POST", self.data_url(mount, path), path, payload={"data": dict(data)}
        )
        self._raise_for_status(status, body, "POST", path)
        logger.info("Wrote secret to Vault", mount=mount, path=path)

    async def read_metadata(self, mount: str, path: str) -> dict[str, Any]:
        status, body = await self._request("GET", self.metadata_url(mount, path), path)
        self._raise_for_status(status, body, "GET", path)
        envelope = self._decode(body, path).get("data")
        if not isinstance(envelope, dict):
            raise MalformedPayloadError(f"{VAULT_KIND} {path}", "missing 'data' envelope")
        return envelope

    async def write_metadata(self, mount: str, path: str, custom_metadata: Mapping[str, str]) -> None:
        status, body = await self._request(
            "POST",
            self.metadata_url(mount, path),
            path,
            payload={"custom_metadata": dict(custom_metadata)},
        )
        self._raise_for_status(status, body, "POST", path)
        logger.info("Updated Vault metadata", mount=mount, path=path)

    async def list_keys(self, mount: str, prefix: str) -> list[str]:
        status, body = await self._request("LIST", self.metadata_url(mount, prefix), prefix)
        # 404 means nothing exists under this prefix
        if status == 404:
            logger.info("No secrets under prefix", mount=mount, prefix=prefix or "/")
            return []
        self._raise_for_status(status, body, "LIST", prefix)
        envelope = self._decode(body, prefix).get("data") or {}
        keys = envelope.get("keys") if isinstance(envelope, dict) else None
        if keys is None:
            return []
        if not isinstance(keys, list) or not all(isinstance(k, str) for k in keys):
            raise MalformedPayloadError(f"{VAULT_KIND} {prefix}", "'keys' is not a list of strings")
        return list(keys)


def _extract_errors(body: str) -> str:
    """Pull Vault's ``errors`` array out of an error body, if present."""
    try:
        decoded = json.loads(body)
    except (json.JSONDecodeError, TypeError):
        return body.strip()[:200] if body else ""
    if isinstance(decoded, dict) and isinstance(decoded.get("errors"), list):
        return "; ".join(str(e) for e in decoded["errors"])
    return ""


class VaultBackend(BaseSecretStore):
    """SecretStore over a single KV v2 mount."""

    kind = VAULT_KIND

    def __init__(self, client: VaultClient, mount: str = "secret"):
        self.client = client
        self.mount = normalize_path(mount)

    async def read(self, path: str) -> SecretRecord:
        envelope = await self.client.read_secret(self.mount, path)
        data = coerce_string_map(envelope.get("data"), f"{VAULT_KIND} {path}")
        metadata = None
        version_meta = envelope.get("metadata")
        if isinstance(version_meta, dict) and version_meta.get("custom_metadata"):
            metadata = coerce_string_map(version_meta["custom_metadata"], f"{VAULT_KIND} {path}")
        return SecretRecord(path=normalize_path(path), data=data, metadata=metadata)

    async def write(self, path: str, data: Mapping[str, str]) -> None:
        await self.client.write_secret(self.mount, path, data)

    async def read_metadata(self, path: str) -> dict[str, str]:
        envelope = await self.client.read_metadata(self.mount, path)
        custom = envelope.get("custom_metadata") or {}
        return coerce_string_map(custom, f"{VAULT_KIND} {path}")

    async def update_metadata(self, path: str, metadata: Mapping[str, str]) -> None:
        # POST replaces custom_metadata wholesale, so merge first
        existing = await self.read_metadata(path)
        merged = {**existing, **{str(k): str(v) for k, v in metadata.items()}}
        await self.client.write_metadata(self.mount, path, merged)

    async def list(self, prefix: str = "") -> list[str]:
        return await self.client.list_keys(self.mount, prefix)

    async def close(self) -> None:
        await self.client.close()
