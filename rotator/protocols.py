"""
Protocol definitions for secret stores and credential targets.

These protocols define the contracts that backend and target implementations
must follow. The rotation engine only ever talks to these protocols, so it
never branches on which backend or target it was given.

Usage:
    from rotator.protocols import SecretStore, Target

    async def show(store: SecretStore, path: str) -> None:
        record = await store.read(path)
        ...
"""

from __future__ import annotations

from typing import Mapping, Optional, Protocol, runtime_checkable

from rotator.models import SecretRecord


@runtime_checkable
class SecretStore(Protocol):
    """Protocol for secret stores (Vault KV v2, AWS Secrets Manager, files)."""

    async def read(self, path: str) -> SecretRecord:
        """Read the secret at path.

        Raises SecretNotFoundError, BackendUnavailableError or
        MalformedPayloadError.
        """
        ...

    async def write(self, path: str, data: Mapping[str, str]) -> None:
        """Create or replace the secret data at path."""
        ...

    async def read_metadata(self, path: str) -> dict[str, str]:
        """Read custom metadata. Raises SecretNotFoundError if path is absent."""
        ...

    async def update_metadata(self, path: str, metadata: Mapping[str, str]) -> None:
        """Merge keys into custom metadata without removing unrelated keys."""
        ...

    async def list(self, prefix: str = "") -> list[str]:
        """List child names relative to prefix. Missing prefix yields []."""
        ...

    def backend_kind(self) -> str:
        """Human-readable backend label for diagnostics."""
        ...

    async def close(self) -> None:
        """Release network sessions or clients."""
        ...


@runtime_checkable
class Target(Protocol):
    """Protocol for systems that enforce a rotated credential."""

    async def update_credential(self, identity: str, new_value: str) -> None:
        """Change the credential of identity to new_value."""
        ...

    async def verify_credential(
        self,
        identity: str,
        value: str,
        scope: Optional[str] = None,
    ) -> None:
        """Confirm the credential authenticates. Raises VerificationFailedError."""
        ...

    def target_kind(self) -> str:
        """Short target label (postgres, api)."""
        ...

    async def close(self) -> None:
        """Release connections held by the target."""
        ...
