"""Shared behaviour for secret store implementations."""

from __future__ import annotations

from typing import Any


class BaseSecretStore:
    """Async context manager plumbing common to every store.

    Subclasses set ``kind`` and override ``close`` when they hold resources.
    """

    kind: str = "base"

    def backend_kind(self) -> str:
        return self.kind

    async def close(self) -> None:
        return None

    async def __aenter__(self) -> "BaseSecretStore":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.kind})"
