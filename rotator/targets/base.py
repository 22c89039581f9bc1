"""Shared behaviour for credential targets."""

from __future__ import annotations

from typing import Any


class BaseTarget:
    """Async context manager plumbing common to every target."""

    kind: str = "base"

    def target_kind(self) -> str:
        return self.kind

    async def close(self) -> None:
        return None

    async def __aenter__(self) -> "BaseTarget":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
