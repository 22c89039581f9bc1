"""
Test doubles shared across the rotator test suite.

InMemoryStore implements the SecretStore protocol with failure injection;
make_response/make_session fake the parts of aiohttp the code touches.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional
from unittest.mock import AsyncMock, MagicMock

from rotator.exceptions import SecretNotFoundError
from rotator.models import SecretRecord, normalize_path

MEMORY_KIND = "Memory Store"

# ============================================================================
# In-memory store
# ============================================================================

class InMemoryStore:
    """SecretStore double keeping data and metadata in dicts.

    ``failures`` maps an operation name (read, write, read_metadata,
    update_metadata, list) to an exception raised on every call of it.
    ``calls`` records (operation, path) in order.
    """

    def __init__(self) -> None:
        self.data: dict[str, dict[str, str]] = {}
        self.metadata: dict[str, dict[str, str]] = {}
        self.failures: dict[str, Exception] = {}
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    def _enter(self, operation: str, path: str) -> str:
        path = normalize_path(path)
        self.calls.append((operation, path))
        if operation in self.failures:
            raise self.failures[operation]
        return path

    def seed(
        self,
        path: str,
        data: Mapping[str, str],
        metadata: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.data[path] = dict(data)
        if metadata is not None:
            self.metadata[path] = dict(metadata)

    async def read(self, path: str) -> SecretRecord:
        path = self._enter("read", path)
        if path not in self.data:
            raise SecretNotFoundError(MEMORY_KIND, path)
        return SecretRecord(path=path, data=dict(self.data[path]), metadata=self.metadata.get(path))

    async def write(self, path: str, data: Mapping[str, str]) -> None:
        path = self._enter("write", path)
        self.data[path] = dict(data)

    async def read_metadata(self, path: str) -> dict[str, str]:
        path = self._enter("read_metadata", path)
        if path not in self.data:
            raise SecretNotFoundError(MEMORY_KIND, path)
        return dict(self.metadata.get(path, {}))

    async def update_metadata(self, path: str, metadata: Mapping[str, str]) -> None:
        path = self._enter("update_metadata", path)
        if path not in self.data:
            raise SecretNotFoundError(MEMORY_KIND, path)
        self.metadata.setdefault(path, {}).update(metadata)

    async def list(self, prefix: str = "") -> list[str]:
        prefix = self._enter("list", prefix)
        marker = f"{prefix}/" if prefix else ""
        children: list[str] = []
        for path in sorted(self.data):
            if not path.startswith(marker):
                continue
            rest = path[len(marker):]
            head, sep, _ = rest.partition("/")
            name = f"{head}/" if sep else head
            if name not in children:
                children.append(name)
        return children

    def backend_kind(self) -> str:
        return MEMORY_KIND

    async def close(self) -> None:
        self.closed = True

    async def __aenter__(self) -> "InMemoryStore":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

# ============================================================================
# Timestamps
# ============================================================================

def iso_days_ago(days: float, now: Optional[datetime] = None) -> str:
    """RFC 3339 timestamp ``days`` before ``now``."""
    moment = (now or datetime.now(timezone.utc)) - timedelta(days=days)
    return moment.isoformat()

# ============================================================================
# aiohttp session fakes
# ============================================================================

def make_response(status: int = 200, body: Any = "") -> MagicMock:
    """Fake aiohttp response usable as ``async with session.request(...)``."""
    text = body if isinstance(body, str) else json.dumps(body)
    response = MagicMock()
    response.status = status
    response.text = AsyncMock(return_value=text)
    response.__aenter__ = AsyncMock(return_value=response)
    response.__aexit__ = AsyncMock(return_value=None)
    return response

def make_session(*responses: MagicMock) -> MagicMock:
    """Fake aiohttp ClientSession returning ``responses`` in order."""
    session = MagicMock()
    session.closed = False
    session.request = MagicMock(side_effect=list(responses))
    session.close = AsyncMock()
    return session
