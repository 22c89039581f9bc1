"""
Local flat-file backend.

Each secret lives at ``<root>/<path>.json`` as
``{"data": {...}, "metadata": {...}}``. Intended for development machines and
tests; files are created with owner-only permissions but are not encrypted.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Mapping

from rotator.backends.base import BaseSecretStore
from rotator.exceptions import (
    BackendUnavailableError,
    InvalidSecretPathError,
    MalformedPayloadError,
    SecretNotFoundError,
)
from rotator.logging_config import get_logger
from rotator.models import SecretRecord, coerce_string_map, normalize_path

logger = get_logger(__name__)

FILE_KIND = "File Store"
SECRET_SUFFIX = ".json"


class FileBackend(BaseSecretStore):
    """SecretStore over a directory tree of JSON documents."""

    kind = FILE_KIND

    def __init__(self, directory: str | os.PathLike[str]):
        self.root = Path(directory).expanduser()

    def __repr__(self) -> str:
        return f"FileBackend({str(self.root)!r})"

    # ── Path mapping ──────────────────────────────────────────────────

    def _segments(self, path: str, allow_empty: bool = False) -> list[str]:
        normalized = normalize_path(path)
        if not normalized:
            if allow_empty:
                return []
            raise InvalidSecretPathError(path, "path is empty")
        segments = normalized.split("/")
        for segment in segments:
            if segment in ("", ".", ".."):
                raise InvalidSecretPathError(path, f"illegal segment '{segment}'")
        return segments

    def secret_file(self, path: str) -> Path:
        segments = self._segments(path)
        return self.root.joinpath(*segments[:-1], segments[-1] + SECRET_SUFFIX)

    # ── Blocking helpers (run in worker threads) ─────────────────────

    def _load(self, path: str) -> dict[str, Any]:
        file_path = self.secret_file(path)
        try:
            text = file_path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise SecretNotFoundError(FILE_KIND, normalize_path(path)) from e
        except OSError as e:
            raise BackendUnavailableError(FILE_KIND, f"cannot read {file_path}: {e}") from e

        source = f"{FILE_KIND} {file_path}"
        try:
            document = json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedPayloadError(source, f"invalid JSON: {e.msg}", text) from e
        if not isinstance(document, dict):
            raise MalformedPayloadError(source, "document is not an object")
        return {
            "data": coerce_string_map(document.get("data", {}), source),
            "metadata": coerce_string_map(document.get("metadata") or {}, source),
        }

    def _store(self, path: str, document: dict[str, Any]) -> None:
        file_path = self.secret_file(path)
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
            fd, tmp_name = tempfile.mkstemp(
                dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(document, handle, indent=2, sort_keys=True)
                os.chmod(tmp_name, 0o600)
                os.replace(tmp_name, file_path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise BackendUnavailableError(FILE_KIND, f"cannot write {file_path}: {e}") from e

    def _write_sync(self, path: str, data: Mapping[str, str]) -> None:
        try:
            metadata = self._load(path)["metadata"]
        except (SecretNotFoundError, MalformedPayloadError):
            metadata = {}
        record = SecretRecord(path=normalize_path(path), data=dict(data), metadata=metadata)
        self._store(path, record.to_dict())

    def _update_metadata_sync(self, path: str, metadata: Mapping[str, str]) -> None:
        document = self._load(path)
        merged = {**document["metadata"], **{str(k): str(v) for k, v in metadata.items()}}
        record = SecretRecord(path=normalize_path(path), data=document["data"], metadata=merged)
        self._store(path, record.to_dict())

    def _list_sync(self, prefix: str) -> list[str]:
        directory = self.root.joinpath(*self._segments(prefix, allow_empty=True))
        if not directory.is_dir():
            return []
        names: list[str] = []
        for entry in sorted(directory.iterdir()):
            if entry.name.startswith("."):
                continue
            if entry.is_dir():
                names.append(f"{entry.name}/")
            elif entry.suffix == SECRET_SUFFIX:
                names.append(entry.name[: -len(SECRET_SUFFIX)])
        return names

    # ── SecretStore ───────────────────────────────────────────────────

    async def read(self, path: str) -> SecretRecord:
        document = await asyncio.to_thread(self._load, path)
        return SecretRecord(
            path=normalize_path(path),
            data=document["data"],
            metadata=document["metadata"] or None,
        )

    async def write(self, path: str, data: Mapping[str, str]) -> None:
        await asyncio.to_thread(self._write_sync, path, data)
        logger.info("Wrote secret file", path=normalize_path(path))

    async def read_metadata(self, path: str) -> dict[str, str]:
        document = await asyncio.to_thread(self._load, path)
        return dict(document["metadata"])

    async def update_metadata(self, path: str, metadata: Mapping[str, str]) -> None:
        await asyncio.to_thread(self._update_metadata_sync, path, metadata)
        logger.info("Updated secret file metadata", path=normalize_path(path))

    async def list(self, prefix: str = "") -> list[str]:
        return await asyncio.to_thread(self._list_sync, prefix)
