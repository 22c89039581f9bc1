"""
AWS Secrets Manager backend.

The secret payload is the JSON document in ``SecretString``; resource tags
double as the custom metadata mapping. boto3 is synchronous, so every call
runs in a worker thread to keep the event loop free.
"""

from __future__ import annotations

import asyncio
import json
import os
from typing import Any, Callable, Mapping, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from rotator.backends.base import BaseSecretStore
from rotator.exceptions import (
    BackendUnavailableError,
    MalformedPayloadError,
    SecretNotFoundError,
)
from rotator.logging_config import get_logger
from rotator.models import SecretRecord, normalize_path, parse_json_map

logger = get_logger(__name__)

AWS_KIND = "AWS Secrets Manager"
DEFAULT_REGION = "us-east-1"

_NOT_FOUND_CODES = frozenset({"ResourceNotFoundException"})


def tags_to_metadata(tags: Optional[list[dict[str, Any]]]) -> dict[str, str]:
    """Convert ``[{"Key": k, "Value": v}]`` into a plain mapping."""
    metadata: dict[str, str] = {}
    for tag in tags or []:
        key = tag.get("Key")
        value = tag.get("Value")
        if key is not None and value is not None:
            metadata[key] = value
    return metadata


def metadata_to_tags(metadata: Mapping[str, str]) -> list[dict[str, str]]:
    return [{"Key": str(k), "Value": str(v)} for k, v in metadata.items()]


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


class AwsSecretsBackend(BaseSecretStore):
    """SecretStore over AWS Secrets Manager in one region."""

    kind = AWS_KIND

    def __init__(self, region: Optional[str] = None, client: Any = None):
        self.region = region or os.environ.get("AWS_REGION") or DEFAULT_REGION
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = boto3.client("secretsmanager", region_name=self.region)
        return self._client

    async def _call(self, operation: str, path: str, func: Callable[..., Any], **kwargs: Any) -> Any:
        """Run one boto3 call off the loop, translating its errors."""
        try:
            return await asyncio.to_thread(func, **kwargs)
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                raise SecretNotFoundError(AWS_KIND, path) from e
            status = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            raise BackendUnavailableError(AWS_KIND, f"{operation} {path}: {e}", status_code=status) from e
        except BotoCoreError as e:
            raise BackendUnavailableError(AWS_KIND, f"{operation} {path}: {e}") from e

    async def _describe(self, path: str) -> dict[str, Any]:
        return await self._call("DescribeSecret", path, self.client.describe_secret, SecretId=path)

    async def read(self, path: str) -> SecretRecord:
        path = normalize_path(path)
        logger.debug("Reading secret from AWS", path=path, region=self.region)
        response = await self._call(
            "GetSecretValue", path, self.client.get_secret_value, SecretId=path
        )
        secret_string = response.get("SecretString")
        if secret_string is None:
            raise MalformedPayloadError(f"{AWS_KIND} {path}", "secret has no string value")
        data = parse_json_map(secret_string, f"{AWS_KIND} {path}")

        # Tags are optional decoration; a describe failure does not fail the read
        try:
            metadata = tags_to_metadata((await self._describe(path)).get("Tags"))
        except (SecretNotFoundError, BackendUnavailableError) as e:
            logger.warning("Could not read tags", path=path, error=str(e))
            metadata = {}
        return SecretRecord(path=path, data=data, metadata=metadata)

    async def write(self, path: str, data: Mapping[str, str]) -> None:
        path = normalize_path(path)
        secret_string = json.dumps(dict(data))
        try:
            await self._describe(path)
            exists = True
        except SecretNotFoundError:
            exists = False

        if exists:
            await self._call(
                "UpdateSecret",
                path,
                self.client.update_secret,
                SecretId=path,
                SecretString=secret_string,
            )
            logger.info("Updated secret in AWS", path=path)
        else:
            await self._call(
                "CreateSecret",
                path,
                self.client.create_secret,
                Name=path,
                SecretString=secret_string,
            )
            logger.info("Created secret in AWS", path=path)

    async def read_metadata(self, path: str) -> dict[str, str]:
        path = normalize_path(path)
        return tags_to_metadata((await self._describe(path)).get("Tags"))

    async def update_metadata(self, path: str, metadata: Mapping[str, str]) -> None:
        # TagResource adds or overwrites the given keys and leaves others alone
        path = normalize_path(path)
        if not metadata:
            await self._describe(path)
            return
        await self._call(
            "TagResource",
            path,
            self.client.tag_resource,
            SecretId=path,
            Tags=metadata_to_tags(metadata),
        )
        logger.info("Updated AWS tags", path=path, keys=sorted(metadata))

    async def list(self, prefix: str = "") -> list[str]:
        prefix = normalize_path(prefix)
        logger.debug("Listing AWS secrets", prefix=prefix or "/")

        def collect() -> list[str]:
            paginator = self.client.get_paginator("list_secrets")
            kwargs: dict[str, Any] = {}
            if prefix:
                kwargs["Filters"] = [{"Key": "name", "Values": [f"{prefix}/"]}]
            names: list[str] = []
            for page in paginator.paginate(**kwargs):
                for entry in page.get("SecretList", []):
                    name = entry.get("Name")
                    if name:
                        names.append(name)
            return names

        try:
            names = await self._call("ListSecrets", prefix, collect)
        except SecretNotFoundError:
            return []
        return strip_prefix(names, prefix)


def strip_prefix(names: list[str], prefix: str) -> list[str]:
    """Keep names under ``prefix/`` and drop the prefix plus one separator."""
    if not prefix:
        return list(names)
    marker = f"{prefix}/"
    return [name[len(marker):] for name in names if name.startswith(marker) and len(name) > len(marker)]
