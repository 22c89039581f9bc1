"""
HTTP API target.

Pushes a new credential to a REST endpoint that manages accounts. The
request shape is driven entirely by ``ApiTargetConfig``.
"""

from __future__ import annotations

from typing import Any, Optional

import aiohttp

from rotator.config import ApiTargetConfig
from rotator.exceptions import BackendUnavailableError
from rotator.http_client import create_client_session, timeout_from_seconds
from rotator.logging_config import get_logger
from rotator.targets.base import BaseTarget

logger = get_logger(__name__)

API_KIND = "api"
SUPPORTED_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")
USERNAME_PLACEHOLDER = "{username}"


def parse_method(method: str) -> str:
    """Normalize the configured HTTP method; unknown values mean POST."""
    upper = (method or "").upper()
    if upper in SUPPORTED_METHODS:
        return upper
    logger.warning("Unsupported HTTP method, using POST", method=method)
    return "POST"


class ApiTarget(BaseTarget):
    """Target that updates credentials through a REST endpoint."""

    kind = API_KIND

    def __init__(
        self,
        config: ApiTargetConfig,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.config = config
        self._session = session
        self._owns_session = session is None

    def __repr__(self) -> str:
        return f"ApiTarget(base_url={self.config.base_url!r})"

    def build_url(self, identity: str) -> str:
        endpoint = self.config.endpoint.replace(USERNAME_PLACEHOLDER, identity)
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.config.base_url.rstrip('/')}/{endpoint.lstrip('/')}"

    def build_body(self, identity: str, new_value: str) -> dict[str, Any]:
        body: dict[str, Any] = {}
        if self.config.username_field:
            body[self.config.username_field] = identity
        body[self.config.password_field] = new_value
        body.update(self.config.additional_fields or {})
        return body

    def build_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.config.auth_header:
            headers["Authorization"] = self.config.auth_header
        headers.update(self.config.headers or {})
        return headers

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = create_client_session(
                timeout=timeout_from_seconds(self.config.timeout_seconds)
            )
            self._owns_session = True
        return self._session

    async def update_credential(self, identity: str, new_value: str) -> None:
        url = self.build_url(identity)
        method = parse_method(self.config.method)
        logger.info("Updating credential via API", identity=identity, method=method, url=url)

        session = self._get_session()
        try:
            async with session.request(
                method,
                url,
                json=self.build_body(identity, new_value),
                headers=self.build_headers(),
            ) as resp:
                if resp.status < 200 or resp.status >= 300:
                    text = await resp.text()
                    raise BackendUnavailableError(
                        f"API {url}",
                        f"request failed with status {resp.status}: {text}",
                        status_code=resp.status,
                    )
        except aiohttp.ClientError as e:
            raise BackendUnavailableError(f"API {url}", f"request failed: {e}") from e
        except TimeoutError as e:
            raise BackendUnavailableError(f"API {url}", "request timed out") from e

        logger.info("Updated credential via API", identity=identity)

    async def verify_credential(
        self,
        identity: str,
        value: str,
        scope: Optional[str] = None,
    ) -> None:
        # No generic way to prove an API credential works
        logger.info("Verification not supported for API targets", identity=identity)

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None
