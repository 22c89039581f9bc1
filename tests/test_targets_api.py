"""Tests for the HTTP API target."""

from unittest.mock import patch

import aiohttp
import pytest

from rotator.config import ApiTargetConfig
from rotator.exceptions import BackendUnavailableError, ConfigurationError
from rotator.targets.api import ApiTarget, parse_method
from tests.helpers import make_response, make_session


def make_config(**overrides):
    values = {
        "base_url": "https://api.example.com/",
        "endpoint": "/v1/users/{username}/password",
    }
    values.update(overrides)
    return ApiTargetConfig(**values)


class TestApiRequestShape:
    """Test URL, body and header construction."""

    def test_url_joins_base_and_endpoint(self):
        target = ApiTarget(make_config())
        assert target.build_url("alice") == "https://api.example.com/v1/users/alice/password"

    def test_absolute_endpoint_bypasses_base(self):
        target = ApiTarget(make_config(endpoint="https://other.example.com/u/{username}"))
        assert target.build_url("bob") == "https://other.example.com/u/bob"

    def test_body_defaults(self):
        target = ApiTarget(make_config())
        assert target.build_body("alice", "pw") == {"password": "pw"}

    def test_body_with_custom_fields(self):
        target = ApiTarget(
            make_config(
                password_field="new_password",
                username_field="user",
                additional_fields={"reason": "rotation"},
            )
        )
        assert target.build_body("alice", "pw") == {
            "user": "alice",
            "new_password": "pw",
            "reason": "rotation",
        }

    def test_headers(self):
        target = ApiTarget(make_config(auth_header="Bearer abc", headers={"X-Env": "prod"}))
        assert target.build_headers() == {"Authorization": "Bearer abc", "X-Env": "prod"}

    def test_non_string_yaml_values_are_stringified(self):
        target = ApiTarget(
            make_config(
                headers={"X-Retries": 3, "X-Debug": True},
                additional_fields={"version": 2.5, "note": None},
            )
        )
        assert target.build_headers() == {"X-Retries": "3", "X-Debug": "true"}
        assert target.build_body("alice", "pw") == {"password": "pw", "version": "2.5", "note": ""}

    def test_nested_header_value_rejected(self):
        with pytest.raises(ConfigurationError):
            make_config(headers={"X-Bad": {"nested": 1}})

    @pytest.mark.parametrize(
        "configured, expected",
        [("put", "PUT"), ("PATCH", "PATCH"), ("delete", "DELETE"), ("GET", "GET"), ("TRACE", "POST"), ("", "POST")],
    )
    def test_parse_method(self, configured, expected):
        assert parse_method(configured) == expected


class TestApiUpdate:
    """Test sending the update."""

    @pytest.mark.asyncio
    async def test_successful_update(self):
        session = make_session(make_response(204, ""))
        target = ApiTarget(make_config(method="put", auth_header="Bearer abc"), session=session)

        await target.update_credential("alice", "pw")

        call = session.request.call_args
        assert call.args == ("PUT", "https://api.example.com/v1/users/alice/password")
        assert call.kwargs["json"] == {"password": "pw"}
        assert call.kwargs["headers"] == {"Authorization": "Bearer abc"}

    @pytest.mark.asyncio
    async def test_error_status_carries_body(self):
        session = make_session(make_response(422, "password too weak"))
        target = ApiTarget(make_config(), session=session)

        with pytest.raises(BackendUnavailableError) as exc_info:
            await target.update_credential("alice", "pw")

        assert exc_info.value.status_code == 422
        assert "password too weak" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_transport_error(self):
        session = make_session()
        session.request.side_effect = aiohttp.ClientConnectionError("reset")
        target = ApiTarget(make_config(), session=session)

        with pytest.raises(BackendUnavailableError):
            await target.update_credential("alice", "pw")

    @pytest.mark.asyncio
    async def test_verify_is_a_no_op(self):
        session = make_session()
        target = ApiTarget(make_config(), session=session)

        await target.verify_credential("alice", "pw")

        session.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_owned_session_uses_configured_timeout(self):
        session = make_session(make_response(200, "{}"))
        with patch("rotator.targets.api.create_client_session", return_value=session) as factory:
            async with ApiTarget(make_config(timeout_seconds=7)) as target:
                await target.update_credential("alice", "pw")

        timeout = factory.call_args.kwargs["timeout"]
        assert timeout.total == 7
        session.close.assert_awaited_once()

    def test_target_kind(self):
        assert ApiTarget(make_config()).target_kind() == "api"
