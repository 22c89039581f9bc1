"""Tests for the backend and target factories."""

from unittest.mock import AsyncMock, patch

import pytest

from rotator.backends import (
    AwsSecretsBackend,
    BackendType,
    FileBackend,
    VaultBackend,
    create_backend,
)
from rotator.config import ApiTargetConfig, Config, PostgresTargetConfig, TargetsConfig
from rotator.exceptions import ConfigurationError
from rotator.protocols import SecretStore, Target
from rotator.targets import ApiTarget, TargetType, create_target, resolve_admin_password


class TestBackendType:
    """Test backend name parsing."""

    @pytest.mark.parametrize("name, expected", [("vault", BackendType.VAULT), ("AWS", BackendType.AWS), (" File ", BackendType.FILE)])
    def test_parse(self, name, expected):
        assert BackendType.parse(name) is expected

    def test_unknown(self):
        with pytest.raises(ConfigurationError) as exc_info:
            BackendType.parse("gcp")
        assert "vault, aws, file" in str(exc_info.value)


class TestCreateBackend:
    """Test backend construction from configuration."""

    def test_vault(self):
        config = Config()
        config.vault.address = "http://vault:8200"
        config.vault.token = "t"
        config.vault.mount = "kv"

        backend = create_backend(config)

        assert isinstance(backend, VaultBackend)
        assert backend.mount == "kv"
        assert isinstance(backend, SecretStore)

    def test_vault_requires_address(self):
        config = Config()
        config.vault.token = "t"
        with pytest.raises(ConfigurationError):
            create_backend(config)

    def test_vault_requires_token(self):
        config = Config()
        config.vault.address = "http://vault:8200"
        with pytest.raises(ConfigurationError):
            create_backend(config)

    def test_aws(self):
        config = Config(backend="aws")
        config.aws.region = "eu-west-1"

        backend = create_backend(config)

        assert isinstance(backend, AwsSecretsBackend)
        assert backend.region == "eu-west-1"

    def test_file(self, tmp_path):
        config = Config(backend="file")
        config.file.directory = str(tmp_path)

        backend = create_backend(config)

        assert isinstance(backend, FileBackend)
        assert backend.root == tmp_path


class TestTargetType:
    """Test target name parsing."""

    def test_aliases(self):
        assert TargetType.parse("postgres") is TargetType.POSTGRES
        assert TargetType.parse("PostgreSQL") is TargetType.POSTGRES
        assert TargetType.parse("api") is TargetType.API

    def test_unknown(self):
        with pytest.raises(ConfigurationError):
            TargetType.parse("ldap")


class TestResolveAdminPassword:
    """Test admin password lookup."""

    @pytest.mark.asyncio
    async def test_password_path_wins(self, memory_store):
        memory_store.seed("admin/pg", {"username": "admin", "password": "from-store"})
        config = PostgresTargetConfig(host="db", username="admin", password_path="admin/pg", password="inline")

        assert await resolve_admin_password(config, memory_store) == "from-store"

    @pytest.mark.asyncio
    async def test_first_value_fallback(self, memory_store):
        memory_store.seed("admin/pg", {"value": "only-one"})
        config = PostgresTargetConfig(host="db", username="admin", password_path="admin/pg")

        assert await resolve_admin_password(config, memory_store) == "only-one"

    @pytest.mark.asyncio
    async def test_inline_password(self, memory_store):
        config = PostgresTargetConfig(host="db", username="admin", password="inline")

        assert await resolve_admin_password(config, memory_store) == "inline"

    @pytest.mark.asyncio
    async def test_missing_secret(self, memory_store):
        config = PostgresTargetConfig(host="db", username="admin", password_path="admin/pg")

        with pytest.raises(ConfigurationError):
            await resolve_admin_password(config, memory_store)

    @pytest.mark.asyncio
    async def test_nothing_configured(self, memory_store):
        config = PostgresTargetConfig(host="db", username="admin")

        with pytest.raises(ConfigurationError):
            await resolve_admin_password(config, memory_store)


class TestCreateTarget:
    """Test target selection."""

    @pytest.mark.asyncio
    async def test_no_target_configured(self, memory_store):
        assert await create_target(Config(), memory_store) is None

    @pytest.mark.asyncio
    async def test_api_target(self, memory_store):
        config = Config(targets=TargetsConfig(api=ApiTargetConfig(base_url="https://x", endpoint="/p")))

        target = await create_target(config, memory_store)

        assert isinstance(target, ApiTarget)
        assert isinstance(target, Target)

    @pytest.mark.asyncio
    async def test_postgres_preferred(self, memory_store):
        config = Config(
            targets=TargetsConfig(
                postgres=PostgresTargetConfig(host="db", username="admin", password="pw"),
                api=ApiTargetConfig(base_url="https://x", endpoint="/p"),
            )
        )
        with patch("rotator.targets.PostgresTarget.connect", AsyncMock(return_value="pg")) as connect:
            target = await create_target(config, memory_store)

        assert target == "pg"
        connect.assert_awaited_once_with(config.targets.postgres, "pw")

    @pytest.mark.asyncio
    async def test_explicit_api_selection(self, memory_store):
        config = Config(
            targets=TargetsConfig(
                postgres=PostgresTargetConfig(host="db", username="admin", password="pw"),
                api=ApiTargetConfig(base_url="https://x", endpoint="/p"),
            )
        )

        assert isinstance(await create_target(config, memory_store, "api"), ApiTarget)

    @pytest.mark.asyncio
    async def test_legacy_database_section(self, memory_store):
        config = Config(database=PostgresTargetConfig(host="old", username="admin", password="pw"))
        with patch("rotator.targets.PostgresTarget.connect", AsyncMock(return_value="pg")) as connect:
            await create_target(config, memory_store)

        assert connect.await_args.args[0].host == "old"

    @pytest.mark.asyncio
    async def test_requested_target_missing(self, memory_store):
        with pytest.raises(ConfigurationError):
            await create_target(Config(), memory_store, "postgres")

    @pytest.mark.asyncio
    async def test_relative_endpoint_needs_base_url(self, memory_store):
        config = Config(targets=TargetsConfig(api=ApiTargetConfig(endpoint="/p")))

        with pytest.raises(ConfigurationError):
            await create_target(config, memory_store)
