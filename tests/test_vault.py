"""Tests for the Secret Manager and environment vaults."""
from types import SimpleNamespace
from unittest import mock

import pytest
from google.api_core import exceptions as api_exceptions
from google.auth import exceptions as auth_exceptions

from gcs_provision.provision.domains.errors import CredentialError
from gcs_provision.provision.domains.vault import EnvironmentVault, SecretManagerVault


def secret_response(value):
    return SimpleNamespace(payload=SimpleNamespace(data=value.encode("UTF-8")))


@pytest.fixture
def client():
    client = mock.Mock()
    client.access_secret_version.return_value = secret_response('{"token": "t", "expiration": 1}')
    return client


class TestSecretManagerVault:
    """Secret Manager lookups with caching and environment fast path."""

    def test_reads_latest_version(self, client, monkeypatch):
        monkeypatch.delenv("token-key", raising=False)
        vault = SecretManagerVault("p1", client=client)

        assert vault.resolve_secret("token-key") == '{"token": "t", "expiration": 1}'
        client.access_secret_version.assert_called_once_with(
            request={"name": "projects/p1/secrets/token-key/versions/latest"})

    def test_caches_values(self, client, monkeypatch):
        monkeypatch.delenv("token-key", raising=False)
        vault = SecretManagerVault("p1", client=client)

        vault.resolve_secret("token-key")
        vault.resolve_secret("token-key")

        assert client.access_secret_version.call_count == 1

    def test_environment_checked_first(self, client, monkeypatch):
        monkeypatch.setenv("SA_KEY", "from-env")

        assert SecretManagerVault("p1", client=client).resolve_secret("SA_KEY") == "from-env"
        client.access_secret_version.assert_not_called()

    def test_environment_fallback_can_be_disabled(self, client, monkeypatch):
        monkeypatch.setenv("SA_KEY", "from-env")

        vault = SecretManagerVault("p1", client=client, env_fallback=False)

        assert vault.resolve_secret("SA_KEY") == '{"token": "t", "expiration": 1}'

    def test_missing_secret_resolves_to_none(self, client, monkeypatch):
        monkeypatch.delenv("missing", raising=False)
        client.access_secret_version.side_effect = api_exceptions.NotFound("missing")

        assert SecretManagerVault("p1", client=client).resolve_secret("missing") is None

    def test_api_failure_raises_credential_error(self, client, monkeypatch):
        monkeypatch.delenv("token-key", raising=False)
        client.access_secret_version.side_effect = api_exceptions.PermissionDenied("denied")

        with pytest.raises(CredentialError) as exc_info:
            SecretManagerVault("p1", client=client).resolve_secret("token-key")

        assert "token-key" in str(exc_info.value)

    def test_unrefreshable_credentials_raise_credential_error(self, client, monkeypatch):
        monkeypatch.delenv("token-key", raising=False)
        client.access_secret_version.side_effect = auth_exceptions.RefreshError("revoked")

        with pytest.raises(CredentialError):
            SecretManagerVault("p1", client=client).resolve_secret("token-key")


class TestEnvironmentVault:
    """Environment-only vault for local development."""

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("TOKEN_KEY", "value")

        assert EnvironmentVault().resolve_secret("TOKEN_KEY") == "value"

    def test_missing_variable(self, monkeypatch):
        monkeypatch.delenv("TOKEN_KEY", raising=False)

        assert EnvironmentVault().resolve_secret("TOKEN_KEY") is None
