"""Tests for the credential resolution chain."""
import base64
import json
from datetime import datetime
from unittest import mock

import pytest
from google.auth import exceptions as auth_exceptions

from gcs_provision.provision.domains import credentials as credentials_module
from gcs_provision.provision.domains import schema
from gcs_provision.provision.domains.credentials import CredentialResolver, credentials_from_key_file
from gcs_provision.provision.domains.errors import CredentialError
from gcs_provision.provision.domains.models import DataAddress

TOKEN_JSON = json.dumps({"token": "ya29.test-token", "expiration": 1700000000000})
KEY_FILE = json.dumps({"type": "service_account", "project_id": "p1", "client_email": "sa@p1.iam.gserviceaccount.com"})


def b64(text):
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


class DictVault:
    """Vault fake backed by a dict; records every lookup."""

    def __init__(self, secrets=None):
        self.secrets = dict(secrets or {})
        self.lookups = []

    def resolve_secret(self, key_name):
        self.lookups.append(key_name)
        return self.secrets.get(key_name)


@pytest.fixture
def default_credentials():
    """Patch Application Default Credentials discovery."""
    creds = mock.Mock(name="default-credentials")
    with mock.patch("google.auth.default", return_value=(creds, "p1")) as patched:
        patched.credentials = creds
        yield patched


@pytest.fixture
def key_file_loader():
    """Patch google-auth key file parsing."""
    creds = mock.Mock(name="key-file-credentials")
    with mock.patch("google.auth.load_credentials_from_dict", return_value=(creds, "p1")) as patched:
        patched.credentials = creds
        yield patched


class TestAccessTokenSources:
    """Access tokens from the vault or inlined as base64."""

    def test_key_name_reads_token_from_vault(self, default_credentials):
        vault = DictVault({"token-key": TOKEN_JSON})
        resolver = CredentialResolver(vault)

        creds = resolver.resolve(DataAddress(key_name="token-key"))

        assert creds.token == "ya29.test-token"
        assert creds.expiry == datetime(2023, 11, 14, 22, 13, 20)
        assert vault.lookups == ["token-key"]
        default_credentials.assert_not_called()

    def test_access_token_key_name_property_reads_token_from_vault(self, default_credentials):
        vault = DictVault({"token-key": TOKEN_JSON})
        address = DataAddress(properties={schema.ACCESS_TOKEN_KEY_NAME: "token-key"})

        creds = CredentialResolver(vault).resolve(address)

        assert creds.token == "ya29.test-token"
        default_credentials.assert_not_called()

    def test_top_level_key_name_wins_over_property(self):
        vault = DictVault({"top": TOKEN_JSON, "prop": "unused"})
        address = DataAddress(key_name="top", properties={schema.ACCESS_TOKEN_KEY_NAME: "prop"})

        CredentialResolver(vault).resolve(address)

        assert vault.lookups == ["top"]

    def test_inline_token_matches_vault_token(self):
        """Base64 inlined token content resolves to the same credential as the vault path."""
        from_vault = CredentialResolver(DictVault({"k": TOKEN_JSON})).resolve(DataAddress(key_name="k"))
        inline = CredentialResolver(DictVault()).resolve(
            DataAddress(properties={schema.ACCESS_TOKEN_VALUE: b64(TOKEN_JSON)}))

        assert inline.token == from_vault.token
        assert inline.expiry == from_vault.expiry

    def test_invalid_base64_token_raises_without_default_fallback(self, default_credentials):
        address = DataAddress(properties={schema.ACCESS_TOKEN_VALUE: "not base64!!"})

        with pytest.raises(CredentialError) as exc_info:
            CredentialResolver(DictVault()).resolve(address)

        assert "not valid base64" in str(exc_info.value)
        default_credentials.assert_not_called()

    def test_malformed_token_json_raises(self):
        vault = DictVault({"k": '{"token": "abc"}'})

        with pytest.raises(CredentialError) as exc_info:
            CredentialResolver(vault).resolve(DataAddress(key_name="k"))

        assert "not in the expected format" in str(exc_info.value)

    def test_out_of_range_expiration_raises(self, default_credentials):
        token = json.dumps({"token": "t", "expiration": 10 ** 20})
        address = DataAddress(properties={schema.ACCESS_TOKEN_VALUE: b64(token)})

        with pytest.raises(CredentialError) as exc_info:
            CredentialResolver(DictVault()).resolve(address)

        assert "not in the expected format" in str(exc_info.value)
        default_credentials.assert_not_called()

    def test_token_error_does_not_leak_secret(self):
        vault = DictVault({"k": "super-secret-value"})

        with pytest.raises(CredentialError) as exc_info:
            CredentialResolver(vault).resolve(DataAddress(key_name="k"))

        assert "super-secret-value" not in str(exc_info.value)

    def test_missing_vault_secret_raises(self, default_credentials):
        with pytest.raises(CredentialError) as exc_info:
            CredentialResolver(DictVault()).resolve(DataAddress(key_name="missing-key"))

        assert "missing-key" in str(exc_info.value)
        default_credentials.assert_not_called()


class TestServiceAccountSources:
    """Service account key files from the vault or inlined as base64."""

    def test_key_file_from_vault(self, key_file_loader, default_credentials):
        vault = DictVault({"sa-key": KEY_FILE})
        address = DataAddress(properties={schema.SERVICE_ACCOUNT_KEY_NAME: "sa-key"})

        creds = CredentialResolver(vault).resolve(address)

        assert creds is key_file_loader.credentials
        info = key_file_loader.call_args.args[0]
        assert info["client_email"] == "sa@p1.iam.gserviceaccount.com"
        default_credentials.assert_not_called()

    def test_inline_key_file(self, key_file_loader):
        address = DataAddress(properties={schema.SERVICE_ACCOUNT_VALUE: b64(KEY_FILE)})

        creds = CredentialResolver(DictVault()).resolve(address)

        assert creds is key_file_loader.credentials

    def test_inline_key_file_invalid_base64(self, key_file_loader, default_credentials):
        address = DataAddress(properties={schema.SERVICE_ACCOUNT_VALUE: "%%%not-base64"})

        with pytest.raises(CredentialError) as exc_info:
            CredentialResolver(DictVault()).resolve(address)

        assert "service account value is not valid base64" in str(exc_info.value)
        key_file_loader.assert_not_called()
        default_credentials.assert_not_called()

    def test_inline_key_file_without_marker(self, key_file_loader):
        address = DataAddress(properties={schema.SERVICE_ACCOUNT_VALUE: b64('{"type": "authorized_user"}')})

        with pytest.raises(CredentialError) as exc_info:
            CredentialResolver(DictVault()).resolve(address)

        assert "not a valid key file" in str(exc_info.value)
        key_file_loader.assert_not_called()

    def test_key_file_that_is_not_json(self):
        with pytest.raises(CredentialError) as exc_info:
            credentials_from_key_file("service_account but not json")

        assert "credentials file" in str(exc_info.value)

    def test_key_file_rejected_by_google_auth(self):
        error = auth_exceptions.DefaultCredentialsError("bad key")
        with mock.patch("google.auth.load_credentials_from_dict", side_effect=error):
            with pytest.raises(CredentialError):
                credentials_from_key_file(KEY_FILE)


class TestResolutionOrder:
    """First present source wins; default credentials come last."""

    def test_token_wins_over_service_account(self, key_file_loader):
        address = DataAddress(
            key_name="k",
            properties={schema.SERVICE_ACCOUNT_VALUE: b64(KEY_FILE)},
        )

        creds = CredentialResolver(DictVault({"k": TOKEN_JSON})).resolve(address)

        assert creds.token == "ya29.test-token"
        key_file_loader.assert_not_called()

    def test_vault_key_file_wins_over_inline_key_file(self, key_file_loader):
        address = DataAddress(properties={
            schema.SERVICE_ACCOUNT_KEY_NAME: "sa-key",
            schema.SERVICE_ACCOUNT_VALUE: "%%%not-base64",
        })

        CredentialResolver(DictVault({"sa-key": KEY_FILE})).resolve(address)

        assert key_file_loader.call_count == 1

    def test_empty_properties_count_as_absent(self, default_credentials):
        address = DataAddress(key_name="", properties={
            schema.ACCESS_TOKEN_VALUE: "",
            schema.SERVICE_ACCOUNT_VALUE: "",
        })

        creds = CredentialResolver(DictVault()).resolve(address)

        assert creds is default_credentials.credentials

    def test_falls_back_to_default_credentials(self, default_credentials):
        creds = CredentialResolver(DictVault()).resolve(DataAddress())

        assert creds is default_credentials.credentials
        assert default_credentials.call_args.kwargs["scopes"] == [credentials_module.CLOUD_PLATFORM_SCOPE]

    def test_default_credentials_failure_is_fatal(self):
        error = auth_exceptions.DefaultCredentialsError("no credentials")
        with mock.patch("google.auth.default", side_effect=error):
            with pytest.raises(CredentialError) as exc_info:
                CredentialResolver(DictVault()).resolve(DataAddress())

        assert "default credentials" in str(exc_info.value)

    def test_custom_strategies_stop_at_first_result(self, default_credentials):
        first = mock.Mock()
        first.resolve.return_value = None
        second = mock.Mock()
        second.resolve.return_value = "second-credentials"
        third = mock.Mock()

        resolver = CredentialResolver(DictVault(), strategies=[first, second, third])

        assert resolver.resolve(DataAddress()) == "second-credentials"
        third.resolve.assert_not_called()
        default_credentials.assert_not_called()
