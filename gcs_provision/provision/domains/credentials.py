"""Resolve Google credentials for a data address.

Sources are tried in a fixed order and the first one present wins:

1. an access token stored in the vault (address key name or access_token_key_name)
2. an access token inlined as base64 (access_token_value)
3. a service account key file stored in the vault (service_account_key_name)
4. a service account key file inlined as base64 (service_account_value)
5. Application Default Credentials

A source that is present but malformed raises CredentialError; it never falls
through to the next source.
"""
import base64
import binascii
import json
import logging
from datetime import datetime, timezone
from typing import Iterable, Optional, Protocol

import google.auth
from google.auth import exceptions as auth_exceptions
from google.auth.credentials import Credentials
from google.oauth2 import credentials as oauth2_credentials

from . import schema
from .errors import CredentialError
from .models import DataAddress, GcpAccessToken
from .vault import Vault

logger = logging.getLogger(__name__)

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


def credentials_from_token(access_token: GcpAccessToken) -> Credentials:
    """Wrap an already issued access token; it is used as is until it expires."""
    logger.info("The provided token will be used to resolve the google credentials.")
    # google-auth compares expiry against naive UTC datetimes
    try:
        expiry = datetime.fromtimestamp(access_token.expiration / 1000, tz=timezone.utc).replace(tzinfo=None)
    except (OverflowError, OSError, ValueError) as e:
        raise CredentialError("The access token is not in the expected format.") from e
    return oauth2_credentials.Credentials(token=access_token.token, expiry=expiry)


def credentials_from_key_file(content: str) -> Credentials:
    """Build credentials from the JSON text of a service account key file."""
    logger.info("The provided credentials file will be used to resolve the google credentials.")
    try:
        info = json.loads(content)
        credentials, _ = google.auth.load_credentials_from_dict(info, scopes=[CLOUD_PLATFORM_SCOPE])
    except (ValueError, TypeError, auth_exceptions.GoogleAuthError) as e:
        raise CredentialError("Error while getting the credentials from the credentials file.") from e
    return credentials


def application_default_credentials() -> Credentials:
    """
    Return the Application Default Credentials.

    google.auth searches, in order: GOOGLE_APPLICATION_CREDENTIALS, the gcloud
    application-default login, and the metadata server of the runtime.
    """
    logger.info("The default credentials will be used to resolve the google credentials.")
    try:
        credentials, _ = google.auth.default(scopes=[CLOUD_PLATFORM_SCOPE])
    except auth_exceptions.DefaultCredentialsError as e:
        raise CredentialError("Error while getting the default credentials.") from e
    return credentials


def _present(value: Optional[str]) -> Optional[str]:
    return value if value else None


def _decode_base64(value: str, error_message: str) -> str:
    try:
        return base64.b64decode(value, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise CredentialError(error_message) from e


def _require_secret(vault: Vault, key_name: str) -> str:
    content = vault.resolve_secret(key_name)
    if not content:
        raise CredentialError(f"Secret '{key_name}' could not be resolved from the vault.")
    return content


class CredentialStrategy(Protocol):
    """One credential source; returns None when the address does not use it."""

    def resolve(self, address: DataAddress) -> Optional[Credentials]:
        ...


class VaultAccessTokenStrategy:
    def __init__(self, vault: Vault):
        self._vault = vault

    def resolve(self, address: DataAddress) -> Optional[Credentials]:
        key_name = _present(address.key_name) or _present(address.get_property(schema.ACCESS_TOKEN_KEY_NAME))
        if key_name is None:
            return None
        content = _require_secret(self._vault, key_name)
        return credentials_from_token(GcpAccessToken.from_json(content))


class InlineAccessTokenStrategy:
    def resolve(self, address: DataAddress) -> Optional[Credentials]:
        value = _present(address.get_property(schema.ACCESS_TOKEN_VALUE))
        if value is None:
            return None
        content = _decode_base64(value, "The access token value is not valid base64.")
        return credentials_from_token(GcpAccessToken.from_json(content))


class VaultServiceAccountStrategy:
    def __init__(self, vault: Vault):
        self._vault = vault

    def resolve(self, address: DataAddress) -> Optional[Credentials]:
        key_name = _present(address.get_property(schema.SERVICE_ACCOUNT_KEY_NAME))
        if key_name is None:
            return None
        return credentials_from_key_file(_require_secret(self._vault, key_name))


class InlineServiceAccountStrategy:
    def resolve(self, address: DataAddress) -> Optional[Credentials]:
        value = _present(address.get_property(schema.SERVICE_ACCOUNT_VALUE))
        if value is None:
            return None
        content = _decode_base64(value, "The service account value is not valid base64.")
        if schema.SERVICE_ACCOUNT_MARKER not in content:
            raise CredentialError("The service account value is not a valid key file.")
        return credentials_from_key_file(content)


def default_strategies(vault: Vault) -> tuple:
    return (
        VaultAccessTokenStrategy(vault),
        InlineAccessTokenStrategy(),
        VaultServiceAccountStrategy(vault),
        InlineServiceAccountStrategy(),
    )


class CredentialResolver:
    """Turns a data address into Google credentials; see the module docstring."""

    def __init__(self, vault: Vault, strategies: Optional[Iterable[CredentialStrategy]] = None):
        self._strategies = tuple(strategies) if strategies is not None else default_strategies(vault)

    def resolve(self, address: DataAddress) -> Credentials:
        """
        Resolve credentials for the address.

        Raises:
            CredentialError: If a present source is malformed, a vault key is
                missing, or Application Default Credentials are unavailable
        """
        for strategy in self._strategies:
            credentials = strategy.resolve(address)
            if credentials is not None:
                return credentials
        return application_default_credentials()
