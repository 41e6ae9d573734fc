"""Secret stores used to resolve credential material by key name."""
import os
import logging
import threading
from typing import Dict, Optional, Protocol

from google.api_core import exceptions as api_exceptions
from google.cloud import secretmanager

from .errors import REMOTE_CALL_ERRORS, CredentialError

logger = logging.getLogger(__name__)


class Vault(Protocol):
    """Anything that can look up a secret value by key name."""

    def resolve_secret(self, key_name: str) -> Optional[str]:
        ...


class EnvironmentVault:
    """Vault backed by environment variables only (local development)."""

    def resolve_secret(self, key_name: str) -> Optional[str]:
        return os.getenv(key_name)


class SecretManagerVault:
    """
    Vault backed by GCP Secret Manager.

    Behavior:
        - Checks environment variables FIRST (fast path for development)
        - Reads the latest version of the secret from Secret Manager
        - Caches values in memory (per instance, per process)
        - A secret that does not exist resolves to None
        - Any other API failure raises CredentialError
    """

    def __init__(self, project_id: str, client: Optional[secretmanager.SecretManagerServiceClient] = None,
                 env_fallback: bool = True):
        self._project_id = project_id
        self._client = client
        self._env_fallback = env_fallback
        self._cache: Dict[str, str] = {}
        self._lock = threading.Lock()

    @property
    def client(self) -> secretmanager.SecretManagerServiceClient:
        """Lazy-initialize client."""
        if self._client is None:
            self._client = secretmanager.SecretManagerServiceClient()
        return self._client

    def resolve_secret(self, key_name: str) -> Optional[str]:
        if self._env_fallback:
            env_value = os.getenv(key_name)
            if env_value:
                logger.debug(f"Secret {key_name} resolved from environment")
                return env_value

        with self._lock:
            if key_name in self._cache:
                return self._cache[key_name]

        value = self._fetch_secret(key_name)
        if value is not None:
            with self._lock:
                self._cache[key_name] = value
        return value

    def _fetch_secret(self, key_name: str) -> Optional[str]:
        name = f"projects/{self._project_id}/secrets/{key_name}/versions/latest"
        try:
            response = self.client.access_secret_version(request={"name": name})
        except api_exceptions.NotFound:
            logger.warning(f"Secret {key_name} not found in project {self._project_id}")
            return None
        except REMOTE_CALL_ERRORS as e:
            raise CredentialError(f"Failed to read secret {key_name} from Secret Manager: {e}") from e
        return response.payload.data.decode("UTF-8")
