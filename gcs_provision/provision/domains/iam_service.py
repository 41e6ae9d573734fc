"""Service account management and token issuance on GCP IAM."""
import hashlib
import logging
import re
from typing import Optional

from google.api_core import exceptions as api_exceptions
from google.auth.credentials import Credentials
from google.cloud import iam_admin_v1, iam_credentials_v1
from google.protobuf import duration_pb2

from .errors import REMOTE_CALL_ERRORS, ProvisioningError
from .models import GcpAccessToken, GcpServiceAccount, Lookup

logger = logging.getLogger(__name__)

SERVICE_ACCOUNT_PREFIX = "edc-"
MAX_ID_SUFFIX_LENGTH = 26
MIN_ID_SUFFIX_LENGTH = 2
READ_WRITE_SCOPE = "https://www.googleapis.com/auth/devstorage.read_write"
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600


def sanitize_service_account_name(transfer_process_id: str) -> str:
    """
    Derive a service account id from a transfer process id.

    Account ids must be 6-30 characters of lowercase letters, digits and
    dashes. The prefix plus at most 26 characters keeps the upper bound; a
    digest of the source id pads ids with too few usable characters.
    """
    suffix = re.sub(r"[^a-z0-9]", "", transfer_process_id.lower())[:MAX_ID_SUFFIX_LENGTH]
    if len(suffix) < MIN_ID_SUFFIX_LENGTH:
        digest = hashlib.sha256(transfer_process_id.encode("utf-8")).hexdigest()
        suffix = (suffix + digest)[:8]
    return SERVICE_ACCOUNT_PREFIX + suffix


def service_account_description(transfer_process_id: str, bucket_name: str) -> str:
    """Deterministic description used to find the account again."""
    return f"transferProcess:{transfer_process_id}\nbucket:{bucket_name}"


class IamService:
    """Wrapper around the IAM admin and IAM credentials clients for one project."""

    def __init__(self, credentials: Credentials, project_id: str,
                 token_lifetime_seconds: int = DEFAULT_TOKEN_LIFETIME_SECONDS,
                 iam_client: Optional[iam_admin_v1.IAMClient] = None,
                 credentials_client: Optional[iam_credentials_v1.IAMCredentialsClient] = None):
        self._credentials = credentials
        self._project_id = project_id
        self._token_lifetime_seconds = token_lifetime_seconds
        self._iam_client = iam_client
        self._credentials_client = credentials_client

    @property
    def iam_client(self) -> iam_admin_v1.IAMClient:
        """Lazy-initialize client."""
        if self._iam_client is None:
            self._iam_client = iam_admin_v1.IAMClient(credentials=self._credentials)
        return self._iam_client

    @property
    def credentials_client(self) -> iam_credentials_v1.IAMCredentialsClient:
        """Lazy-initialize client."""
        if self._credentials_client is None:
            self._credentials_client = iam_credentials_v1.IAMCredentialsClient(credentials=self._credentials)
        return self._credentials_client

    def _email_for(self, name: str) -> str:
        return f"{name}@{self._project_id}.iam.gserviceaccount.com"

    def _resource_name(self, email: str) -> str:
        return f"projects/{self._project_id}/serviceAccounts/{email}"

    def get_or_create_service_account(self, name: str, description: str) -> Lookup[GcpServiceAccount]:
        """
        Return the account whose description matches, creating it if needed.

        Args:
            name: Account id, already sanitized
            description: Deterministic description identifying the account

        Returns:
            Lookup with created=False when an existing account was reused

        Raises:
            ProvisioningError: If listing or creating the account fails
        """
        existing = self._find_by_description(description)
        if existing is not None:
            logger.debug(f"Reusing service account {existing.email}")
            return Lookup(value=existing, created=False)

        try:
            account = self.iam_client.create_service_account(
                request={
                    "name": f"projects/{self._project_id}",
                    "account_id": name,
                    "service_account": {"display_name": name, "description": description},
                }
            )
        except api_exceptions.AlreadyExists:
            # Lost a race with a concurrent provision of the same resource
            return Lookup(value=self._get_matching(name, description), created=False)
        except REMOTE_CALL_ERRORS as e:
            raise ProvisioningError(f"Error creating service account {name}: {e}") from e

        logger.info(f"Created service account {account.email}")
        return Lookup(value=_to_account(account), created=True)

    def _find_by_description(self, description: str) -> Optional[GcpServiceAccount]:
        try:
            accounts = self.iam_client.list_service_accounts(request={"name": f"projects/{self._project_id}"})
            for account in accounts:
                if account.description == description:
                    return _to_account(account)
        except REMOTE_CALL_ERRORS as e:
            raise ProvisioningError(f"Error listing service accounts of project {self._project_id}: {e}") from e
        return None

    def _get_matching(self, name: str, description: str) -> GcpServiceAccount:
        email = self._email_for(name)
        try:
            account = self.iam_client.get_service_account(request={"name": self._resource_name(email)})
        except REMOTE_CALL_ERRORS as e:
            raise ProvisioningError(f"Error reading service account {email}: {e}") from e
        if account.description != description:
            raise ProvisioningError(f"Service account {email} already exists for a different resource.")
        logger.debug(f"Service account {email} was created concurrently, reusing it")
        return _to_account(account)

    def create_access_token(self, account: GcpServiceAccount) -> GcpAccessToken:
        """
        Issue a short-lived read/write storage token for the account.

        Raises:
            ProvisioningError: If the token cannot be generated
        """
        try:
            response = self.credentials_client.generate_access_token(
                request={
                    "name": f"projects/-/serviceAccounts/{account.email}",
                    "scope": [READ_WRITE_SCOPE],
                    "lifetime": duration_pb2.Duration(seconds=self._token_lifetime_seconds),
                }
            )
        except REMOTE_CALL_ERRORS as e:
            raise ProvisioningError(f"Error creating access token for service account {account.email}: {e}") from e

        expiration = int(response.expire_time.timestamp() * 1000)
        logger.debug(f"Issued access token for {account.email}")
        return GcpAccessToken(token=response.access_token, expiration=expiration)

    def delete_service_account_if_exists(self, account: GcpServiceAccount) -> None:
        """Delete the account; a missing account is not an error."""
        name = account.name or self._resource_name(account.email)
        try:
            self.iam_client.delete_service_account(request={"name": name})
        except api_exceptions.NotFound:
            logger.info(f"Service account {account.email} not found, no deletion needed")
            return
        except REMOTE_CALL_ERRORS as e:
            raise ProvisioningError(f"Error deleting service account {account.email}: {e}") from e
        logger.info(f"Deleted service account {account.email}")


def _to_account(account) -> GcpServiceAccount:
    return GcpServiceAccount(email=account.email, name=account.name, description=account.description)
