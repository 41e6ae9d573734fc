"""Bucket management on Google Cloud Storage."""
import logging
from typing import Optional

from google.api_core import exceptions as api_exceptions
from google.auth.credentials import Credentials
from google.cloud import storage

from .errors import REMOTE_CALL_ERRORS, ProvisioningError
from .models import GcpServiceAccount, Lookup

logger = logging.getLogger(__name__)

OBJECT_ADMIN_ROLE = "roles/storage.objectAdmin"
IAM_POLICY_VERSION = 3


class StorageService:
    """Wrapper around the Cloud Storage client for one project."""

    def __init__(self, credentials: Credentials, project_id: str, client: Optional[storage.Client] = None):
        self._credentials = credentials
        self._project_id = project_id
        self._client = client

    @property
    def client(self) -> storage.Client:
        """Lazy-initialize client."""
        if self._client is None:
            self._client = storage.Client(project=self._project_id, credentials=self._credentials)
        return self._client

    def get_or_create_empty_bucket(self, name: str, location: str,
                                   storage_class: Optional[str] = None) -> Lookup[storage.Bucket]:
        """
        Return the bucket, creating it in the given location if it does not exist.

        Existing buckets are reused as they are; emptiness is checked
        separately with is_empty().

        Raises:
            ProvisioningError: If the bucket cannot be read or created
        """
        try:
            bucket = self.client.lookup_bucket(name)
            if bucket is not None:
                logger.debug(f"Bucket {name} already exists, reusing it")
                return Lookup(value=bucket, created=False)

            new_bucket = self.client.bucket(name)
            if storage_class:
                new_bucket.storage_class = storage_class
            try:
                bucket = self.client.create_bucket(new_bucket, location=location)
            except api_exceptions.Conflict:
                logger.debug(f"Bucket {name} was created concurrently, reusing it")
                return Lookup(value=self.client.get_bucket(name), created=False)
        except REMOTE_CALL_ERRORS as e:
            raise ProvisioningError(f"Error creating bucket {name} in {location}: {e}") from e

        logger.info(f"Created bucket {name} in {location}")
        return Lookup(value=bucket, created=True)

    def is_empty(self, name: str) -> bool:
        """Return True if the bucket holds no objects."""
        try:
            blobs = self.client.list_blobs(name, max_results=1)
            return next(iter(blobs), None) is None
        except REMOTE_CALL_ERRORS as e:
            raise ProvisioningError(f"Error listing objects of bucket {name}: {e}") from e

    def add_provider_permissions(self, bucket: storage.Bucket, account: GcpServiceAccount) -> None:
        """
        Grant the account object admin on the bucket.

        The member is added to the existing binding; other bindings and
        members of the policy are kept.
        """
        member = f"serviceAccount:{account.email}"
        try:
            policy = bucket.get_iam_policy(requested_policy_version=IAM_POLICY_VERSION)
            for binding in policy.bindings:
                if binding["role"] == OBJECT_ADMIN_ROLE and not binding.get("condition"):
                    members = set(binding.get("members", ()))
                    members.add(member)
                    binding["members"] = members
                    break
            else:
                policy.bindings.append({"role": OBJECT_ADMIN_ROLE, "members": {member}})
            bucket.set_iam_policy(policy)
        except REMOTE_CALL_ERRORS as e:
            raise ProvisioningError(f"Error granting {account.email} access to bucket {bucket.name}: {e}") from e
        logger.info(f"Granted {OBJECT_ADMIN_ROLE} on bucket {bucket.name} to {account.email}")
