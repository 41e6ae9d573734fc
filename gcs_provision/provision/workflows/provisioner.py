"""Provision and deprovision GCS buckets bound to per-transfer service accounts."""
import logging
from concurrent.futures import Executor, Future
from enum import Enum
from typing import Any, Callable, Optional

from google.auth.credentials import Credentials

from ..domains.credentials import CredentialResolver
from ..domains.errors import GcpError, ProvisioningError
from ..domains.iam_service import IamService, sanitize_service_account_name, service_account_description
from ..domains.models import (
    DeprovisionedResource,
    GcpServiceAccount,
    ProvisionedResource,
    ProvisionResponse,
    ResourceDefinition,
    ResponseStatus,
    StatusResult,
)
from ..domains.storage_service import StorageService

logger = logging.getLogger(__name__)

StorageFactory = Callable[[Credentials, str], StorageService]
IamFactory = Callable[[Credentials, str], IamService]


class ProvisionState(Enum):
    REQUESTED = "requested"
    CREDENTIALS_RESOLVED = "credentials_resolved"
    BUCKET_READY = "bucket_ready"
    IDENTITY_READY = "identity_ready"
    PERMISSION_GRANTED = "permission_granted"
    TOKEN_ISSUED = "token_issued"


def _completed(result: Any) -> Future:
    future = Future()
    future.set_result(result)
    return future


class GcsProvisioner:
    """
    Provisions a bucket, a service account with read/write access to it and
    a token for that account.

    Every call works only on its own locals, so one instance can serve many
    concurrent calls. With an executor, calls run on it and return pending
    futures; without one they run inline and return completed futures.
    Errors other than GcpError are not converted into results: they are
    raised inline, or set on the future when an executor is used.
    """

    def __init__(self, credential_resolver: CredentialResolver,
                 storage_factory: StorageFactory = StorageService,
                 iam_factory: IamFactory = IamService,
                 executor: Optional[Executor] = None):
        self._credential_resolver = credential_resolver
        self._storage_factory = storage_factory
        self._iam_factory = iam_factory
        self._executor = executor

    def can_provision(self, resource_definition: Any) -> bool:
        return isinstance(resource_definition, ResourceDefinition)

    def can_deprovision(self, provisioned_resource: Any) -> bool:
        return isinstance(provisioned_resource, ProvisionedResource)

    def provision(self, resource_definition: ResourceDefinition, policy: Any = None) -> "Future[StatusResult]":
        """Provision the resource; the future resolves to StatusResult[ProvisionResponse]."""
        return self._run(self._provision, resource_definition)

    def deprovision(self, provisioned_resource: ProvisionedResource, policy: Any = None) -> "Future[StatusResult]":
        """Delete the resource's service account; the bucket and its data are kept."""
        return self._run(self._deprovision, provisioned_resource)

    def _run(self, fn, *args) -> Future:
        if self._executor is not None:
            return self._executor.submit(fn, *args)
        return _completed(fn(*args))

    def _provision(self, definition: ResourceDefinition) -> StatusResult:
        bucket_name = definition.target_bucket
        state = ProvisionState.REQUESTED
        logger.debug(f"GCS bucket request submitted: {bucket_name} ({definition.id})")

        try:
            credentials = self._credential_resolver.resolve(definition.data_address)
            state = ProvisionState.CREDENTIALS_RESOLVED
            logger.debug(f"Credentials resolved for {definition.id}")

            storage_service = self._storage_factory(credentials, definition.project_id)
            iam_service = self._iam_factory(credentials, definition.project_id)

            bucket = storage_service.get_or_create_empty_bucket(
                bucket_name, definition.location, definition.storage_class).value
            if not storage_service.is_empty(bucket_name):
                raise ProvisioningError(f"Bucket: {bucket_name} already exists and is not empty.")
            state = ProvisionState.BUCKET_READY
            logger.debug(f"Bucket {bucket_name} ready and empty")

            account = iam_service.get_or_create_service_account(
                sanitize_service_account_name(definition.transfer_process_id),
                service_account_description(definition.transfer_process_id, bucket_name),
            ).value
            state = ProvisionState.IDENTITY_READY
            logger.debug(f"Service account {account.email} ready for {definition.id}")

            storage_service.add_provider_permissions(bucket, account)
            state = ProvisionState.PERMISSION_GRANTED

            token = iam_service.create_access_token(account)
            state = ProvisionState.TOKEN_ISSUED
        except GcpError as e:
            logger.error(f"Provisioning of {definition.id} failed after {state.name}: {e}")
            return StatusResult.failure(ResponseStatus.FATAL_ERROR, str(e))

        resource = _provisioned_resource(definition, bucket_name, account)
        logger.info(f"Provisioned bucket {bucket_name} for transfer process {definition.transfer_process_id}")
        return StatusResult.success(ProvisionResponse(resource=resource, secret_token=token))

    def _deprovision(self, resource: ProvisionedResource) -> StatusResult:
        logger.debug(f"Deprovisioning {resource.id}: deleting {resource.service_account_email}")
        try:
            credentials = self._credential_resolver.resolve(resource.data_address)
            iam_service = self._iam_factory(credentials, resource.project_id)
            iam_service.delete_service_account_if_exists(
                GcpServiceAccount(email=resource.service_account_email, name=resource.service_account_name))
        except GcpError as e:
            logger.error(f"Deprovisioning of {resource.id} failed: {e}")
            return StatusResult.failure(ResponseStatus.FATAL_ERROR, f"Deprovision failed with: {e}")

        logger.info(f"Deprovisioned {resource.id}; bucket {resource.bucket_name} is kept")
        return StatusResult.success(DeprovisionedResource(provisioned_resource_id=resource.id))


def _provisioned_resource(definition: ResourceDefinition, bucket_name: str,
                          account: GcpServiceAccount) -> ProvisionedResource:
    return ProvisionedResource(
        id=definition.id,
        resource_definition_id=definition.id,
        transfer_process_id=definition.transfer_process_id,
        location=definition.location,
        project_id=definition.project_id,
        storage_class=definition.storage_class,
        bucket_name=bucket_name,
        service_account_email=account.email,
        service_account_name=account.name,
        resource_name=f"{definition.id}-bucket",
        has_token=True,
        data_address=definition.data_address,
    )
