"""Domain models for GCS resource provisioning."""
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

from . import schema
from .errors import CredentialError

T = TypeVar("T")


@dataclass(frozen=True)
class DataAddress:
    """Flat property bag describing where data lives and how to reach it."""
    type: str = schema.TYPE
    key_name: Optional[str] = None
    properties: Dict[str, str] = field(default_factory=dict)

    def get_property(self, key: str) -> Optional[str]:
        return self.properties.get(key)

    def without_inline_secrets(self) -> "DataAddress":
        """Copy of the address with inlined key material removed; vault key names are kept."""
        properties = {k: v for k, v in self.properties.items() if k not in schema.INLINE_SECRET_PROPERTIES}
        return DataAddress(type=self.type, key_name=self.key_name, properties=properties)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "key_name": self.key_name, "properties": dict(self.properties)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DataAddress":
        return cls(
            type=data.get("type", schema.TYPE),
            key_name=data.get("key_name"),
            properties=dict(data.get("properties") or {}),
        )


@dataclass(frozen=True)
class ResourceDefinition:
    """Request for a bucket attached to one transfer process."""
    id: str
    transfer_process_id: str
    location: str
    project_id: str
    storage_class: Optional[str] = None
    bucket_name: Optional[str] = None
    data_address: DataAddress = field(default_factory=DataAddress)

    @property
    def target_bucket(self) -> str:
        # Buckets are named after the definition unless a name was requested
        return self.bucket_name or self.id


@dataclass(frozen=True)
class ProvisionedResource:
    """Bucket plus the service account bound to it for one transfer."""
    id: str
    resource_definition_id: str
    transfer_process_id: str
    location: str
    project_id: str
    bucket_name: str
    service_account_email: str
    service_account_name: str
    resource_name: str
    storage_class: Optional[str] = None
    has_token: bool = False
    data_address: DataAddress = field(default_factory=DataAddress)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "resource_definition_id": self.resource_definition_id,
            "transfer_process_id": self.transfer_process_id,
            "location": self.location,
            "project_id": self.project_id,
            "bucket_name": self.bucket_name,
            "service_account_email": self.service_account_email,
            "service_account_name": self.service_account_name,
            "resource_name": self.resource_name,
            "storage_class": self.storage_class,
            "has_token": self.has_token,
            "data_address": self.data_address.without_inline_secrets().to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProvisionedResource":
        values = dict(data)
        values["data_address"] = DataAddress.from_dict(values.get("data_address") or {})
        return cls(**values)


@dataclass(frozen=True)
class GcpAccessToken:
    """Bearer token with its expiry in epoch milliseconds."""
    token: str = field(repr=False)
    expiration: int

    @classmethod
    def from_json(cls, content: str) -> "GcpAccessToken":
        """
        Parse the token wire format: {"token": "...", "expiration": <epoch ms>}.

        Raises:
            CredentialError: If content is not a JSON object with both fields
        """
        try:
            data = json.loads(content)
            token = data["token"]
            expiration = int(data["expiration"])
        except (ValueError, TypeError, KeyError) as e:
            raise CredentialError("The access token is not in the expected format.") from e

        if not isinstance(token, str) or not token:
            raise CredentialError("The access token is not in the expected format.")
        return cls(token=token, expiration=expiration)

    def to_json(self) -> str:
        return json.dumps({"token": self.token, "expiration": self.expiration})


@dataclass(frozen=True)
class GcpServiceAccount:
    """Service account record; name is the full resource name."""
    email: str
    name: str
    description: str = ""


@dataclass(frozen=True)
class Lookup(Generic[T]):
    """Outcome of a get-or-create call."""
    value: T
    created: bool


class ResponseStatus(Enum):
    OK = "ok"
    FATAL_ERROR = "fatal_error"
    ERROR_RETRY = "error_retry"


@dataclass(frozen=True)
class StatusResult(Generic[T]):
    """Uniform success/failure envelope returned by the provisioner."""
    status: ResponseStatus
    content: Optional[T] = None
    failure_messages: List[str] = field(default_factory=list)

    @classmethod
    def success(cls, content: T) -> "StatusResult[T]":
        return cls(status=ResponseStatus.OK, content=content)

    @classmethod
    def failure(cls, status: ResponseStatus, *messages: str) -> "StatusResult[T]":
        return cls(status=status, failure_messages=list(messages))

    @property
    def succeeded(self) -> bool:
        return self.status == ResponseStatus.OK

    @property
    def failed(self) -> bool:
        return not self.succeeded

    @property
    def failure_detail(self) -> str:
        return ", ".join(self.failure_messages)


@dataclass(frozen=True)
class ProvisionResponse:
    resource: ProvisionedResource
    secret_token: GcpAccessToken


@dataclass(frozen=True)
class DeprovisionedResource:
    provisioned_resource_id: str
