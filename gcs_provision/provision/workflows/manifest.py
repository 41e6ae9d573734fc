"""Build resource definitions for transfers that write into GCS."""
import uuid
from typing import Optional

from ..domains import schema
from ..domains.errors import ProvisioningError
from ..domains.models import DataAddress, ResourceDefinition


def can_generate(destination: DataAddress) -> bool:
    return destination.type == schema.TYPE


def generate_resource_definition(transfer_process_id: str, destination: DataAddress, project_id: str,
                                 location: str, storage_class: Optional[str] = None) -> ResourceDefinition:
    """
    Create the definition of the bucket a transfer's destination needs.

    The bucket is named by the destination's bucket_name property, or after
    the generated definition id when the destination leaves it open.

    Raises:
        ProvisioningError: If the destination is not a GCS address
    """
    if not can_generate(destination):
        raise ProvisioningError(f"Cannot provision a GCS bucket for destination type {destination.type}")

    return ResourceDefinition(
        id=str(uuid.uuid4()),
        transfer_process_id=transfer_process_id,
        bucket_name=destination.get_property(schema.BUCKET_NAME) or None,
        location=location,
        project_id=project_id,
        storage_class=storage_class,
        data_address=destination,
    )
