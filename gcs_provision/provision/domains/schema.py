"""Property keys of a Google Cloud Storage data address."""

TYPE = "GoogleCloudStorage"

BUCKET_NAME = "bucket_name"
BLOB_NAME = "blob_name"
SERVICE_ACCOUNT_KEY_NAME = "service_account_key_name"
SERVICE_ACCOUNT_VALUE = "service_account_value"
ACCESS_TOKEN_KEY_NAME = "access_token_key_name"
ACCESS_TOKEN_VALUE = "access_token_value"

# Marker every service account key file contains ("type": "service_account")
SERVICE_ACCOUNT_MARKER = "service_account"

# Properties carrying key material; never written out with a provisioned resource
INLINE_SECRET_PROPERTIES = (SERVICE_ACCOUNT_VALUE, ACCESS_TOKEN_VALUE)
