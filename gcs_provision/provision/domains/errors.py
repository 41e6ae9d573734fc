"""Error types raised by the provisioning domain."""
from google.api_core import exceptions as api_exceptions
from google.auth import exceptions as auth_exceptions

# Failures of a remote call: rejected by the API, or credentials that could
# not be refreshed before the call was sent
REMOTE_CALL_ERRORS = (api_exceptions.GoogleAPICallError, auth_exceptions.GoogleAuthError)


class GcpError(Exception):
    """Base class for errors the provisioner turns into failure results."""
    pass


class CredentialError(GcpError):
    """Credential input could not be decoded, parsed or resolved."""
    pass


class ProvisioningError(GcpError):
    """A remote provisioning step failed or found unexpected state."""
    pass
