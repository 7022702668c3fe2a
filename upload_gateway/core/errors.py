"""
Error taxonomy for the upload gateway.

Every failure surfaced by the credential resolver or the storage facade
is one of these. SDK exceptions are caught at the infrastructure boundary
and re-raised as the matching class, so nothing above that layer needs
to know about google-api-core or google-auth exception types.
"""


class UploadGatewayError(Exception):
    """Base class for all gateway errors."""
    pass


class ConfigurationError(UploadGatewayError):
    """Raised when settings are missing or invalid."""
    pass


class AuthenticationError(UploadGatewayError):
    """Raised when credentials are rejected or the connectivity check fails."""
    pass


class NotFoundError(UploadGatewayError):
    """Raised when an object is absent on download or delete."""
    pass


class NotReadyError(UploadGatewayError):
    """Raised when storage is used before the client handle exists."""
    pass


class UpstreamError(UploadGatewayError):
    """Raised for any other failure from Cloud Storage or Secret Manager."""
    pass
