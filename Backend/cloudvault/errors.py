"""Error taxonomy shared by the service layer and the HTTP handlers."""
from fastapi import status


class CloudVaultError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(CloudVaultError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class Forbidden(CloudVaultError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden"


class NotFound(CloudVaultError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ValidationError(CloudVaultError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class QuotaExceeded(CloudVaultError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Storage limit exceeded"


class DuplicateName(CloudVaultError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "A folder with this name already exists"


class UpstreamFailure(CloudVaultError):
    """Object store or database call failed."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Upstream service failed"
