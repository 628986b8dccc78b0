"""Error handling module for mediahost.

This module defines error codes, exception classes, and response models.

Error Response Format:
{
    "error": {
        "code": "MOUNT_FAILED",
        "message": "Storage could not be mounted"
    }
}

Every exception carries two texts: ``message`` is the raw detail (remote
stderr, runtime responses) and is only shown to admins, ``public_message`` is
the fixed summary shown to customers.

Usage:
    from mediahost.core.errors import ConflictError, NotFoundError

    # Raise with default message
    raise NotFoundError()

    # Raise with custom message
    raise ConflictError("Subdomain already taken")
"""

from enum import Enum

from pydantic import BaseModel


class ErrorCode(str, Enum):
    """Error codes."""

    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INVALID_REQUEST = "INVALID_REQUEST"
    INVALID_WORKLOAD_TYPE = "INVALID_WORKLOAD_TYPE"
    STORAGE_UNREACHABLE = "STORAGE_UNREACHABLE"
    STORAGE_OPERATION_FAILED = "STORAGE_OPERATION_FAILED"
    MOUNT_FAILED = "MOUNT_FAILED"
    IMAGE_PULL_FAILED = "IMAGE_PULL_FAILED"
    RUNTIME_CREATE_FAILED = "RUNTIME_CREATE_FAILED"
    RUNTIME_OPERATION_FAILED = "RUNTIME_OPERATION_FAILED"
    RUNTIME_UNAVAILABLE = "RUNTIME_UNAVAILABLE"
    # Recorded by the reconciler, never raised
    RUNTIME_INSTANCE_MISSING = "RUNTIME_INSTANCE_MISSING"
    INTERRUPTED = "INTERRUPTED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# Customer-facing summaries for persisted last_error_code values
ERROR_SUMMARIES: dict[str, str] = {
    ErrorCode.STORAGE_UNREACHABLE.value: "Storage is temporarily unreachable",
    ErrorCode.STORAGE_OPERATION_FAILED.value: "Storage could not be prepared",
    ErrorCode.MOUNT_FAILED.value: "Storage could not be mounted",
    ErrorCode.IMAGE_PULL_FAILED.value: "Media server image could not be downloaded",
    ErrorCode.RUNTIME_CREATE_FAILED.value: "Media server could not be started",
    ErrorCode.RUNTIME_OPERATION_FAILED.value: "Media server operation failed",
    ErrorCode.RUNTIME_UNAVAILABLE.value: "Container runtime is temporarily unavailable",
    ErrorCode.RUNTIME_INSTANCE_MISSING.value: "Media server stopped unexpectedly",
    ErrorCode.INTERRUPTED.value: "Provisioning was interrupted",
    ErrorCode.INTERNAL_ERROR.value: "Internal error",
}


def error_summary(code: str | None) -> str | None:
    """Map a persisted error code to its customer-facing summary."""
    if code is None:
        return None
    return ERROR_SUMMARIES.get(code, "Unexpected error")


class ErrorDetail(BaseModel):
    """Error detail containing code and message."""

    code: str
    message: str


class ErrorResponse(BaseModel):
    """Error response format."""

    error: ErrorDetail


class MediaHostError(Exception):
    """Base exception for mediahost.

    All mediahost specific exceptions should inherit from this class.
    This enables centralized exception handling in FastAPI and lets the
    lifecycle service persist ``code`` as ``last_error_code``.

    Attributes:
        code: The error code from ErrorCode enum
        message: Detailed error message (admin-visible)
        status_code: HTTP status code to return
        public_message: Summary safe to show to customers
    """

    public_message = "Request failed"

    def __init__(self, code: ErrorCode, message: str, status_code: int) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    def to_response(self, include_detail: bool = True) -> ErrorResponse:
        """Convert exception to ErrorResponse model.

        Args:
            include_detail: Use the raw message instead of the public summary.
        """
        message = self.message if include_detail else self.public_message
        return ErrorResponse(error=ErrorDetail(code=self.code.value, message=message))


class UnauthorizedError(MediaHostError):
    """401 Unauthorized - Caller identity missing."""

    public_message = "Authentication required"

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(ErrorCode.UNAUTHORIZED, message, 401)


class ForbiddenError(MediaHostError):
    """403 Forbidden - Permission denied."""

    public_message = "Permission denied"

    def __init__(self, message: str = "Permission denied") -> None:
        super().__init__(ErrorCode.FORBIDDEN, message, 403)


class NotFoundError(MediaHostError):
    """404 Not Found - Customer has no instance."""

    public_message = "Instance not found"

    def __init__(self, message: str = "Instance not found") -> None:
        super().__init__(ErrorCode.NOT_FOUND, message, 404)


class ConflictError(MediaHostError):
    """409 Conflict - Uniqueness violation or operation already in progress."""

    def __init__(self, message: str = "Conflicting operation") -> None:
        # Conflict messages never contain remote output
        self.public_message = message
        super().__init__(ErrorCode.CONFLICT, message, 409)


class InvalidRequestError(MediaHostError):
    """400 Bad Request - Malformed identifier, slug or event."""

    def __init__(self, message: str = "Invalid request") -> None:
        self.public_message = message
        super().__init__(ErrorCode.INVALID_REQUEST, message, 400)


class InvalidWorkloadTypeError(MediaHostError):
    """400 Bad Request - Unknown workload type."""

    def __init__(self, message: str = "Unsupported workload type") -> None:
        self.public_message = message
        super().__init__(ErrorCode.INVALID_WORKLOAD_TYPE, message, 400)


class StorageUnreachableError(MediaHostError):
    """503 Service Unavailable - Storage host unreachable (transient)."""

    public_message = ERROR_SUMMARIES[ErrorCode.STORAGE_UNREACHABLE.value]

    def __init__(self, message: str = "Storage host unreachable") -> None:
        super().__init__(ErrorCode.STORAGE_UNREACHABLE, message, 503)


class StorageOperationFailedError(MediaHostError):
    """502 Bad Gateway - Remote storage command failed."""

    public_message = ERROR_SUMMARIES[ErrorCode.STORAGE_OPERATION_FAILED.value]

    def __init__(self, message: str = "Storage operation failed") -> None:
        super().__init__(ErrorCode.STORAGE_OPERATION_FAILED, message, 502)


class MountFailedError(MediaHostError):
    """502 Bad Gateway - sshfs mount or unmount failed."""

    public_message = ERROR_SUMMARIES[ErrorCode.MOUNT_FAILED.value]

    def __init__(self, message: str = "Mount failed") -> None:
        super().__init__(ErrorCode.MOUNT_FAILED, message, 502)


class ImagePullFailedError(MediaHostError):
    """502 Bad Gateway - Image could not be pulled."""

    public_message = ERROR_SUMMARIES[ErrorCode.IMAGE_PULL_FAILED.value]

    def __init__(self, message: str = "Image pull failed") -> None:
        super().__init__(ErrorCode.IMAGE_PULL_FAILED, message, 502)


class RuntimeCreateFailedError(MediaHostError):
    """502 Bad Gateway - Container could not be created or started."""

    public_message = ERROR_SUMMARIES[ErrorCode.RUNTIME_CREATE_FAILED.value]

    def __init__(self, message: str = "Container creation failed") -> None:
        super().__init__(ErrorCode.RUNTIME_CREATE_FAILED, message, 502)


class RuntimeOperationFailedError(MediaHostError):
    """502 Bad Gateway - Container start/stop/remove/logs failed."""

    public_message = ERROR_SUMMARIES[ErrorCode.RUNTIME_OPERATION_FAILED.value]

    def __init__(self, message: str = "Container operation failed") -> None:
        super().__init__(ErrorCode.RUNTIME_OPERATION_FAILED, message, 502)


class RuntimeUnavailableError(MediaHostError):
    """503 Service Unavailable - Container runtime unreachable (transient)."""

    public_message = ERROR_SUMMARIES[ErrorCode.RUNTIME_UNAVAILABLE.value]

    def __init__(self, message: str = "Container runtime unavailable") -> None:
        super().__init__(ErrorCode.RUNTIME_UNAVAILABLE, message, 503)


class InternalError(MediaHostError):
    """500 Internal Server Error."""

    public_message = ERROR_SUMMARIES[ErrorCode.INTERNAL_ERROR.value]

    def __init__(self, message: str = "Internal error") -> None:
        super().__init__(ErrorCode.INTERNAL_ERROR, message, 500)
