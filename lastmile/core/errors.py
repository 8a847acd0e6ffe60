"""Client error classes.

Four families, each handled differently by callers:
- Validation: rejected locally, no network call
- Network: backend unreachable or timed out
- Domain: the backend (or a local guard) refused the action
- Device: the camera could not be acquired

Every error carries a machine-readable code and a human-readable message
that can be shown to the operator as-is.
"""

__all__ = [
    "AlreadyVerifiedError",
    "CameraNotFoundError",
    "CameraPermissionDeniedError",
    "CameraUnknownError",
    "CodeExpiredError",
    "ConflictError",
    "DeviceError",
    "DomainError",
    "ForbiddenError",
    "InsecureContextError",
    "LastMileError",
    "NetworkError",
    "NotFoundError",
    "ScanInProgressError",
    "UnauthorizedError",
    "ValidationError",
]


class LastMileError(Exception):
    """Base class for client errors.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status that produced the error, if any.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)


# =============================================================================
# Validation
# =============================================================================


class ValidationError(LastMileError):
    """Input rejected before any network call (empty code, missing field)."""

    def __init__(self, message: str) -> None:
        super().__init__(code="VALIDATION_ERROR", message=message)


# =============================================================================
# Network
# =============================================================================


class NetworkError(LastMileError):
    """Backend unreachable, connection refused, or request timed out.

    Not retried automatically for request/response calls.
    """

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(code="NETWORK_ERROR", message=message)
        self.url = url


# =============================================================================
# Domain
# =============================================================================


class DomainError(LastMileError):
    """The backend or a local business rule refused the action.

    Use directly for unmapped HTTP error statuses.
    """

    def __init__(
        self,
        message: str,
        code: str = "REQUEST_FAILED",
        status_code: int | None = None,
    ) -> None:
        super().__init__(code=code, message=message, status_code=status_code)


class UnauthorizedError(DomainError):
    """Session token missing, invalid, or expired (401)."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message, code="UNAUTHORIZED", status_code=401)


class ForbiddenError(DomainError):
    """Authenticated but not allowed, e.g. order assigned to another agent (403)."""

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(message, code="FORBIDDEN", status_code=403)


class NotFoundError(DomainError):
    """Order or verification record does not exist (404)."""

    def __init__(self, message: str = "Order not found") -> None:
        super().__init__(message, code="NOT_FOUND", status_code=404)


class ConflictError(DomainError):
    """Conflicting state on the backend (409)."""

    def __init__(self, message: str = "Conflict") -> None:
        super().__init__(message, code="CONFLICT", status_code=409)


class CodeExpiredError(DomainError):
    """Verification codes passed their expiry; new codes must be generated."""

    def __init__(
        self, message: str = "Verification codes have expired. Please generate new codes."
    ) -> None:
        super().__init__(message, code="CODE_EXPIRED")


class AlreadyVerifiedError(DomainError):
    """Delivery was already verified; the record is terminal."""

    def __init__(self, message: str = "Delivery has already been verified") -> None:
        super().__init__(message, code="ALREADY_VERIFIED")


class ScanInProgressError(DomainError):
    """A scan resolution is still pending for this session."""

    def __init__(
        self, message: str = "A scan is already being processed. Please wait."
    ) -> None:
        super().__init__(message, code="SCAN_IN_PROGRESS")


# =============================================================================
# Device
# =============================================================================

_CAMERA_PREFIX = "Failed to access camera."


class DeviceError(LastMileError):
    """Camera could not be started.

    The message is the fixed prefix followed by a remediation hint.

    Attributes:
        remediation: What the operator should do about it.
    """

    def __init__(self, code: str, remediation: str) -> None:
        super().__init__(code=code, message=f"{_CAMERA_PREFIX} {remediation}")
        self.remediation = remediation


class CameraPermissionDeniedError(DeviceError):
    """Operator or OS refused camera access."""

    def __init__(self) -> None:
        super().__init__(
            code="CAMERA_PERMISSION_DENIED",
            remediation="Please allow camera access in your system settings.",
        )


class CameraNotFoundError(DeviceError):
    """No camera device for the requested facing preference."""

    def __init__(self) -> None:
        super().__init__(
            code="CAMERA_NOT_FOUND",
            remediation="No camera found. Please connect a camera device.",
        )


class InsecureContextError(DeviceError):
    """Camera API unavailable in this context (unsupported or insecure)."""

    def __init__(self) -> None:
        super().__init__(
            code="CAMERA_UNSUPPORTED",
            remediation=(
                "Camera API not supported in this context. "
                "Camera requires a secure, supported environment."
            ),
        )


class CameraUnknownError(DeviceError):
    """Any other camera failure; the detail is carried in the hint."""

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(
            code="CAMERA_ERROR",
            remediation=detail or "Please check your camera settings.",
        )
