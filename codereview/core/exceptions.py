"""
Platform-wide exception hierarchy.

Services raise these types at the point of detection; the application-level
handlers registered in ``codereview.utils.errors`` translate them to an HTTP
status and a machine-readable code once, for every blueprint.

Usage:
    from codereview.core.exceptions import NotFoundError, PermissionDeniedError

    raise NotFoundError(resource="Project", resource_id=project_id)
    raise PermissionDeniedError("Only reviewers and admins can update submission status")
"""

from codereview.utils.errors import E


class ReviewPlatformError(Exception):
    """Base class. Subclasses set ``status_code`` and a default ``code``."""

    status_code = 500
    code = E.INTERNAL

    def __init__(self, message: str, code: str | None = None) -> None:
        self.message = message
        if code is not None:
            self.code = code
        super().__init__(message)


class AuthenticationError(ReviewPlatformError):
    """No usable credentials: missing header, expired or invalid token, bad login.

    The ``code`` tells the client which of these happened.
    """

    status_code = 401
    code = E.AUTH_MISSING


class PermissionDeniedError(ReviewPlatformError):
    """Authenticated, but the caller's role or membership is insufficient."""

    status_code = 403
    code = E.FORBIDDEN


class NotFoundError(ReviewPlatformError):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Project", "Submission").
        resource_id: The id that was looked up. Kept for logs, not echoed to clients.
    """

    status_code = 404
    code = E.NOT_FOUND

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found")


class ValidationError(ReviewPlatformError):
    """Input failed shape or enum validation.

    Args:
        message: Human-readable summary.
        details: Field-level breakdown, ``{field: message}``.
    """

    status_code = 400
    code = E.VALIDATION_INVALID

    def __init__(self, message: str, details: dict | None = None, code: str | None = None) -> None:
        self.details = details or {}
        super().__init__(message, code=code)


class InvalidStatusError(ValidationError):
    """A submission status outside the defined workflow states."""

    code = E.INVALID_STATUS

    def __init__(self, status) -> None:
        self.status = status
        super().__init__(f"Invalid status: {status!r}", details={"status": "Invalid status"})


class InvalidOperationError(ReviewPlatformError):
    """The request is well-formed but the operation is not allowed on this target."""

    status_code = 400
    code = E.INVALID_OPERATION


class ConflictError(ReviewPlatformError):
    """Raised when an operation would duplicate a unique value.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value (logged, not echoed).
    """

    status_code = 409
    code = E.CONFLICT_DUPLICATE

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with this {field} already exists")


class PersistenceError(ReviewPlatformError):
    """Store-level failure. Surfaced as a generic 500 outside development."""

    status_code = 500
    code = E.DATABASE


class StorageError(PersistenceError):
    """Blob store failure while moving or removing an artifact."""

    code = E.STORAGE


class TokenError(Exception):
    """Base for token verification failures raised by the JWT service."""


class TokenExpiredError(TokenError):
    """Token signature is valid but the validity window has passed."""


class TokenInvalidError(TokenError):
    """Bad signature, malformed token, missing claims or wrong token kind."""
