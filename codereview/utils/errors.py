"""Standardised API error responses.

Every error leaves the API in the same envelope::

    {"success": false, "message": "...", "code": "ERR_...", "errors": {...}}

Usage
-----
    from codereview.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Project not found")
    return api_error(E.VALIDATION_INVALID, "Validation failed", details={"title": "Title is required"})
"""

from __future__ import annotations

import logging

from flask import current_app, jsonify, request

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants."""

    # Authentication – HTTP 401
    AUTH_MISSING = "ERR_AUTH_MISSING"
    TOKEN_EXPIRED = "ERR_TOKEN_EXPIRED"
    TOKEN_INVALID = "ERR_TOKEN_INVALID"
    AUTH_USER_UNKNOWN = "ERR_AUTH_USER_UNKNOWN"
    INVALID_CREDENTIALS = "ERR_INVALID_CREDENTIALS"

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    INVALID_STATUS = "ERR_INVALID_STATUS"
    INVALID_OPERATION = "ERR_INVALID_OPERATION"

    # Permissions – HTTP 403
    FORBIDDEN = "ERR_FORBIDDEN"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / duplicate – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"

    # Request-level – HTTP 405 / 413 / 429
    METHOD_NOT_ALLOWED = "ERR_METHOD_NOT_ALLOWED"
    PAYLOAD_TOO_LARGE = "ERR_PAYLOAD_TOO_LARGE"
    RATE_LIMITED = "ERR_RATE_LIMITED"

    # Server – HTTP 500
    DATABASE = "ERR_DATABASE"
    STORAGE = "ERR_STORAGE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.AUTH_MISSING: 401,
    E.TOKEN_EXPIRED: 401,
    E.TOKEN_INVALID: 401,
    E.AUTH_USER_UNKNOWN: 401,
    E.INVALID_CREDENTIALS: 401,
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.INVALID_STATUS: 400,
    E.INVALID_OPERATION: 400,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.METHOD_NOT_ALLOWED: 405,
    E.PAYLOAD_TOO_LARGE: 413,
    E.RATE_LIMITED: 429,
    E.DATABASE: 500,
    E.STORAGE: 500,
    E.INTERNAL: 500,
}


def api_error(
    code: str | None,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str, optional
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for the client.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Field-level validation messages, emitted as ``errors``.

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "success": False,
        "message": message,
    }
    if code:
        body["code"] = code
    if details:
        body["errors"] = details

    return jsonify(body), http_status


def register_error_handlers(app):
    """Translate domain exceptions and HTTP errors into the standard envelope."""
    # Imported here: exceptions imports E from this module.
    from werkzeug.exceptions import HTTPException

    from codereview.core.exceptions import (
        PersistenceError,
        ReviewPlatformError,
        ValidationError,
    )

    @app.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        logger.info("Validation failed on %s: %s", request.path, error.details or error.message)
        return api_error(error.code, error.message, status=error.status_code, details=error.details)

    @app.errorhandler(PersistenceError)
    def _handle_persistence(error: PersistenceError):
        logger.error("Persistence failure on %s %s: %s", request.method, request.path, error.message)
        message = error.message if current_app.debug else "Internal server error"
        return api_error(error.code, message, status=error.status_code)

    @app.errorhandler(ReviewPlatformError)
    def _handle_domain(error: ReviewPlatformError):
        return api_error(error.code, error.message, status=error.status_code)

    @app.errorhandler(404)
    def _not_found(e):
        return api_error(E.NOT_FOUND, "Not found")

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return api_error(E.METHOD_NOT_ALLOWED, "Method not allowed")

    @app.errorhandler(413)
    def _too_large(e):
        return api_error(E.PAYLOAD_TOO_LARGE, "Request body too large")

    @app.errorhandler(429)
    def _rate_limited(e):
        return api_error(E.RATE_LIMITED, "Too many requests")

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):
        return api_error(None, e.description or e.name, status=e.code)

    @app.errorhandler(Exception)
    def _unexpected(e: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        message = str(e) if current_app.debug else "Internal server error"
        return api_error(E.INTERNAL, message, status=500)
