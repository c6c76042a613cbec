"""
JWT Auth Middleware — resolves the caller from the Authorization header.

A ``before_request`` hook runs on every request and records the outcome on
``flask.g``:

    g.current_user   User row or None
    g.jwt_user_id    user id or None
    g.current_role   GlobalRole or None
    g.auth_error     AuthenticationError explaining why no caller was resolved

The hook never blocks a request by itself. Routes opt in with
``@login_required`` (or a blueprint-wide ``before_request(authenticate_request)``),
which raises the recorded error. Failure causes map to distinct codes:

    ERR_AUTH_MISSING       no header, or not "Bearer <token>"
    ERR_TOKEN_EXPIRED      token past its validity window
    ERR_TOKEN_INVALID      bad signature / structure / token kind
    ERR_AUTH_USER_UNKNOWN  token is fine but the user no longer exists
"""

import functools
import logging

from flask import g, request

from codereview.core.exceptions import (
    AuthenticationError,
    PermissionDeniedError,
    TokenExpiredError,
    TokenInvalidError,
)
from codereview.models import db
from codereview.models.auth import User
from codereview.services.jwt_service import verify_access_token
from codereview.utils.errors import E

logger = logging.getLogger(__name__)

# Paths that never carry an access token
JWT_SKIP_PREFIXES = (
    "/auth/login",
    "/auth/register",
    "/auth/refresh",
    "/health",
    "/static/",
)


def _bearer_token() -> str:
    """Extract the token from ``Authorization: Bearer <token>``.

    Raises AuthenticationError(ERR_AUTH_MISSING) when absent or malformed.
    """
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    token = token.strip()
    if scheme != "Bearer" or not token or " " in token:
        raise AuthenticationError("No token provided", code=E.AUTH_MISSING)
    return token


def resolve_caller() -> User:
    """Resolve the User behind the current request's bearer token."""
    token = _bearer_token()
    try:
        claims = verify_access_token(token)
    except TokenExpiredError:
        raise AuthenticationError("Token expired", code=E.TOKEN_EXPIRED)
    except TokenInvalidError as exc:
        logger.debug("Rejected access token: %s", exc)
        raise AuthenticationError("Invalid token", code=E.TOKEN_INVALID)

    user = db.session.get(User, claims["sub"])
    if user is None:
        raise AuthenticationError("User not found", code=E.AUTH_USER_UNKNOWN)
    return user


def init_jwt_middleware(app):
    """Register the JWT guard as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.current_user = None
        g.jwt_user_id = None
        g.current_role = None
        g.auth_error = None

        path = request.path
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                g.auth_error = AuthenticationError("No token provided", code=E.AUTH_MISSING)
                return

        try:
            user = resolve_caller()
        except AuthenticationError as exc:
            g.auth_error = exc
            return

        g.current_user = user
        g.jwt_user_id = user.id
        # Role is read from the row, not the token, so a role change applies at once.
        g.current_role = user.role


def authenticate_request() -> None:
    """Fail with the recorded AuthenticationError unless a caller was resolved.

    Usable directly as ``blueprint.before_request(authenticate_request)``.
    """
    if getattr(g, "current_user", None) is not None:
        return None
    error = getattr(g, "auth_error", None)
    if error is None:
        # Hook not installed (e.g. a bare test app): resolve on demand.
        user = resolve_caller()
        g.current_user = user
        g.jwt_user_id = user.id
        g.current_role = user.role
        return None
    raise error


def login_required(f):
    """Decorator: the route requires a resolved caller."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        authenticate_request()
        return f(*args, **kwargs)
    return decorated


def ensure_role(actual, allowed, message: str = "Not authorized") -> None:
    """Raise PermissionDeniedError unless ``actual`` is one of ``allowed``.

    Works for both GlobalRole and ProjectRole sets. The two enum types never
    compare equal, so a global role cannot satisfy a project-role set.
    """
    if actual is None or actual not in allowed:
        raise PermissionDeniedError(message)


def require_role(*roles):
    """
    Decorator: require the caller's global role to be one of ``roles``.

    Implies @login_required.

    Usage:
        @bp.route("/admin/stats")
        @require_role(GlobalRole.OWNER, GlobalRole.ADMIN)
        def stats():
            ...
    """
    allowed = frozenset(roles)

    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            authenticate_request()
            try:
                ensure_role(g.current_role, allowed)
            except PermissionDeniedError:
                logger.warning(
                    "User %s denied: role %s not in %s on %s",
                    g.jwt_user_id, g.current_role, sorted(r.value for r in allowed), f.__name__,
                )
                raise
            return f(*args, **kwargs)
        return decorated
    return decorator
