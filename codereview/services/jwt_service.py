"""
JWT Service — access/refresh token issuance and verification.

Access token:  15 minutes (configurable via JWT_ACCESS_EXPIRES)
Refresh token: 7 days     (configurable via JWT_REFRESH_EXPIRES)
Algorithm:     HS256

Token payload (access):
{
    "sub": <user_id>,
    "email": <email>,
    "role": "submitter",
    "kind": "access",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}

The refresh token carries only ``sub`` and ``kind="refresh"``. It is handed
to the client exclusively through an HTTP-only, SameSite=Strict cookie.

There is no server-side revocation: logout clears the cookie, and a refresh
token copied elsewhere stays valid until it expires.
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from codereview.core.exceptions import TokenExpiredError, TokenInvalidError


# ─── Defaults ────────────────────────────────────────────────
DEFAULT_ACCESS_EXPIRES = 900       # 15 minutes
DEFAULT_REFRESH_EXPIRES = 604800   # 7 days
ALGORITHM = "HS256"

ACCESS = "access"
REFRESH = "refresh"

REFRESH_COOKIE_NAME = "refreshToken"

_REQUIRED_CLAIMS = {
    ACCESS: ("sub", "email", "role", "kind", "exp"),
    REFRESH: ("sub", "kind", "exp"),
}


def _get_secret(kind: str = ACCESS) -> str:
    """Get the signing key for a token kind from app config."""
    if kind == REFRESH and current_app.config.get("JWT_REFRESH_SECRET_KEY"):
        return current_app.config["JWT_REFRESH_SECRET_KEY"]
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_access_expires() -> int:
    return current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)


def _get_refresh_expires() -> int:
    return current_app.config.get("JWT_REFRESH_EXPIRES", DEFAULT_REFRESH_EXPIRES)


# ═══════════════════════════════════════════════════════════════
# Token Generation
# ═══════════════════════════════════════════════════════════════
def issue_access_token(user_id: str, email: str, role) -> str:
    """Issue a short-lived access token carrying identity and global role."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "email": email,
        "role": getattr(role, "value", role),
        "kind": ACCESS,
        "iat": now,
        "exp": now + timedelta(seconds=_get_access_expires()),
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, _get_secret(ACCESS), algorithm=ALGORITHM)


def issue_refresh_token(user_id: str) -> str:
    """Issue a long-lived refresh token. Deliver it only via the refresh cookie."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "kind": REFRESH,
        "iat": now,
        "exp": now + timedelta(seconds=_get_refresh_expires()),
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, _get_secret(REFRESH), algorithm=ALGORITHM)


def issue_token_pair(user) -> tuple[str, str]:
    """Return ``(access_token, refresh_token)`` for a User row."""
    return (
        issue_access_token(user.id, user.email, user.role),
        issue_refresh_token(user.id),
    )


# ═══════════════════════════════════════════════════════════════
# Token Verification
# ═══════════════════════════════════════════════════════════════
def verify_token(token: str, expected_kind: str = ACCESS) -> dict:
    """
    Decode and verify a token of the expected kind.

    Returns the claims dict on success.
    Raises TokenExpiredError past the validity window, TokenInvalidError for
    anything else (signature, structure, missing claims, kind mismatch).
    """
    if expected_kind not in _REQUIRED_CLAIMS:
        raise ValueError(f"Unknown token kind: {expected_kind}")
    if not token:
        raise TokenInvalidError("Empty token")

    try:
        payload = jwt.decode(
            token,
            _get_secret(expected_kind),
            algorithms=[ALGORITHM],
            options={"require": list(_REQUIRED_CLAIMS[expected_kind])},
        )
    except jwt.ExpiredSignatureError as exc:
        raise TokenExpiredError("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise TokenInvalidError(str(exc)) from exc

    # Kind isolation: a refresh token is never an access token and vice versa.
    if payload.get("kind") != expected_kind:
        raise TokenInvalidError(f"Expected {expected_kind} token, got {payload.get('kind')}")

    return payload


def verify_access_token(token: str) -> dict:
    """Verify an access token — convenience wrapper."""
    return verify_token(token, expected_kind=ACCESS)


def verify_refresh_token(token: str) -> dict:
    """Verify a refresh token — convenience wrapper."""
    return verify_token(token, expected_kind=REFRESH)


# ═══════════════════════════════════════════════════════════════
# Refresh cookie
# ═══════════════════════════════════════════════════════════════
def set_refresh_cookie(response, refresh_token: str):
    """Attach the refresh token as an HTTP-only, SameSite=Strict cookie."""
    response.set_cookie(
        REFRESH_COOKIE_NAME,
        refresh_token,
        max_age=_get_refresh_expires(),
        httponly=True,
        secure=current_app.config.get("REFRESH_COOKIE_SECURE", True),
        samesite="Strict",
    )
    return response


def clear_refresh_cookie(response):
    """Expire the refresh cookie on the client. Server state is untouched."""
    response.delete_cookie(
        REFRESH_COOKIE_NAME,
        httponly=True,
        secure=current_app.config.get("REFRESH_COOKIE_SECURE", True),
        samesite="Strict",
    )
    return response
