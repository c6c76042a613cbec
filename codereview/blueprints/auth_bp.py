"""
Auth Blueprint — registration, login and account endpoints.

  POST /auth/register         — create account → user + access token, refresh cookie
  POST /auth/login            — email + password → user + access token, refresh cookie
  POST /auth/refresh          — refresh cookie → new access token, rotated cookie
  POST /auth/logout           — clear the refresh cookie
  GET  /auth/profile          — current user
  PUT  /auth/profile          — update name / avatarUrl
  POST /auth/change-password  — currentPassword + newPassword

The refresh token is only ever sent as the ``refreshToken`` cookie, never in
a response body.
"""

import logging

from flask import Blueprint, g, request

from codereview.blueprints import json_body, ok, require_fields, user_service
from codereview.core.exceptions import (
    AuthenticationError,
    NotFoundError,
    TokenExpiredError,
    TokenInvalidError,
    ValidationError,
)
from codereview.middleware.jwt_auth import login_required
from codereview.models.roles import GlobalRole
from codereview.services.jwt_service import (
    REFRESH_COOKIE_NAME,
    clear_refresh_cookie,
    issue_token_pair,
    set_refresh_cookie,
    verify_refresh_token,
)
from codereview.utils.errors import E

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/auth")


def _session_response(user, status: int = 200):
    """Body ``{user, accessToken}`` plus the refresh cookie."""
    access_token, refresh_token = issue_token_pair(user)
    response, status = ok({"user": user.to_dict(), "accessToken": access_token}, status=status)
    set_refresh_cookie(response, refresh_token)
    return response, status


def _parse_global_role(value):
    if value is None:
        return None
    try:
        return GlobalRole(value)
    except ValueError:
        raise ValidationError("Validation failed", details={"role": "Invalid role"})


# ═══════════════════════════════════════════════════════════════
# Session endpoints
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/register", methods=["POST"])
def register():
    """
    Body: { "email": "...", "password": "...", "name": "...", "role": "reviewer|submitter" }
    """
    data = json_body()
    require_fields(data, "email", "password")
    user = user_service().register_user(
        email=data["email"],
        password=data["password"],
        name=data.get("name"),
        role=_parse_global_role(data.get("role")),
    )
    return _session_response(user, status=201)


@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Body: { "email": "...", "password": "..." }
    """
    data = json_body()
    require_fields(data, "email", "password")
    user = user_service().authenticate(data["email"], data["password"])
    logger.info("User logged in id=%s", user.id)
    return _session_response(user)


@auth_bp.route("/refresh", methods=["POST"])
def refresh():
    """Exchange the refresh cookie for a new access token and a fresh cookie."""
    token = request.cookies.get(REFRESH_COOKIE_NAME)
    if not token:
        raise AuthenticationError("No refresh token provided", code=E.AUTH_MISSING)
    try:
        claims = verify_refresh_token(token)
    except TokenExpiredError:
        raise AuthenticationError("Refresh token expired", code=E.TOKEN_EXPIRED)
    except TokenInvalidError:
        raise AuthenticationError("Invalid refresh token", code=E.TOKEN_INVALID)

    try:
        user = user_service().get_user(claims["sub"])
    except NotFoundError:
        raise AuthenticationError("User not found", code=E.AUTH_USER_UNKNOWN)
    return _session_response(user)


@auth_bp.route("/logout", methods=["POST"])
def logout():
    """Clear the refresh cookie. The token itself stays valid until it expires."""
    response, status = ok(message="Logged out successfully")
    clear_refresh_cookie(response)
    return response, status


# ═══════════════════════════════════════════════════════════════
# Account endpoints
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/profile", methods=["GET"])
@login_required
def get_profile():
    return ok(g.current_user.to_dict())


@auth_bp.route("/profile", methods=["PUT"])
@login_required
def update_profile():
    """
    Body: { "name": "...", "avatarUrl": "https://..." } — both optional
    """
    data = json_body()
    user = user_service().update_profile(
        g.jwt_user_id,
        name=data.get("name"),
        avatar_url=data.get("avatarUrl"),
    )
    return ok(user.to_dict())


@auth_bp.route("/change-password", methods=["POST"])
@login_required
def change_password():
    """
    Body: { "currentPassword": "...", "newPassword": "..." }
    """
    data = json_body()
    require_fields(data, "currentPassword", "newPassword")
    user_service().change_password(g.jwt_user_id, data["currentPassword"], data["newPassword"])
    return ok(message="Password changed successfully")
