"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in codereview/__init__.py with no default
limits; this module applies granular limits per route category.

Usage:
    from codereview.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request

logger = logging.getLogger(__name__)

AUTH_LIMIT = "10/minute"
WRITE_LIMIT = "60/minute"


def rate_limit_key() -> str:
    """Authenticated callers are limited per user, anonymous ones per IP."""
    user_id = getattr(g, "jwt_user_id", None)
    if user_id:
        return f"user:{user_id}"
    return request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits:
        - Auth endpoints:   10/minute per IP (credential guessing)
        - Projects:         60/minute per user
        - Submissions:      60/minute per user (uploads are costly)
        - Health check:     exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("auth_bp")
    if bp:
        limiter.limit(AUTH_LIMIT)(bp)

    for bp_name in ("project_bp", "submission_bp"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT, key_func=rate_limit_key)(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — auth: %s, projects/submissions: %s",
        AUTH_LIMIT, WRITE_LIMIT,
    )
