"""
Security headers middleware.

The service only ever returns JSON, so the content policy allows nothing.

Usage:
    from codereview.middleware.security_headers import init_security_headers
    init_security_headers(app)
"""

from flask import request

API_CSP = "default-src 'none'; frame-ancestors 'none'; base-uri 'none'; form-action 'none'"


def init_security_headers(app):
    """Register after_request handler that injects security headers."""

    @app.after_request
    def _add_security_headers(response):
        response.headers.setdefault("Content-Security-Policy", API_CSP)

        # Prevent MIME-type sniffing
        response.headers.setdefault("X-Content-Type-Options", "nosniff")

        # Clickjacking protection
        response.headers.setdefault("X-Frame-Options", "DENY")

        # HTTPS enforcement (ignored over HTTP)
        if not app.debug:
            response.headers.setdefault(
                "Strict-Transport-Security", "max-age=31536000; includeSubDomains"
            )

        response.headers.setdefault("Referrer-Policy", "no-referrer")

        # Auth responses carry tokens; never let an intermediary cache them
        if response.headers.get("Set-Cookie") or "Authorization" in request.headers:
            response.headers.setdefault("Cache-Control", "no-store")

        # Remove server identification
        response.headers.pop("Server", None)

        return response