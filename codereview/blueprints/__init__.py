"""
Code Review Platform
Blueprint helpers shared by all route modules.
"""

from flask import current_app, g, jsonify, request

from codereview.core.exceptions import ValidationError
from codereview.models import db
from codereview.services.project_service import ProjectMembershipManager
from codereview.services.storage import get_artifact_storage
from codereview.services.submission_service import SubmissionLifecycleManager
from codereview.services.user_service import UserService


def ok(data=None, status: int = 200, message: str | None = None):
    """Standard success envelope: ``{"success": true, "data": ...}``."""
    body = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    return jsonify(body), status


def json_body() -> dict:
    """Parsed JSON object body, or ValidationError when it is not an object."""
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def require_fields(data: dict, *fields: str) -> None:
    """Raise ValidationError listing every missing or blank field."""
    missing = {
        f: f"{f} is required"
        for f in fields
        if data.get(f) is None or (isinstance(data.get(f), str) and not data[f].strip())
    }
    if missing:
        raise ValidationError("Validation failed", details=missing)


def current_user_id() -> str:
    return g.jwt_user_id


# ── Service wiring: one instance per request, bound to the app session ──

def user_service() -> UserService:
    return UserService(db.session)


def membership_manager() -> ProjectMembershipManager:
    return ProjectMembershipManager(db.session, get_artifact_storage())


def submission_manager() -> SubmissionLifecycleManager:
    return SubmissionLifecycleManager(db.session, get_artifact_storage(), membership_manager())


def allowed_upload_types() -> frozenset:
    return current_app.config["ALLOWED_UPLOAD_MIME_TYPES"]
