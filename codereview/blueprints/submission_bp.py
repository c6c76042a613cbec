"""
Submission Blueprint — work items, artifacts and review status.

Endpoints:
    POST   /projects/<project_id>/submissions  — create (multipart; optional ``file``)
    GET    /projects/<project_id>/submissions  — list, newest first (members only)
    GET    /submissions/<submission_id>        — detail (members only)
    PATCH  /submissions/<submission_id>/status — set status (project admin, reviewer)
    DELETE /submissions/<submission_id>        — delete with artifact (author only)
    GET    /submissions/<submission_id>/artifact — download attached file (members only)

Uploads are capped by MAX_CONTENT_LENGTH (413 above it) and restricted to
ALLOWED_UPLOAD_MIME_TYPES. Accepted files are staged here and handed to the
lifecycle manager, which decides whether they are kept.
"""

import logging
import os

from flask import Blueprint, request, send_file

from codereview.blueprints import (
    allowed_upload_types,
    current_user_id,
    json_body,
    ok,
    require_fields,
    submission_manager,
)
from codereview.core.exceptions import NotFoundError, ValidationError
from codereview.middleware.jwt_auth import authenticate_request
from codereview.services.storage import get_artifact_storage

logger = logging.getLogger(__name__)

submission_bp = Blueprint("submission_bp", __name__)
submission_bp.before_request(authenticate_request)


def _submission_fields() -> dict:
    """Title/description from a multipart form, or from a JSON body."""
    if request.form or request.files:
        return request.form.to_dict()
    return json_body()


def _stage_upload():
    """Stage the optional ``file`` part; None when no file was sent."""
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        return None
    if upload.mimetype not in allowed_upload_types():
        logger.info("Rejected upload %r with type %s", upload.filename, upload.mimetype)
        raise ValidationError(
            "Validation failed",
            details={"file": f"File type {upload.mimetype or 'unknown'} is not allowed"},
        )
    return get_artifact_storage().stage(upload)


# ── Project-scoped routes ─────────────────────────────────────────────────────


@submission_bp.route("/projects/<project_id>/submissions", methods=["POST"])
def create_submission(project_id):
    """Form fields: title (required), description, file (optional)."""
    data = _submission_fields()
    require_fields(data, "title")
    if not isinstance(data["title"], str):
        raise ValidationError("Validation failed", details={"title": "title must be a string"})
    description = data.get("description")
    if description is not None and not isinstance(description, str):
        raise ValidationError("Validation failed", details={"description": "description must be a string"})

    submission = submission_manager().create_submission(
        project_id,
        current_user_id(),
        data["title"],
        description=description,
        artifact=_stage_upload(),
    )
    return ok(submission.to_dict(), status=201)


@submission_bp.route("/projects/<project_id>/submissions", methods=["GET"])
def list_submissions(project_id):
    submissions = submission_manager().list_by_project(project_id, current_user_id())
    return ok([s.to_dict() for s in submissions])


# ── Submission routes ─────────────────────────────────────────────────────────


@submission_bp.route("/submissions/<submission_id>", methods=["GET"])
def get_submission(submission_id):
    submission = submission_manager().get_submission(submission_id, current_user_id())
    return ok(submission.to_dict())


@submission_bp.route("/submissions/<submission_id>/status", methods=["PATCH"])
def update_status(submission_id):
    """Body: { "status": "pending|in_review|approved|changes_requested" }"""
    data = json_body()
    submission = submission_manager().update_status(submission_id, data.get("status"), current_user_id())
    return ok(submission.to_dict())


@submission_bp.route("/submissions/<submission_id>", methods=["DELETE"])
def delete_submission(submission_id):
    submission_manager().delete_submission(submission_id, current_user_id())
    return ok(message="Submission deleted successfully")


@submission_bp.route("/submissions/<submission_id>/artifact", methods=["GET"])
def download_artifact(submission_id):
    """Stream the attached file under its original name (members only)."""
    submission = submission_manager().get_submission(submission_id, current_user_id())
    if not submission.has_artifact:
        raise NotFoundError("Artifact", submission_id)
    path = get_artifact_storage().resolve(submission.file_path)
    if not os.path.isfile(path):
        logger.error("Artifact %s of submission %s missing from storage", submission.file_path, submission_id)
        raise NotFoundError("Artifact", submission_id)
    return send_file(
        path,
        mimetype=submission.file_type,
        as_attachment=True,
        download_name=submission.file_name,
    )
