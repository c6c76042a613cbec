"""
Project Blueprint — projects and membership roster.

Endpoints:
    POST   /projects                              — create project (caller becomes admin)
    GET    /projects                              — projects the caller belongs to
    GET    /projects/<project_id>                 — project with roster (members only)
    PUT    /projects/<project_id>                 — partial update (creator only)
    DELETE /projects/<project_id>                 — delete with submissions (creator only)
    POST   /projects/<project_id>/members         — add member / change role (admin, owner)
    DELETE /projects/<project_id>/members/<user_id> — remove member (admin, owner)

Layer contract:
    - No ORM calls here — all DB work delegated to ProjectMembershipManager.
    - No db.session.commit() here.
"""

import logging

from flask import Blueprint

from codereview.blueprints import (
    current_user_id,
    json_body,
    membership_manager,
    ok,
    require_fields,
)
from codereview.core.exceptions import ValidationError
from codereview.middleware.jwt_auth import authenticate_request
from codereview.models.roles import ProjectRole
from codereview.services.project_service import UNSET

logger = logging.getLogger(__name__)

project_bp = Blueprint("project_bp", __name__, url_prefix="/projects")
project_bp.before_request(authenticate_request)


def _parse_project_role(value) -> ProjectRole:
    try:
        return ProjectRole(value)
    except (ValueError, TypeError):
        raise ValidationError(
            "Validation failed",
            details={"role": f"Role must be one of: {', '.join(r.value for r in ProjectRole)}"},
        )


def _optional_text(data: dict, field: str):
    """Field value if present in the body, UNSET otherwise."""
    if field not in data:
        return UNSET
    value = data[field]
    if value is not None and not isinstance(value, str):
        raise ValidationError("Validation failed", details={field: f"{field} must be a string"})
    return value


# ── Projects ──────────────────────────────────────────────────────────────────


@project_bp.route("", methods=["POST"])
def create_project():
    """Body: { "name": "...", "description": "..." }"""
    data = json_body()
    require_fields(data, "name")
    name = _optional_text(data, "name")
    description = _optional_text(data, "description")
    project = membership_manager().create_project(
        name,
        owner_user_id=current_user_id(),
        description=None if description is UNSET else description,
    )
    return ok(project.to_dict(), status=201)


@project_bp.route("", methods=["GET"])
def list_projects():
    projects = membership_manager().list_projects_for_user(current_user_id())
    return ok([p.to_dict() for p in projects])


@project_bp.route("/<project_id>", methods=["GET"])
def get_project(project_id):
    project = membership_manager().get_project(project_id, current_user_id())
    return ok(project.to_dict())


@project_bp.route("/<project_id>", methods=["PUT"])
def update_project(project_id):
    """Body: { "name": "...", "description": "..." } — omitted fields unchanged."""
    data = json_body()
    project = membership_manager().update_project(
        project_id,
        current_user_id(),
        name=_optional_text(data, "name"),
        description=_optional_text(data, "description"),
    )
    return ok(project.to_dict())


@project_bp.route("/<project_id>", methods=["DELETE"])
def delete_project(project_id):
    membership_manager().delete_project(project_id, current_user_id())
    return ok(message="Project deleted successfully")


# ── Roster ────────────────────────────────────────────────────────────────────


@project_bp.route("/<project_id>/members", methods=["POST"])
def add_member(project_id):
    """Body: { "userId": "...", "role": "owner|admin|reviewer|submitter" }"""
    data = json_body()
    require_fields(data, "userId", "role")
    project = membership_manager().add_member(
        project_id,
        acting_user_id=current_user_id(),
        user_id=str(data["userId"]),
        role=_parse_project_role(data["role"]),
    )
    return ok(project.to_dict())


@project_bp.route("/<project_id>/members/<user_id>", methods=["DELETE"])
def remove_member(project_id, user_id):
    project = membership_manager().remove_member(project_id, current_user_id(), user_id)
    return ok(project.to_dict())
