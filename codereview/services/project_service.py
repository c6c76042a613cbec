"""
Project Membership Manager — projects, rosters and project roles.

Every mutating operation commits or rolls back as one unit. Store failures
surface as PersistenceError; nothing is left half-written.

Usage:
    from codereview.services.project_service import ProjectMembershipManager

    manager = ProjectMembershipManager(db.session)
    project = manager.create_project("Compiler", owner_user_id=user.id)
    manager.add_member(project.id, acting_user_id=user.id, user_id=other.id, role=ProjectRole.REVIEWER)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from codereview.core.exceptions import (
    InvalidOperationError,
    NotFoundError,
    PermissionDeniedError,
    PersistenceError,
    ValidationError,
)
from codereview.middleware.jwt_auth import ensure_role
from codereview.models.auth import User
from codereview.models.project import Project, ProjectMember
from codereview.models.roles import MEMBER_MANAGER_ROLES, ProjectRole
from codereview.models.submission import Submission

logger = logging.getLogger(__name__)

# Marks an argument the caller did not pass (distinct from an explicit None).
UNSET = object()

_UPSERT_DIALECTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class ProjectMembershipManager:
    """Owns project creation, the membership roster and role changes."""

    def __init__(self, session, storage=None):
        self.session = session
        # Only needed to clean up artifacts when a project is deleted.
        self.storage = storage

    # ═════════════════════════════════════════════════════════════════
    # Membership lookups
    # ═════════════════════════════════════════════════════════════════

    def _load(self, project_id: str) -> Project:
        project = self.session.get(Project, project_id)
        if project is None:
            raise NotFoundError("Project", project_id)
        return project

    def get_member_role(self, project_id: str, user_id: str) -> ProjectRole | None:
        """Return the caller's role in the project, or None if not a member."""
        return (
            self.session.query(ProjectMember.role)
            .filter_by(project_id=project_id, user_id=user_id)
            .scalar()
        )

    def require_member(self, project_id: str, user_id: str, message: str) -> ProjectRole:
        """Return the member's role or raise PermissionDeniedError."""
        role = self.get_member_role(project_id, user_id)
        if role is None:
            logger.warning("User %s denied on project %s: not a member", user_id, project_id)
            raise PermissionDeniedError(message)
        return role

    def require_project_role(self, project_id: str, user_id: str, allowed, message: str) -> ProjectRole:
        """Return the member's role if it is in ``allowed``; raise PermissionDeniedError otherwise."""
        role = self.get_member_role(project_id, user_id)
        try:
            ensure_role(role, allowed, message)
        except PermissionDeniedError:
            logger.warning(
                "User %s denied on project %s: role %s not in %s",
                user_id, project_id, role.value if role else None,
                sorted(r.value for r in allowed),
            )
            raise
        return role

    # ═════════════════════════════════════════════════════════════════
    # Projects
    # ═════════════════════════════════════════════════════════════════

    def create_project(self, name: str, owner_user_id: str, description: str | None = None) -> Project:
        """Create a project and its creator's admin membership atomically."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Validation failed", details={"name": "Project name is required"})

        project = Project(
            name=name,
            description=description.strip() if isinstance(description, str) else description,
            created_by=owner_user_id,
        )
        project.members.append(ProjectMember(user_id=owner_user_id, role=ProjectRole.ADMIN))
        self.session.add(project)
        self._commit("Could not create project")

        logger.info("Project created id=%s by user=%s", project.id, owner_user_id)
        return project

    def get_project(self, project_id: str, acting_user_id: str) -> Project:
        """Load a project with its roster. Members only."""
        project = self._load(project_id)
        self.require_member(project_id, acting_user_id, "Not authorized to access this project")
        return project

    def list_projects_for_user(self, user_id: str) -> list[Project]:
        """Projects the user belongs to, most recently updated first."""
        return (
            self.session.query(Project)
            .join(ProjectMember, ProjectMember.project_id == Project.id)
            .filter(ProjectMember.user_id == user_id)
            .order_by(Project.updated_at.desc(), Project.created_at.desc())
            .all()
        )

    def update_project(self, project_id: str, acting_user_id: str, *, name=UNSET, description=UNSET) -> Project:
        """Partial update by the project creator. Omitted fields are left as-is."""
        project = self._load(project_id)
        self._require_creator(project, acting_user_id, "Only the project owner can update the project")

        if name is not UNSET:
            name = (name or "").strip()
            if not name:
                raise ValidationError("Validation failed", details={"name": "Project name cannot be empty"})
            project.name = name
        if description is not UNSET:
            project.description = description.strip() if isinstance(description, str) else description

        self._commit("Could not update project")
        return project

    def delete_project(self, project_id: str, acting_user_id: str) -> None:
        """Delete a project, its roster and its submissions. Creator only.

        Artifacts of the removed submissions are deleted after the commit,
        best-effort: a blob that cannot be removed is logged and left behind.
        """
        project = self._load(project_id)
        self._require_creator(project, acting_user_id, "Only the project owner can delete the project")

        artifact_paths = [
            path for (path,) in
            self.session.query(Submission.file_path)
            .filter(Submission.project_id == project_id, Submission.file_path.isnot(None))
            .all()
        ]

        self.session.query(Submission).filter_by(project_id=project_id).delete(synchronize_session=False)
        self.session.delete(project)
        self._commit("Could not delete project")
        logger.info("Project deleted id=%s (%d submissions with artifacts)", project_id, len(artifact_paths))

        if self.storage is not None:
            for path in artifact_paths:
                try:
                    self.storage.delete(path)
                except PersistenceError as exc:
                    logger.warning("Orphaned artifact %s after project delete: %s", path, exc.message)

    # ═════════════════════════════════════════════════════════════════
    # Roster
    # ═════════════════════════════════════════════════════════════════

    def add_member(self, project_id: str, acting_user_id: str, user_id: str, role: ProjectRole) -> Project:
        """Add a member or overwrite their role. Caller must be admin/owner."""
        if not isinstance(role, ProjectRole):
            raise ValidationError("Validation failed", details={"role": "Invalid role"})
        project = self._load(project_id)
        self.require_project_role(
            project_id, acting_user_id, MEMBER_MANAGER_ROLES,
            "Only admins can add members to the project",
        )
        if self.session.get(User, user_id) is None:
            raise NotFoundError("User", user_id)

        self._upsert_member(project_id, user_id, role)
        self._commit("Could not add project member")
        logger.info("Project %s: user %s set to role %s by %s", project_id, user_id, role.value, acting_user_id)
        return project

    def remove_member(self, project_id: str, acting_user_id: str, user_id: str) -> Project:
        """Remove a member. The ``owner`` member can never be removed here."""
        project = self._load(project_id)
        self.require_project_role(
            project_id, acting_user_id, MEMBER_MANAGER_ROLES,
            "Only admins can remove members from the project",
        )

        member = (
            self.session.query(ProjectMember)
            .filter_by(project_id=project_id, user_id=user_id)
            .first()
        )
        if member is None:
            raise NotFoundError("Project member", user_id)
        if member.role is ProjectRole.OWNER:
            raise InvalidOperationError("Cannot remove the project owner")

        self.session.delete(member)
        self._commit("Could not remove project member")
        logger.info("Project %s: user %s removed by %s", project_id, user_id, acting_user_id)
        return project

    def _upsert_member(self, project_id: str, user_id: str, role: ProjectRole) -> None:
        """Insert-or-update on (project_id, user_id), resolved by the store."""
        table = ProjectMember.__table__
        dialect = self.session.get_bind().dialect.name
        insert = _UPSERT_DIALECTS.get(dialect)
        if insert is None:
            # No native upsert: rely on the unique constraint to reject a racing duplicate.
            member = (
                self.session.query(ProjectMember)
                .filter_by(project_id=project_id, user_id=user_id)
                .first()
            )
            if member is None:
                self.session.add(ProjectMember(project_id=project_id, user_id=user_id, role=role))
            else:
                member.role = role
            return

        stmt = insert(table).values(
            project_id=project_id,
            user_id=user_id,
            role=role,
            joined_at=datetime.now(timezone.utc),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.project_id, table.c.user_id],
            set_={"role": stmt.excluded.role},
        )
        self.session.execute(stmt)

    # ═════════════════════════════════════════════════════════════════
    # Helpers
    # ═════════════════════════════════════════════════════════════════

    def _require_creator(self, project: Project, user_id: str, message: str) -> None:
        if project.created_by != user_id:
            logger.warning("User %s denied on project %s: not the creator", user_id, project.id)
            raise PermissionDeniedError(message)

    def _commit(self, message: str) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("%s: %s", message, exc)
            raise PersistenceError(message) from exc
