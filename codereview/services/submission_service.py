"""
Submission Lifecycle Manager — creation, listing, status changes, deletion.

Status workflow:
    pending ⇄ in_review ⇄ approved ⇄ changes_requested

Any of the four statuses may be set from any other; the manager only checks
*who* changes a status (project admins and reviewers), never *which*
transition it is. Re-applying the current status still refreshes
``updated_at``.

Artifact handling:
    create  — staged file is promoted to permanent storage before the row is
              written; if promotion fails no row is created, and if the row
              insert fails the promoted file is removed again.
    delete  — the stored file is removed before the row; a failure to remove
              it is logged and the row is deleted anyway.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from codereview.core.exceptions import (
    InvalidStatusError,
    NotFoundError,
    PermissionDeniedError,
    PersistenceError,
    ValidationError,
)
from codereview.models.project import Project
from codereview.models.roles import STATUS_REVIEWER_ROLES
from codereview.models.submission import Submission, SubmissionStatus
from codereview.services.project_service import ProjectMembershipManager
from codereview.services.storage import ArtifactStorage, StagedArtifact

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 255


def parse_status(value) -> SubmissionStatus:
    """Coerce ``value`` to a SubmissionStatus or raise InvalidStatusError."""
    if isinstance(value, SubmissionStatus):
        return value
    try:
        return SubmissionStatus(value)
    except (ValueError, TypeError):
        raise InvalidStatusError(value)


class SubmissionLifecycleManager:
    """Owns submissions and their review status."""

    def __init__(self, session, storage: ArtifactStorage, memberships: ProjectMembershipManager | None = None):
        self.session = session
        self.storage = storage
        self.memberships = memberships or ProjectMembershipManager(session, storage)

    def _load(self, submission_id: str) -> Submission:
        submission = self.session.get(Submission, submission_id)
        if submission is None:
            raise NotFoundError("Submission", submission_id)
        return submission

    def _require_project(self, project_id: str) -> None:
        if self.session.get(Project, project_id) is None:
            raise NotFoundError("Project", project_id)

    # ═════════════════════════════════════════════════════════════════
    # Create
    # ═════════════════════════════════════════════════════════════════

    def create_submission(
        self,
        project_id: str,
        author_id: str,
        title: str,
        description: str | None = None,
        artifact: StagedArtifact | None = None,
    ) -> Submission:
        """Create a pending submission, promoting the staged artifact first."""
        try:
            title = (title or "").strip()
            if not title:
                raise ValidationError("Validation failed", details={"title": "Title is required"})
            if len(title) > MAX_TITLE_LENGTH:
                raise ValidationError(
                    "Validation failed",
                    details={"title": f"Title must be at most {MAX_TITLE_LENGTH} characters"},
                )
            self._require_project(project_id)
            self.memberships.require_member(project_id, author_id, "You are not a member of this project")
        except Exception:
            if artifact is not None:
                self.storage.discard(artifact)
            raise

        file_path = file_name = file_type = None
        if artifact is not None:
            try:
                file_path = self.storage.promote(artifact)
            except PersistenceError:
                self.storage.discard(artifact)
                raise
            file_name = artifact.original_name
            file_type = artifact.content_type

        submission = Submission(
            project_id=project_id,
            user_id=author_id,
            title=title,
            description=description.strip() if isinstance(description, str) else description,
            status=SubmissionStatus.PENDING,
            file_path=file_path,
            file_name=file_name,
            file_type=file_type,
        )
        self.session.add(submission)
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Could not create submission in project %s: %s", project_id, exc)
            if file_path is not None:
                self._delete_artifact(file_path)
            raise PersistenceError("Could not create submission") from exc

        logger.info(
            "Submission created id=%s project=%s author=%s artifact=%s",
            submission.id, project_id, author_id, file_path is not None,
        )
        return submission

    # ═════════════════════════════════════════════════════════════════
    # Read
    # ═════════════════════════════════════════════════════════════════

    def get_submission(self, submission_id: str, acting_user_id: str) -> Submission:
        """Return a submission to a member of its project."""
        submission = self._load(submission_id)
        self.memberships.require_member(
            submission.project_id, acting_user_id, "You are not a member of this project",
        )
        return submission

    def list_by_project(self, project_id: str, acting_user_id: str) -> list[Submission]:
        """All submissions of a project, newest first. Members only."""
        self._require_project(project_id)
        self.memberships.require_member(project_id, acting_user_id, "You are not a member of this project")
        return (
            self.session.query(Submission)
            .filter_by(project_id=project_id)
            .order_by(Submission.created_at.desc())
            .all()
        )

    # ═════════════════════════════════════════════════════════════════
    # Status
    # ═════════════════════════════════════════════════════════════════

    def update_status(self, submission_id: str, new_status, acting_user_id: str) -> Submission:
        """Set a submission's status. Project admins and reviewers only."""
        status = parse_status(new_status)

        submission = self._load(submission_id)
        self.memberships.require_project_role(
            submission.project_id, acting_user_id, STATUS_REVIEWER_ROLES,
            "Only reviewers and admins can update submission status",
        )

        previous = submission.status
        submission.status = status
        # Explicit: an unchanged status would not trigger the onupdate hook.
        submission.updated_at = datetime.now(timezone.utc)
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Could not update status of submission %s: %s", submission_id, exc)
            raise PersistenceError("Could not update submission status") from exc

        logger.info(
            "Submission %s status %s -> %s by %s",
            submission_id, previous.value if previous else None, status.value, acting_user_id,
        )
        return submission

    # ═════════════════════════════════════════════════════════════════
    # Delete
    # ═════════════════════════════════════════════════════════════════

    def delete_submission(self, submission_id: str, acting_user_id: str) -> None:
        """Delete a submission and its artifact. Author only."""
        submission = self._load(submission_id)
        if submission.user_id != acting_user_id:
            logger.warning("User %s denied deleting submission %s: not the author", acting_user_id, submission_id)
            raise PermissionDeniedError("You can only delete your own submissions")

        if submission.file_path:
            self._delete_artifact(submission.file_path)

        self.session.delete(submission)
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Could not delete submission %s: %s", submission_id, exc)
            raise PersistenceError("Could not delete submission") from exc
        logger.info("Submission deleted id=%s by %s", submission_id, acting_user_id)

    def _delete_artifact(self, file_path: str) -> None:
        """Best-effort blob removal."""
        try:
            self.storage.delete(file_path)
        except PersistenceError as exc:
            logger.warning("Could not delete artifact %s: %s", file_path, exc.message)
