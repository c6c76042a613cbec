"""Submission model and its review status workflow."""

import uuid
from datetime import datetime, timezone
from enum import Enum

from codereview.models import db
from codereview.models.roles import enum_values


class SubmissionStatus(str, Enum):
    """Review states. Any state may be set from any other."""
    PENDING = "pending"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    CHANGES_REQUESTED = "changes_requested"


SUBMISSION_STATUSES = frozenset(s.value for s in SubmissionStatus)


class Submission(db.Model):
    """A work item submitted to a project, optionally with one attached file."""

    __tablename__ = "submissions"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(
        db.Enum(SubmissionStatus, name="submission_status", values_callable=enum_values),
        nullable=False,
        default=SubmissionStatus.PENDING,
    )

    # Artifact descriptor: all three set or all three NULL.
    file_path = db.Column(db.String(500), nullable=True)
    file_name = db.Column(db.String(255), nullable=True)
    file_type = db.Column(db.String(100), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint(
            "(file_path IS NULL AND file_name IS NULL AND file_type IS NULL)"
            " OR (file_path IS NOT NULL AND file_name IS NOT NULL AND file_type IS NOT NULL)",
            name="ck_submissions_artifact_complete",
        ),
        db.Index("ix_submissions_project_created", "project_id", "created_at"),
        db.Index("ix_submissions_user", "user_id"),
    )

    # Relationships
    project = db.relationship("Project", back_populates="submissions")
    author = db.relationship("User")

    @property
    def has_artifact(self) -> bool:
        return self.file_path is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value if self.status else None,
            "file_path": self.file_path,
            "file_name": self.file_name,
            "file_type": self.file_type,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Submission {self.id}: {self.status}>"
