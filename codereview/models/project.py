"""Project domain model and its membership roster."""

import uuid
from datetime import datetime, timezone

from codereview.models import db
from codereview.models.roles import ProjectRole, enum_values


class ProjectMember(db.Model):
    """One (project, user, role) row of a project's roster.

    Uniqueness over (project_id, user_id) lives in the database so that two
    concurrent "add member" calls cannot produce duplicate rows.
    """

    __tablename__ = "project_members"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role = db.Column(
        db.Enum(ProjectRole, name="project_role", values_callable=enum_values),
        nullable=False,
        default=ProjectRole.SUBMITTER,
    )
    joined_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("project_id", "user_id", name="uq_project_member"),
        db.Index("ix_project_members_project", "project_id"),
        db.Index("ix_project_members_user", "user_id"),
    )

    # Relationships
    project = db.relationship("Project", back_populates="members")
    user = db.relationship("User", back_populates="project_memberships")

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "role": self.role.value if self.role else None,
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
        }


class Project(db.Model):
    __tablename__ = "projects"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_by = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
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

    # Roster in join order; the integer PK breaks ties between equal timestamps.
    members = db.relationship(
        "ProjectMember",
        back_populates="project",
        order_by=lambda: (ProjectMember.joined_at, ProjectMember.id),
        cascade="all, delete-orphan",
    )
    # Submissions are removed explicitly by the membership manager so their
    # artifacts can be cleaned up; the FK cascade covers raw SQL deletes.
    submissions = db.relationship(
        "Submission",
        back_populates="project",
        lazy="dynamic",
        passive_deletes=True,
    )

    def to_dict(self, include_members: bool = True) -> dict:
        """Serialize the project, optionally with its roster."""
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_members:
            d["members"] = [m.to_dict() for m in self.members]
        return d

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.name}>"
