"""
Auth Models — user accounts.

Users are created at registration, mutated by profile update and password
change, and never hard-deleted.
"""

import uuid
from datetime import datetime, timezone

from codereview.models import db
from codereview.models.roles import GlobalRole, enum_values


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = db.Column(db.String(255), nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    name = db.Column(db.String(200))
    avatar_url = db.Column(db.String(500))
    role = db.Column(
        db.Enum(GlobalRole, name="global_role", values_callable=enum_values),
        nullable=False,
        default=GlobalRole.SUBMITTER,
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

    __table_args__ = (
        db.UniqueConstraint("email", name="uq_users_email"),
    )

    # Relationships
    project_memberships = db.relationship(
        "ProjectMember", back_populates="user", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "avatar_url": self.avatar_url,
            "role": self.role.value if self.role else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<User {self.id}: {self.email}>"
