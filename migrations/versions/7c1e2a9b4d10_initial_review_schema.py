"""initial_review_schema

Create users, projects, project_members and submissions.

Revision ID: 7c1e2a9b4d10
Revises:
Create Date: 2026-10-18 09:30:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "7c1e2a9b4d10"
down_revision = None
branch_labels = None
depends_on = None

ROLE_VALUES = ("owner", "admin", "reviewer", "submitter")
STATUS_VALUES = ("pending", "in_review", "approved", "changes_requested")


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("password_hash", sa.String(length=256), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=True),
            sa.Column("avatar_url", sa.String(length=500), nullable=True),
            sa.Column("role", sa.Enum(*ROLE_VALUES, name="global_role"), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email", name="uq_users_email"),
        )

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("created_by", sa.String(length=36), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_projects_created_by", "projects", ["created_by"])

    if "project_members" not in existing_tables:
        op.create_table(
            "project_members",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.String(length=36), nullable=False),
            sa.Column("user_id", sa.String(length=36), nullable=False),
            sa.Column("role", sa.Enum(*ROLE_VALUES, name="project_role"), nullable=False),
            sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            # Makes concurrent re-adds of the same member resolve to one row.
            sa.UniqueConstraint("project_id", "user_id", name="uq_project_member"),
        )
        op.create_index("ix_project_members_project", "project_members", ["project_id"])
        op.create_index("ix_project_members_user", "project_members", ["user_id"])

    if "submissions" not in existing_tables:
        op.create_table(
            "submissions",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("project_id", sa.String(length=36), nullable=False),
            sa.Column("user_id", sa.String(length=36), nullable=False),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.Enum(*STATUS_VALUES, name="submission_status"), nullable=False),
            sa.Column("file_path", sa.String(length=500), nullable=True),
            sa.Column("file_name", sa.String(length=255), nullable=True),
            sa.Column("file_type", sa.String(length=100), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.CheckConstraint(
                "(file_path IS NULL AND file_name IS NULL AND file_type IS NULL)"
                " OR (file_path IS NOT NULL AND file_name IS NOT NULL AND file_type IS NOT NULL)",
                name="ck_submissions_artifact_complete",
            ),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_submissions_project_created", "submissions", ["project_id", "created_at"])
        op.create_index("ix_submissions_user", "submissions", ["user_id"])


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "submissions" in existing_tables:
        op.drop_index("ix_submissions_user", table_name="submissions")
        op.drop_index("ix_submissions_project_created", table_name="submissions")
        op.drop_table("submissions")
    if "project_members" in existing_tables:
        op.drop_index("ix_project_members_user", table_name="project_members")
        op.drop_index("ix_project_members_project", table_name="project_members")
        op.drop_table("project_members")
    if "projects" in existing_tables:
        op.drop_index("ix_projects_created_by", table_name="projects")
        op.drop_table("projects")
    if "users" in existing_tables:
        op.drop_table("users")

    if bind.dialect.name == "postgresql":
        for enum_name in ("submission_status", "project_role", "global_role"):
            sa.Enum(name=enum_name).drop(bind, checkfirst=True)
