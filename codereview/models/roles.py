"""
Role enumerations.

Account-level and project-level roles share the same lexical values but are
kept as two unrelated types. They are plain ``Enum`` subclasses (no ``str``
mixin), so ``GlobalRole.ADMIN == ProjectRole.ADMIN`` is False and a global
role can never satisfy a project-role check by accident.
"""

from enum import Enum


class GlobalRole(Enum):
    """Default role attached to a user account."""
    OWNER = "owner"
    ADMIN = "admin"
    REVIEWER = "reviewer"
    SUBMITTER = "submitter"


class ProjectRole(Enum):
    """Role a user holds inside one project. Authoritative for project checks."""
    OWNER = "owner"
    ADMIN = "admin"
    REVIEWER = "reviewer"
    SUBMITTER = "submitter"


# Roles a user may pick for themselves at registration.
SELF_REGISTRATION_ROLES = frozenset({GlobalRole.REVIEWER, GlobalRole.SUBMITTER})

# Project roles allowed to manage the roster.
MEMBER_MANAGER_ROLES = frozenset({ProjectRole.OWNER, ProjectRole.ADMIN})

# Project roles allowed to move a submission between statuses.
STATUS_REVIEWER_ROLES = frozenset({ProjectRole.ADMIN, ProjectRole.REVIEWER})


def enum_values(enum_cls) -> list[str]:
    """Column values for ``db.Enum(..., values_callable=enum_values)``."""
    return [member.value for member in enum_cls]
