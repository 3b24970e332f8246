# policy.py - Authorization predicates for the multi-tenant model
#
# Two admin notions exist on purpose:
#   has_admin_role  - the user's role field equals "admin" (route gate)
#   is_org_creator  - the user created the organization (ownership check)
# They can diverge after a role change; organization updates require both.

from typing import Any, Optional

from errors import Forbidden, ValidationFailed
from models import UserRole

FIXED_ROLES = tuple(role.value for role in UserRole)


def _org_id_of(user: Any) -> Optional[str]:
    return getattr(user, "org_id", None)


# ============================================================
# PREDICATES
# ============================================================

def is_org_member(user: Any, org_id: Optional[str]) -> bool:
    user_org = _org_id_of(user)
    return user_org is not None and org_id is not None and str(user_org) == str(org_id)


def is_org_creator(user: Any, org: Any) -> bool:
    return org is not None and str(org.created_by) == str(user.id)


def has_admin_role(user: Any) -> bool:
    return getattr(user, "role", None) == UserRole.ADMIN.value


def can_access_task(user: Any, task: Any) -> bool:
    return task is not None and is_org_member(user, task.org_id)


def is_assignable_role(role: Optional[str]) -> bool:
    # Organization custom role labels are not accepted here
    return role in FIXED_ROLES


# ============================================================
# ENFORCEMENT HELPERS
# ============================================================

def ensure_org_member(user: Any, org_id: Optional[str],
                      detail: str = "Not authorized to access this organization") -> None:
    if not is_org_member(user, org_id):
        raise Forbidden(detail)


def ensure_org_creator(user: Any, org: Any) -> None:
    if not is_org_creator(user, org):
        raise Forbidden("Only an admin can update the organization's details")


def ensure_task_access(user: Any, task: Any,
                       detail: str = "Not authorized to access this task") -> None:
    if not can_access_task(user, task):
        raise Forbidden(detail)


def ensure_assignable_role(role: Optional[str]) -> None:
    if not is_assignable_role(role):
        raise ValidationFailed("Invalid Role")
