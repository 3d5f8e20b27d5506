"""
Role-Based Access Control – the static viewer < staff < admin policy.
"""

from enum import Enum
from typing import Dict, Iterable, Union


class Role(str, Enum):
    VIEWER = "viewer"
    STAFF = "staff"
    ADMIN = "admin"


ROLE_PRIORITY: Dict[Role, int] = {
    Role.VIEWER: 0,
    Role.STAFF: 1,
    Role.ADMIN: 2,
}

RoleLike = Union[Role, str, None]


def parse_role(value: RoleLike) -> Role:
    """Coerce a stored role value to a Role; unknown values get least privilege."""
    if isinstance(value, Role):
        return value
    try:
        return Role(str(value or "").strip().lower())
    except ValueError:
        return Role.VIEWER


def has_permission(role: RoleLike, required_role: RoleLike) -> bool:
    return ROLE_PRIORITY[parse_role(role)] >= ROLE_PRIORITY[parse_role(required_role)]


def is_role_allowed(role: RoleLike, allowed_roles: Iterable[RoleLike]) -> bool:
    """Explicit allow-list check, no hierarchy involved."""
    return parse_role(role) in {parse_role(r) for r in allowed_roles}


def can_view(role: RoleLike) -> bool:
    # Every authenticated role can read.
    return True


def can_create(role: RoleLike) -> bool:
    return has_permission(role, Role.STAFF)


def can_edit(role: RoleLike) -> bool:
    return has_permission(role, Role.STAFF)


def can_delete(role: RoleLike) -> bool:
    return has_permission(role, Role.STAFF)


def can_upload_media(role: RoleLike) -> bool:
    return has_permission(role, Role.STAFF)


def can_manage_users(role: RoleLike) -> bool:
    return parse_role(role) is Role.ADMIN


def can_access_settings(role: RoleLike) -> bool:
    return parse_role(role) is Role.ADMIN


def permissions_for(role: RoleLike) -> Dict[str, bool]:
    """Full flag map for a role, as returned to clients after login."""
    return {
        "canView": can_view(role),
        "canCreate": can_create(role),
        "canEdit": can_edit(role),
        "canDelete": can_delete(role),
        "canUploadMedia": can_upload_media(role),
        "canManageUsers": can_manage_users(role),
        "canAccessSettings": can_access_settings(role),
    }
