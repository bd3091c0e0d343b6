# core/permissions.py
from enum import Enum
from typing import FrozenSet


class UserRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"

    @property
    def permissions(self) -> FrozenSet["Permission"]:
        return permissions_for(self)


class Permission(str, Enum):
    NOTES_CREATE = "notes:create"
    NOTES_READ = "notes:read"
    NOTES_UPDATE = "notes:update"
    NOTES_DELETE = "notes:delete"
    USERS_INVITE = "users:invite"
    SUBSCRIPTION_UPGRADE = "subscription:upgrade"


_NOTE_PERMISSIONS = frozenset({
    Permission.NOTES_CREATE,
    Permission.NOTES_READ,
    Permission.NOTES_UPDATE,
    Permission.NOTES_DELETE,
})


def permissions_for(role: UserRole) -> FrozenSet[Permission]:
    """Fixed permission set of a role."""
    if role is UserRole.ADMIN:
        return _NOTE_PERMISSIONS | {Permission.USERS_INVITE, Permission.SUBSCRIPTION_UPGRADE}
    if role is UserRole.MEMBER:
        return _NOTE_PERMISSIONS
    raise ValueError(f"Unknown role: {role!r}")


def has_permission(role: UserRole, permission: Permission) -> bool:
    return permission in permissions_for(role)
