# QMR Guard - Role & permission registry (static, read-only after import)
import enum
from types import MappingProxyType
from typing import Mapping


class Role(str, enum.Enum):
    root = "root"
    admin = "admin"
    teacher = "teacher"


# Higher rank outranks lower rank; equal ranks never outrank each other
ROLE_HIERARCHY: Mapping[Role, int] = MappingProxyType({
    Role.root: 3,
    Role.admin: 2,
    Role.teacher: 1,
})

PERMISSIONS: Mapping[Role, frozenset[str]] = MappingProxyType({
    Role.root: frozenset({
        "create_admin",
        "create_teacher",
        "update_admin",
        "update_teacher",
        "delete_admin",
        "delete_teacher",
        "view_all_users",
        "view_admins",
        "view_teachers",
        "update_own_profile",
        "change_admin_status",
        "change_teacher_status",
        "bulk_operations",
        "view_audit_logs",
        "manage_system",
    }),
    Role.admin: frozenset({
        "view_admins",
        "view_teachers",
        "update_teacher",
        "update_own_profile",
        "change_teacher_status",
    }),
    Role.teacher: frozenset({
        "view_teachers",
        "update_own_profile",
    }),
})


def coerce_role(role) -> Role | None:
    """Map a Role or its string value to Role; None for anything unknown."""
    if isinstance(role, Role):
        return role
    try:
        return Role(role)
    except ValueError:
        return None


class PermissionRegistry:
    """Lookup over the role hierarchy and per-role permission sets."""

    def __init__(
        self,
        permissions: Mapping[Role, frozenset[str]] = PERMISSIONS,
        hierarchy: Mapping[Role, int] = ROLE_HIERARCHY,
    ):
        self._permissions = MappingProxyType({r: frozenset(p) for r, p in permissions.items()})
        self._hierarchy = MappingProxyType(dict(hierarchy))
        self._known = frozenset().union(*self._permissions.values())

    @property
    def permissions(self) -> Mapping[Role, frozenset[str]]:
        return self._permissions

    @property
    def known_permissions(self) -> frozenset[str]:
        return self._known

    def permissions_for(self, role) -> frozenset[str]:
        r = coerce_role(role)
        if r is None:
            return frozenset()
        return self._permissions.get(r, frozenset())

    def has_permission(self, role, permission: str) -> bool:
        return permission in self.permissions_for(role)

    def is_known_permission(self, permission: str) -> bool:
        return permission in self._known

    def rank(self, role) -> int | None:
        r = coerce_role(role)
        return self._hierarchy.get(r) if r is not None else None

    def is_higher_role(self, role_a, role_b) -> bool:
        """True only when role_a strictly outranks role_b."""
        a, b = self.rank(role_a), self.rank(role_b)
        if a is None or b is None:
            return False
        return a > b


DEFAULT_REGISTRY = PermissionRegistry()


# --- Principal role helpers ---
def is_root(principal) -> bool:
    return principal is not None and principal.role == Role.root


def is_admin(principal) -> bool:
    return principal is not None and principal.role == Role.admin


def is_teacher(principal) -> bool:
    return principal is not None and principal.role == Role.teacher


def is_admin_or_root(principal) -> bool:
    return principal is not None and principal.role in (Role.admin, Role.root)


def is_teacher_or_higher(principal) -> bool:
    return principal is not None and principal.role in (Role.teacher, Role.admin, Role.root)
