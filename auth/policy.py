"""
auth/policy.py -- Role-based access control table and route classification.

The policy is static: built once at import and never mutated. Changing the
route lists or the permission table is a code change and a redeploy, not a
runtime API.

Security decisions use only is_protected_route(), is_admin_route() and
has_permission(). role_rank() exists for UI visibility filtering (which menu
entries to render) and must never gate access -- a rank comparison would
silently grant new roles the permissions of every role ranked below them.

Layer rule: stdlib only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

ADMIN = "admin"
VOLUNTEER = "volunteer"
USER = "user"

ROLES: tuple[str, ...] = (USER, VOLUNTEER, ADMIN)

ROLE_PERMISSIONS: Mapping[str, frozenset[str]] = MappingProxyType(
    {
        ADMIN: frozenset(
            {
                "create_user",
                "read_user",
                "update_user",
                "delete_user",
                "create_report",
                "read_report",
                "update_report",
                "delete_report",
                "verify_report",
                "view_all_reports",
                "access_analytics",
                "manage_roles",
            }
        ),
        VOLUNTEER: frozenset(
            {
                "read_user",
                "create_report",
                "read_report",
                "update_report",
                "verify_report",
                "view_local_reports",
            }
        ),
        USER: frozenset(
            {
                "read_user",
                "create_report",
                "read_report",
                "update_report",
                "view_own_reports",
            }
        ),
    }
)

PROTECTED_ROUTES: tuple[str, ...] = ("/api/reports", "/api/users", "/api/upload", "/api/admin")
ADMIN_ONLY_ROUTES: tuple[str, ...] = ("/api/admin",)

# UI ordering only. See module docstring.
_ROLE_RANK = {USER: 1, VOLUNTEER: 2, ADMIN: 3}


@dataclass(frozen=True)
class RolePolicy:
    """Immutable route classification plus permission table.

    The request gate takes a RolePolicy instance so tests can exercise it
    against a custom route table without touching module globals.
    """

    protected_prefixes: tuple[str, ...] = PROTECTED_ROUTES
    admin_prefixes: tuple[str, ...] = ADMIN_ONLY_ROUTES
    permissions: Mapping[str, frozenset[str]] = field(default_factory=lambda: ROLE_PERMISSIONS)

    def is_protected_route(self, path: str) -> bool:
        # Admin routes are always protected, even if omitted from the protected list.
        return path.startswith(self.protected_prefixes) or self.is_admin_route(path)

    def is_admin_route(self, path: str) -> bool:
        return path.startswith(self.admin_prefixes)

    def has_permission(self, role: str, permission: str) -> bool:
        """Table lookup. Unknown roles have no permissions (fail closed)."""
        return permission in self.permissions.get(role, frozenset())


DEFAULT_POLICY = RolePolicy()


def is_protected_route(path: str) -> bool:
    return DEFAULT_POLICY.is_protected_route(path)


def is_admin_route(path: str) -> bool:
    return DEFAULT_POLICY.is_admin_route(path)


def has_permission(role: str, permission: str) -> bool:
    return DEFAULT_POLICY.has_permission(role, permission)


def is_admin(role: str) -> bool:
    return role == ADMIN


def is_valid_role(role: str) -> bool:
    return role in ROLES


def role_rank(role: str) -> int:
    """Return the UI display rank of a role; 0 for unknown roles."""
    return _ROLE_RANK.get(role, 0)


def is_visible_to(role: str, minimum_role: str) -> bool:
    """True if a UI element meant for minimum_role should be shown to role.

    Display hint only. Use has_permission() for anything that matters.
    """
    return role_rank(role) >= role_rank(minimum_role) > 0
