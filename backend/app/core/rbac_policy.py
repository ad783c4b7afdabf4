"""
RBAC Policy

Role and permission reference data plus the pure policy checks used by the
request-level gate in ``app.core.rbac``.

Roles:
- admin: Full access, including status changes on other admin accounts
- manager: Ticket triage and user management
- support: Ticket triage only
- customer: Own tickets and profile

A user may hold several roles; a check passes when the user holds ANY of the
required roles.
"""

from enum import Enum
from typing import Dict, FrozenSet, Iterable, Set

from app.core.exceptions import AuthorizationError


class RoleName(str, Enum):
    """Named permission bundles."""

    ADMIN = "admin"
    MANAGER = "manager"
    SUPPORT = "support"
    CUSTOMER = "customer"


class Permission(str, Enum):
    """Available permissions in the system."""

    # Own account
    PROFILE_VIEW = "profile:view"
    PROFILE_EDIT = "profile:edit"

    # Tickets
    TICKET_CREATE = "tickets:create"
    TICKET_VIEW_OWN = "tickets:view_own"
    TICKET_VIEW_ALL = "tickets:view_all"
    TICKET_REPLY = "tickets:reply"
    TICKET_UPDATE_STATUS = "tickets:update_status"

    # Users
    USER_VIEW = "users:view"
    USER_MANAGE = "users:manage"

    # Dashboard
    STATS_VIEW = "stats:view"

    # Admin
    ADMIN_FULL = "admin:full"


_CUSTOMER_PERMISSIONS = {
    Permission.PROFILE_VIEW, Permission.PROFILE_EDIT,
    Permission.TICKET_CREATE, Permission.TICKET_VIEW_OWN,
}

_SUPPORT_PERMISSIONS = {
    Permission.PROFILE_VIEW, Permission.PROFILE_EDIT,
    Permission.TICKET_VIEW_ALL, Permission.TICKET_REPLY, Permission.TICKET_UPDATE_STATUS,
    Permission.STATS_VIEW,
}

# Role to permissions mapping (seeded into the roles table)
ROLE_PERMISSIONS: Dict[RoleName, Set[Permission]] = {
    RoleName.ADMIN: _SUPPORT_PERMISSIONS | {
        Permission.USER_VIEW, Permission.USER_MANAGE, Permission.ADMIN_FULL,
    },
    RoleName.MANAGER: _SUPPORT_PERMISSIONS | {
        Permission.USER_VIEW, Permission.USER_MANAGE,
    },
    RoleName.SUPPORT: set(_SUPPORT_PERMISSIONS),
    RoleName.CUSTOMER: set(_CUSTOMER_PERMISSIONS),
}

ROLE_DESCRIPTIONS: Dict[RoleName, str] = {
    RoleName.ADMIN: "Full administrative access",
    RoleName.MANAGER: "Ticket triage and user management",
    RoleName.SUPPORT: "Ticket triage and replies",
    RoleName.CUSTOMER: "Customer self-service",
}

# Holding any one of these grants access to ticket operations and stats
STAFF_ROLES: FrozenSet[str] = frozenset({
    RoleName.ADMIN.value, RoleName.MANAGER.value, RoleName.SUPPORT.value,
})

# Holding any one of these grants access to user management
USER_MANAGER_ROLES: FrozenSet[str] = frozenset({
    RoleName.ADMIN.value, RoleName.MANAGER.value,
})

DEFAULT_ROLE = RoleName.CUSTOMER


def _names(roles: Iterable) -> Set[str]:
    return {r.value if isinstance(r, Enum) else str(r) for r in roles}


class RBACPolicy:
    """
    RBAC policy checks.

    Everything here is pure: callers load role memberships fresh for each
    request and pass them in.
    """

    @staticmethod
    def has_any_role(user_roles: Iterable[str], required: Iterable[str]) -> bool:
        """OR semantics: one shared role is enough."""
        return bool(_names(user_roles) & _names(required))

    @staticmethod
    def is_staff(user_roles: Iterable[str]) -> bool:
        return RBACPolicy.has_any_role(user_roles, STAFF_ROLES)

    @staticmethod
    def check_status_change(
        actor_id: int,
        actor_roles: Iterable[str],
        target_id: int,
        target_roles: Iterable[str],
    ) -> None:
        """Enforce self- and peer-protection for account status changes.

        Raises:
            AuthorizationError: when the actor targets their own account, or
                when a non-admin actor targets an admin account.
        """
        if actor_id == target_id:
            raise AuthorizationError("You cannot change your own account status")

        if RoleName.ADMIN.value in _names(target_roles) and RoleName.ADMIN.value not in _names(actor_roles):
            raise AuthorizationError("Only admins can change other admin account status")
