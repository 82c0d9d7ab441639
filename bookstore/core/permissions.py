"""
Permission system for RBAC

Roles carry a default permission set; principals store their own permission
list. The admin role resolves to every permission no matter what is stored,
so admins created before permission lists existed keep full access.

authorize() is a pure decision over a principal and a requirement. A denial
is returned as a value; the FastAPI dependencies at the bottom of this module
turn it into a ForbiddenError.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, FrozenSet, Iterable, List, Optional, Union

from fastapi import Depends

from bookstore.core.exceptions import ForbiddenError, InvalidArgumentError


class Permission(str, Enum):
    """Closed set of capabilities, one per admin action category."""

    VIEW_DASHBOARD = "view_dashboard"
    MANAGE_BOOKS = "manage_books"
    MANAGE_ORDERS = "manage_orders"
    MANAGE_USERS = "manage_users"
    VIEW_ANALYTICS = "view_analytics"
    MANAGE_SETTINGS = "manage_settings"
    EXPORT_DATA = "export_data"
    MANAGE_PERMISSIONS = "manage_permissions"


class Role(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    STAFF = "staff"
    CUSTOMER = "user"


# "customer" is accepted on input; "user" is what gets stored
ROLE_ALIASES = {"customer": Role.CUSTOMER}

STAFF_ROLES: FrozenSet[Role] = frozenset({Role.ADMIN, Role.MANAGER, Role.STAFF})

ALL_PERMISSIONS: FrozenSet[str] = frozenset(p.value for p in Permission)

ROLE_DEFAULT_PERMISSIONS = {
    Role.ADMIN: tuple(Permission),
    Role.MANAGER: (
        Permission.VIEW_DASHBOARD,
        Permission.MANAGE_BOOKS,
        Permission.MANAGE_ORDERS,
        Permission.VIEW_ANALYTICS,
        Permission.EXPORT_DATA,
    ),
    Role.STAFF: (
        Permission.VIEW_DASHBOARD,
        Permission.MANAGE_BOOKS,
        Permission.MANAGE_ORDERS,
    ),
    Role.CUSTOMER: (),
}

ROLE_CATALOG = [
    {"name": Role.ADMIN.value, "display_name": "Administrator", "description": "Full system access"},
    {"name": Role.MANAGER.value, "display_name": "Manager", "description": "Management access to books, orders, and analytics"},
    {"name": Role.STAFF.value, "display_name": "Staff", "description": "Basic access to books and orders"},
    {"name": Role.CUSTOMER.value, "display_name": "Customer", "description": "Customer account"},
]

PERMISSION_CATALOG = [
    {"name": Permission.VIEW_DASHBOARD.value, "display_name": "View Dashboard", "description": "Access to admin dashboard overview"},
    {"name": Permission.MANAGE_BOOKS.value, "display_name": "Manage Books", "description": "Create, edit, and delete books"},
    {"name": Permission.MANAGE_ORDERS.value, "display_name": "Manage Orders", "description": "View and update order status"},
    {"name": Permission.MANAGE_USERS.value, "display_name": "Manage Users", "description": "View and manage customer accounts"},
    {"name": Permission.VIEW_ANALYTICS.value, "display_name": "View Analytics", "description": "Access to sales and analytics data"},
    {"name": Permission.MANAGE_SETTINGS.value, "display_name": "Manage Settings", "description": "System configuration access"},
    {"name": Permission.EXPORT_DATA.value, "display_name": "Export Data", "description": "Export system data and reports"},
    {"name": Permission.MANAGE_PERMISSIONS.value, "display_name": "Manage Permissions", "description": "Manage user roles and permissions"},
]


def parse_role(value: Union[str, Role]) -> Role:
    """
    Resolve a role name (or alias) to a Role.

    Raises:
        InvalidArgumentError: If the name is not a known role
    """
    if isinstance(value, Role):
        return value
    normalized = str(value).strip().lower()
    if normalized in ROLE_ALIASES:
        return ROLE_ALIASES[normalized]
    try:
        return Role(normalized)
    except ValueError:
        raise InvalidArgumentError(f"Invalid role: {value}", field="role")


def parse_permission(value: Union[str, Permission]) -> Permission:
    """Resolve a permission tag, rejecting anything outside the enumeration."""
    if isinstance(value, Permission):
        return value
    try:
        return Permission(str(value).strip())
    except ValueError:
        raise InvalidArgumentError(f"Invalid permission: {value}", field="permissions")


def parse_permissions(values: Iterable[Union[str, Permission]]) -> List[str]:
    """Validate a permission list and return it deduplicated, as plain strings."""
    seen = []
    for value in values:
        tag = parse_permission(value).value
        if tag not in seen:
            seen.append(tag)
    return seen


def default_permissions_for_role(role: Union[str, Role]) -> List[str]:
    """Default permission list for a role, in catalog order."""
    return [p.value for p in ROLE_DEFAULT_PERMISSIONS[parse_role(role)]]


def role_of(principal: Any) -> Optional[Role]:
    """Role of a principal, or None when the stored value is not a known role."""
    try:
        return parse_role(getattr(principal, "role", None) or "")
    except InvalidArgumentError:
        return None


def effective_permissions(principal: Any) -> FrozenSet[str]:
    """
    Resolve the permissions a principal actually holds.

    This is the single place the admin rule lives: an admin holds every
    permission even when the stored list is empty, missing or null.
    """
    if role_of(principal) is Role.ADMIN:
        return ALL_PERMISSIONS
    stored = getattr(principal, "permissions", None) or ()
    return frozenset(str(getattr(p, "value", p)) for p in stored)


# =============================================================================
# DECISIONS AND REQUIREMENTS
# =============================================================================

@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision(allowed=True)


def deny(reason: str) -> Decision:
    return Decision(allowed=False, reason=reason)


@dataclass(frozen=True)
class HasPermission:
    permission: Permission

    def __post_init__(self):
        object.__setattr__(self, "permission", parse_permission(self.permission))


@dataclass(frozen=True)
class AnyOfRoles:
    roles: FrozenSet[Role]

    def __post_init__(self):
        object.__setattr__(self, "roles", frozenset(parse_role(r) for r in self.roles))


Requirement = Union[HasPermission, AnyOfRoles]


def authorize(principal: Any, requirement: Requirement) -> Decision:
    """
    Decide whether a principal satisfies a requirement.

    Args:
        principal: Object exposing ``role`` and ``permissions``
        requirement: HasPermission or AnyOfRoles

    Returns:
        ALLOW, or a denial carrying the reason
    """
    if isinstance(requirement, HasPermission):
        tag = requirement.permission.value
        if tag in effective_permissions(principal):
            return ALLOW
        return deny(f"missing permission: {tag}")

    if isinstance(requirement, AnyOfRoles):
        if role_of(principal) in requirement.roles:
            return ALLOW
        return deny("role not authorized")

    raise TypeError(f"Unsupported requirement: {requirement!r}")


def can_change_role(actor: Any, target: Any, new_role: Union[str, Role]) -> Decision:
    """
    Decide whether ``actor`` may give ``target`` the role ``new_role``.

    An admin can never demote themselves; everything else needs
    manage_permissions.
    """
    new_role = parse_role(new_role)
    is_self = getattr(actor, "id", None) is not None and actor.id == getattr(target, "id", None)

    if is_self and role_of(actor) is Role.ADMIN and new_role is not Role.ADMIN:
        return deny("cannot demote yourself from admin role")

    return authorize(actor, HasPermission(Permission.MANAGE_PERMISSIONS))


def enforce(principal: Any, requirement: Requirement) -> None:
    """Raise ForbiddenError when authorize() denies."""
    decision = authorize(principal, requirement)
    if not decision:
        raise ForbiddenError(f"Access denied: {decision.reason}")


# =============================================================================
# FASTAPI DEPENDENCIES
# =============================================================================

def require_permission(permission: Union[str, Permission]):
    """
    Dependency that requires a permission on top of a staff role.

    Usage:
        @router.get("/users")
        async def list_users(
            user: User = Depends(require_permission(Permission.MANAGE_USERS))
        ):
            ...
    """
    from bookstore.api.deps import get_current_staff

    requirement = HasPermission(permission)

    async def permission_checker(current_user=Depends(get_current_staff)):
        enforce(current_user, requirement)
        return current_user

    return permission_checker


def require_roles(*roles: Union[str, Role]):
    """
    Dependency that requires one of the given roles.

    Usage:
        @router.put("/{id}/status")
        async def override(user: User = Depends(require_roles(Role.ADMIN))):
            ...
    """
    from bookstore.api.deps import get_current_user

    requirement = AnyOfRoles(frozenset(roles))

    async def role_checker(current_user=Depends(get_current_user)):
        enforce(current_user, requirement)
        return current_user

    return role_checker
