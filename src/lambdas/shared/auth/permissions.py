"""Permission catalog for marketplace roles.

Maps named capabilities to the roles that hold them. A permission may
name a parent; holding the parent grants the child. Admin holds every
permission held by a role it expands into, so permissions only listed for
the reserved operator tier (RoleRegistry.admin_reserved) stay out of reach.

Unknown permission names raise KeyError: they are programming mistakes,
not user input.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from src.lambdas.shared.auth.enums import Role
from src.lambdas.shared.auth.registry import RoleRegistry


class PermissionCategory(StrEnum):
    AD_MANAGEMENT = "ad_management"
    PUBLISHER = "publisher"
    ADMIN = "admin"
    ANALYTICS = "analytics"
    API = "api"
    PAYMENTS = "payments"
    SYSTEM = "system"


@dataclass(frozen=True)
class Permission:
    """A single catalog entry."""

    allowed_roles: frozenset[Role]
    description: str
    category: PermissionCategory
    is_sensitive: bool = False
    parent: str | None = None


_ADV = Role.ADVERTISER
_PUB = Role.PUBLISHER
_ADM = Role.ADMIN
_STK = Role.STAKEHOLDER
_VWR = Role.VIEWER
_DEV = Role.DEVELOPER


def _p(roles, description, category, **kwargs) -> Permission:
    return Permission(frozenset(roles), description, category, **kwargs)


PERMISSIONS: dict[str, Permission] = {
    # Ad management
    "CREATE_ADS": _p({_ADV, _ADM}, "Create new ad campaigns", PermissionCategory.AD_MANAGEMENT),
    "EDIT_ADS": _p({_ADV, _ADM}, "Edit existing ad campaigns", PermissionCategory.AD_MANAGEMENT),
    "VIEW_OWN_ADS": _p({_ADV, _ADM}, "View ads created by the user", PermissionCategory.AD_MANAGEMENT),
    "DELETE_ADS": _p(
        {_ADV, _ADM}, "Delete ad campaigns", PermissionCategory.AD_MANAGEMENT,
        is_sensitive=True, parent="EDIT_ADS",
    ),
    "MANAGE_CAMPAIGNS": _p({_ADV, _ADM}, "Manage advertising campaigns", PermissionCategory.AD_MANAGEMENT),
    "CREATE_CAMPAIGN": _p(set(), "Create campaigns", PermissionCategory.AD_MANAGEMENT, parent="MANAGE_CAMPAIGNS"),
    "EDIT_CAMPAIGN": _p(set(), "Edit campaigns", PermissionCategory.AD_MANAGEMENT, parent="MANAGE_CAMPAIGNS"),
    "DELETE_CAMPAIGN": _p(
        set(), "Delete campaigns", PermissionCategory.AD_MANAGEMENT,
        is_sensitive=True, parent="MANAGE_CAMPAIGNS",
    ),
    # Publisher
    "APPROVE_ADS": _p({_PUB, _ADM}, "Approve or reject ad submissions", PermissionCategory.PUBLISHER),
    "MANAGE_AD_PLACEMENTS": _p({_PUB, _ADM}, "Manage ad placements", PermissionCategory.PUBLISHER),
    "UPDATE_PLACEMENT_SETTINGS": _p(
        set(), "Update placement settings", PermissionCategory.PUBLISHER, parent="MANAGE_AD_PLACEMENTS",
    ),
    "DELETE_PLACEMENT": _p(
        set(), "Delete ad placements", PermissionCategory.PUBLISHER,
        is_sensitive=True, parent="MANAGE_AD_PLACEMENTS",
    ),
    "VIEW_PUBLISHER_STATS": _p({_PUB, _ADM}, "View publisher statistics", PermissionCategory.ANALYTICS),
    # Payments
    "VIEW_EARNINGS": _p({_PUB, _ADV, _ADM}, "View platform earnings", PermissionCategory.PAYMENTS),
    "REQUEST_WITHDRAWAL": _p(set(), "Request withdrawal of earnings", PermissionCategory.PAYMENTS, parent="VIEW_EARNINGS"),
    "MANAGE_PAYMENT_METHODS": _p({_PUB, _ADV, _ADM}, "Manage payment methods", PermissionCategory.PAYMENTS),
    "VIEW_PAYMENT_HISTORY": _p({_PUB, _ADV, _ADM}, "View payment history", PermissionCategory.PAYMENTS),
    # Admin
    "VIEW_ALL_ADS": _p({_ADM}, "View all ads in the system", PermissionCategory.ADMIN, is_sensitive=True),
    "MANAGE_USERS": _p({_ADM}, "Manage user accounts", PermissionCategory.ADMIN, is_sensitive=True),
    "MANAGE_ROLES": _p({_ADM}, "Assign and revoke user roles", PermissionCategory.ADMIN, is_sensitive=True),
    # Analytics
    "VIEW_ANALYTICS": _p({_VWR, _ADV, _PUB, _ADM, _STK}, "View general analytics", PermissionCategory.ANALYTICS),
    "VIEW_ADVANCED_ANALYTICS": _p(
        {_ADV, _PUB, _ADM, _STK}, "View advanced analytics", PermissionCategory.ANALYTICS,
        parent="VIEW_ANALYTICS",
    ),
    "EXPORT_ANALYTICS": _p(
        set(), "Export analytics data", PermissionCategory.ANALYTICS, parent="VIEW_ADVANCED_ANALYTICS",
    ),
    "VIEW_FINANCIAL_REPORTS": _p(
        {_STK, _ADM}, "View financial reports and forecasts", PermissionCategory.ANALYTICS, is_sensitive=True,
    ),
    # API
    "MANAGE_API_KEYS": _p({_ADM, _PUB, _ADV}, "Create and manage API keys", PermissionCategory.API),
    "CREATE_API_KEY": _p(set(), "Create API keys", PermissionCategory.API, parent="MANAGE_API_KEYS"),
    "REVOKE_API_KEY": _p(
        set(), "Revoke API keys", PermissionCategory.API, is_sensitive=True, parent="MANAGE_API_KEYS",
    ),
    "USE_API": _p({_ADV, _PUB, _ADM, _STK, _DEV}, "Use the public API", PermissionCategory.API),
    # Platform operator tooling
    "MANAGE_SYSTEM": _p({_DEV}, "Manage platform settings", PermissionCategory.SYSTEM, is_sensitive=True),
    "VIEW_SYSTEM_LOGS": _p(set(), "View system logs", PermissionCategory.SYSTEM, parent="MANAGE_SYSTEM"),
}


def _held(entry: Permission, role: Role) -> bool:
    if role in entry.allowed_roles:
        return True
    if entry.parent is not None:
        return _held(PERMISSIONS[entry.parent], role)
    return False


def has_permission(permission: str, role: Role, registry: RoleRegistry | None = None) -> bool:
    """Whether a role holds a permission, directly or through its parent chain.

    Admin also holds whatever any role it expands into holds, so the
    registry's reserved tier decides what stays out of admin's reach.

    Raises:
        KeyError: Unknown permission name
    """
    entry = PERMISSIONS[permission]
    if _held(entry, role):
        return True
    if role == Role.ADMIN:
        registry = registry or RoleRegistry()
        return any(_held(entry, implied) for implied in registry.admin_roles())
    return False


def permissions_for_role(role: Role, registry: RoleRegistry | None = None) -> list[str]:
    """Sorted names of every permission the role holds."""
    registry = registry or RoleRegistry()
    return sorted(name for name in PERMISSIONS if has_permission(name, role, registry))
