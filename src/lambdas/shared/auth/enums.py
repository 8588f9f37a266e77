"""Canonical enum definitions for marketplace roles.

This module defines the valid roles used throughout the application.
Roles are validated at decoration time and at route-table load time to
catch typos early.

All role-related enums should be defined here to ensure a single source of truth.
"""

from __future__ import annotations

from enum import StrEnum


class Role(StrEnum):
    """Canonical user roles for role-based access control.

    Declaration order is significant: it is the deterministic order used
    when the resolver has to pick a fallback current role (viewer first).

    - viewer: every account, never revocable
    - advertiser: creates and funds ad campaigns
    - publisher: owns ad spaces and approves placements
    - admin: marketplace administration (all business roles)
    - stakeholder: financial and reporting access
    - developer: platform-operator tooling, outside admin authority
    """

    VIEWER = "viewer"
    ADVERTISER = "advertiser"
    PUBLISHER = "publisher"
    ADMIN = "admin"
    STAKEHOLDER = "stakeholder"
    DEVELOPER = "developer"


# Declaration order, viewer first
ROLE_ORDER: tuple[Role, ...] = tuple(Role)

# Immutable set for O(1) validation
VALID_ROLES: frozenset[str] = frozenset(role.value for role in Role)

# Legacy boolean flag on the user profile for each grantable role.
# viewer has no flag: it is implied for every account.
ROLE_FLAGS: dict[Role, str] = {
    Role.ADVERTISER: "is_advertiser",
    Role.PUBLISHER: "is_publisher",
    Role.ADMIN: "is_admin",
    Role.STAKEHOLDER: "is_stakeholder",
    Role.DEVELOPER: "is_developer",
}
