"""Shared models for the marketplace dashboard.

This module exports the entity models used by the role subsystem:
- User: Dashboard user profile with legacy capability flags
- RoleGrant: One (user, role) permission record
- TestModeSession: Time-bounded role override
- RoleChangeEvent: Transient broadcast record for a role switch
"""

from src.lambdas.shared.models.role_change_event import RoleChangeEvent
from src.lambdas.shared.models.role_grant import RoleGrant
from src.lambdas.shared.models.testmode_session import TestModeSession
from src.lambdas.shared.models.user import User, flags_from_grants

__all__ = [
    "RoleChangeEvent",
    "RoleGrant",
    "TestModeSession",
    "User",
    "flags_from_grants",
]
