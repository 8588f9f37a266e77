"""Role definitions for marketplace access control.

Only the leaf modules are re-exported here. Import the resolver, the
test-mode manager and the permission catalog from their own modules.
"""

from src.lambdas.shared.auth.enums import ROLE_FLAGS, ROLE_ORDER, VALID_ROLES, Role
from src.lambdas.shared.auth.registry import LEGACY_ALIASES, RoleRegistry

__all__ = [
    "LEGACY_ALIASES",
    "ROLE_FLAGS",
    "ROLE_ORDER",
    "VALID_ROLES",
    "Role",
    "RoleRegistry",
]
