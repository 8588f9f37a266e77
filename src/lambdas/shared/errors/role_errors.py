"""Role and access-control error types.

Every error carries a code, a safe message and an HTTP status so the
dashboard can convert it to a response in one place.

Error codes:
ROLE_001-ROLE_007 for role resolution, role switching and test mode.

Propagation policy:
    The registry raises InvalidRoleError for unknown names. The resolver
    never raises for normal edge cases (missing grant, expired test
    session). Only the role-change authorizer and the route guard surface
    user-visible failures.
"""

from __future__ import annotations

from enum import Enum


class RoleErrorCode(str, Enum):
    """Role error codes returned to clients.

    These codes enable client-side error handling without exposing
    internal details.
    """

    ROLE_001 = "ROLE_001"  # Invalid role name
    ROLE_002 = "ROLE_002"  # No resolvable identity
    ROLE_003 = "ROLE_003"  # Role not available to user
    ROLE_004 = "ROLE_004"  # User not found
    ROLE_005 = "ROLE_005"  # Storage failure
    ROLE_006 = "ROLE_006"  # Test mode unavailable
    ROLE_007 = "ROLE_007"  # Protected grant


ROLE_ERROR_MESSAGES: dict[RoleErrorCode, str] = {
    RoleErrorCode.ROLE_001: "Invalid role",
    RoleErrorCode.ROLE_002: "Authentication required",
    RoleErrorCode.ROLE_003: "Role not available",
    RoleErrorCode.ROLE_004: "User not found",
    RoleErrorCode.ROLE_005: "Internal server error",
    RoleErrorCode.ROLE_006: "Test mode unavailable",
    RoleErrorCode.ROLE_007: "Grant cannot be revoked",
}

ROLE_ERROR_STATUS: dict[RoleErrorCode, int] = {
    RoleErrorCode.ROLE_001: 400,
    RoleErrorCode.ROLE_002: 401,
    RoleErrorCode.ROLE_003: 403,
    RoleErrorCode.ROLE_004: 404,
    RoleErrorCode.ROLE_005: 500,
    RoleErrorCode.ROLE_006: 403,
    RoleErrorCode.ROLE_007: 400,
}


class RoleError(Exception):
    """Base class for role errors with a client-facing code."""

    code: RoleErrorCode = RoleErrorCode.ROLE_005

    def __init__(self, message: str | None = None) -> None:
        self.message = message or ROLE_ERROR_MESSAGES[self.code]
        self.status_code = ROLE_ERROR_STATUS[self.code]
        super().__init__(self.message)


class InvalidRoleError(RoleError, ValueError):
    """Raised for role strings that are not registered roles or aliases.

    Also raised at decoration time and route-table load time, where it
    indicates a programming mistake and should stop the application.
    """

    code = RoleErrorCode.ROLE_001

    def __init__(self, role: str, valid_roles: frozenset[str]) -> None:
        self.role = role
        self.valid_roles = valid_roles
        super().__init__(f"Invalid role '{role[:64]}'. Valid roles: {sorted(valid_roles)}")


class UnauthenticatedError(RoleError):
    """No resolvable identity on the request."""

    code = RoleErrorCode.ROLE_002


class ForbiddenRoleError(RoleError):
    """The requested role is not among the user's available roles.

    The message names the denied role only, never the user's other roles.
    """

    code = RoleErrorCode.ROLE_003

    def __init__(self, role: str) -> None:
        self.role = role
        super().__init__(f"Role '{role}' is not available")


class UserNotFoundError(RoleError):
    """Referenced user profile does not exist."""

    code = RoleErrorCode.ROLE_004

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__()


class RoleStoreError(RoleError):
    """Storage failure while reading or writing role state."""

    code = RoleErrorCode.ROLE_005


class TestModeUnavailableError(RoleError):
    """Test mode cannot be enabled (production tier or invalid request)."""

    __test__ = False  # keep pytest from collecting this class

    code = RoleErrorCode.ROLE_006


class ProtectedGrantError(RoleError):
    """Attempt to revoke a grant that normal flows may not revoke (viewer)."""

    code = RoleErrorCode.ROLE_007

    def __init__(self, role: str) -> None:
        self.role = role
        super().__init__(f"Grant '{role}' cannot be revoked")


def role_error_response(error: RoleError) -> dict:
    """Create a JSON response dict for a role error.

    Args:
        error: The RoleError to render

    Returns:
        Dict suitable for JSONResponse with error details.

    Example:
        return JSONResponse(
            status_code=error.status_code,
            content=role_error_response(error),
        )
    """
    message = error.message
    # Internal errors never leak storage details
    if error.code == RoleErrorCode.ROLE_005:
        message = ROLE_ERROR_MESSAGES[RoleErrorCode.ROLE_005]
    return {
        "error": {
            "code": error.code.value,
            "message": message,
        }
    }
