"""Shared error types for dashboard handlers."""

from src.lambdas.shared.errors.role_errors import (
    ROLE_ERROR_MESSAGES,
    ROLE_ERROR_STATUS,
    ForbiddenRoleError,
    InvalidRoleError,
    ProtectedGrantError,
    RoleError,
    RoleErrorCode,
    RoleStoreError,
    TestModeUnavailableError,
    UnauthenticatedError,
    UserNotFoundError,
    role_error_response,
)

__all__ = [
    "ROLE_ERROR_MESSAGES",
    "ROLE_ERROR_STATUS",
    "ForbiddenRoleError",
    "InvalidRoleError",
    "ProtectedGrantError",
    "RoleError",
    "RoleErrorCode",
    "RoleStoreError",
    "TestModeUnavailableError",
    "UnauthenticatedError",
    "UserNotFoundError",
    "role_error_response",
]
