"""Shared middleware for the dashboard API."""

from src.lambdas.shared.middleware.auth_middleware import (
    extract_auth_context,
    extract_user_id,
    require_user_id,
)
from src.lambdas.shared.middleware.require_role import require_role
from src.lambdas.shared.middleware.route_guard import (
    RouteAccessGuard,
    RouteDecision,
    RouteGuardMiddleware,
    RouteTable,
)

__all__ = [
    "RouteAccessGuard",
    "RouteDecision",
    "RouteGuardMiddleware",
    "RouteTable",
    "extract_auth_context",
    "extract_user_id",
    "require_role",
    "require_user_id",
]
