"""Role-based access control decorator for FastAPI endpoints.

Usage:
    from src.lambdas.shared.middleware import require_role

    @router.post("/admin/users/{user_id}/roles")
    @require_role("admin")
    async def grant(request: Request, user_id: str):
        ...

The requester's role is resolved server-side through the RoleResolver on
``app.state.role_services``; nothing in the request is trusted beyond the
identity. The endpoint runs only while the requester is operating as the
required role AND holds it through a persisted grant; roles contributed by a
test-mode session never satisfy it.

Security:
    - Generic error messages prevent role enumeration
    - Role validation at decoration time catches typos early
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from fastapi import Request

from src.lambdas.shared.auth.registry import RoleRegistry
from src.lambdas.shared.errors.role_errors import ForbiddenRoleError, RoleStoreError
from src.lambdas.shared.logging_utils import log_user_id
from src.lambdas.shared.middleware.auth_middleware import require_user_id

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def require_role(required_role: str, registry: RoleRegistry | None = None) -> Callable[[F], F]:
    """Decorator factory for role-based access control.

    Args:
        required_role: Role the requester must currently operate as.

    Raises:
        InvalidRoleError: At decoration time if the role is not registered.
            This fails app startup, catching typos early.
        UnauthenticatedError: At request time without an identity.
        ForbiddenRoleError: At request time when the resolved current
            role differs from the required role, or is only available
            through test mode.
    """
    role = (registry or RoleRegistry()).normalize(required_role)

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            request: Request | None = kwargs.get("request")
            if request is None:
                for arg in args:
                    if isinstance(arg, Request):
                        request = arg
                        break

            if request is None:
                logger.error("require_role: No Request object found in handler args")
                raise RoleStoreError()

            user_id = require_user_id(request.headers)
            resolved = request.app.state.role_services.resolver.resolve(user_id)

            if not resolved.holds(role):
                logger.debug(
                    "require_role denied",
                    extra={
                        "required_role": role.value,
                        "current_role": resolved.current_role.value,
                        "is_test_mode": resolved.is_test_mode,
                        "user_id_prefix": log_user_id(user_id),
                    },
                )
                error = ForbiddenRoleError(role.value)
                error.message = "Access denied"
                raise error

            return await func(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator
