"""Role switching and grant administration for the dashboard.

RoleChangeAuthorizer validates and applies a user's request to operate
under a different role. grant_role()/revoke_role() are the administrative
paths that change which roles a user holds.

For On-Call Engineers:
    - "Role change denied" warnings carry the requested role only; the
      user's other roles are never logged or returned.
    - Every successful switch logs "Role changed" at info with from/to.
"""

import logging
from typing import Any

from aws_xray_sdk.core import xray_recorder
from pydantic import BaseModel, ConfigDict, Field

from src.lambdas.shared.auth.enums import Role
from src.lambdas.shared.auth.permissions import permissions_for_role
from src.lambdas.shared.auth.registry import RoleRegistry
from src.lambdas.shared.auth.roles import ResolvedRoles, RoleResolver
from src.lambdas.shared.errors.role_errors import ForbiddenRoleError, UserNotFoundError
from src.lambdas.shared.events.role_event_bus import RoleEventBus, RoleTopic
from src.lambdas.shared.logging_utils import log_user_id, sanitize_for_log
from src.lambdas.shared.models.role_change_event import RoleChangeEvent
from src.lambdas.shared.role_store import RoleStore
from src.lambdas.shared.utils.clock import Clock, utc_now

logger = logging.getLogger(__name__)


class ChangeRoleRequest(BaseModel):
    """Body of POST /api/v2/roles/current.

    role is left untyped so that any unrecognized value reaches the
    registry and fails as InvalidRoleError.
    """

    role: Any = None


class GrantRoleRequest(BaseModel):
    """Body of POST /api/v2/admin/users/{user_id}/roles."""

    role: Any = None


class RolesResponse(BaseModel):
    """Current role state as returned to clients."""

    model_config = ConfigDict(populate_by_name=True)

    current_role: str = Field(..., serialization_alias="currentRole")
    available_roles: list[str] = Field(..., serialization_alias="availableRoles")
    is_test_mode: bool = Field(False, serialization_alias="isTestMode")
    permissions: list[str] = Field(default_factory=list)


class RoleChangeAuthorizer:
    """Validate and apply role switches.

    A successful change performs exactly one profile write and exactly one
    role:changed broadcast. Failed validation writes nothing.
    """

    def __init__(
        self,
        store: RoleStore,
        resolver: RoleResolver,
        bus: RoleEventBus,
        registry: RoleRegistry,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._bus = bus
        self._registry = registry
        self._clock = clock

    @xray_recorder.capture("change_role")
    def change_role(self, user_id: str, requested_raw: Any) -> RoleChangeEvent:
        """Switch the user's current role.

        Args:
            user_id: User making the switch
            requested_raw: Role name as received from the client

        Returns:
            The broadcast RoleChangeEvent

        Raises:
            InvalidRoleError: Unrecognized role string
            UserNotFoundError: No profile for the user
            ForbiddenRoleError: Role not available and the user is not admin
        """
        role = self._registry.normalize(requested_raw)

        resolved = self._resolver.resolve(user_id)
        if resolved.stored_role is None:
            raise UserNotFoundError(user_id)

        if role not in resolved.available_roles and not resolved.has_admin_grant:
            logger.warning(
                "Role change denied",
                extra={
                    "user_id_prefix": log_user_id(user_id),
                    "requested_role": role.value,
                },
            )
            raise ForbiddenRoleError(role.value)

        now = self._clock()
        self._store.set_current_role(user_id, role, now)

        available = resolved.available_roles
        if role not in available:
            available = tuple(self._registry.ordered({*available, role}))

        event = RoleChangeEvent(
            user_id=user_id,
            from_role=resolved.current_role,
            to_role=role,
            available_roles=available,
            timestamp=now,
        )
        logger.info(
            "Role changed",
            extra={
                "user_id_prefix": log_user_id(user_id),
                "from_role": event.from_role.value,
                "to_role": event.to_role.value,
            },
        )
        self._bus.publish(RoleTopic.ROLE_CHANGED, event.to_payload())
        return event


def get_roles(
    resolver: RoleResolver, user_id: str, registry: RoleRegistry | None = None
) -> RolesResponse:
    """Current role, available roles, test-mode flag and permissions."""
    resolved = resolver.resolve(user_id)
    return roles_response(resolved, registry)


def roles_response(resolved: ResolvedRoles, registry: RoleRegistry | None = None) -> RolesResponse:
    return RolesResponse(
        current_role=resolved.current_role.value,
        available_roles=[role.value for role in resolved.available_roles],
        is_test_mode=resolved.is_test_mode,
        permissions=permissions_for_role(resolved.current_role, registry),
    )


def grant_role(
    store: RoleStore,
    bus: RoleEventBus,
    actor_id: str,
    target_user_id: str,
    role_raw: Any,
    registry: RoleRegistry | None = None,
) -> Role:
    """Give a user an active, permanent grant for a role.

    Returns:
        The normalized role

    Raises:
        InvalidRoleError: Unrecognized role string
        UserNotFoundError: No profile for the target user
    """
    role = (registry or RoleRegistry()).normalize(role_raw)
    store.upsert_grant(target_user_id, role, active=True, is_test_grant=False)
    _announce(bus, actor_id, target_user_id, role, "granted")
    return role


def revoke_role(
    store: RoleStore,
    bus: RoleEventBus,
    actor_id: str,
    target_user_id: str,
    role_raw: Any,
    registry: RoleRegistry | None = None,
) -> Role:
    """Deactivate a user's grant for a role.

    Raises:
        InvalidRoleError: Unrecognized role string
        ProtectedGrantError: Attempt to revoke viewer
        UserNotFoundError: No profile for the target user
    """
    role = (registry or RoleRegistry()).normalize(role_raw)
    store.revoke_grant(target_user_id, role)
    _announce(bus, actor_id, target_user_id, role, "revoked")
    return role


def _announce(bus: RoleEventBus, actor_id: str, target_user_id: str, role: Role, action: str) -> None:
    logger.info(
        "Role grant updated by admin",
        extra={
            "actor_id_prefix": log_user_id(actor_id),
            "user_id_prefix": log_user_id(target_user_id),
            "role": role.value,
            "action": sanitize_for_log(action),
        },
    )
    bus.publish(
        RoleTopic.ROLES_UPDATED,
        {"userId": target_user_id, "role": role.value, "action": action},
    )
