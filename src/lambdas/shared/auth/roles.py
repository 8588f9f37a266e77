"""Role resolution for marketplace RBAC.

resolve_roles() combines persisted grants with a live test-mode session
into ``(current_role, available_roles)``. It never raises for normal edge
cases: a missing grant falls back to another role, and an expired session
is treated as absent.

Rules, in order:
- persisted = active, non-test grants
- viewer is always available
- an admin grant implies every registered role except the reserved tier
  (developer by default); reserved roles need their own grant, except
  that an admin who explicitly switched into one keeps it as current
- a live test-mode session adds its granted roles, plus any active
  test-only grant rows (those rows are inert outside test mode)
- current_role is the stored role if available, otherwise the first
  available role in declaration order (viewer)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from aws_xray_sdk.core import xray_recorder

from src.lambdas.shared.auth.enums import Role
from src.lambdas.shared.auth.registry import RoleRegistry
from src.lambdas.shared.auth.testmode import TestModeSessionManager
from src.lambdas.shared.logging_utils import log_user_id
from src.lambdas.shared.models.role_grant import RoleGrant
from src.lambdas.shared.models.testmode_session import TestModeSession
from src.lambdas.shared.role_store import RoleStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedRoles:
    """Outcome of a resolution.

    Attributes:
        current_role: Role the user is operating as
        available_roles: Roles the user may switch into, declaration order
        is_test_mode: A live test-mode session contributed to the result
        has_admin_grant: The user holds a persisted, active admin grant
        stored_role: Raw current_role from the profile (None if no profile)
        granted_roles: Roles available without any test-mode contribution
    """

    user_id: str
    current_role: Role
    available_roles: tuple[Role, ...]
    is_test_mode: bool = False
    has_admin_grant: bool = False
    stored_role: Role | None = None
    granted_roles: frozenset[Role] = frozenset({Role.VIEWER})

    def holds(self, role: Role) -> bool:
        """Operating as ``role`` on the strength of permanent grants alone."""
        return self.current_role == role and role in self.granted_roles

    @property
    def fell_back(self) -> bool:
        """True when the stored role was not available and was replaced."""
        return self.stored_role is not None and self.stored_role != self.current_role

    def to_payload(self) -> dict:
        return {
            "currentRole": self.current_role.value,
            "availableRoles": [role.value for role in self.available_roles],
            "isTestMode": self.is_test_mode,
        }


def persisted_roles(grants: Iterable[RoleGrant]) -> set[Role]:
    """Roles from active, non-test grants."""
    return {g.role for g in grants if g.active and not g.is_test_grant}


def resolve_roles(
    user_id: str,
    stored_role: Role | None,
    grants: Iterable[RoleGrant],
    session: TestModeSession | None,
    registry: RoleRegistry,
) -> ResolvedRoles:
    """Combine grants and a live session into the user's role state.

    Args:
        user_id: User being resolved
        stored_role: current_role from the profile, None if no profile
        grants: Every grant row for the user
        session: A session already checked to be live, or None
        registry: Canonical role set and admin carve-out

    Returns:
        ResolvedRoles with available_roles in declaration order
    """
    grants = list(grants)
    persisted = persisted_roles(grants)
    has_admin = Role.ADMIN in persisted

    available = set(persisted)
    available.add(Role.VIEWER)
    if has_admin:
        available |= registry.admin_roles()
    if has_admin and stored_role is not None and stored_role in registry.roles:
        # An admin's explicit switch into a reserved role is honored
        available.add(stored_role)
    granted = frozenset(available)

    if session is not None:
        available |= session.granted_roles
        available |= {g.role for g in grants if g.active and g.is_test_grant}

    ordered = tuple(registry.ordered(available))

    if stored_role is not None and stored_role in available:
        current = stored_role
    else:
        # Defined recovery after a revocation or session expiry
        current = ordered[0]

    return ResolvedRoles(
        user_id=user_id,
        current_role=current,
        available_roles=ordered,
        is_test_mode=session is not None,
        has_admin_grant=has_admin,
        stored_role=stored_role,
        granted_roles=granted,
    )


class RoleResolver:
    """Loads role state from the store and test-mode manager, then resolves it."""

    def __init__(
        self,
        store: RoleStore,
        test_mode: TestModeSessionManager,
        registry: RoleRegistry,
    ) -> None:
        self._store = store
        self._test_mode = test_mode
        self._registry = registry

    @xray_recorder.capture("resolve_roles")
    def resolve(self, user_id: str) -> ResolvedRoles:
        """Resolve ``(current_role, available_roles)`` for a user.

        A user without a profile resolves to viewer only.
        """
        user = self._store.get_user(user_id)
        grants = self._store.grants_for(user_id)
        session = self._test_mode.active_session(user_id)

        resolved = resolve_roles(
            user_id=user_id,
            stored_role=user.current_role if user else None,
            grants=grants,
            session=session,
            registry=self._registry,
        )
        if resolved.fell_back:
            logger.debug(
                "Stored role unavailable, using fallback",
                extra={
                    "user_id_prefix": log_user_id(user_id),
                    "stored_role": resolved.stored_role.value,
                    "current_role": resolved.current_role.value,
                },
            )
        return resolved
