"""Test-mode override sessions.

A test-mode session temporarily grants a user an expanded role set for a
bounded duration. It is an environment-gated replacement for hand-made
"force admin" accounts: it is never written as a permanent RoleGrant,
and it is inert in production regardless of what the caller asks for.

Expiry is evaluated lazily at read time. The stored ``active`` flag and the
DynamoDB ``ttl`` attribute are hygiene only; is_active() is the single
authority every other component must call.

For On-Call Engineers:
    - "Test mode requested in production" warnings mean a client attempted
      to enable test mode against a production-flagged deployment; the
      request was rejected server-side.
    - Sessions can be inspected at PK=USER#{user_id}, SK=TESTMODE.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from datetime import timedelta
from typing import Any

from botocore.exceptions import ClientError

from src.lambdas.shared.auth.enums import Role
from src.lambdas.shared.auth.registry import RoleRegistry
from src.lambdas.shared.dynamodb import build_user_key
from src.lambdas.shared.errors.role_errors import (
    ForbiddenRoleError,
    RoleError,
    RoleStoreError,
    TestModeUnavailableError,
    UserNotFoundError,
)
from src.lambdas.shared.events.role_event_bus import RoleEventBus, RoleTopic
from src.lambdas.shared.logging_utils import (
    get_safe_error_info,
    log_user_id,
    sanitize_for_log,
)
from src.lambdas.shared.models.testmode_session import TEST_MODE_SK, TestModeSession
from src.lambdas.shared.role_store import RoleStore
from src.lambdas.shared.utils.clock import Clock, utc_now

logger = logging.getLogger(__name__)

PRODUCTION_ENVIRONMENTS = frozenset({"prod", "production"})

DEFAULT_DURATION_SECONDS = 4 * 60 * 60
MAX_DURATION_SECONDS = 24 * 60 * 60


def is_production(environment: str | None) -> bool:
    """True for production-flagged deployment tiers."""
    return (environment or "").strip().lower() in PRODUCTION_ENVIRONMENTS


class TestModeSessionManager:
    """Lifecycle of per-user test-mode sessions."""

    __test__ = False

    def __init__(
        self,
        table: Any,
        store: RoleStore,
        bus: RoleEventBus,
        registry: RoleRegistry,
        environment: str,
        clock: Clock = utc_now,
        default_duration_seconds: int | None = None,
        max_duration_seconds: int | None = None,
    ) -> None:
        self._table = table
        self._store = store
        self._bus = bus
        self._registry = registry
        self._environment = environment
        self._clock = clock
        self.default_duration_seconds = default_duration_seconds or int(
            os.environ.get("TEST_MODE_DEFAULT_DURATION_SECONDS", DEFAULT_DURATION_SECONDS)
        )
        self.max_duration_seconds = max_duration_seconds or int(
            os.environ.get("TEST_MODE_MAX_DURATION_SECONDS", MAX_DURATION_SECONDS)
        )

    @property
    def available(self) -> bool:
        return not is_production(self._environment)

    def enable(
        self,
        user_id: str,
        duration_seconds: int | None = None,
        initial_role: Role | str = Role.VIEWER,
        all_roles: bool = True,
        roles: Iterable[Role | str] | None = None,
        bypass_api_calls: bool = False,
    ) -> TestModeSession:
        """Start (or replace) the user's test-mode session.

        Args:
            user_id: Session owner
            duration_seconds: Lifetime; defaults to TEST_MODE_DEFAULT_DURATION_SECONDS
            initial_role: Role the user operates as once the session starts.
                Must be one of the granted roles.
            all_roles: Grant every registered role
            roles: Explicit subset to grant when all_roles is False
                (viewer is always included)
            bypass_api_calls: Carried for clients that stub outbound calls

        Returns:
            The stored session

        Raises:
            TestModeUnavailableError: Production tier, or an invalid duration
            InvalidRoleError: Unknown role names
            ForbiddenRoleError: initial_role outside the granted set
            UserNotFoundError: No profile for the user
        """
        if not self.available:
            logger.warning(
                "Test mode requested in production",
                extra={
                    "user_id_prefix": log_user_id(user_id),
                    "environment": sanitize_for_log(self._environment),
                },
            )
            raise TestModeUnavailableError("Test mode is disabled in this environment")

        duration = self.default_duration_seconds if duration_seconds is None else duration_seconds
        if duration <= 0 or duration > self.max_duration_seconds:
            raise TestModeUnavailableError(
                f"Test mode duration must be between 1 and {self.max_duration_seconds} seconds"
            )

        if all_roles:
            granted = set(self._registry.roles)
        else:
            granted = {self._registry.normalize(r) for r in roles or ()}
            granted.add(Role.VIEWER)

        initial = self._registry.normalize(initial_role)
        if initial not in granted:
            raise ForbiddenRoleError(initial.value)

        now = self._clock()
        session = TestModeSession(
            user_id=user_id,
            active=True,
            created_at=now,
            expires_at=now + timedelta(seconds=duration),
            initial_role=initial,
            bypass_api_calls=bypass_api_calls,
            granted_roles=frozenset(granted),
        )

        if self._store.get_user(user_id) is None:
            raise UserNotFoundError(user_id)

        # Session before profile: current_role never points at an unbacked role
        try:
            self._table.put_item(Item=session.to_dynamodb_item())
        except ClientError as e:
            raise self._store_error("enable", user_id, e) from e
        try:
            self._store.set_current_role(user_id, initial, now)
        except RoleError:
            self._delete_session(user_id)
            raise

        logger.info(
            "Test mode enabled",
            extra={
                "user_id_prefix": log_user_id(user_id),
                "duration_seconds": duration,
                "initial_role": initial.value,
                "granted_roles": sorted(r.value for r in granted),
            },
        )
        self._bus.publish(
            RoleTopic.TEST_MODE_ACTIVATED,
            {
                "userId": user_id,
                "expiresAt": session.expires_at.isoformat(),
                "initialRole": initial.value,
                "grantedRoles": [r.value for r in self._registry.ordered(granted)],
            },
        )
        return session

    def disable(self, user_id: str) -> None:
        """Clear the user's session. Idempotent."""
        if not self._delete_session(user_id):
            return

        logger.info("Test mode disabled", extra={"user_id_prefix": log_user_id(user_id)})
        self._bus.publish(RoleTopic.TEST_MODE_DEACTIVATED, {"userId": user_id})

    def get_session(self, user_id: str) -> TestModeSession | None:
        """Raw stored session, which may already be past its deadline."""
        try:
            response = self._table.get_item(Key=build_user_key(user_id, TEST_MODE_SK))
        except ClientError as e:
            raise self._store_error("get_session", user_id, e) from e
        item = response.get("Item")
        if not item:
            return None
        return TestModeSession.from_dynamodb_item(item)

    def active_session(self, user_id: str) -> TestModeSession | None:
        """The session if it is live now, else None.

        In production every stored session is ignored.
        """
        if not self.available:
            return None
        session = self.get_session(user_id)
        if session is None or not session.is_live(self._clock()):
            return None
        return session

    def ordered_roles(self, roles: Iterable[Role]) -> list[Role]:
        return self._registry.ordered(roles)

    def is_active(self, user_id: str) -> bool:
        return self.active_session(user_id) is not None

    def time_remaining(self, user_id: str) -> timedelta | None:
        """Time left on a live session, None when no session is live."""
        session = self.active_session(user_id)
        if session is None:
            return None
        return session.expires_at - self._clock()

    def _delete_session(self, user_id: str) -> bool:
        """Remove the stored session. Returns True if one existed."""
        try:
            response = self._table.delete_item(
                Key=build_user_key(user_id, TEST_MODE_SK),
                ReturnValues="ALL_OLD",
            )
        except ClientError as e:
            raise self._store_error("disable", user_id, e) from e
        return bool(response.get("Attributes"))

    def _store_error(self, action: str, user_id: str, error: Exception) -> RoleStoreError:
        logger.error(
            "Test mode store operation failed",
            extra={
                "action": action,
                "user_id_prefix": log_user_id(user_id),
                **get_safe_error_info(error),
            },
        )
        return RoleStoreError()
