"""
Role Store
==========

Persistence for user profiles and per-user role grants.

RoleGrant rows are the source of truth for what a user may do. The
legacy boolean flags on the profile item are a projection of those rows
and are rewritten in the SAME TransactWriteItems call as the grant they
mirror, so the two views cannot be updated independently. reconcile()
recomputes the flags from the grants for drift left behind by older
writers or manual edits.

For On-Call Engineers:
    - Drift between flags and grants: call
      POST /api/v2/admin/users/{user_id}/roles/reconcile (detect first with GET
      on the same user's roles, which includes the drift report).
    - `RoleStoreError` in logs wraps a botocore ClientError; the error_type
      field has the AWS error class.

For Developers:
    - All writes are idempotent upserts keyed by (user_id, role) or plain
      field overwrites of current_role; concurrent writers converge without
      locks (last writer wins on current_role).
    - viewer is never revocable and never deactivated through this API.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError
from pydantic import BaseModel, Field

from src.lambdas.shared.auth.enums import ROLE_FLAGS, Role
from src.lambdas.shared.dynamodb import (
    PROFILE_SK,
    build_user_key,
    transaction_cancel_reasons,
)
from src.lambdas.shared.errors.role_errors import (
    ProtectedGrantError,
    RoleStoreError,
    UserNotFoundError,
)
from src.lambdas.shared.logging_utils import get_safe_error_info, log_user_id
from src.lambdas.shared.models.role_grant import GRANT_SK_PREFIX, RoleGrant
from src.lambdas.shared.models.user import User, flags_from_grants
from src.lambdas.shared.retry import dynamodb_retry
from src.lambdas.shared.utils.clock import Clock, utc_now

logger = logging.getLogger(__name__)


class ReconcileReport(BaseModel):
    """Result of comparing profile flags against grant rows."""

    user_id: str
    fixed_flags: dict[str, bool] = Field(default_factory=dict)
    created_viewer_grant: bool = False
    applied: bool = False

    @property
    def has_drift(self) -> bool:
        return bool(self.fixed_flags) or self.created_viewer_grant


class RoleStore(ABC):
    """Persistence abstraction over user profiles and role grants."""

    @abstractmethod
    def get_user(self, user_id: str) -> User | None:
        """Return the user's profile, or None if absent."""

    @abstractmethod
    def create_user(self, user_id: str) -> User:
        """Create a profile with current_role=viewer and an active viewer grant.

        Idempotent: an existing profile is returned unchanged.
        """

    @abstractmethod
    def set_current_role(self, user_id: str, role: Role, changed_at: datetime) -> None:
        """Overwrite current_role. Raises UserNotFoundError if no profile."""

    @abstractmethod
    def grants_for(self, user_id: str) -> set[RoleGrant]:
        """All grant rows for the user, active or not."""

    @abstractmethod
    def upsert_grant(
        self,
        user_id: str,
        role: Role,
        *,
        active: bool = True,
        is_test_grant: bool = False,
    ) -> None:
        """Create or overwrite the (user_id, role) grant and its flag together."""

    @abstractmethod
    def revoke_grant(self, user_id: str, role: Role) -> None:
        """Deactivate the grant and clear its flag. No-op if absent."""

    @abstractmethod
    def _write_flags(self, user_id: str, flags: dict[str, bool]) -> None:
        """Overwrite profile flags only (reconciliation path)."""

    def detect_drift(self, user_id: str) -> ReconcileReport:
        """Compare flags with grants without writing anything."""
        user = self.get_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)

        grants = self.grants_for(user_id)
        expected = flags_from_grants(grants)
        current = user.flags
        fixed = {flag: value for flag, value in expected.items() if current[flag] != value}

        viewer = next((g for g in grants if g.role == Role.VIEWER), None)
        return ReconcileReport(
            user_id=user_id,
            fixed_flags=fixed,
            created_viewer_grant=viewer is None or not viewer.active,
        )

    def reconcile(self, user_id: str) -> ReconcileReport:
        """Recompute flags from grants and repair the viewer grant.

        Corrective operation only; normal writes keep both views in lockstep.
        """
        report = self.detect_drift(user_id)
        if report.fixed_flags:
            self._write_flags(user_id, report.fixed_flags)
        if report.created_viewer_grant:
            self.upsert_grant(user_id, Role.VIEWER, active=True, is_test_grant=False)

        if report.has_drift:
            logger.info(
                "Reconciled role flags",
                extra={
                    "user_id_prefix": log_user_id(user_id),
                    "fixed_flags": sorted(report.fixed_flags),
                    "created_viewer_grant": report.created_viewer_grant,
                },
            )
        return report.model_copy(update={"applied": True})


class DynamoDBRoleStore(RoleStore):
    """RoleStore over the single dashboard table."""

    def __init__(self, table: Any, clock: Clock = utc_now) -> None:
        self._table = table
        # Resource-owned client: transaction payloads take plain Python values
        self._client = table.meta.client
        self._clock = clock

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def get_user(self, user_id: str) -> User | None:
        try:
            response = self._table.get_item(Key=build_user_key(user_id, PROFILE_SK))
        except ClientError as e:
            raise self._store_error("get_user", user_id, e) from e
        item = response.get("Item")
        if not item:
            return None
        return User.from_dynamodb_item(item)

    def create_user(self, user_id: str) -> User:
        now = self._clock()
        user = User(user_id=user_id, current_role=Role.VIEWER, created_at=now)
        viewer = RoleGrant(user_id=user_id, role=Role.VIEWER, updated_at=now)
        items = [
            {
                "Put": {
                    "TableName": self._table.name,
                    "Item": user.to_dynamodb_item(),
                    "ConditionExpression": "attribute_not_exists(PK)",
                }
            },
            {
                "Put": {
                    "TableName": self._table.name,
                    "Item": viewer.to_dynamodb_item(),
                }
            },
        ]
        try:
            self._transact_write(items)
        except ClientError as e:
            # Profile already present: creation is a no-op
            existing = self.get_user(user_id)
            if existing is not None:
                return existing
            raise self._store_error("create_user", user_id, e) from e

        logger.info("Created user profile", extra={"user_id_prefix": log_user_id(user_id)})
        return user

    def set_current_role(self, user_id: str, role: Role, changed_at: datetime) -> None:
        try:
            self._table.update_item(
                Key=build_user_key(user_id, PROFILE_SK),
                UpdateExpression="SET current_role = :role, last_role_change = :changed_at",
                ConditionExpression="attribute_exists(PK)",
                ExpressionAttributeValues={
                    ":role": role.value,
                    ":changed_at": changed_at.isoformat(),
                },
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                raise UserNotFoundError(user_id) from e
            raise self._store_error("set_current_role", user_id, e) from e

    # ------------------------------------------------------------------
    # Grants
    # ------------------------------------------------------------------

    def grants_for(self, user_id: str) -> set[RoleGrant]:
        grants: set[RoleGrant] = set()
        query_kwargs: dict[str, Any] = {
            "KeyConditionExpression": Key("PK").eq(f"USER#{user_id}")
            & Key("SK").begins_with(GRANT_SK_PREFIX),
        }
        try:
            while True:
                response = self._table.query(**query_kwargs)
                for item in response.get("Items", []):
                    try:
                        grants.add(RoleGrant.from_dynamodb_item(item))
                    except ValueError:
                        # Unregistered role left by an older writer
                        logger.warning(
                            "Skipping grant with unknown role",
                            extra={"user_id_prefix": log_user_id(user_id)},
                        )
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    break
                query_kwargs["ExclusiveStartKey"] = last_key
        except ClientError as e:
            raise self._store_error("grants_for", user_id, e) from e
        return grants

    def upsert_grant(
        self,
        user_id: str,
        role: Role,
        *,
        active: bool = True,
        is_test_grant: bool = False,
    ) -> None:
        if role == Role.VIEWER and not active:
            raise ProtectedGrantError(role.value)

        grant = RoleGrant(
            user_id=user_id,
            role=role,
            active=active,
            is_test_grant=is_test_grant,
            updated_at=self._clock(),
        )
        items = [
            {
                "Put": {
                    "TableName": self._table.name,
                    "Item": grant.to_dynamodb_item(),
                }
            },
            self._profile_op(user_id, role, active and not is_test_grant),
        ]
        self._write_with_profile(items, "upsert_grant", user_id)
        logger.info(
            "Upserted role grant",
            extra={
                "user_id_prefix": log_user_id(user_id),
                "role": role.value,
                "active": active,
                "is_test_grant": is_test_grant,
            },
        )

    def revoke_grant(self, user_id: str, role: Role) -> None:
        if role == Role.VIEWER:
            raise ProtectedGrantError(role.value)

        try:
            response = self._table.get_item(
                Key=build_user_key(user_id, f"{GRANT_SK_PREFIX}{role.value}")
            )
        except ClientError as e:
            raise self._store_error("revoke_grant", user_id, e) from e
        if "Item" not in response:
            logger.debug(
                "Revoke of absent grant ignored",
                extra={"user_id_prefix": log_user_id(user_id), "role": role.value},
            )
            return

        items = [
            {
                "Update": {
                    "TableName": self._table.name,
                    "Key": build_user_key(user_id, f"{GRANT_SK_PREFIX}{role.value}"),
                    "UpdateExpression": "SET active = :inactive, updated_at = :now",
                    "ExpressionAttributeValues": {
                        ":inactive": False,
                        ":now": self._clock().isoformat(),
                    },
                }
            },
            self._profile_op(user_id, role, False),
        ]
        self._write_with_profile(items, "revoke_grant", user_id)
        logger.info(
            "Revoked role grant",
            extra={"user_id_prefix": log_user_id(user_id), "role": role.value},
        )

    def _write_flags(self, user_id: str, flags: dict[str, bool]) -> None:
        names = {f"#f{i}": flag for i, flag in enumerate(flags)}
        values = {f":v{i}": value for i, value in enumerate(flags.values())}
        assignments = ", ".join(f"{name} = :v{i}" for i, name in enumerate(names))
        try:
            self._table.update_item(
                Key=build_user_key(user_id, PROFILE_SK),
                UpdateExpression=f"SET {assignments}",
                ConditionExpression="attribute_exists(PK)",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                raise UserNotFoundError(user_id) from e
            raise self._store_error("write_flags", user_id, e) from e

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _profile_op(self, user_id: str, role: Role, flag_value: bool) -> dict:
        """Transaction element keeping the profile flag in lockstep with a grant.

        viewer has no flag, so only the profile's existence is checked.
        """
        key = build_user_key(user_id, PROFILE_SK)
        flag = ROLE_FLAGS.get(role)
        if flag is None:
            return {
                "ConditionCheck": {
                    "TableName": self._table.name,
                    "Key": key,
                    "ConditionExpression": "attribute_exists(PK)",
                }
            }
        return {
            "Update": {
                "TableName": self._table.name,
                "Key": key,
                "UpdateExpression": "SET #flag = :value",
                "ConditionExpression": "attribute_exists(PK)",
                "ExpressionAttributeNames": {"#flag": flag},
                "ExpressionAttributeValues": {":value": flag_value},
            }
        }

    def _write_with_profile(self, items: list[dict], action: str, user_id: str) -> None:
        try:
            self._transact_write(items)
        except ClientError as e:
            if "ConditionalCheckFailed" in transaction_cancel_reasons(e):
                raise UserNotFoundError(user_id) from e
            if self.get_user(user_id) is None:
                raise UserNotFoundError(user_id) from e
            raise self._store_error(action, user_id, e) from e

    @dynamodb_retry
    def _transact_write(self, items: list[dict]) -> None:
        self._client.transact_write_items(TransactItems=items)

    def _store_error(self, action: str, user_id: str, error: Exception) -> RoleStoreError:
        logger.error(
            "Role store operation failed",
            extra={
                "action": action,
                "user_id_prefix": log_user_id(user_id),
                **get_safe_error_info(error),
            },
        )
        return RoleStoreError()
