"""User profile model with DynamoDB keys.

The boolean capability flags are a legacy projection of the user's
active, non-test RoleGrant rows. Grants are the source of truth; the
flags are rewritten in the same transaction as the grant they mirror
and can be recomputed with flags_from_grants().
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from src.lambdas.shared.auth.enums import ROLE_FLAGS, Role

if TYPE_CHECKING:
    from src.lambdas.shared.models.role_grant import RoleGrant


def flags_from_grants(grants: Iterable[RoleGrant]) -> dict[str, bool]:
    """Compute the capability-flag projection from grant rows.

    Only active, non-test grants count. Test grants are never persisted
    as permanent capability.
    """
    held = {grant.role for grant in grants if grant.active and not grant.is_test_grant}
    return {flag: role in held for role, flag in ROLE_FLAGS.items()}


class User(BaseModel):
    """Marketplace dashboard user."""

    user_id: str = Field(..., description="Identity key")
    current_role: Role = Role.VIEWER
    last_role_change: datetime | None = None
    created_at: datetime

    # Legacy capability flags (projection of grants)
    is_advertiser: bool = False
    is_publisher: bool = False
    is_admin: bool = False
    is_stakeholder: bool = False
    is_developer: bool = False

    @property
    def pk(self) -> str:
        """DynamoDB partition key."""
        return f"USER#{self.user_id}"

    @property
    def sk(self) -> str:
        """DynamoDB sort key."""
        return "PROFILE"

    @property
    def flags(self) -> dict[str, bool]:
        return {flag: getattr(self, flag) for flag in ROLE_FLAGS.values()}

    def to_dynamodb_item(self) -> dict:
        """Convert to DynamoDB item format."""
        item = {
            "PK": self.pk,
            "SK": self.sk,
            "user_id": self.user_id,
            "current_role": self.current_role.value,
            "created_at": self.created_at.isoformat(),
            "entity_type": "USER",
            **self.flags,
        }
        if self.last_role_change is not None:
            item["last_role_change"] = self.last_role_change.isoformat()
        return item

    @classmethod
    def from_dynamodb_item(cls, item: dict) -> User:
        """Create User from DynamoDB item.

        An unrecognized stored current_role is read back as viewer; the
        resolver's fallback decides the effective role anyway.
        """
        raw_role = item.get("current_role", Role.VIEWER.value)
        try:
            current_role = Role(raw_role)
        except ValueError:
            current_role = Role.VIEWER

        last_change = item.get("last_role_change")
        return cls(
            user_id=item["user_id"],
            current_role=current_role,
            last_role_change=datetime.fromisoformat(last_change) if last_change else None,
            created_at=datetime.fromisoformat(item["created_at"]),
            **{flag: bool(item.get(flag, False)) for flag in ROLE_FLAGS.values()},
        )
