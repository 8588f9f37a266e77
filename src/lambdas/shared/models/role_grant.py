"""RoleGrant model: one (user, role) permission record."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from src.lambdas.shared.auth.enums import Role

GRANT_SK_PREFIX = "ROLE#"


class RoleGrant(BaseModel):
    """Persisted record that a user may operate as a role.

    Identity is (user_id, role); there is at most one row per pair.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    role: Role
    active: bool = True
    is_test_grant: bool = False
    updated_at: datetime | None = None

    @property
    def pk(self) -> str:
        """DynamoDB partition key."""
        return f"USER#{self.user_id}"

    @property
    def sk(self) -> str:
        """DynamoDB sort key."""
        return f"{GRANT_SK_PREFIX}{self.role.value}"

    def to_dynamodb_item(self) -> dict:
        """Convert to DynamoDB item format."""
        item = {
            "PK": self.pk,
            "SK": self.sk,
            "user_id": self.user_id,
            "role": self.role.value,
            "active": self.active,
            "is_test_grant": self.is_test_grant,
            "entity_type": "ROLE_GRANT",
        }
        if self.updated_at is not None:
            item["updated_at"] = self.updated_at.isoformat()
        return item

    @classmethod
    def from_dynamodb_item(cls, item: dict) -> RoleGrant:
        """Create RoleGrant from DynamoDB item."""
        updated_at = item.get("updated_at")
        return cls(
            user_id=item["user_id"],
            role=Role(item["role"]),
            active=bool(item.get("active", True)),
            is_test_grant=bool(item.get("is_test_grant", False)),
            updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
        )
