"""TestModeSession model: a time-bounded, superseding role override.

The stored ``active`` flag can lie once expires_at has passed. Callers
must go through TestModeSessionManager.is_active(), never read it raw.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from src.lambdas.shared.auth.enums import Role

TEST_MODE_SK = "TESTMODE"


class TestModeSession(BaseModel):
    """Temporary override session for development and demos."""

    __test__ = False

    model_config = ConfigDict(frozen=True)

    user_id: str
    active: bool = True
    created_at: datetime
    expires_at: datetime
    initial_role: Role
    bypass_api_calls: bool = False
    granted_roles: frozenset[Role] = Field(default_factory=frozenset)

    @property
    def pk(self) -> str:
        """DynamoDB partition key."""
        return f"USER#{self.user_id}"

    @property
    def sk(self) -> str:
        """DynamoDB sort key."""
        return TEST_MODE_SK

    def is_live(self, now: datetime) -> bool:
        """True while the session is flagged active and not past its deadline."""
        return self.active and now <= self.expires_at

    def to_dynamodb_item(self) -> dict:
        """Convert to DynamoDB item format.

        ``ttl`` lets DynamoDB delete the item after expiry. Deletion can lag
        by hours, so reads still compare expires_at themselves.
        """
        return {
            "PK": self.pk,
            "SK": self.sk,
            "user_id": self.user_id,
            "active": self.active,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "initial_role": self.initial_role.value,
            "bypass_api_calls": self.bypass_api_calls,
            # DynamoDB rejects empty sets, so store a list
            "granted_roles": sorted(role.value for role in self.granted_roles),
            "ttl": int(self.expires_at.timestamp()),
            "entity_type": "TEST_MODE_SESSION",
        }

    @classmethod
    def from_dynamodb_item(cls, item: dict) -> TestModeSession:
        """Create TestModeSession from DynamoDB item."""
        return cls(
            user_id=item["user_id"],
            active=bool(item.get("active", False)),
            created_at=datetime.fromisoformat(item["created_at"]),
            expires_at=datetime.fromisoformat(item["expires_at"]),
            initial_role=Role(item.get("initial_role", Role.VIEWER.value)),
            bypass_api_calls=bool(item.get("bypass_api_calls", False)),
            granted_roles=frozenset(Role(r) for r in item.get("granted_roles", [])),
        )
