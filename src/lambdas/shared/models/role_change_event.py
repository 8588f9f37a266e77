"""RoleChangeEvent: immutable broadcast record, never stored."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from src.lambdas.shared.auth.enums import Role


class RoleChangeEvent(BaseModel):
    """Emitted once per successful role switch."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    from_role: Role
    to_role: Role
    available_roles: tuple[Role, ...]
    timestamp: datetime

    def to_payload(self) -> dict:
        """Wire shape used by event subscribers and API responses."""
        return {
            "userId": self.user_id,
            "from": self.from_role.value,
            "to": self.to_role.value,
            "availableRoles": [role.value for role in self.available_roles],
            "timestamp": self.timestamp.isoformat(),
        }
