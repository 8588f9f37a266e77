"""In-process role event channel."""

from src.lambdas.shared.events.role_event_bus import (
    RoleEventBus,
    RoleTopic,
)

__all__ = [
    "RoleEventBus",
    "RoleTopic",
]
