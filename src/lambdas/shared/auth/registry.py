"""Role registry: canonical role set and name normalization.

normalize() is a pure function. An unrecognized string is always an
explicit InvalidRoleError, never a silent fallback to viewer.

Historical aliases:
    user -> viewer        (pre-marketplace account type)
    advertisor -> advertiser
    operator -> developer (platform-operator tooling)
"""

from __future__ import annotations

import os
from collections.abc import Iterable

from src.lambdas.shared.auth.enums import ROLE_ORDER, VALID_ROLES, Role
from src.lambdas.shared.errors.role_errors import InvalidRoleError

LEGACY_ALIASES: dict[str, Role] = {
    "user": Role.VIEWER,
    "advertisor": Role.ADVERTISER,
    "operator": Role.DEVELOPER,
}

DEFAULT_ADMIN_RESERVED_ROLES: frozenset[Role] = frozenset({Role.DEVELOPER})


class RoleRegistry:
    """Canonical role set plus the admin carve-out configuration.

    Attributes:
        roles: Registered roles in declaration order
        aliases: Historical name -> canonical role
        admin_reserved: Roles admin is NOT auto-escalated into
    """

    def __init__(
        self,
        roles: Iterable[Role] = ROLE_ORDER,
        aliases: dict[str, Role] | None = None,
        admin_reserved: Iterable[Role] = DEFAULT_ADMIN_RESERVED_ROLES,
    ) -> None:
        self.roles: tuple[Role, ...] = tuple(roles)
        if Role.VIEWER not in self.roles:
            raise ValueError("viewer must be a registered role")
        self.aliases = dict(LEGACY_ALIASES if aliases is None else aliases)
        self.admin_reserved: frozenset[Role] = frozenset(admin_reserved)

    @classmethod
    def from_env(cls) -> RoleRegistry:
        """Build a registry using ADMIN_RESERVED_ROLES (comma list)."""
        raw = os.environ.get("ADMIN_RESERVED_ROLES")
        if raw is None:
            return cls()
        # Validate names through a default registry so typos fail at startup
        base = cls(admin_reserved=())
        reserved = [base.normalize(name) for name in raw.split(",") if name.strip()]
        return cls(admin_reserved=reserved)

    def normalize(self, value: str | None) -> Role:
        """Lower-case, trim and map aliases to a canonical Role.

        Args:
            value: Raw role string from a request, cookie or config file

        Returns:
            The canonical Role

        Raises:
            InvalidRoleError: If the value is not a registered role or alias

        Examples:
            >>> RoleRegistry().normalize("  Publisher ")
            <Role.PUBLISHER: 'publisher'>
            >>> RoleRegistry().normalize("user")
            <Role.VIEWER: 'viewer'>
        """
        if not isinstance(value, str):
            raise InvalidRoleError(str(value), self.valid_names)

        candidate = value.strip().lower()
        if candidate in self.aliases:
            role = self.aliases[candidate]
        elif candidate in VALID_ROLES:
            role = Role(candidate)
        else:
            raise InvalidRoleError(value, self.valid_names)

        if role not in self.roles:
            raise InvalidRoleError(value, self.valid_names)
        return role

    @property
    def valid_names(self) -> frozenset[str]:
        return frozenset(role.value for role in self.roles)

    def ordered(self, roles: Iterable[Role]) -> list[Role]:
        """Return roles in registry declaration order, deduplicated."""
        wanted = set(roles)
        return [role for role in self.roles if role in wanted]

    def admin_roles(self) -> set[Role]:
        """Roles implied by an admin grant (everything except the reserved tier)."""
        return {role for role in self.roles if role not in self.admin_reserved}
