"""Route access guard for dashboard pages.

Every request whose path falls under a protected prefix goes through
RouteAccessGuard.check() before any downstream handler runs:

    Unchecked -> Allowed      no matching prefix, viewer hint on a
                              viewer route, live test-mode session, or
                              resolved current role in the required roles
    Unchecked -> Redirected   otherwise (login path when there is no identity)
    Unchecked -> Denied       a redirect to the same destination was issued
                              within the loop window; answer 403 instead of
                              bouncing again

The guard keeps no state between requests and never caches its decision.
The redirect-loop marker lives in a short-lived client cookie.

For On-Call Engineers:
    - "Redirect loop suppressed" warnings mean a client was bounced to the
      same landing page twice within REDIRECT_LOOP_WINDOW_SECONDS. Check the
      route table: the landing page itself may require a role the user lacks.
"""

from __future__ import annotations

import json
import logging
import math
import os
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, field_validator
from starlette.datastructures import MutableHeaders
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from src.lambdas.shared.auth.enums import Role
from src.lambdas.shared.auth.registry import RoleRegistry
from src.lambdas.shared.auth.roles import RoleResolver
from src.lambdas.shared.auth.testmode import TestModeSessionManager
from src.lambdas.shared.errors.role_errors import (
    ForbiddenRoleError,
    InvalidRoleError,
    RoleError,
    role_error_response,
)
from src.lambdas.shared.logging_utils import log_user_id, sanitize_for_log
from src.lambdas.shared.middleware.auth_middleware import extract_user_id
from src.lambdas.shared.utils.cookie_helpers import (
    REDIRECT_MARKER_COOKIE,
    ROLE_HINT_COOKIE,
    RequestHints,
    make_set_cookie,
    parse_request_hints,
)

logger = logging.getLogger(__name__)

ALL_ROLES = "*"
DEFAULT_ROUTE_TABLE_PATH = Path(__file__).resolve().parents[2] / "dashboard" / "route_roles.json"
DEFAULT_LOOP_WINDOW_SECONDS = 2.0


class RouteDecision(StrEnum):
    UNCHECKED = "unchecked"
    ALLOWED = "allowed"
    REDIRECTED = "redirected"
    DENIED = "denied"


@dataclass(frozen=True)
class GuardResult:
    """Outcome of one guard check."""

    decision: RouteDecision
    reason: str
    matched_prefix: str | None = None
    redirect_to: str | None = None
    resolved_role: Role | None = None


class RouteTableConfig(BaseModel):
    """Path prefix -> role names, as stored in route_roles.json."""

    routes: dict[str, list[str] | str]

    @field_validator("routes")
    @classmethod
    def _prefixes_are_paths(cls, value: dict[str, list[str] | str]) -> dict:
        for prefix in value:
            if not prefix.startswith("/"):
                raise ValueError(f"Route prefix must start with '/': {prefix}")
        return value


class RouteTable:
    """Static path -> required-roles map with longest-prefix lookup."""

    def __init__(self, routes: dict[str, frozenset[Role]]) -> None:
        self._routes = {_strip(prefix): roles for prefix, roles in routes.items()}
        # Longest first so the first hit is the most specific
        self._prefixes = sorted(self._routes, key=len, reverse=True)

    @classmethod
    def from_config(cls, config: RouteTableConfig, registry: RoleRegistry) -> RouteTable:
        """Build from parsed config; unknown role names raise InvalidRoleError."""
        routes: dict[str, frozenset[Role]] = {}
        for prefix, names in config.routes.items():
            if isinstance(names, str):
                names = [names]
            if ALL_ROLES in names:
                routes[prefix] = frozenset(registry.roles)
            else:
                routes[prefix] = frozenset(registry.normalize(name) for name in names)
        return cls(routes)

    @classmethod
    def load(cls, registry: RoleRegistry, path: str | Path | None = None) -> RouteTable:
        """Load the route table from ROUTE_ROLES_PATH or the bundled file."""
        source = Path(path or os.environ.get("ROUTE_ROLES_PATH") or DEFAULT_ROUTE_TABLE_PATH)
        with open(source) as f:
            config = RouteTableConfig.model_validate(json.load(f))
        table = cls.from_config(config, registry)
        logger.info("Loaded route table", extra={"routes": len(table._routes)})
        return table

    def match(self, path: str) -> tuple[str, frozenset[Role]] | None:
        """Longest protected prefix covering path, on segment boundaries.

        "/dashboard/admin" covers "/dashboard/admin" and "/dashboard/admin/x",
        but not "/dashboard/administrator".
        """
        clean = _strip(path.split("?", 1)[0])
        for prefix in self._prefixes:
            if clean == prefix or clean.startswith(prefix + "/") or prefix == "/":
                return prefix, self._routes[prefix]
        return None

    def __len__(self) -> int:
        return len(self._routes)


def _strip(path: str) -> str:
    if path != "/" and path.endswith("/"):
        return path.rstrip("/") or "/"
    return path


class RouteAccessGuard:
    """Allow or redirect a request based on the requester's resolved role."""

    def __init__(
        self,
        table: RouteTable,
        resolver: RoleResolver,
        test_mode: TestModeSessionManager,
        registry: RoleRegistry,
        landing_path: str | None = None,
        login_path: str | None = None,
        loop_window_seconds: float | None = None,
        time_fn: Callable[[], float] | None = None,
    ) -> None:
        self.table = table
        self._resolver = resolver
        self._test_mode = test_mode
        self._registry = registry
        self.landing_path = landing_path or os.environ.get("DEFAULT_LANDING_PATH", "/dashboard")
        self.login_path = login_path or os.environ.get("LOGIN_PATH", "/login")
        if loop_window_seconds is None:
            loop_window_seconds = float(
                os.environ.get("REDIRECT_LOOP_WINDOW_SECONDS", DEFAULT_LOOP_WINDOW_SECONDS)
            )
        self.loop_window_seconds = loop_window_seconds
        self._time_fn = time_fn

    def check(
        self,
        path: str,
        user_id: str | None,
        hints: RequestHints | None = None,
    ) -> GuardResult:
        """Decide one request. Runs synchronously; storage errors propagate."""
        hints = hints or RequestHints()
        matched = self.table.match(path)
        if matched is None:
            return GuardResult(RouteDecision.ALLOWED, "unprotected")
        prefix, required = matched

        if user_id is None:
            return self._redirect(self.login_path, hints, prefix, "unauthenticated")

        # Everyone always holds viewer, so a viewer hint cannot escalate
        if Role.VIEWER in required and self._hint_role(hints) == Role.VIEWER:
            return GuardResult(
                RouteDecision.ALLOWED, "viewer-hint", prefix, resolved_role=Role.VIEWER
            )

        if self._test_mode.is_active(user_id):
            return GuardResult(RouteDecision.ALLOWED, "test-mode", prefix)

        resolved = self._resolver.resolve(user_id)
        if resolved.current_role in required:
            logger.debug(
                "Route allowed",
                extra={
                    "path": sanitize_for_log(path),
                    "user_id_prefix": log_user_id(user_id),
                    "current_role": resolved.current_role.value,
                },
            )
            return GuardResult(
                RouteDecision.ALLOWED, "role", prefix, resolved_role=resolved.current_role
            )

        result = self._redirect(self.landing_path, hints, prefix, "role-not-permitted")
        return GuardResult(
            result.decision,
            result.reason,
            prefix,
            redirect_to=result.redirect_to,
            resolved_role=resolved.current_role,
        )

    def _hint_role(self, hints: RequestHints) -> Role | None:
        if not hints.role:
            return None
        try:
            return self._registry.normalize(hints.role)
        except InvalidRoleError:
            return None

    def _redirect(
        self, destination: str, hints: RequestHints, prefix: str, reason: str
    ) -> GuardResult:
        if self._is_loop(destination, hints):
            logger.warning(
                "Redirect loop suppressed",
                extra={"destination": sanitize_for_log(destination), "reason": reason},
            )
            return GuardResult(RouteDecision.DENIED, "redirect-loop", prefix)
        return GuardResult(RouteDecision.REDIRECTED, reason, prefix, redirect_to=destination)

    def _is_loop(self, destination: str, hints: RequestHints) -> bool:
        if hints.redirect_destination != destination or hints.redirected_at is None:
            return False
        elapsed = self._now() - hints.redirected_at
        return 0 <= elapsed < self.loop_window_seconds

    def _now(self) -> float:
        return self._time_fn() if self._time_fn else time.time()

    def redirect_marker(self, destination: str) -> str:
        """Set-Cookie value recording a redirect for loop detection."""
        return make_set_cookie(
            REDIRECT_MARKER_COOKIE,
            f"{destination}|{self._now():.3f}",
            max_age=max(1, math.ceil(self.loop_window_seconds)),
        )


class RouteGuardMiddleware:
    """ASGI middleware running RouteAccessGuard before the application.

    The guard is taken from ``app.state.role_services.route_guard`` unless
    one is passed explicitly.
    """

    def __init__(self, app: ASGIApp, guard: RouteAccessGuard | None = None) -> None:
        self.app = app
        self._guard = guard

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        guard = self._guard or request.app.state.role_services.route_guard
        hints = parse_request_hints(request.cookies)
        user_id = extract_user_id(request.headers)

        try:
            result = guard.check(request.url.path, user_id, hints)
        except RoleError as e:
            response = JSONResponse(status_code=e.status_code, content=role_error_response(e))
            await response(scope, receive, send)
            return

        if result.decision == RouteDecision.REDIRECTED:
            response = RedirectResponse(result.redirect_to, status_code=302)
            response.headers.append("set-cookie", guard.redirect_marker(result.redirect_to))
            logger.debug(
                "Route redirected",
                extra={
                    "path": sanitize_for_log(request.url.path),
                    "reason": result.reason,
                    "user_id_prefix": log_user_id(user_id),
                },
            )
            await response(scope, receive, send)
            return

        if result.decision == RouteDecision.DENIED:
            error = ForbiddenRoleError(result.matched_prefix or request.url.path)
            error.message = "Access denied"
            response = JSONResponse(status_code=403, content=role_error_response(error))
            await response(scope, receive, send)
            return

        set_cookie = None
        if result.resolved_role is not None and hints.role != result.resolved_role.value:
            set_cookie = make_set_cookie(ROLE_HINT_COOKIE, result.resolved_role.value)

        async def send_with_hint(message: Message) -> None:
            if set_cookie and message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                headers.append("set-cookie", set_cookie)
            await send(message)

        await self.app(scope, receive, send_with_hint)

