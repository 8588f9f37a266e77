"""Unit tests for RouteTable and RouteAccessGuard decisions."""

import json

import pytest
from pydantic import ValidationError

from src.lambdas.shared.auth.enums import ROLE_ORDER, Role
from src.lambdas.shared.errors.role_errors import InvalidRoleError
from src.lambdas.shared.middleware.route_guard import (
    RouteAccessGuard,
    RouteDecision,
    RouteTable,
    RouteTableConfig,
)
from src.lambdas.shared.utils.cookie_helpers import RequestHints

ROUTES = {
    "/dashboard": "*",
    "/dashboard/admin": ["admin"],
    "/dashboard/publisher": ["publisher", "admin"],
    "/dashboard/reports": ["stakeholder", "admin"],
    "/dashboard/developer": ["*"],
}


@pytest.fixture
def route_table(registry):
    return RouteTable.from_config(RouteTableConfig(routes=ROUTES), registry)


@pytest.fixture
def now():
    return {"t": 1_800_000_000.0}


@pytest.fixture
def guard(route_table, resolver, testmode_manager, registry, now):
    return RouteAccessGuard(
        table=route_table,
        resolver=resolver,
        test_mode=testmode_manager,
        registry=registry,
        landing_path="/dashboard",
        login_path="/login",
        loop_window_seconds=2,
        time_fn=lambda: now["t"],
    )


class TestRouteTable:
    def test_longest_prefix_wins(self, route_table) -> None:
        prefix, roles = route_table.match("/dashboard/admin/users")
        assert prefix == "/dashboard/admin"
        assert roles == frozenset({Role.ADMIN})

    def test_segment_boundary(self, route_table) -> None:
        prefix, _ = route_table.match("/dashboard/administrator")
        assert prefix == "/dashboard"

    def test_trailing_slash_and_query(self, route_table) -> None:
        prefix, _ = route_table.match("/dashboard/publisher/?tab=spaces")
        assert prefix == "/dashboard/publisher"

    def test_unmatched_path(self, route_table) -> None:
        assert route_table.match("/login") is None
        assert route_table.match("/api/v2/roles") is None

    def test_wildcard_expands_to_every_role(self, route_table) -> None:
        _, roles = route_table.match("/dashboard/developer/tools")
        assert roles == frozenset(ROLE_ORDER)

    def test_unknown_role_fails_at_load(self, registry) -> None:
        config = RouteTableConfig(routes={"/dashboard/x": ["admn"]})
        with pytest.raises(InvalidRoleError):
            RouteTable.from_config(config, registry)

    def test_prefix_must_be_a_path(self) -> None:
        with pytest.raises(ValidationError):
            RouteTableConfig(routes={"dashboard": ["admin"]})

    def test_load_from_env_path(self, tmp_path, registry) -> None:
        import os

        path = tmp_path / "routes.json"
        path.write_text(json.dumps({"routes": {"/x": ["publisher"]}}))
        os.environ["ROUTE_ROLES_PATH"] = str(path)

        table = RouteTable.load(registry)

        assert len(table) == 1
        assert table.match("/x/y")[1] == frozenset({Role.PUBLISHER})

    def test_bundled_table_loads(self, registry) -> None:
        import os

        os.environ.pop("ROUTE_ROLES_PATH", None)
        table = RouteTable.load(registry)
        assert table.match("/dashboard/admin")[1] == frozenset({Role.ADMIN})
        assert table.match("/dashboard/publisher")[1] == frozenset({Role.PUBLISHER, Role.ADMIN})
        assert table.match("/dashboard/developer")[1] == frozenset(ROLE_ORDER)


class TestGuardDecisions:
    def test_unprotected_path_allowed(self, guard) -> None:
        result = guard.check("/login", None)
        assert result.decision == RouteDecision.ALLOWED
        assert result.reason == "unprotected"

    def test_viewer_redirected_from_admin(self, guard, seed_user) -> None:
        uid = seed_user()
        result = guard.check("/dashboard/admin", uid)
        assert result.decision == RouteDecision.REDIRECTED
        assert result.redirect_to == "/dashboard"
        assert result.resolved_role == Role.VIEWER

    def test_admin_allowed(self, guard, seed_user) -> None:
        uid = seed_user(roles=["admin"], current="admin")
        result = guard.check("/dashboard/admin", uid)
        assert result.decision == RouteDecision.ALLOWED
        assert result.resolved_role == Role.ADMIN

    def test_admin_operating_as_viewer_is_redirected(self, guard, seed_user) -> None:
        """Decisions use the current role, not every held role."""
        uid = seed_user(roles=["admin"], current="viewer")
        assert guard.check("/dashboard/admin", uid).decision == RouteDecision.REDIRECTED

    def test_test_mode_supersedes_route_restrictions(
        self, guard, seed_user, testmode_manager
    ) -> None:
        uid = seed_user()
        testmode_manager.enable(uid, duration_seconds=60, initial_role="viewer")
        result = guard.check("/dashboard/admin", uid)
        assert result.decision == RouteDecision.ALLOWED
        assert result.reason == "test-mode"

    def test_expired_test_mode_no_longer_allows(
        self, guard, seed_user, testmode_manager, clock
    ) -> None:
        uid = seed_user()
        testmode_manager.enable(uid, duration_seconds=60, initial_role="viewer")
        clock.advance(61)
        assert guard.check("/dashboard/admin", uid).decision == RouteDecision.REDIRECTED

    def test_unauthenticated_redirects_to_login(self, guard) -> None:
        result = guard.check("/dashboard/admin", None)
        assert result.decision == RouteDecision.REDIRECTED
        assert result.redirect_to == "/login"

    def test_revocation_takes_effect_next_request(self, guard, seed_user, role_store) -> None:
        uid = seed_user(roles=["publisher"], current="publisher")
        assert guard.check("/dashboard/publisher", uid).decision == RouteDecision.ALLOWED
        role_store.revoke_grant(uid, Role.PUBLISHER)
        assert guard.check("/dashboard/publisher", uid).decision == RouteDecision.REDIRECTED


class TestHints:
    def test_viewer_hint_skips_lookup(self, guard, user_id) -> None:
        # user has no profile; the viewer hint alone admits a viewer route
        result = guard.check("/dashboard", user_id, RequestHints(role="viewer"))
        assert result.decision == RouteDecision.ALLOWED
        assert result.reason == "viewer-hint"

    def test_privileged_hint_is_not_trusted(self, guard, seed_user) -> None:
        uid = seed_user()
        result = guard.check("/dashboard/admin", uid, RequestHints(role="admin"))
        assert result.decision == RouteDecision.REDIRECTED

    def test_test_mode_hint_is_not_trusted(self, guard, seed_user) -> None:
        uid = seed_user()
        result = guard.check("/dashboard/admin", uid, RequestHints(test_mode=True))
        assert result.decision == RouteDecision.REDIRECTED

    def test_viewer_hint_irrelevant_on_admin_route(self, guard, seed_user) -> None:
        uid = seed_user(roles=["admin"], current="admin")
        result = guard.check("/dashboard/admin", uid, RequestHints(role="viewer"))
        assert result.decision == RouteDecision.ALLOWED
        assert result.reason == "role"

    def test_garbage_hint_ignored(self, guard, seed_user) -> None:
        uid = seed_user()
        result = guard.check("/dashboard", uid, RequestHints(role="\x00root"))
        assert result.decision == RouteDecision.ALLOWED
        assert result.reason == "role"


class TestRedirectLoopGuard:
    def test_repeat_redirect_within_window_denied(self, guard, seed_user, now) -> None:
        uid = seed_user()
        hints = RequestHints(redirect_destination="/dashboard", redirected_at=now["t"] - 1.5)
        result = guard.check("/dashboard/admin", uid, hints)
        assert result.decision == RouteDecision.DENIED
        assert result.reason == "redirect-loop"

    def test_redirect_after_window_allowed(self, guard, seed_user, now) -> None:
        uid = seed_user()
        hints = RequestHints(redirect_destination="/dashboard", redirected_at=now["t"] - 2.0)
        assert guard.check("/dashboard/admin", uid, hints).decision == RouteDecision.REDIRECTED

    def test_different_destination_not_a_loop(self, guard, seed_user, now) -> None:
        uid = seed_user()
        hints = RequestHints(redirect_destination="/login", redirected_at=now["t"])
        assert guard.check("/dashboard/admin", uid, hints).decision == RouteDecision.REDIRECTED

    def test_future_marker_ignored(self, guard, seed_user, now) -> None:
        uid = seed_user()
        hints = RequestHints(redirect_destination="/dashboard", redirected_at=now["t"] + 60)
        assert guard.check("/dashboard/admin", uid, hints).decision == RouteDecision.REDIRECTED

    def test_marker_cookie_value(self, guard, now) -> None:
        cookie = guard.redirect_marker("/dashboard")
        assert cookie.startswith(f'adreach_redirect="/dashboard|{now["t"]:.3f}"') or cookie.startswith(
            f"adreach_redirect=/dashboard|{now['t']:.3f}"
        )
        assert "Max-Age=2" in cookie

    def test_guard_reads_window_from_env(self, route_table, resolver, testmode_manager, registry) -> None:
        import os

        os.environ["REDIRECT_LOOP_WINDOW_SECONDS"] = "5"
        guard = RouteAccessGuard(route_table, resolver, testmode_manager, registry)
        assert guard.loop_window_seconds == 5.0
