"""Property tests for role normalization and resolution.

Properties:
- normalize is idempotent for every input it accepts
- viewer is always available, whatever the grants or session
- a live all-roles session makes every registered role available
- without a session, available roles are exactly the persisted grants
  (plus viewer and the admin expansion)
"""

from datetime import UTC, datetime, timedelta

from hypothesis import given, settings
from hypothesis import strategies as st

from src.lambdas.shared.auth.enums import ROLE_ORDER, Role
from src.lambdas.shared.auth.permissions import PERMISSIONS, has_permission
from src.lambdas.shared.auth.registry import RoleRegistry
from src.lambdas.shared.auth.roles import resolve_roles
from src.lambdas.shared.errors.role_errors import InvalidRoleError
from src.lambdas.shared.models.testmode_session import TestModeSession
from tests.property.conftest import PROPERTY_USER_ID, grant_sets, role_strings

REGISTRY = RoleRegistry()
NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=UTC)
USER_ID = PROPERTY_USER_ID


def _session(granted) -> TestModeSession:
    return TestModeSession(
        user_id=USER_ID,
        created_at=NOW,
        expires_at=NOW + timedelta(hours=1),
        initial_role=Role.VIEWER,
        granted_roles=frozenset(granted),
    )


class TestNormalizeProperties:
    @settings(max_examples=200)
    @given(raw=role_strings())
    def test_normalize_is_idempotent(self, raw: str) -> None:
        try:
            once = REGISTRY.normalize(raw)
        except InvalidRoleError:
            return
        assert REGISTRY.normalize(once) == once
        assert REGISTRY.normalize(once.value) == once


class TestResolveProperties:
    @settings(max_examples=200)
    @given(
        grants=grant_sets(),
        stored=st.none() | st.sampled_from(ROLE_ORDER),
        with_session=st.booleans(),
    )
    def test_viewer_always_available(self, grants, stored, with_session) -> None:
        session = _session({Role.VIEWER}) if with_session else None
        resolved = resolve_roles(USER_ID, stored, grants, session, REGISTRY)
        assert Role.VIEWER in resolved.available_roles
        assert resolved.current_role in resolved.available_roles

    @settings(max_examples=100)
    @given(grants=grant_sets(), stored=st.none() | st.sampled_from(ROLE_ORDER))
    def test_all_roles_session_exposes_full_registry(self, grants, stored) -> None:
        resolved = resolve_roles(USER_ID, stored, grants, _session(ROLE_ORDER), REGISTRY)
        assert resolved.available_roles == ROLE_ORDER
        assert resolved.is_test_mode is True

    @settings(max_examples=100)
    @given(grants=grant_sets())
    def test_no_session_means_persisted_grants_only(self, grants) -> None:
        resolved = resolve_roles(USER_ID, None, grants, None, REGISTRY)
        persisted = {g.role for g in grants if g.active and not g.is_test_grant}
        expected = persisted | {Role.VIEWER}
        if Role.ADMIN in persisted:
            expected |= REGISTRY.admin_roles()
        assert set(resolved.available_roles) == expected
        assert resolved.current_role == Role.VIEWER


class TestPermissionProperties:
    @settings(max_examples=50)
    @given(name=st.sampled_from(sorted(PERMISSIONS)))
    def test_admin_holds_what_its_implied_roles_hold(self, name: str) -> None:
        if any(has_permission(name, role) for role in REGISTRY.admin_roles()):
            assert has_permission(name, Role.ADMIN)

    @settings(max_examples=50)
    @given(name=st.sampled_from(sorted(PERMISSIONS)))
    def test_unreserved_admin_holds_everything(self, name: str) -> None:
        assert has_permission(name, Role.ADMIN, RoleRegistry(admin_reserved=()))
