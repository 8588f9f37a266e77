"""Unit tests for TestModeSessionManager.

Sessions live in the moto table; time is driven by the injected clock.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from botocore.exceptions import ClientError

from src.lambdas.shared.auth.enums import ROLE_ORDER, Role
from src.lambdas.shared.auth.testmode import TestModeSessionManager, is_production
from src.lambdas.shared.errors.role_errors import (
    ForbiddenRoleError,
    InvalidRoleError,
    RoleStoreError,
    TestModeUnavailableError,
    UserNotFoundError,
)
from src.lambdas.shared.events.role_event_bus import RoleTopic
from src.lambdas.shared.models.testmode_session import TEST_MODE_SK


def _manager(dynamodb_table, role_store, bus, registry, clock, environment):
    return TestModeSessionManager(
        table=dynamodb_table,
        store=role_store,
        bus=bus,
        registry=registry,
        environment=environment,
        clock=clock,
    )


class TestEnable:
    def test_enable_all_roles(self, testmode_manager, seed_user, clock) -> None:
        uid = seed_user()
        session = testmode_manager.enable(uid, duration_seconds=60, initial_role="publisher")

        assert session.granted_roles == frozenset(ROLE_ORDER)
        assert session.expires_at == clock() + timedelta(seconds=60)
        assert session.initial_role == Role.PUBLISHER
        assert testmode_manager.is_active(uid)

    def test_enable_sets_current_role(self, testmode_manager, seed_user, role_store) -> None:
        uid = seed_user()
        testmode_manager.enable(uid, duration_seconds=60, initial_role="stakeholder")
        assert role_store.get_user(uid).current_role == Role.STAKEHOLDER

    def test_default_duration_is_four_hours(self, testmode_manager, seed_user, clock) -> None:
        uid = seed_user()
        session = testmode_manager.enable(uid)
        assert session.expires_at - clock() == timedelta(hours=4)
        assert session.initial_role == Role.VIEWER

    def test_subset_always_includes_viewer(self, testmode_manager, seed_user) -> None:
        uid = seed_user()
        session = testmode_manager.enable(
            uid, duration_seconds=60, all_roles=False, roles=["Advertiser"]
        )
        assert session.granted_roles == frozenset({Role.VIEWER, Role.ADVERTISER})

    def test_initial_role_must_be_granted(self, testmode_manager, seed_user, role_store) -> None:
        uid = seed_user()
        with pytest.raises(ForbiddenRoleError):
            testmode_manager.enable(
                uid, duration_seconds=60, initial_role="admin", all_roles=False, roles=["publisher"]
            )
        assert testmode_manager.get_session(uid) is None
        assert role_store.get_user(uid).current_role == Role.VIEWER

    def test_unknown_roles_rejected(self, testmode_manager, seed_user) -> None:
        uid = seed_user()
        with pytest.raises(InvalidRoleError):
            testmode_manager.enable(uid, all_roles=False, roles=["wizard"])

    @pytest.mark.parametrize("duration", [0, -5, 86401])
    def test_duration_bounds(self, testmode_manager, seed_user, duration: int) -> None:
        uid = seed_user()
        with pytest.raises(TestModeUnavailableError):
            testmode_manager.enable(uid, duration_seconds=duration)

    def test_missing_user_leaves_no_session(self, testmode_manager, user_id) -> None:
        with pytest.raises(UserNotFoundError):
            testmode_manager.enable(user_id, duration_seconds=60)
        assert testmode_manager.get_session(user_id) is None

    def test_failed_session_write_keeps_current_role(
        self, testmode_manager, seed_user, role_store, dynamodb_table
    ) -> None:
        uid = seed_user(roles=["advertiser"], current="advertiser")
        error = ClientError({"Error": {"Code": "InternalServerError"}}, "PutItem")

        with patch.object(dynamodb_table, "put_item", side_effect=error):
            with pytest.raises(RoleStoreError):
                testmode_manager.enable(uid, duration_seconds=60, initial_role="admin")

        assert role_store.get_user(uid).current_role == Role.ADVERTISER
        assert testmode_manager.get_session(uid) is None

    def test_failed_role_write_removes_session(self, testmode_manager, seed_user, role_store, bus) -> None:
        received = []
        bus.subscribe(RoleTopic.TEST_MODE_ACTIVATED, received.append)
        uid = seed_user()

        with patch.object(role_store, "set_current_role", side_effect=RoleStoreError()):
            with pytest.raises(RoleStoreError):
                testmode_manager.enable(uid, duration_seconds=60, initial_role="admin")

        assert testmode_manager.get_session(uid) is None
        assert received == []

    def test_session_item_has_ttl(self, testmode_manager, seed_user, dynamodb_table) -> None:
        uid = seed_user()
        session = testmode_manager.enable(uid, duration_seconds=120)
        item = dynamodb_table.get_item(Key={"PK": f"USER#{uid}", "SK": TEST_MODE_SK})["Item"]
        assert int(item["ttl"]) == int(session.expires_at.timestamp())

    def test_enable_publishes_activated(self, testmode_manager, seed_user, bus) -> None:
        received = []
        bus.subscribe(RoleTopic.TEST_MODE_ACTIVATED, received.append)
        uid = seed_user()
        testmode_manager.enable(uid, duration_seconds=60, initial_role="admin")

        assert len(received) == 1
        assert received[0]["userId"] == uid
        assert received[0]["initialRole"] == "admin"
        assert received[0]["grantedRoles"] == [r.value for r in ROLE_ORDER]


class TestProductionGate:
    @pytest.mark.parametrize("environment", ["prod", "production", " PROD "])
    def test_enable_rejected_in_production(
        self, dynamodb_table, role_store, bus, registry, clock, seed_user, environment
    ) -> None:
        manager = _manager(dynamodb_table, role_store, bus, registry, clock, environment)
        uid = seed_user()
        with pytest.raises(TestModeUnavailableError):
            manager.enable(uid, duration_seconds=60)
        assert not manager.available

    def test_stored_session_ignored_in_production(
        self, dynamodb_table, role_store, bus, registry, clock, seed_user, testmode_manager
    ) -> None:
        uid = seed_user()
        testmode_manager.enable(uid, duration_seconds=60)

        prod = _manager(dynamodb_table, role_store, bus, registry, clock, "prod")
        assert prod.get_session(uid) is not None
        assert not prod.is_active(uid)
        assert prod.active_session(uid) is None

    @pytest.mark.parametrize(
        "environment,expected",
        [("prod", True), ("Production", True), ("preprod", False), ("dev", False), (None, False)],
    )
    def test_is_production(self, environment, expected: bool) -> None:
        assert is_production(environment) is expected


class TestLazyExpiry:
    def test_active_until_deadline_inclusive(self, testmode_manager, seed_user, clock) -> None:
        uid = seed_user()
        testmode_manager.enable(uid, duration_seconds=60)
        clock.advance(60)
        assert testmode_manager.is_active(uid)
        clock.advance(1)
        assert not testmode_manager.is_active(uid)

    def test_expired_session_still_stored(self, testmode_manager, seed_user, clock) -> None:
        uid = seed_user()
        testmode_manager.enable(uid, duration_seconds=60)
        clock.advance(3600)
        raw = testmode_manager.get_session(uid)
        assert raw is not None and raw.active
        assert testmode_manager.active_session(uid) is None

    def test_time_remaining(self, testmode_manager, seed_user, clock) -> None:
        uid = seed_user()
        assert testmode_manager.time_remaining(uid) is None
        testmode_manager.enable(uid, duration_seconds=600)
        clock.advance(100)
        assert testmode_manager.time_remaining(uid) == timedelta(seconds=500)
        clock.advance(501)
        assert testmode_manager.time_remaining(uid) is None


class TestDisable:
    def test_disable_clears_session(self, testmode_manager, seed_user, bus) -> None:
        received = []
        bus.subscribe(RoleTopic.TEST_MODE_DEACTIVATED, received.append)
        uid = seed_user()
        testmode_manager.enable(uid, duration_seconds=60)

        testmode_manager.disable(uid)

        assert not testmode_manager.is_active(uid)
        assert testmode_manager.get_session(uid) is None
        assert [p["userId"] for p in received] == [uid]

    def test_disable_is_idempotent(self, testmode_manager, seed_user, bus) -> None:
        received = []
        bus.subscribe(RoleTopic.TEST_MODE_DEACTIVATED, received.append)
        uid = seed_user()
        testmode_manager.disable(uid)
        testmode_manager.disable(uid)
        assert received == []
