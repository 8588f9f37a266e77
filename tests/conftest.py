"""
Pytest Configuration and Shared Fixtures
=========================================

Common fixtures used across all test modules.

Test Environment Separation:
    - LOCAL/DEV: Mocked AWS (moto) - runs with `pytest -m "not preprod"`
    - PREPROD/PROD: Real AWS resources - runs with `pytest -m "preprod"` or via CI

For On-Call Engineers:
    If tests fail with AWS credential errors:
    1. Ensure moto is properly mocking (check mock_aws usage)
    2. Verify AWS env vars are set in fixtures

For Developers:
    - Import fixtures by name in test files (pytest auto-discovers conftest.py)
    - All fixtures use moto mocks (no real AWS calls)
    - Store-backed components take an injected clock; use the `clock`
      fixture and clock.advance() instead of freezing time around moto
    - Add new shared fixtures here, test-specific fixtures in test files
"""

import logging
import os
import uuid
from datetime import UTC, datetime, timedelta
from pathlib import Path

import boto3
import pytest
from moto import mock_aws

# =============================================================================
# Pytest Marker Registration
# =============================================================================


def pytest_configure(config):
    """Register custom markers to avoid warnings."""
    config.addinivalue_line(
        "markers",
        "preprod: marks tests that require real AWS resources (deselect with '-m \"not preprod\"')",
    )


def pytest_collection_modifyitems(config, items):
    """Files with "preprod" in their name are marked as preprod tests."""
    preprod_marker = pytest.mark.preprod

    for item in items:
        test_file = Path(item.fspath)
        if "preprod" in test_file.name.lower():
            item.add_marker(preprod_marker)


# Set default test environment variables at module load time
# This allows test files to import modules that read env vars at import time
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("AWS_REGION", "us-east-1")
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")

# X-Ray requires a Lambda runtime context with an active segment. In tests
# there is none, so the SDK must be disabled to no-op quietly.
os.environ.setdefault("AWS_XRAY_SDK_ENABLED", "false")

TEST_TABLE_NAME = "test-adreach-dashboard"

if "DATABASE_TABLE" not in os.environ:
    os.environ["DATABASE_TABLE"] = TEST_TABLE_NAME
if "ENVIRONMENT" not in os.environ:
    os.environ["ENVIRONMENT"] = "test"


@pytest.fixture(autouse=True)
def reset_env_vars():
    """
    Reset environment variables before each test.

    Ensures tests don't pollute each other's environment.
    """
    original_env = os.environ.copy()

    yield

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def aws_credentials():
    """
    Set up mock AWS credentials for moto.

    Use this fixture when testing AWS SDK calls.
    """
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_REGION"] = "us-east-1"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"

    yield


# =============================================================================
# Role Subsystem Fixtures
# =============================================================================


class FakeClock:
    """Settable time source for components that take a ``clock`` argument."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock():
    """Clock fixed at 2026-01-15T12:00:00Z; move it with clock.advance()."""
    return FakeClock(datetime(2026, 1, 15, 12, 0, 0, tzinfo=UTC))


@pytest.fixture
def dynamodb_table(aws_credentials):
    """
    Create a mocked single-table DynamoDB table.

    Schema:
    - PK: USER#{user_id} (String)
    - SK: PROFILE | ROLE#{role} | TESTMODE (String)
    """
    with mock_aws():
        client = boto3.client("dynamodb", region_name="us-east-1")
        client.create_table(
            TableName=TEST_TABLE_NAME,
            KeySchema=[
                {"AttributeName": "PK", "KeyType": "HASH"},
                {"AttributeName": "SK", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "PK", "AttributeType": "S"},
                {"AttributeName": "SK", "AttributeType": "S"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        yield boto3.resource("dynamodb", region_name="us-east-1").Table(TEST_TABLE_NAME)


@pytest.fixture
def registry():
    from src.lambdas.shared.auth.registry import RoleRegistry

    return RoleRegistry()


@pytest.fixture
def bus():
    from src.lambdas.shared.events.role_event_bus import RoleEventBus

    return RoleEventBus()


@pytest.fixture
def role_store(dynamodb_table, clock):
    from src.lambdas.shared.role_store import DynamoDBRoleStore

    return DynamoDBRoleStore(dynamodb_table, clock=clock)


@pytest.fixture
def testmode_manager(dynamodb_table, role_store, bus, registry, clock):
    from src.lambdas.shared.auth.testmode import TestModeSessionManager

    return TestModeSessionManager(
        table=dynamodb_table,
        store=role_store,
        bus=bus,
        registry=registry,
        environment="test",
        clock=clock,
    )


@pytest.fixture
def resolver(role_store, testmode_manager, registry):
    from src.lambdas.shared.auth.roles import RoleResolver

    return RoleResolver(role_store, testmode_manager, registry)


@pytest.fixture
def user_id():
    return str(uuid.uuid4())


@pytest.fixture
def seed_user(role_store, clock):
    """Create a profile with extra grants and an optional current role.

    Example:
        uid = seed_user(roles=["publisher"], current="publisher")
    """
    from src.lambdas.shared.auth.enums import Role

    def _seed(user_id=None, roles=(), current=None):
        uid = user_id or str(uuid.uuid4())
        role_store.create_user(uid)
        for role in roles:
            role_store.upsert_grant(uid, Role(role))
        if current is not None:
            role_store.set_current_role(uid, Role(current), clock())
        return uid

    return _seed


@pytest.fixture
def role_services(dynamodb_table, clock):
    """Full RoleServices bundle over the mocked table."""
    from src.lambdas.dashboard.handler import build_services

    return build_services(dynamodb_table, "test", clock=clock)


def auth_headers(user_id: str) -> dict[str, str]:
    """Bearer headers for a UUID identity."""
    return {"Authorization": f"Bearer {user_id}"}


# =============================================================================
# Log Validation Helpers
# =============================================================================
#
# Production code logs normally (never test-aware); tests explicitly assert
# on expected logs using caplog.


def assert_error_logged(caplog, pattern: str):
    """
    Helper to assert an ERROR log was captured.

    Raises:
        AssertionError: If no ERROR log matches the pattern
    """
    assert any(
        pattern in record.message
        for record in caplog.records
        if record.levelno >= logging.ERROR
    ), f"Expected ERROR log matching '{pattern}' not found"


def assert_warning_logged(caplog, pattern: str):
    """
    Helper to assert a WARNING log was captured.

    Raises:
        AssertionError: If no WARNING log matches the pattern
    """
    assert any(
        pattern in record.message
        for record in caplog.records
        if record.levelno == logging.WARNING
    ), f"Expected WARNING log matching '{pattern}' not found"
