"""
DynamoDB Helper Module
======================

Provides DynamoDB table access with retry configuration for the dashboard.

For On-Call Engineers:
    - If you see `ProvisionedThroughputExceededException`, check the
      `${environment}-dynamodb-write-throttles` alarm. Table uses on-demand billing.
    - Retry logic handles transient failures automatically (3 attempts with backoff).
    - Role writes use TransactWriteItems; `TransactionCanceledException` with a
      ConditionalCheckFailed reason means the user profile does not exist.

For Developers:
    - Single-table design: PK=USER#{user_id}
        SK=PROFILE           user profile + legacy capability flags
        SK=ROLE#{role}       one row per (user, role) grant
        SK=TESTMODE          test-mode override session (TTL attribute `ttl`)
    - All functions use parameterized expressions to prevent NoSQL injection.
    - Never construct Key expressions with string concatenation of user input.
"""

import logging
import os
from typing import Any

import boto3
from botocore.config import Config

# Structured logging for CloudWatch
logger = logging.getLogger(__name__)

# Retry configuration for transient failures
# On-Call Note: Increase max_attempts if seeing intermittent throttling
RETRY_CONFIG = Config(
    retries={
        "max_attempts": 3,
        "mode": "adaptive",  # Automatically adjusts to throttling
    },
    connect_timeout=5,
    read_timeout=10,
)

PROFILE_SK = "PROFILE"


def _region(region_name: str | None) -> str:
    region = (
        region_name
        or os.environ.get("AWS_DEFAULT_REGION")
        or os.environ.get("AWS_REGION")
    )
    if not region:
        raise ValueError(
            "AWS_DEFAULT_REGION or AWS_REGION environment variable must be set"
        )
    return region


def get_dynamodb_resource(region_name: str | None = None) -> Any:
    """
    Get a DynamoDB resource with retry configuration.

    Args:
        region_name: AWS region (defaults to AWS_DEFAULT_REGION env var)

    Returns:
        boto3 DynamoDB resource

    On-Call Note:
        If this fails with credential errors, check:
        1. Lambda execution role has dynamodb:* permissions
        2. Region matches table location
    """
    return boto3.resource(
        "dynamodb",
        region_name=_region(region_name),
        config=RETRY_CONFIG,
    )


def get_table(table_name: str | None = None, region_name: str | None = None) -> Any:
    """
    Get a DynamoDB table resource.

    Args:
        table_name: Table name (defaults to DATABASE_TABLE, then DYNAMODB_TABLE)
        region_name: AWS region

    Returns:
        boto3 DynamoDB Table resource

    On-Call Note:
        If table not found, verify:
        1. DATABASE_TABLE env var is set correctly
        2. Table exists: aws dynamodb describe-table --table-name <name>
    """
    name = (
        table_name
        or os.environ.get("DATABASE_TABLE")
        or os.environ.get("DYNAMODB_TABLE")
    )
    if not name:
        raise ValueError(
            "Table name required: set DATABASE_TABLE env var or pass table_name"
        )

    resource = get_dynamodb_resource(region_name)
    return resource.Table(name)


def build_user_key(user_id: str, sort_key: str = PROFILE_SK) -> dict[str, str]:
    """
    Build a DynamoDB key for a user-partitioned item.

    Example:
        >>> build_user_key("abc", "ROLE#publisher")
        {'PK': 'USER#abc', 'SK': 'ROLE#publisher'}
    """
    return {"PK": f"USER#{user_id}", "SK": sort_key}


def transaction_cancel_reasons(error: Exception) -> list[str]:
    """Extract CancellationReasons codes from a TransactionCanceledException.

    Returns an empty list for any other error.
    """
    response = getattr(error, "response", None) or {}
    if response.get("Error", {}).get("Code") != "TransactionCanceledException":
        return []
    return [reason.get("Code", "None") for reason in response.get("CancellationReasons", [])]
