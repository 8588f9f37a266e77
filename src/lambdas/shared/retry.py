"""Retry utilities for transient DynamoDB failures.

For On-Call Engineers:
    - Retries are for TRANSIENT failures only (throttling, timeouts,
      transaction conflicts between two concurrent role writes)
    - Validation errors, condition failures and permission errors are NOT retried
    - Each retry is logged with attempt number
    - Max 3 attempts with exponential backoff (0.1s, 0.2s, 0.4s)
"""

import logging

from botocore.exceptions import ClientError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from src.lambdas.shared.dynamodb import transaction_cancel_reasons

logger = logging.getLogger(__name__)

# DynamoDB error codes that are retryable (transient)
DYNAMODB_RETRYABLE_ERRORS = {
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "InternalServerError",
    "ServiceUnavailable",
    "RequestLimitExceeded",
    "TransactionConflictException",
}


def _is_dynamodb_retryable(exception: BaseException) -> bool:
    """Check if DynamoDB exception is retryable.

    A cancelled transaction is retryable only when every failing reason is a
    conflict with another in-flight transaction on the same items.
    """
    if not isinstance(exception, ClientError):
        return False
    error_code = exception.response.get("Error", {}).get("Code", "")
    if error_code in DYNAMODB_RETRYABLE_ERRORS:
        return True
    failing = [code for code in transaction_cancel_reasons(exception) if code != "None"]
    return bool(failing) and all(code == "TransactionConflict" for code in failing)


# Pre-configured retry decorator for DynamoDB operations
dynamodb_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
    retry=retry_if_exception(_is_dynamodb_retryable),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
