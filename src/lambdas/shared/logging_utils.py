"""
Secure logging utilities to prevent log injection and identity exposure.

This module provides functions to sanitize data before logging, preventing:
- Log injection attacks (CWE-117, CWE-93) through role strings, paths and
  cookie values, all of which are client-controlled
- Full user identifiers appearing in logs
- Exception messages (which may echo user input) leaking into logs

Security References:
- OWASP Logging Cheat Sheet: https://cheatsheetseries.owasp.org/cheatsheets/Logging_Cheat_Sheet.html
- CodeQL Log Injection: https://codeql.github.com/codeql-query-help/python/py-log-injection/

Usage:
    logger.warning(
        "Role change denied",
        extra={"user_id_prefix": log_user_id(user_id), "role": sanitize_for_log(raw)},
    )
"""

import re
from typing import Any

# Maximum length for logged user input to prevent log flooding
MAX_LOG_INPUT_LENGTH = 200

# Number of identity characters kept in logs
USER_ID_PREFIX_LENGTH = 8


def sanitize_for_log(value: Any, max_length: int = MAX_LOG_INPUT_LENGTH) -> str:
    """
    Sanitize a value for safe logging by removing CRLF and limiting length.

    Args:
        value: Value to sanitize (will be converted to string)
        max_length: Maximum length of output (default: 200)

    Returns:
        Sanitized string safe for logging

    Security:
        - Removes \\r, \\n, \\t to prevent CRLF injection
        - Limits length to prevent log flooding
        - Replaces control characters with spaces

    Example:
        >>> sanitize_for_log("admin\\n[FAKE] role granted")
        'admin [FAKE] role granted'
    """
    text = str(value)

    # Remove CRLF characters to prevent log injection
    text = text.replace("\r", " ").replace("\n", " ").replace("\t", " ")

    # Remove other control characters
    text = re.sub(r"[\x00-\x1f\x7f-\x9f]", " ", text)

    if len(text) > max_length:
        text = text[:max_length] + "..."

    return text


def log_user_id(user_id: str | None) -> str:
    """
    Truncate a user identifier for logging.

    Example:
        >>> log_user_id("5f0c2d9e-1111-4222-8333-444455556666")
        '5f0c2d9e...'
    """
    if not user_id:
        return ""
    return sanitize_for_log(user_id[:USER_ID_PREFIX_LENGTH]) + "..."


def get_safe_error_info(exception: Exception) -> dict[str, str]:
    """
    Extract safe information from an exception for logging.

    Returns only the exception type, NOT the message, to prevent:
    - Logging user-controlled data that could inject log entries
    - Exposing storage details from botocore error messages

    Example:
        >>> try:
        ...     raise ValueError("user input here")
        ... except Exception as e:
        ...     get_safe_error_info(e)
        {'error_type': 'ValueError'}
    """
    return {"error_type": type(exception).__name__}
