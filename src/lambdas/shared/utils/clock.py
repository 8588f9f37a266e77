"""Injectable wall clock.

Components that compare against deadlines take a ``clock`` argument so
tests can move time without patching datetime inside boto3.
"""

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)
