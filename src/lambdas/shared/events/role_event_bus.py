"""Synchronous publish/subscribe channel for role notifications.

One RoleEventBus instance is owned by the composition root
(see dashboard.handler.build_services) and passed by reference to every
component that publishes or subscribes. There is no module-level bus.

Delivery:
    publish() invokes the topic's subscribers immediately, in
    registration order, on the caller's thread. Delivery is best-effort:
    a subscriber that raises is logged and skipped so it cannot block the
    publisher or later subscribers. Anything that needs authoritative
    state must re-resolve via RoleResolver instead of trusting a payload.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from src.lambdas.shared.logging_utils import get_safe_error_info

logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any]], None]


class RoleTopic(StrEnum):
    """Topics carried by the bus."""

    ROLE_CHANGED = "role:changed"
    ROLES_UPDATED = "role:roles-updated"
    TEST_MODE_ACTIVATED = "testmode:activated"
    TEST_MODE_DEACTIVATED = "testmode:deactivated"


class RoleEventBus:
    """In-process observer lists keyed by topic."""

    def __init__(self) -> None:
        self._subscribers: dict[RoleTopic, list[Handler]] = {
            topic: [] for topic in RoleTopic
        }
        # Guards the lists only; handlers run outside the lock
        self._lock = threading.Lock()

    def subscribe(self, topic: RoleTopic | str, handler: Handler) -> Callable[[], None]:
        """Register a handler for a topic.

        Args:
            topic: One of RoleTopic (plain strings are accepted)
            handler: Callable receiving the payload dict

        Returns:
            An unsubscribe function. Calling it more than once is a no-op.

        Raises:
            ValueError: If the topic is unknown
        """
        key = RoleTopic(topic)
        with self._lock:
            self._subscribers[key].append(handler)

        def unsubscribe() -> None:
            with self._lock:
                try:
                    self._subscribers[key].remove(handler)
                except ValueError:
                    pass

        return unsubscribe

    def subscribe_all(self, handler: Handler) -> Callable[[], None]:
        """Register a handler on every topic; returns a single unsubscribe."""
        unsubscribers = [self.subscribe(topic, handler) for topic in RoleTopic]

        def unsubscribe() -> None:
            for fn in unsubscribers:
                fn()

        return unsubscribe

    def publish(self, topic: RoleTopic | str, payload: dict[str, Any] | None = None) -> int:
        """Deliver a payload to the topic's current subscribers.

        Returns:
            Number of handlers that completed without raising
        """
        key = RoleTopic(topic)
        with self._lock:
            handlers = list(self._subscribers[key])

        message = dict(payload or {})
        message.setdefault("topic", key.value)

        delivered = 0
        for handler in handlers:
            try:
                handler(message)
                delivered += 1
            except Exception as e:
                logger.warning(
                    "Role event subscriber failed",
                    extra={"topic": key.value, **get_safe_error_info(e)},
                )

        logger.debug(
            "Role event published",
            extra={"topic": key.value, "subscribers": len(handlers)},
        )
        return delivered

    def subscriber_count(self, topic: RoleTopic | str) -> int:
        with self._lock:
            return len(self._subscribers[RoleTopic(topic)])
