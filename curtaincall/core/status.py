"""Observable status messages for frontends.

Components publish human readable updates tagged with a condition. Nothing in
the core depends on a subscriber being attached.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

LOGGER = logging.getLogger(__name__)

LINK = "link"
ALARM = "alarm"


class Condition(str, Enum):
    INFO = "info"
    TRANSPORT_UNAVAILABLE = "transport_unavailable"
    CONNECT_FAILED = "connect_failed"
    UNSOLICITED_DISCONNECT = "unsolicited_disconnect"
    ENDPOINT_NOT_FOUND = "endpoint_not_found"
    ENDPOINT_NOT_WRITABLE = "endpoint_not_writable"
    WRITE_FAILED = "write_failed"
    NOT_READY = "not_ready"


@dataclass(frozen=True)
class StatusUpdate:
    source: str
    message: str
    condition: Condition = Condition.INFO


Subscriber = Callable[[StatusUpdate], None]


class StatusFeed:
    def __init__(self) -> None:
        self._latest: dict[str, StatusUpdate] = {}
        self._subscribers: list[Subscriber] = []

    def publish(self, source: str, message: str, condition: Condition = Condition.INFO) -> StatusUpdate:
        update = StatusUpdate(source=source, message=message, condition=condition)
        self._latest[source] = update
        if condition is Condition.INFO:
            LOGGER.info("[%s] %s", source, message)
        else:
            LOGGER.warning("[%s] %s (%s)", source, message, condition.value)
        for subscriber in list(self._subscribers):
            subscriber(update)
        return update

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Register a subscriber and return a callable that removes it."""
        self._subscribers.append(subscriber)

        def _unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return _unsubscribe

    def latest(self, source: str) -> StatusUpdate | None:
        return self._latest.get(source)

    def message(self, source: str) -> str:
        update = self._latest.get(source)
        return update.message if update else ""
