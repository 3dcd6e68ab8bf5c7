"""Transport interfaces."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from curtaincall.core.events import TransportEvent
from curtaincall.core.model import Candidate, Endpoint, ServiceInfo

EventSink = Callable[[TransportEvent], None]


class Radio(Protocol):
    """Non-blocking BLE central.

    Every request returns immediately; its outcome is delivered later to the
    bound sink as a transport event.
    """

    @property
    def available(self) -> bool:
        """Whether the adapter is believed to be powered on and usable."""

    def bind(self, sink: EventSink) -> None:
        """Register the single consumer of transport events."""

    def start_scan(self) -> None: ...

    def stop_scan(self) -> None: ...

    def connect(self, candidate: Candidate) -> None: ...

    def disconnect(self, identity: str) -> None: ...

    def discover_services(self, identity: str) -> None: ...

    def discover_characteristics(self, identity: str, service: ServiceInfo) -> None:
        """Query the characteristics of one service, addressed by its handle."""

    def probe(self, identity: str, endpoint: Endpoint) -> None:
        """Issue a lightweight read to wake an idle link."""

    def write(self, identity: str, endpoint: Endpoint, payload: bytes, *, response: bool) -> None: ...

    async def aclose(self) -> None: ...
