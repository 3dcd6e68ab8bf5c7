from __future__ import annotations

import heapq
import itertools
from collections.abc import Callable
from datetime import datetime, timedelta

import pytest

from curtaincall.core import events as ev
from curtaincall.core.model import Candidate, CharacteristicInfo, Endpoint, MatchRules, ServiceInfo
from curtaincall.core.resolver import EndpointResolver
from curtaincall.core.scanner import TransportScanner
from curtaincall.core.session import ConnectionSession
from curtaincall.core.status import StatusFeed

HC08 = Candidate(identity="AA:BB:CC:DD:EE:01", name="HC-08", rssi=-60)
OTHER = Candidate(identity="11:22:33:44:55:66", name="Kitchen Speaker", rssi=-80)
FFE0 = "0000ffe0-0000-1000-8000-00805f9b34fb"
FFE1 = "0000ffe1-0000-1000-8000-00805f9b34fb"
BATTERY = "0000180f-0000-1000-8000-00805f9b34fb"
SVC_FFE0 = ServiceInfo(uuid=FFE0, handle=0x0010)
SVC_BATTERY = ServiceInfo(uuid=BATTERY, handle=0x0020)


def char(uuid: str, *properties: str, handle: int = 0x12, service: str | None = None) -> CharacteristicInfo:
    return CharacteristicInfo(uuid=uuid, properties=frozenset(properties), handle=handle, service_uuid=service)


class _Handle:
    def __init__(self, when: float, callback: Callable[[], None]) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeTimers:
    """Virtual time: callbacks run only when the test advances the clock."""

    def __init__(self) -> None:
        self.now = 0.0
        self._queue: list[tuple[float, int, _Handle]] = []
        self._seq = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], None]) -> _Handle:
        handle = _Handle(self.now + delay, callback)
        heapq.heappush(self._queue, (handle.when, next(self._seq), handle))
        return handle

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while self._queue and self._queue[0][0] <= target + 1e-9:
            when, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self.now = max(self.now, when)
            handle.callback()
        self.now = target

    @property
    def pending(self) -> int:
        return sum(1 for _, _, handle in self._queue if not handle.cancelled)


class FakeClock:
    def __init__(self, timers: FakeTimers, start: datetime) -> None:
        self._timers = timers
        self._start = start

    def now(self) -> datetime:
        return self._start + timedelta(seconds=self._timers.now)


class FakeRadio:
    """Records every request; tests deliver outcomes by calling the sink."""

    def __init__(self, timers: FakeTimers | None = None, *, available: bool = True) -> None:
        self._timers = timers
        self.available = available
        self.sink: Callable[[ev.TransportEvent], None] | None = None
        self.scans = 0
        self.stops = 0
        self.connects: list[Candidate] = []
        self.disconnects: list[str] = []
        self.service_requests: list[str] = []
        self.characteristic_requests: list[tuple[str, ServiceInfo]] = []
        self.probes: list[tuple[str, Endpoint]] = []
        self.writes: list[tuple[float, str, bytes, bool]] = []
        self.closed = False

    def bind(self, sink: Callable[[ev.TransportEvent], None]) -> None:
        self.sink = sink

    def emit(self, event: ev.TransportEvent) -> None:
        assert self.sink is not None
        self.sink(event)

    def start_scan(self) -> None:
        self.scans += 1

    def stop_scan(self) -> None:
        self.stops += 1

    def connect(self, candidate: Candidate) -> None:
        self.connects.append(candidate)

    def disconnect(self, identity: str) -> None:
        self.disconnects.append(identity)

    def discover_services(self, identity: str) -> None:
        self.service_requests.append(identity)

    def discover_characteristics(self, identity: str, service: ServiceInfo) -> None:
        self.characteristic_requests.append((identity, service))

    def probe(self, identity: str, endpoint: Endpoint) -> None:
        self.probes.append((identity, endpoint))

    def write(self, identity: str, endpoint: Endpoint, payload: bytes, *, response: bool) -> None:
        now = self._timers.now if self._timers else 0.0
        self.writes.append((now, identity, payload, response))

    async def aclose(self) -> None:
        self.closed = True


class Link:
    """Scanner, resolver and session wired to a fake radio and virtual time."""

    def __init__(self, *, available: bool = True) -> None:
        self.timers = FakeTimers()
        self.radio = FakeRadio(self.timers, available=available)
        self.status = StatusFeed()
        self.updates = []
        self.status.subscribe(self.updates.append)
        self.scanner = TransportScanner(
            self.radio, self.timers, self.status, rules=MatchRules(name_contains=("HC-08",))
        )
        self.resolver = EndpointResolver("ffe1")
        self.session = ConnectionSession(
            self.radio, self.scanner, self.resolver, self.timers, self.status
        )
        self.radio.bind(self.session.handle)

    def conditions(self) -> list:
        return [update.condition for update in self.updates]

    def make_ready(self, *properties: str, candidate: Candidate = HC08) -> None:
        """Drive the session from Disconnected to Ready."""
        props = properties or ("write-without-response", "write", "read", "notify")
        self.scanner.start_scan()
        self.radio.emit(ev.Discovered(candidate))
        if not self.radio.connects or self.radio.connects[-1] != candidate:
            self.session.connect(candidate)
        self.radio.emit(ev.Connected(candidate.identity))
        self.radio.emit(ev.ServicesDiscovered(candidate.identity, (SVC_FFE0,)))
        self.radio.emit(
            ev.CharacteristicsDiscovered(candidate.identity, SVC_FFE0, (char(FFE1, *props, service=FFE0),))
        )


@pytest.fixture
def link() -> Link:
    return Link()
