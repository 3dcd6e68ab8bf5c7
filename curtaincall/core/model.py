"""Core data models used across the link, scheduler, loader, and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import time

COMMAND_PAYLOAD = b"1"

WRITE = "write"
WRITE_WITHOUT_RESPONSE = "write-without-response"
READ = "read"
NOTIFY = "notify"


@dataclass(frozen=True)
class MatchRules:
    name_contains: tuple[str, ...]


@dataclass(frozen=True)
class Timing:
    scan_window_s: float = 10.0
    connect_timeout_s: float = 10.0
    reconnect_delay_s: float = 3.0
    wake_delay_s: float = 0.5
    burst_spacing_s: float = 0.3
    burst_count: int = 3
    preconnect_s: int = 30
    alert_duration_s: float = 30.0
    tick_s: float = 1.0


@dataclass(frozen=True)
class DeviceProfile:
    id: str
    name: str
    match: MatchRules
    characteristic_uuid: str
    payload: bytes = COMMAND_PAYLOAD
    timing: Timing = field(default_factory=Timing)


@dataclass(frozen=True)
class Candidate:
    identity: str
    name: str | None = None
    rssi: int | None = None

    @property
    def label(self) -> str:
        return self.name or "<unknown-device>"


@dataclass(frozen=True)
class ServiceInfo:
    """One GATT service. Several services may share a UUID; the handle is unique."""

    uuid: str
    handle: int


@dataclass(frozen=True)
class CharacteristicInfo:
    uuid: str
    properties: frozenset[str]
    handle: int | None = None
    service_uuid: str | None = None


@dataclass(frozen=True)
class Endpoint:
    """The resolved command sink on a connected peripheral."""

    uuid: str
    service_uuid: str | None
    handle: int | None
    properties: frozenset[str]

    @classmethod
    def from_characteristic(cls, info: CharacteristicInfo) -> Endpoint:
        return cls(
            uuid=info.uuid,
            service_uuid=info.service_uuid,
            handle=info.handle,
            properties=info.properties,
        )

    @property
    def writes_without_response(self) -> bool:
        return WRITE_WITHOUT_RESPONSE in self.properties

    @property
    def writes_with_response(self) -> bool:
        return WRITE in self.properties

    @property
    def readable(self) -> bool:
        return READ in self.properties

    @property
    def notifiable(self) -> bool:
        return NOTIFY in self.properties

    @property
    def writable(self) -> bool:
        return self.writes_without_response or self.writes_with_response


@dataclass(frozen=True)
class Link:
    """Handle for one physical connection.

    ``generation`` increases on every connect so that events and delayed
    continuations belonging to an earlier connection can be told apart.
    """

    candidate: Candidate
    generation: int

    @property
    def identity(self) -> str:
        return self.candidate.identity


@dataclass(frozen=True)
class Disconnected:
    name = "Disconnected"


@dataclass(frozen=True)
class Connecting:
    candidate: Candidate
    name = "Connecting"


@dataclass(frozen=True)
class Connected:
    link: Link
    name = "Connected"


@dataclass(frozen=True)
class Resolving:
    link: Link
    name = "Resolving"


@dataclass(frozen=True)
class Ready:
    link: Link
    endpoint: Endpoint
    name = "Ready"


ConnectionState = Disconnected | Connecting | Connected | Resolving | Ready


@dataclass
class Alarm:
    target: time
    armed: bool = True
    message: str = ""

    @property
    def label(self) -> str:
        return self.target.strftime("%H:%M")


@dataclass(frozen=True)
class SendResult:
    candidate: Candidate
    endpoint_uuid: str
    payload_hex: str
    write_mode: str
    attempts: int
