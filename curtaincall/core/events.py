"""Events delivered by a radio transport to the connection session.

The transport reports everything through one sink; each event type below is
one case of that closed set.
"""

from __future__ import annotations

from dataclasses import dataclass

from curtaincall.core.model import Candidate, CharacteristicInfo, ServiceInfo


@dataclass(frozen=True)
class PowerChanged:
    available: bool


@dataclass(frozen=True)
class ScanFailed:
    reason: str


@dataclass(frozen=True)
class Discovered:
    candidate: Candidate


@dataclass(frozen=True)
class Connected:
    identity: str


@dataclass(frozen=True)
class ConnectFailed:
    identity: str
    reason: str = ""


@dataclass(frozen=True)
class Disconnected:
    identity: str
    reason: str = ""


@dataclass(frozen=True)
class ServicesDiscovered:
    identity: str
    services: tuple[ServiceInfo, ...]


@dataclass(frozen=True)
class CharacteristicsDiscovered:
    identity: str
    service: ServiceInfo
    characteristics: tuple[CharacteristicInfo, ...]


@dataclass(frozen=True)
class WriteCompleted:
    identity: str
    error: str | None = None


TransportEvent = (
    PowerChanged
    | ScanFailed
    | Discovered
    | Connected
    | ConnectFailed
    | Disconnected
    | ServicesDiscovered
    | CharacteristicsDiscovered
    | WriteCompleted
)
