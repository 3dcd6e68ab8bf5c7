"""Connection lifecycle for the single actuator peripheral."""

from __future__ import annotations

import logging

from curtaincall.core import events as ev
from curtaincall.core.model import (
    Candidate,
    Connected,
    Connecting,
    ConnectionState,
    Disconnected,
    Endpoint,
    Link,
    Ready,
    Resolving,
)
from curtaincall.core.resolver import EndpointResolver, Found, NotFound, NotWritable, Outcome
from curtaincall.core.scanner import TransportScanner
from curtaincall.core.status import LINK, Condition, StatusFeed
from curtaincall.core.timers import TimerHandle, Timers
from curtaincall.transports.base import Radio

LOGGER = logging.getLogger(__name__)

DISCONNECTED = Disconnected()


class ConnectionSession:
    """Owns the link state machine.

    ``Disconnected -> Connecting -> Connected -> Resolving -> Ready`` with an
    edge back to ``Disconnected`` from every state. All transport events enter
    through :meth:`handle`. The link and endpoint live only inside the state
    object, so every transition to ``Disconnected`` drops both.
    """

    def __init__(
        self,
        radio: Radio,
        scanner: TransportScanner,
        resolver: EndpointResolver,
        timers: Timers,
        status: StatusFeed,
        *,
        reconnect_delay_s: float = 3.0,
    ) -> None:
        self._radio = radio
        self._scanner = scanner
        self._resolver = resolver
        self._timers = timers
        self._status = status
        self.reconnect_delay_s = reconnect_delay_s
        self._state: ConnectionState = DISCONNECTED
        self._generation = 0
        self._reconnect: TimerHandle | None = None
        scanner.on_target = self._on_target

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def link(self) -> Link | None:
        if isinstance(self._state, (Connected, Resolving, Ready)):
            return self._state.link
        return None

    @property
    def endpoint(self) -> Endpoint | None:
        if isinstance(self._state, Ready):
            return self._state.endpoint
        return None

    @property
    def identity(self) -> str | None:
        if isinstance(self._state, Connecting):
            return self._state.candidate.identity
        link = self.link
        return link.identity if link else None

    def is_ready(self) -> bool:
        return isinstance(self._state, Ready)

    def _transition(self, new_state: ConnectionState) -> None:
        LOGGER.debug("Link state %s -> %s", self._state.name, new_state.name)
        self._state = new_state

    def connect(self, candidate: Candidate) -> bool:
        if not isinstance(self._state, Disconnected):
            LOGGER.warning(
                "Ignoring connect to %s while %s", candidate.identity, self._state.name
            )
            self._status.publish(LINK, f"Cannot connect to {candidate.label} while {self._state.name}")
            return False

        self._cancel_reconnect()
        self._scanner.stop(superseded=True)
        self._transition(Connecting(candidate))
        self._status.publish(LINK, f"Connecting to {candidate.name or 'device'}...")
        self._radio.connect(candidate)
        return True

    def _on_target(self, candidate: Candidate) -> bool:
        """Auto-connect hook for the scanner. Declines while a link exists or is forming."""
        if not isinstance(self._state, Disconnected):
            LOGGER.debug(
                "Target %s discovered while %s; keeping the current link",
                candidate.identity,
                self._state.name,
            )
            return False
        self._status.publish(LINK, f"Found {candidate.label}! Connecting...")
        return self.connect(candidate)

    def warm_up(self) -> bool:
        """Start discovery if nothing is connected or in progress."""
        if not isinstance(self._state, Disconnected) or self._scanner.scanning:
            return False
        self._cancel_reconnect()
        return self._scanner.start_scan()

    def disconnect(self) -> None:
        identity = self.identity
        self._cancel_reconnect()
        if identity is None:
            return
        self._drop_link()
        self._status.publish(LINK, "Disconnected")
        self._radio.disconnect(identity)

    def shutdown(self) -> None:
        self._scanner.stop()
        self.disconnect()

    def handle(self, event: ev.TransportEvent) -> None:
        if isinstance(event, (ev.Discovered, ev.ScanFailed)):
            self._scanner.handle(event)
        elif isinstance(event, ev.PowerChanged):
            self._on_power(event)
        elif isinstance(event, ev.Connected):
            self._on_connected(event)
        elif isinstance(event, ev.ConnectFailed):
            self._on_connect_failed(event)
        elif isinstance(event, ev.Disconnected):
            self._on_disconnected(event)
        elif isinstance(event, ev.ServicesDiscovered):
            self._on_services(event)
        elif isinstance(event, ev.CharacteristicsDiscovered):
            self._on_characteristics(event)
        elif isinstance(event, ev.WriteCompleted):
            self._on_write_completed(event)

    def _is_current(self, identity: str) -> bool:
        current = self.identity
        if current is None or current != identity:
            LOGGER.debug("Dropping stale event for %s (current: %s)", identity, current)
            return False
        return True

    def _on_power(self, event: ev.PowerChanged) -> None:
        self._scanner.handle(event)
        if event.available:
            self._status.publish(LINK, "Bluetooth ready")
            if isinstance(self._state, Disconnected):
                self.warm_up()
        else:
            self._status.publish(LINK, "Turn on Bluetooth", Condition.TRANSPORT_UNAVAILABLE)

    def _on_connected(self, event: ev.Connected) -> None:
        if not isinstance(self._state, Connecting) or not self._is_current(event.identity):
            return
        self._generation += 1
        link = Link(candidate=self._state.candidate, generation=self._generation)
        self._transition(Connected(link))
        self._status.publish(LINK, "Connected! Finding services...")

        self._resolver.reset()
        self._transition(Resolving(link))
        self._radio.discover_services(link.identity)

    def _on_connect_failed(self, event: ev.ConnectFailed) -> None:
        if not isinstance(self._state, Connecting) or not self._is_current(event.identity):
            return
        self._drop_link()
        detail = f": {event.reason}" if event.reason else ""
        self._status.publish(LINK, f"Connection failed{detail}", Condition.CONNECT_FAILED)
        self._scanner.start_scan()

    def _on_disconnected(self, event: ev.Disconnected) -> None:
        if isinstance(self._state, Disconnected) or not self._is_current(event.identity):
            return
        self._drop_link()
        self._status.publish(LINK, "Disconnected", Condition.UNSOLICITED_DISCONNECT)
        self._schedule_reconnect()

    def _on_services(self, event: ev.ServicesDiscovered) -> None:
        if not isinstance(self._state, Resolving) or not self._is_current(event.identity):
            return
        self._status.publish(LINK, f"Found {len(event.services)} services")
        outcome = self._resolver.services_reported(event.services)
        if self._apply_outcome(self._state.link, outcome):
            return
        for service in self._resolver.outstanding:
            if not isinstance(self._state, Resolving):
                break
            self._radio.discover_characteristics(event.identity, service)

    def _on_characteristics(self, event: ev.CharacteristicsDiscovered) -> None:
        if not isinstance(self._state, Resolving) or not self._is_current(event.identity):
            return
        outcome = self._resolver.characteristics_reported(event.service, event.characteristics)
        self._apply_outcome(self._state.link, outcome)

    def _apply_outcome(self, link: Link, outcome: Outcome) -> bool:
        """Move out of ``Resolving`` when resolution finished. Returns True if it did."""
        wanted = self._resolver.characteristic_uuid.upper()

        if isinstance(outcome, Found):
            mode = "WriteWithoutResponse" if outcome.endpoint.writes_without_response else "Write"
            self._transition(Ready(link, outcome.endpoint))
            self._status.publish(LINK, f"Ready! {wanted} found ({mode})")
            return True
        if isinstance(outcome, NotWritable):
            self._transition(Connected(link))
            self._status.publish(
                LINK, f"{wanted} found but not writable", Condition.ENDPOINT_NOT_WRITABLE
            )
            return True
        if isinstance(outcome, NotFound):
            self._transition(Connected(link))
            self._status.publish(
                LINK,
                f"{wanted} not found in {len(outcome.services)} services",
                Condition.ENDPOINT_NOT_FOUND,
            )
            return True
        return False

    def _on_write_completed(self, event: ev.WriteCompleted) -> None:
        if event.error:
            self._status.publish(LINK, f"Write failed: {event.error}", Condition.WRITE_FAILED)
        else:
            LOGGER.debug("Write to %s completed", event.identity)

    def _drop_link(self) -> None:
        self._transition(DISCONNECTED)
        self._resolver.reset()

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()
        generation = self._generation
        self._reconnect = self._timers.call_later(
            self.reconnect_delay_s, lambda: self._reconnect_elapsed(generation)
        )

    def _reconnect_elapsed(self, generation: int) -> None:
        self._reconnect = None
        if generation != self._generation or not isinstance(self._state, Disconnected):
            return
        if self._scanner.scanning:
            return
        LOGGER.info("Reconnecting: starting a new discovery pass")
        self._scanner.start_scan()

    def _cancel_reconnect(self) -> None:
        if self._reconnect is not None:
            self._reconnect.cancel()
            self._reconnect = None
