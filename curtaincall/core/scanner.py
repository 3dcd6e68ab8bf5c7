"""Discovery passes and the auto-connect policy."""

from __future__ import annotations

import logging
from collections.abc import Callable

from curtaincall.core.device_match import is_target
from curtaincall.core.events import Discovered, PowerChanged, ScanFailed
from curtaincall.core.model import Candidate, MatchRules
from curtaincall.core.status import LINK, Condition, StatusFeed
from curtaincall.core.timers import TimerHandle, Timers
from curtaincall.transports.base import Radio

LOGGER = logging.getLogger(__name__)


class TransportScanner:
    """Runs bounded discovery passes and keeps the candidates of the current pass.

    Candidates are deduplicated by identity and kept in discovery order. When
    ``auto_connect`` is on, a candidate whose name matches the profile rules is
    offered to ``on_target``. The pass ends only when the callback accepts it.
    """

    def __init__(
        self,
        radio: Radio,
        timers: Timers,
        status: StatusFeed,
        *,
        rules: MatchRules,
        window_s: float = 10.0,
        auto_connect: bool = True,
    ) -> None:
        self._radio = radio
        self._timers = timers
        self._status = status
        self.rules = rules
        self.window_s = window_s
        self.auto_connect = auto_connect
        self.on_target: Callable[[Candidate], bool] | None = None
        self._candidates: dict[str, Candidate] = {}
        self._window: TimerHandle | None = None
        self._pass = 0
        self.scanning = False

    @property
    def candidates(self) -> tuple[Candidate, ...]:
        return tuple(self._candidates.values())

    def get(self, identity: str) -> Candidate | None:
        return self._candidates.get(identity)

    def start_scan(self, *, user_requested: bool = False) -> bool:
        """Begin a discovery pass.

        Automatic callers (reconnect, warm-up) are refused while the radio is
        known to be unavailable. A user request always tries again; if the
        radio is still off the failure comes back as a ``ScanFailed`` event.
        """
        if not self._radio.available and not user_requested:
            self._status.publish(
                LINK,
                "Bluetooth unavailable. Turn on Bluetooth and scan again.",
                Condition.TRANSPORT_UNAVAILABLE,
            )
            return False

        if self._window is not None:
            self._window.cancel()
        self._candidates.clear()
        self._pass += 1
        self.scanning = True
        self._radio.start_scan()
        self._status.publish(LINK, "Scanning for devices...")

        pass_id = self._pass
        self._window = self._timers.call_later(self.window_s, lambda: self._window_elapsed(pass_id))
        return True

    def stop(self, *, superseded: bool = False) -> None:
        if self._window is not None:
            self._window.cancel()
            self._window = None
        if not self.scanning:
            return
        self.scanning = False
        self._radio.stop_scan()
        if superseded:
            LOGGER.debug("Scan pass %d superseded by a connection request", self._pass)

    def _window_elapsed(self, pass_id: int) -> None:
        if pass_id != self._pass or not self.scanning:
            return
        self._window = None
        self.scanning = False
        self._radio.stop_scan()
        self._status.publish(LINK, f"Scan complete. Found {len(self._candidates)} devices.")

    def handle(self, event: Discovered | ScanFailed | PowerChanged) -> None:
        if isinstance(event, Discovered):
            self._on_discovered(event.candidate)
        elif isinstance(event, ScanFailed):
            self.stop()
            self._status.publish(
                LINK,
                f"Bluetooth unavailable: {event.reason}",
                Condition.TRANSPORT_UNAVAILABLE,
            )
        elif isinstance(event, PowerChanged) and not event.available:
            self.stop()

    def _on_discovered(self, candidate: Candidate) -> None:
        if not self.scanning or candidate.identity in self._candidates:
            return
        self._candidates[candidate.identity] = candidate
        LOGGER.debug("Found: %s - RSSI: %s", candidate.label, candidate.rssi)

        if self.auto_connect and self.on_target is not None and is_target(candidate, self.rules):
            # on_target supersedes the pass when it accepts the candidate.
            if self.on_target(candidate):
                return

        self._status.publish(LINK, f"Scanning... Found {len(self._candidates)} devices")
