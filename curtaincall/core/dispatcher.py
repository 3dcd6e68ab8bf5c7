"""Redundant command bursts over an unreliable link."""

from __future__ import annotations

import logging

from curtaincall.core.model import COMMAND_PAYLOAD, Link
from curtaincall.core.session import ConnectionSession
from curtaincall.core.status import LINK, Condition, StatusFeed
from curtaincall.core.timers import Timers
from curtaincall.transports.base import Radio

LOGGER = logging.getLogger(__name__)


class SignalDispatcher:
    """Sends the actuator command to the session's endpoint.

    A dispatch first probes the link, waits ``wake_delay_s``, then writes the
    payload ``burst_count`` times ``burst_spacing_s`` apart. Each delayed step
    re-checks that the session is still ready on the same connection and reads
    the endpoint from the session at that moment. Writes are independent of
    each other; a failed write does not cancel the rest of the burst.
    """

    def __init__(
        self,
        session: ConnectionSession,
        radio: Radio,
        timers: Timers,
        status: StatusFeed,
        *,
        payload: bytes = COMMAND_PAYLOAD,
        wake_delay_s: float = 0.5,
        burst_spacing_s: float = 0.3,
        burst_count: int = 3,
    ) -> None:
        self._session = session
        self._radio = radio
        self._timers = timers
        self._status = status
        self.payload = payload
        self.wake_delay_s = wake_delay_s
        self.burst_spacing_s = burst_spacing_s
        self.burst_count = burst_count

    @property
    def burst_duration(self) -> float:
        return self.wake_delay_s + self.burst_spacing_s * max(self.burst_count - 1, 0)

    def dispatch(self) -> bool:
        """Start one burst. Returns False, with a status update only, when not ready."""
        link = self._session.link
        endpoint = self._session.endpoint
        if link is None or endpoint is None:
            self._status.publish(LINK, "Not connected to device", Condition.NOT_READY)
            return False

        LOGGER.info("Dispatching to %s via %s", link.identity, endpoint.uuid)
        self._radio.probe(link.identity, endpoint)
        self._timers.call_later(self.wake_delay_s, lambda: self._start_burst(link))
        return True

    def _still_valid(self, link: Link) -> bool:
        current = self._session.link
        if not self._session.is_ready() or current is None or current.generation != link.generation:
            LOGGER.info("Link to %s is no longer ready; skipping queued write", link.identity)
            return False
        return True

    def _start_burst(self, link: Link) -> None:
        if not self._still_valid(link):
            self._status.publish(LINK, "Connection lost before sending", Condition.NOT_READY)
            return
        endpoint = self._session.endpoint
        if endpoint is None or not endpoint.writable:
            self._status.publish(LINK, "Characteristic not writable", Condition.ENDPOINT_NOT_WRITABLE)
            return
        self._write(link, 1)
        for attempt in range(2, self.burst_count + 1):
            delay = self.burst_spacing_s * (attempt - 1)
            self._timers.call_later(delay, lambda attempt=attempt: self._write(link, attempt))

    def _write(self, link: Link, attempt: int) -> None:
        if not self._still_valid(link):
            return
        endpoint = self._session.endpoint
        if endpoint is None:
            return

        text = self.payload.decode("ascii", errors="replace")
        if endpoint.writes_without_response:
            LOGGER.debug("Writing without response (attempt %d)", attempt)
            self._radio.write(link.identity, endpoint, self.payload, response=False)
            self._status.publish(LINK, f"Sent '{text}' to device (without response)")
        elif endpoint.writes_with_response:
            LOGGER.debug("Writing with response (attempt %d)", attempt)
            self._radio.write(link.identity, endpoint, self.payload, response=True)
            self._status.publish(LINK, f"Sent '{text}' to device (with response)")
