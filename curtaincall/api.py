"""Stable public API for building tooling on top of curtaincall.

This module is the supported integration surface for third-party callers
(GUI/TUI frontends, notification hooks, scripts). Avoid importing from
internal modules unless intentionally depending on non-stable internals.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import time
from pathlib import Path

from curtaincall.alerts import AlertPresenter, NotificationScheduler
from curtaincall.core.alarm import SchedulerState, parse_alarm_time
from curtaincall.core.bridge import DEFAULT_ACTION
from curtaincall.core.errors import (
    AlarmTimeError,
    CurtainCallError,
    DeviceNotReadyError,
    DeviceSelectionError,
    ProfileLoadError,
    ProfileValidationError,
    TransportError,
    TransportUnavailableError,
)
from curtaincall.core.model import (
    Alarm,
    Candidate,
    ConnectionState,
    DeviceProfile,
    Endpoint,
    SendResult,
)
from curtaincall.core.service import CurtainService
from curtaincall.core.status import ALARM, LINK, Condition, StatusUpdate
from curtaincall.core.timers import Clock, Timers
from curtaincall.transports.base import Radio
from curtaincall.transports.ble_gatt import BLEGATTTransport

__all__ = [
    "CurtainCallError",
    "AlarmTimeError",
    "DeviceNotReadyError",
    "DeviceSelectionError",
    "ProfileLoadError",
    "ProfileValidationError",
    "TransportError",
    "TransportUnavailableError",
    "Alarm",
    "Candidate",
    "ConnectionState",
    "DeviceProfile",
    "Endpoint",
    "SendResult",
    "SchedulerState",
    "Condition",
    "StatusUpdate",
    "BLEGATTTransport",
    "Snapshot",
    "Client",
    "parse_alarm_time",
]


@dataclass(frozen=True)
class Snapshot:
    """Point-in-time view of the link and alarm, for polling frontends."""

    state: ConnectionState
    ready: bool
    link_status: str
    alarm_state: SchedulerState
    alarm: Alarm | None
    alarm_status: str


class Client:
    """Public client for interacting with curtaincall core capabilities.

    A `Client` instance wraps profile loading, the BLE link, and the alarm
    scheduler. Calls must be made from the asyncio loop the client runs on.
    """

    def __init__(
        self,
        *,
        transport: Radio | None = None,
        timers: Timers | None = None,
        clock: Clock | None = None,
        alert: AlertPresenter | None = None,
        notifier: NotificationScheduler | None = None,
        profile_path: Path | None = None,
    ) -> None:
        self._service = CurtainService(
            transport=transport,
            timers=timers,
            clock=clock,
            alert=alert,
            notifier=notifier,
            profile_path=profile_path,
        )

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    @property
    def profile(self) -> DeviceProfile:
        return self._service.profile

    def subscribe(self, callback: Callable[[StatusUpdate], None]) -> Callable[[], None]:
        """Receive every status update; returns an unsubscribe callable."""
        return self._service.status.subscribe(callback)

    def snapshot(self) -> Snapshot:
        status = self._service.status
        return Snapshot(
            state=self._service.session.state,
            ready=self._service.session.is_ready(),
            link_status=status.message(LINK),
            alarm_state=self._service.alarm.state,
            alarm=self._service.alarm.alarm,
            alarm_status=status.message(ALARM),
        )

    def start_scan(self) -> bool:
        return self._service.start_scan()

    def list_candidates(self) -> list[Candidate]:
        return self._service.list_candidates()

    def connect(self, identity: str) -> bool:
        return self._service.connect(identity)

    def arm_alarm(self, target: time | str) -> Alarm:
        if isinstance(target, str):
            target = parse_alarm_time(target)
        return self._service.arm_alarm(target)

    def cancel_alarm(self) -> None:
        self._service.cancel_alarm()

    def send_test_signal(self) -> bool:
        return self._service.send_test_signal()

    def handle_notification_action(self, action_id: str = DEFAULT_ACTION) -> bool:
        return self._service.handle_notification_action(action_id)

    async def close(self) -> None:
        await self._service.close()
