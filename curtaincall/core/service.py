"""Service layer used by CLI and future UI frontends."""

from __future__ import annotations

import asyncio
import logging
from datetime import time
from pathlib import Path
from time import monotonic

from curtaincall.alerts import AlertPresenter, LogNotifier, NotificationScheduler, TerminalAlert
from curtaincall.core.alarm import AlarmScheduler, SchedulerState
from curtaincall.core.bridge import DEFAULT_ACTION, ExternalTriggerBridge
from curtaincall.core.dispatcher import SignalDispatcher
from curtaincall.core.errors import DeviceNotReadyError, DeviceSelectionError
from curtaincall.core.model import Alarm, Candidate, DeviceProfile, SendResult
from curtaincall.core.profile_loader import load_profile
from curtaincall.core.resolver import EndpointResolver
from curtaincall.core.scanner import TransportScanner
from curtaincall.core.session import ConnectionSession
from curtaincall.core.status import LINK, StatusFeed
from curtaincall.core.timers import Clock, LoopTimers, SystemClock, Timers
from curtaincall.transports.base import Radio
from curtaincall.transports.ble_gatt import BLEGATTTransport

LOGGER = logging.getLogger(__name__)

_POLL_S = 0.1


class CurtainService:
    """Builds the link and alarm components for one device profile.

    The plain methods are the user controls (scan, connect, arm, cancel, test
    signal, notification action). They must be called from the event loop
    that the transport and timers run on. The async helpers drive whole
    workflows for the CLI.
    """

    def __init__(
        self,
        *,
        transport: Radio | None = None,
        timers: Timers | None = None,
        clock: Clock | None = None,
        alert: AlertPresenter | None = None,
        notifier: NotificationScheduler | None = None,
        profile: DeviceProfile | None = None,
        profile_path: Path | None = None,
        auto_connect: bool = True,
    ) -> None:
        if profile is None:
            loaded = load_profile(profile_path)
            profile = loaded.profile
            self.load_warnings = loaded.warnings
            self.profile_source = loaded.source
        else:
            self.load_warnings = ()
            self.profile_source = "<explicit>"
        self.profile = profile
        timing = profile.timing

        self.status = StatusFeed()
        self.timers = timers or LoopTimers()
        self.transport = transport or BLEGATTTransport(connect_timeout_s=timing.connect_timeout_s)

        self.scanner = TransportScanner(
            self.transport,
            self.timers,
            self.status,
            rules=profile.match,
            window_s=timing.scan_window_s,
            auto_connect=auto_connect,
        )
        self.resolver = EndpointResolver(profile.characteristic_uuid)
        self.session = ConnectionSession(
            self.transport,
            self.scanner,
            self.resolver,
            self.timers,
            self.status,
            reconnect_delay_s=timing.reconnect_delay_s,
        )
        self.dispatcher = SignalDispatcher(
            self.session,
            self.transport,
            self.timers,
            self.status,
            payload=profile.payload,
            wake_delay_s=timing.wake_delay_s,
            burst_spacing_s=timing.burst_spacing_s,
            burst_count=timing.burst_count,
        )
        self.alarm = AlarmScheduler(
            self.session,
            self.dispatcher,
            self.timers,
            clock or SystemClock(),
            self.status,
            alert=alert or TerminalAlert(),
            notifier=notifier or LogNotifier(),
            preconnect_s=timing.preconnect_s,
            tick_s=timing.tick_s,
            alert_duration_s=timing.alert_duration_s,
        )
        self.bridge = ExternalTriggerBridge(self.dispatcher, self.status)
        self.transport.bind(self.session.handle)

    def start_scan(self) -> bool:
        return self.scanner.start_scan(user_requested=True)

    def list_candidates(self) -> list[Candidate]:
        return list(self.scanner.candidates)

    def connect(self, identity: str) -> bool:
        candidate = self.scanner.get(identity)
        if candidate is None:
            hint = identity.lower()
            matches = [
                c
                for c in self.scanner.candidates
                if hint in c.identity.lower() or (c.name and hint in c.name.lower())
            ]
            if not matches:
                raise DeviceSelectionError(f"No discovered device matching '{identity}'")
            if len(matches) > 1:
                candidate_desc = ", ".join(f"{c.identity} ({c.label})" for c in matches)
                raise DeviceSelectionError(
                    f"Multiple candidate devices found: {candidate_desc}. Use the full address."
                )
            candidate = matches[0]
        return self.session.connect(candidate)

    def arm_alarm(self, target: time) -> Alarm:
        return self.alarm.arm(target)

    def cancel_alarm(self) -> None:
        self.alarm.cancel()

    def send_test_signal(self) -> bool:
        return self.dispatcher.dispatch()

    def handle_notification_action(self, action_id: str = DEFAULT_ACTION) -> bool:
        return self.bridge.handle_action(action_id)

    async def discover(self, window_s: float | None = None) -> list[Candidate]:
        if window_s is not None:
            self.scanner.window_s = window_s
        if not self.start_scan():
            return []
        await asyncio.sleep(_POLL_S)
        while self.scanner.scanning:
            await asyncio.sleep(_POLL_S)
        return self.list_candidates()

    async def wait_until_ready(self, timeout_s: float) -> bool:
        deadline = monotonic() + timeout_s
        while not self.session.is_ready() and monotonic() < deadline:
            await asyncio.sleep(_POLL_S)
        return self.session.is_ready()

    async def connect_target(self, timeout_s: float) -> Candidate:
        """Scan, let the auto-connect policy pick the device, and wait until ready."""
        if not self.session.is_ready():
            self.start_scan()
        if not await self.wait_until_ready(timeout_s):
            raise DeviceNotReadyError(
                f"Device matching {', '.join(self.profile.match.name_contains)} was not ready "
                f"within {timeout_s:g}s: {self.status.message(LINK)}"
            )
        link = self.session.link
        if link is None:
            raise DeviceNotReadyError("Device disconnected while connecting")
        return link.candidate

    async def send_signal(self, timeout_s: float) -> SendResult:
        candidate = await self.connect_target(timeout_s)
        endpoint = self.session.endpoint
        if endpoint is None or not self.send_test_signal():
            raise DeviceNotReadyError("Device disconnected before the signal could be sent")
        await asyncio.sleep(self.dispatcher.burst_duration + 0.5)
        return SendResult(
            candidate=candidate,
            endpoint_uuid=endpoint.uuid,
            payload_hex=self.profile.payload.hex(),
            write_mode="without-response" if endpoint.writes_without_response else "with-response",
            attempts=self.dispatcher.burst_count,
        )

    async def relay_notification_action(self, action_id: str, timeout_s: float) -> bool:
        await self.connect_target(timeout_s)
        sent = self.handle_notification_action(action_id)
        if sent:
            await asyncio.sleep(self.dispatcher.burst_duration + 0.5)
        return sent

    async def run_alarm(self, target: time) -> Alarm:
        """Arm, keep the link alive, and return once the alarm fired and the alert ended."""
        alarm = self.arm_alarm(target)
        self.start_scan()
        try:
            while self.alarm.state is SchedulerState.ARMED or self.alarm.alert_active:
                await asyncio.sleep(_POLL_S * 5)
        finally:
            self.cancel_alarm()
        return alarm

    async def close(self) -> None:
        self.session.shutdown()
        await self.transport.aclose()
