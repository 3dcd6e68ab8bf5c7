"""Time-of-day alarm that opens the curtain once per arm."""

from __future__ import annotations

import logging
import re
from datetime import datetime, time
from enum import Enum

from curtaincall.alerts import AlertPresenter, NotificationScheduler
from curtaincall.core.dispatcher import SignalDispatcher
from curtaincall.core.errors import AlarmTimeError
from curtaincall.core.model import Alarm
from curtaincall.core.session import ConnectionSession
from curtaincall.core.status import ALARM, StatusFeed
from curtaincall.core.timers import Clock, TimerHandle, Timers

LOGGER = logging.getLogger(__name__)

_SECONDS_PER_DAY = 24 * 60 * 60
_TIME_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


class SchedulerState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"


def parse_alarm_time(value: str) -> time:
    match = _TIME_RE.match(value)
    if not match:
        raise AlarmTimeError(f"Alarm time '{value}' must look like HH:MM")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise AlarmTimeError(f"Alarm time '{value}' is not a valid time of day")
    return time(hour=hour, minute=minute)


def seconds_until(target: time, now: datetime) -> int:
    """Seconds from ``now`` until the next occurrence of ``target`` (0 at the target second)."""
    target_s = target.hour * 3600 + target.minute * 60
    now_s = now.hour * 3600 + now.minute * 60 + now.second
    return (target_s - now_s) % _SECONDS_PER_DAY


class AlarmScheduler:
    """Polls the wall clock and fires the dispatcher once per armed alarm.

    The target has minute granularity and is treated as second zero of that
    minute. Both checks derive from the same clock reading:

    * warm-up: once per arm, as soon as the target is ``preconnect_s`` seconds
      or less away and the session is not ready, discovery is started so the
      link exists before the deadline;
    * trigger: on the first tick whose hour and minute equal the target.
      Firing disarms and stops polling before the command is sent, so later
      ticks in the same minute cannot fire again.
    """

    def __init__(
        self,
        session: ConnectionSession,
        dispatcher: SignalDispatcher,
        timers: Timers,
        clock: Clock,
        status: StatusFeed,
        *,
        alert: AlertPresenter,
        notifier: NotificationScheduler,
        preconnect_s: int = 30,
        tick_s: float = 1.0,
        alert_duration_s: float = 30.0,
    ) -> None:
        self._session = session
        self._dispatcher = dispatcher
        self._timers = timers
        self._clock = clock
        self._status = status
        self._alert = alert
        self._notifier = notifier
        self.preconnect_s = preconnect_s
        self.tick_s = tick_s
        self.alert_duration_s = alert_duration_s
        self._alarm: Alarm | None = None
        self._tick: TimerHandle | None = None
        self._alert_stop: TimerHandle | None = None
        self._alert_active = False
        self._warmed = False
        self._cycle = 0

    @property
    def state(self) -> SchedulerState:
        if self._alarm is not None and self._alarm.armed:
            return SchedulerState.ARMED
        return SchedulerState.IDLE

    @property
    def alarm(self) -> Alarm | None:
        return self._alarm

    @property
    def alert_active(self) -> bool:
        return self._alert_active

    def arm(self, target: time) -> Alarm:
        """Arm for ``target``, replacing any alarm that is already armed."""
        self._stop_polling()
        if self._alarm is not None and self._alarm.armed:
            LOGGER.info("Replacing alarm for %s", self._alarm.label)
            self._notifier.remove_pending()

        self._cycle += 1
        self._warmed = False
        self._alarm = Alarm(target=target.replace(second=0, microsecond=0))
        self._set_message(f"Alarm set for {self._alarm.label}")
        self._notifier.schedule(target.hour, target.minute)
        if not self._session.is_ready():
            LOGGER.info("Device not ready yet; it will be pre-connected before %s", self._alarm.label)

        cycle = self._cycle
        self._tick = self._timers.call_later(self.tick_s, lambda: self._on_tick(cycle))
        return self._alarm

    def cancel(self) -> None:
        if self.state is SchedulerState.IDLE and not self._alert_active:
            return
        self._stop_polling()
        if self._alarm is not None:
            self._alarm.armed = False
        self._stop_alert()
        self._notifier.remove_pending()
        self._set_message("Alarm cancelled")

    def check(self) -> None:
        """Run one comparison of the wall clock against the armed target."""
        alarm = self._alarm
        if alarm is None or not alarm.armed:
            return
        now = self._clock.now()

        remaining = seconds_until(alarm.target, now)
        if not self._warmed and 0 < remaining <= self.preconnect_s and not self._session.is_ready():
            self._warmed = True
            self._set_message("Pre-connecting to device...")
            self._session.warm_up()

        if now.hour == alarm.target.hour and now.minute == alarm.target.minute:
            self._trigger(alarm)

    def _on_tick(self, cycle: int) -> None:
        if cycle != self._cycle:
            return
        self._tick = None
        self.check()
        if self.state is SchedulerState.ARMED and cycle == self._cycle:
            self._tick = self._timers.call_later(self.tick_s, lambda: self._on_tick(cycle))

    def _trigger(self, alarm: Alarm) -> None:
        alarm.armed = False
        self._stop_polling()
        self._set_message("ALARM! Sending signal...")

        if self._alert_stop is not None:
            self._alert_stop.cancel()
        self._alert_active = True
        self._alert.start()
        self._dispatcher.dispatch()

        self._alert_stop = self._timers.call_later(self.alert_duration_s, self._alert_elapsed)

    def _alert_elapsed(self) -> None:
        self._alert_stop = None
        if not self._alert_active:
            return
        self._alert_active = False
        self._alert.stop()
        self._set_message("Alarm finished")

    def _stop_alert(self) -> None:
        if self._alert_stop is not None:
            self._alert_stop.cancel()
            self._alert_stop = None
        if self._alert_active:
            self._alert_active = False
            self._alert.stop()

    def _stop_polling(self) -> None:
        if self._tick is not None:
            self._tick.cancel()
            self._tick = None

    def _set_message(self, message: str) -> None:
        if self._alarm is not None:
            self._alarm.message = message
        self._status.publish(ALARM, message)
