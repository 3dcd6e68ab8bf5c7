"""Entry point for triggers that originate outside the process's own timer."""

from __future__ import annotations

import logging

from curtaincall.core.dispatcher import SignalDispatcher
from curtaincall.core.status import ALARM, StatusFeed

LOGGER = logging.getLogger(__name__)

SEND_SIGNAL_ACTION = "SEND_SIGNAL"
DEFAULT_ACTION = "DEFAULT"


class ExternalTriggerBridge:
    """Forwards notification actions to the dispatcher.

    The delivered notification is the timer of last resort when the process
    was not polling at the alarm minute. The bridge neither touches the alarm
    scheduler nor reconnects; if the link is not ready the dispatch no-ops.
    """

    actions = frozenset({SEND_SIGNAL_ACTION, DEFAULT_ACTION})

    def __init__(self, dispatcher: SignalDispatcher, status: StatusFeed) -> None:
        self._dispatcher = dispatcher
        self._status = status

    def handle_action(self, action_id: str = DEFAULT_ACTION) -> bool:
        if action_id not in self.actions:
            LOGGER.debug("Ignoring notification action %r", action_id)
            return False
        LOGGER.info("Notification action %s: attempting to send signal", action_id)
        sent = self._dispatcher.dispatch()
        if sent:
            self._status.publish(ALARM, "Signal sent from notification!")
        return sent
