"""Local alert and notification collaborators used by the alarm scheduler."""

from __future__ import annotations

import logging
from typing import Protocol

import typer

LOGGER = logging.getLogger(__name__)


class AlertPresenter(Protocol):
    def start(self) -> None: ...

    def stop(self) -> None: ...


class NotificationScheduler(Protocol):
    def schedule(self, hour: int, minute: int) -> None:
        """Ask the platform to deliver the alarm notification at hour:minute."""

    def remove_pending(self) -> None: ...


class TerminalAlert:
    """Rings the terminal bell and prints the alarm banner."""

    def __init__(self, title: str = "Curtain Call") -> None:
        self.title = title
        self.active = False

    def start(self) -> None:
        self.active = True
        typer.echo(f"\a{self.title}: time to wake up!")

    def stop(self) -> None:
        if self.active:
            self.active = False
            typer.echo("Alarm stopped")


class LogNotifier:
    """Records notification requests in the log.

    A desktop notifier hook can call ``curtaincall trigger`` when the user
    acts on the notification.
    """

    def __init__(self) -> None:
        self.pending: tuple[int, int] | None = None

    def schedule(self, hour: int, minute: int) -> None:
        self.pending = (hour, minute)
        LOGGER.info("Notification scheduled for %02d:%02d", hour, minute)

    def remove_pending(self) -> None:
        if self.pending is not None:
            LOGGER.info("Removed pending notification for %02d:%02d", *self.pending)
        self.pending = None
