"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Awaitable
from pathlib import Path
from typing import Any, TypeVar

import typer

from curtaincall.core.alarm import parse_alarm_time
from curtaincall.core.bridge import DEFAULT_ACTION
from curtaincall.core.errors import CurtainCallError
from curtaincall.core.service import CurtainService
from curtaincall.core.status import Condition, StatusUpdate

app = typer.Typer(help="Open a BLE-driven curtain on a schedule")

T = TypeVar("T")


def _configure_logging(level_name: str) -> None:
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        raise typer.BadParameter(f"Unknown log level '{level_name}'", param_hint="--log-level")
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
        force=True,
    )
    logging.getLogger("bleak").setLevel(max(level, logging.WARNING))


@app.callback()
def main(
    ctx: typer.Context,
    log_level: str = typer.Option("WARNING", "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
    profile: Path | None = typer.Option(None, "--profile", help="Device profile YAML to use"),
) -> None:
    _configure_logging(log_level)
    ctx.obj = {"profile_path": profile}


def _build_service(ctx: typer.Context, **kwargs: Any) -> CurtainService:
    profile_path = (ctx.obj or {}).get("profile_path")
    service = CurtainService(profile_path=profile_path, **kwargs)
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


def _echo_status(update: StatusUpdate) -> None:
    prefix = "" if update.condition is Condition.INFO else "! "
    typer.echo(f"{prefix}[{update.source}] {update.message}", err=True)


async def _run_then_close(service: CurtainService, work: Awaitable[T]) -> T:
    try:
        return await work
    finally:
        await service.close()


@app.command("scan")
def scan(
    ctx: typer.Context,
    window: float = typer.Option(10.0, "--window", help="Seconds to scan for"),
) -> None:
    """List nearby BLE devices without connecting."""
    try:
        service = _build_service(ctx, auto_connect=False)
        candidates = asyncio.run(_run_then_close(service, service.discover(window)))
        if not candidates:
            typer.echo("No Bluetooth devices found")
            return

        for candidate in candidates:
            rssi = f" rssi={candidate.rssi}" if candidate.rssi is not None else ""
            typer.echo(f"{candidate.identity} {candidate.label}{rssi}")
    except CurtainCallError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("send")
def send(
    ctx: typer.Context,
    timeout: float = typer.Option(20.0, "--timeout", help="Seconds to wait for the device"),
) -> None:
    """Connect to the curtain and send the open command now."""
    try:
        service = _build_service(ctx)
        service.status.subscribe(_echo_status)
        result = asyncio.run(_run_then_close(service, service.send_signal(timeout)))
        typer.echo(
            f"Sent payload={result.payload_hex} to {result.candidate.identity} "
            f"({result.candidate.label}) via {result.endpoint_uuid} "
            f"{result.write_mode} x{result.attempts}"
        )
    except CurtainCallError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("alarm")
def alarm(
    ctx: typer.Context,
    at: str = typer.Argument(..., help="Time of day as HH:MM"),
) -> None:
    """Open the curtain at AT. Keeps running until the alarm fired; Ctrl-C cancels."""
    try:
        target = parse_alarm_time(at)
        service = _build_service(ctx)
        service.status.subscribe(_echo_status)
        fired = asyncio.run(_run_then_close(service, service.run_alarm(target)))
        typer.echo(f"Alarm for {fired.label}: {fired.message}")
    except KeyboardInterrupt:
        typer.echo("Alarm cancelled", err=True)
        raise typer.Exit(code=130) from None
    except CurtainCallError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("trigger")
def trigger(
    ctx: typer.Context,
    action: str = typer.Argument(DEFAULT_ACTION, help="Notification action identifier"),
    timeout: float = typer.Option(20.0, "--timeout", help="Seconds to wait for the device"),
) -> None:
    """Handle a user action on the alarm notification by sending the open command."""
    try:
        service = _build_service(ctx)
        service.status.subscribe(_echo_status)
        sent = asyncio.run(
            _run_then_close(service, service.relay_notification_action(action, timeout))
        )
        if not sent:
            typer.echo(f"Action '{action}' did not send a signal", err=True)
            raise typer.Exit(code=1)
        typer.echo("Signal sent from notification")
    except CurtainCallError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("profile")
def show_profile(ctx: typer.Context) -> None:
    """Show the active device profile."""
    try:
        service = _build_service(ctx)
        profile = service.profile
        timing = profile.timing
        typer.echo(f"{profile.id}: {profile.name}")
        typer.echo(f"  source: {service.profile_source}")
        typer.echo(f"  match: {', '.join(profile.match.name_contains)}")
        typer.echo(f"  characteristic: {profile.characteristic_uuid}")
        typer.echo(f"  payload: {profile.payload.hex()}")
        typer.echo(
            f"  burst: {timing.burst_count}x every {timing.burst_spacing_s:g}s "
            f"after {timing.wake_delay_s:g}s wake"
        )
        typer.echo(
            f"  scan window: {timing.scan_window_s:g}s, reconnect after {timing.reconnect_delay_s:g}s, "
            f"pre-connect {timing.preconnect_s}s before alarm"
        )
    except CurtainCallError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
