"""BLE GATT transport implementation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from curtaincall.core import events as ev
from curtaincall.core.errors import TransportUnavailableError
from curtaincall.core.model import Candidate, CharacteristicInfo, Endpoint, ServiceInfo
from curtaincall.transports.base import EventSink

LOGGER = logging.getLogger(__name__)


def _bleak() -> Any:
    try:
        import bleak  # type: ignore
    except Exception as exc:  # pragma: no cover - import failure path
        raise TransportUnavailableError(
            "BLE transport requires 'bleak'. Install dependency and retry."
        ) from exc
    return bleak


class BLEGATTTransport:
    """Bleak-backed radio.

    Requests start background tasks on the running loop and report their
    outcome to the bound sink. Bleak callbacks are delivered on the same loop,
    so the sink sees one serialized stream of events.
    """

    def __init__(self, *, connect_timeout_s: float = 10.0) -> None:
        self.connect_timeout_s = connect_timeout_s
        self._sink: EventSink | None = None
        self._available = True
        self._scanner: Any = None
        self._client: Any = None
        self._identity: str | None = None
        self._devices: dict[str, Any] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def available(self) -> bool:
        return self._available

    def bind(self, sink: EventSink) -> None:
        self._sink = sink

    def _emit(self, event: ev.TransportEvent) -> None:
        if self._sink is None:
            LOGGER.debug("No sink bound; dropping %r", event)
            return
        self._sink(event)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def start_scan(self) -> None:
        bleak = _bleak()
        self._devices.clear()

        def _detected(device: Any, advertisement: Any) -> None:
            self._devices[device.address] = device
            name = device.name or getattr(advertisement, "local_name", None)
            self._emit(
                ev.Discovered(
                    Candidate(
                        identity=device.address,
                        name=name,
                        rssi=getattr(advertisement, "rssi", None),
                    )
                )
            )

        async def _run() -> None:
            await self._stop_scanner()
            scanner = bleak.BleakScanner(detection_callback=_detected)
            # Set before starting so a stop requested from a detection callback reaches it.
            self._scanner = scanner
            try:
                await scanner.start()
            except (bleak.exc.BleakError, OSError) as exc:
                if self._scanner is scanner:
                    self._scanner = None
                LOGGER.warning("BLE scan could not start: %s", exc)
                self._available = False
                self._emit(ev.PowerChanged(available=False))
                self._emit(ev.ScanFailed(reason=str(exc)))
                return
            if not self._available:
                self._available = True
                self._emit(ev.PowerChanged(available=True))

        self._spawn(_run())

    def stop_scan(self) -> None:
        self._spawn(self._stop_scanner())

    async def _stop_scanner(self) -> None:
        scanner, self._scanner = self._scanner, None
        if scanner is None:
            return
        try:
            await scanner.stop()
        except Exception as exc:
            LOGGER.debug("Ignoring scanner stop failure: %s", exc)

    def connect(self, candidate: Candidate) -> None:
        bleak = _bleak()
        identity = candidate.identity
        target = self._devices.get(identity, identity)

        def _on_disconnect(client: Any) -> None:
            if client is not self._client:
                return
            self._client = None
            self._identity = None
            self._emit(ev.Disconnected(identity=identity, reason="link lost"))

        async def _run() -> None:
            client = bleak.BleakClient(
                target,
                disconnected_callback=_on_disconnect,
                timeout=self.connect_timeout_s,
            )
            self._client = client
            self._identity = identity
            try:
                await client.connect()
            except (bleak.exc.BleakError, asyncio.TimeoutError, OSError) as exc:
                if self._client is client:
                    self._client = None
                    self._identity = None
                self._emit(ev.ConnectFailed(identity=identity, reason=str(exc) or type(exc).__name__))
                return
            if self._client is client:
                self._emit(ev.Connected(identity=identity))

        self._spawn(_run())

    def disconnect(self, identity: str) -> None:
        client = self._current(identity)
        if client is None:
            return
        self._client = None
        self._identity = None

        async def _run() -> None:
            try:
                await client.disconnect()
            except Exception as exc:
                LOGGER.debug("Ignoring disconnect failure for %s: %s", identity, exc)

        self._spawn(_run())

    def _current(self, identity: str) -> Any:
        if self._client is None or self._identity != identity:
            return None
        return self._client

    def discover_services(self, identity: str) -> None:
        client = self._current(identity)
        if client is None:
            return
        # Bleak resolves the whole service tree while connecting.
        services = tuple(ServiceInfo(uuid=s.uuid, handle=s.handle) for s in client.services)
        asyncio.get_running_loop().call_soon(
            self._emit, ev.ServicesDiscovered(identity=identity, services=services)
        )

    def discover_characteristics(self, identity: str, service: ServiceInfo) -> None:
        client = self._current(identity)
        if client is None:
            return
        # get_service(uuid) raises when several services share that UUID.
        gatt_service = client.services.get_service(service.handle)
        characteristics: tuple[CharacteristicInfo, ...] = ()
        if gatt_service is not None:
            characteristics = tuple(
                CharacteristicInfo(
                    uuid=char.uuid,
                    properties=frozenset(char.properties),
                    handle=char.handle,
                    service_uuid=service.uuid,
                )
                for char in gatt_service.characteristics
            )
        asyncio.get_running_loop().call_soon(
            self._emit,
            ev.CharacteristicsDiscovered(
                identity=identity,
                service=service,
                characteristics=characteristics,
            ),
        )

    def probe(self, identity: str, endpoint: Endpoint) -> None:
        client = self._current(identity)
        if client is None:
            return

        async def _run() -> None:
            target = endpoint.handle if endpoint.readable else _first_readable(client)
            if target is None:
                LOGGER.debug("No readable characteristic to probe on %s", identity)
                return
            try:
                await client.read_gatt_char(target)
            except Exception as exc:
                LOGGER.debug("Wake probe on %s failed: %s", identity, exc)

        self._spawn(_run())

    def write(self, identity: str, endpoint: Endpoint, payload: bytes, *, response: bool) -> None:
        client = self._current(identity)
        if client is None:
            self._emit(ev.WriteCompleted(identity=identity, error="not connected"))
            return
        bleak = _bleak()
        target = endpoint.handle if endpoint.handle is not None else endpoint.uuid

        async def _run() -> None:
            try:
                await client.write_gatt_char(target, payload, response=response)
            except (bleak.exc.BleakError, asyncio.TimeoutError, OSError) as exc:
                self._emit(ev.WriteCompleted(identity=identity, error=str(exc) or type(exc).__name__))
                return
            self._emit(ev.WriteCompleted(identity=identity))

        self._spawn(_run())

    async def aclose(self) -> None:
        await self._stop_scanner()
        client, self._client = self._client, None
        self._identity = None
        if client is not None:
            try:
                await client.disconnect()
            except Exception as exc:
                LOGGER.debug("Ignoring disconnect failure on close: %s", exc)
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


def _first_readable(client: Any) -> int | None:
    for service in client.services:
        for char in service.characteristics:
            if "read" in char.properties:
                return char.handle
    return None
