from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from curtaincall.core import events as ev
from curtaincall.core.model import Candidate, CharacteristicInfo, Endpoint, ServiceInfo
from curtaincall.transports import ble_gatt
from curtaincall.transports.ble_gatt import BLEGATTTransport

FFE0 = "0000ffe0-0000-1000-8000-00805f9b34fb"
FFE1 = "0000ffe1-0000-1000-8000-00805f9b34fb"
FFE2 = "0000ffe2-0000-1000-8000-00805f9b34fb"
DEVICE = Candidate(identity="AA:BB:CC:DD:EE:01", name="HC-08")


class FakeBleakError(Exception):
    pass


class FakeServices:
    def __init__(self, services: list[SimpleNamespace]) -> None:
        self._services = services

    def __iter__(self):
        return iter(self._services)

    def get_service(self, specifier: int | str):
        if isinstance(specifier, int):
            return next((s for s in self._services if s.handle == specifier), None)
        matches = [s for s in self._services if s.uuid == specifier]
        if len(matches) > 1:
            raise FakeBleakError("Multiple Services with this UUID")
        return matches[0] if matches else None


def _services() -> FakeServices:
    return FakeServices(
        [
            SimpleNamespace(
                uuid=FFE0,
                handle=0x10,
                characteristics=[
                    SimpleNamespace(uuid=FFE1, properties=["read", "write-without-response", "notify"], handle=0x12)
                ],
            )
        ]
    )


class FakeBleak:
    """Stands in for the bleak module at the transport's import seam."""

    def __init__(self) -> None:
        self.exc = SimpleNamespace(BleakError=FakeBleakError)
        self.scan_error: Exception | None = None
        self.connect_error: Exception | None = None
        self.write_error: Exception | None = None
        self.services = _services
        self.scanners: list[SimpleNamespace] = []
        self.clients: list[SimpleNamespace] = []
        fake = self

        class BleakScanner:
            def __init__(self, detection_callback) -> None:
                self.detection_callback = detection_callback
                self.started = False
                self.stopped = False
                fake.scanners.append(self)

            async def start(self) -> None:
                if fake.scan_error is not None:
                    raise fake.scan_error
                self.started = True

            async def stop(self) -> None:
                self.stopped = True

        class BleakClient:
            def __init__(self, device, disconnected_callback=None, timeout=10.0) -> None:
                self.device = device
                self.disconnected_callback = disconnected_callback
                self.timeout = timeout
                self.services = fake.services()
                self.reads: list[object] = []
                self.writes: list[tuple[object, bytes, bool]] = []
                self.disconnected = False
                fake.clients.append(self)

            async def connect(self) -> None:
                if fake.connect_error is not None:
                    raise fake.connect_error

            async def disconnect(self) -> None:
                self.disconnected = True

            async def read_gatt_char(self, target) -> bytes:
                self.reads.append(target)
                return b""

            async def write_gatt_char(self, target, payload: bytes, response: bool = False) -> None:
                if fake.write_error is not None:
                    raise fake.write_error
                self.writes.append((target, payload, response))

        self.BleakScanner = BleakScanner
        self.BleakClient = BleakClient


@pytest.fixture
def bleak(monkeypatch: pytest.MonkeyPatch) -> FakeBleak:
    fake = FakeBleak()
    monkeypatch.setattr(ble_gatt, "_bleak", lambda: fake)
    return fake


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


def _transport() -> tuple[BLEGATTTransport, list[ev.TransportEvent]]:
    transport = BLEGATTTransport(connect_timeout_s=4.0)
    received: list[ev.TransportEvent] = []
    transport.bind(received.append)
    return transport, received


def _endpoint(*properties: str) -> Endpoint:
    return Endpoint.from_characteristic(
        CharacteristicInfo(uuid=FFE1, properties=frozenset(properties), handle=0x12, service_uuid=FFE0)
    )


def test_scan_reports_discoveries(bleak: FakeBleak) -> None:
    async def scenario() -> list[ev.TransportEvent]:
        transport, received = _transport()
        transport.start_scan()
        await _settle()
        scanner = bleak.scanners[0]
        assert scanner.started
        scanner.detection_callback(
            SimpleNamespace(address=DEVICE.identity, name=None),
            SimpleNamespace(local_name="HC-08", rssi=-55),
        )
        transport.stop_scan()
        await _settle()
        assert scanner.stopped
        await transport.aclose()
        return received

    received = asyncio.run(scenario())
    assert received == [ev.Discovered(Candidate(identity=DEVICE.identity, name="HC-08", rssi=-55))]


def test_scan_failure_marks_radio_unavailable(bleak: FakeBleak) -> None:
    bleak.scan_error = FakeBleakError("Bluetooth device is turned off")

    async def scenario() -> tuple[BLEGATTTransport, list[ev.TransportEvent]]:
        transport, received = _transport()
        transport.start_scan()
        await _settle()
        await transport.aclose()
        return transport, received

    transport, received = asyncio.run(scenario())
    assert transport.available is False
    assert received == [
        ev.PowerChanged(available=False),
        ev.ScanFailed(reason="Bluetooth device is turned off"),
    ]


def test_connect_discover_and_write(bleak: FakeBleak) -> None:
    async def scenario() -> list[ev.TransportEvent]:
        transport, received = _transport()
        transport.connect(DEVICE)
        await _settle()
        transport.discover_services(DEVICE.identity)
        transport.discover_characteristics(DEVICE.identity, ServiceInfo(uuid=FFE0, handle=0x10))
        await _settle()
        transport.probe(DEVICE.identity, _endpoint("read", "write-without-response"))
        transport.write(DEVICE.identity, _endpoint("write-without-response"), b"1", response=False)
        await _settle()
        await transport.aclose()
        return received

    received = asyncio.run(scenario())
    client = bleak.clients[0]

    assert client.timeout == 4.0
    assert client.reads == [0x12]
    assert client.writes == [(0x12, b"1", False)]
    assert client.disconnected
    assert received[0] == ev.Connected(identity=DEVICE.identity)
    services = (ServiceInfo(uuid=FFE0, handle=0x10),)
    assert received[1] == ev.ServicesDiscovered(identity=DEVICE.identity, services=services)
    discovered = received[2]
    assert isinstance(discovered, ev.CharacteristicsDiscovered)
    assert discovered.characteristics[0].properties == frozenset({"read", "write-without-response", "notify"})
    assert received[3] == ev.WriteCompleted(identity=DEVICE.identity)


def test_connect_failure_is_reported(bleak: FakeBleak) -> None:
    bleak.connect_error = asyncio.TimeoutError()

    async def scenario() -> list[ev.TransportEvent]:
        transport, received = _transport()
        transport.connect(DEVICE)
        await _settle()
        await transport.aclose()
        return received

    received = asyncio.run(scenario())
    assert received == [ev.ConnectFailed(identity=DEVICE.identity, reason="TimeoutError")]


def test_write_failure_is_reported(bleak: FakeBleak) -> None:
    bleak.write_error = FakeBleakError("GATT error")

    async def scenario() -> list[ev.TransportEvent]:
        transport, received = _transport()
        transport.connect(DEVICE)
        await _settle()
        transport.write(DEVICE.identity, _endpoint("write"), b"1", response=True)
        await _settle()
        await transport.aclose()
        return received

    received = asyncio.run(scenario())
    assert received[-1] == ev.WriteCompleted(identity=DEVICE.identity, error="GATT error")


def test_unsolicited_disconnect_is_reported_once(bleak: FakeBleak) -> None:
    async def scenario() -> tuple[BLEGATTTransport, list[ev.TransportEvent]]:
        transport, received = _transport()
        transport.connect(DEVICE)
        await _settle()
        client = bleak.clients[0]
        client.disconnected_callback(client)
        client.disconnected_callback(client)
        transport.write(DEVICE.identity, _endpoint("write"), b"1", response=True)
        await transport.aclose()
        return transport, received

    _, received = asyncio.run(scenario())
    assert received == [
        ev.Connected(identity=DEVICE.identity),
        ev.Disconnected(identity=DEVICE.identity, reason="link lost"),
        ev.WriteCompleted(identity=DEVICE.identity, error="not connected"),
    ]


def test_solicited_disconnect_is_not_reported(bleak: FakeBleak) -> None:
    async def scenario() -> list[ev.TransportEvent]:
        transport, received = _transport()
        transport.connect(DEVICE)
        await _settle()
        client = bleak.clients[0]
        transport.disconnect(DEVICE.identity)
        await _settle()
        client.disconnected_callback(client)
        assert client.disconnected
        await transport.aclose()
        return received

    received = asyncio.run(scenario())
    assert received == [ev.Connected(identity=DEVICE.identity)]


def test_services_sharing_a_uuid_are_queried_by_handle(bleak: FakeBleak) -> None:
    bleak.services = lambda: FakeServices(
        [
            SimpleNamespace(
                uuid=FFE0,
                handle=0x10,
                characteristics=[SimpleNamespace(uuid=FFE2, properties=["read"], handle=0x12)],
            ),
            SimpleNamespace(
                uuid=FFE0,
                handle=0x30,
                characteristics=[SimpleNamespace(uuid=FFE1, properties=["write"], handle=0x32)],
            ),
        ]
    )
    first = ServiceInfo(uuid=FFE0, handle=0x10)
    second = ServiceInfo(uuid=FFE0, handle=0x30)

    async def scenario() -> list[ev.TransportEvent]:
        transport, received = _transport()
        transport.connect(DEVICE)
        await _settle()
        transport.discover_services(DEVICE.identity)
        transport.discover_characteristics(DEVICE.identity, first)
        transport.discover_characteristics(DEVICE.identity, second)
        await _settle()
        await transport.aclose()
        return received

    received = asyncio.run(scenario())

    assert received[1] == ev.ServicesDiscovered(identity=DEVICE.identity, services=(first, second))
    reports = [event for event in received if isinstance(event, ev.CharacteristicsDiscovered)]
    assert [report.service for report in reports] == [first, second]
    assert [c.handle for c in reports[0].characteristics] == [0x12]
    assert [(c.uuid, c.handle, c.service_uuid) for c in reports[1].characteristics] == [(FFE1, 0x32, FFE0)]
