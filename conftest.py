"""
Shared fixtures: an in-memory GATT transport standing in for the radio.
"""

import asyncio
from typing import Callable, Optional

import pytest

from gattscope.acquisition.refs import CharacteristicRef, normalize_uuid
from gattscope.acquisition.resolver import Resolver
from gattscope.acquisition.session import ConnectionSession
from gattscope.acquisition.transport import (
    Capabilities,
    CharacteristicHandle,
    ConnectionState,
    DeviceInfo,
    ServiceHandle,
    WriteMode,
)
from gattscope.config.settings import AppConfig, BLEConfig, PollConfig
from gattscope.domain.operations import OperationFacade
from gattscope.domain.poller import PeriodicPoller
from gattscope.errors import DiscoveryFailed, LinkInactive, TransportUnavailable
from gattscope.storage.sample_store import SampleSeries

SERVICE = "0xffe0"
CHAR_BOOL = "0xffe0"
CHAR_BYTE = "0xffe1"
CHAR_ADC = "0xffe3"
CHAR_NOTIFY_ONLY = "0xffe4"
CHAR_WRITE_NR = "0xffe5"
CHAR_INERT = "0xffe6"


class FakeTransport:
    """Same surface as BleakTransport, backed by dicts."""

    def __init__(self, bulk_discovery: bool = True):
        self.supports_bulk_discovery = bulk_discovery
        self.info = DeviceInfo()
        self.has_device = False
        self.is_connected = False
        self.services: dict[str, dict[str, CharacteristicHandle]] = {}
        self.values: dict[str, bytes] = {}
        self.writes: list[tuple[str, bytes, WriteMode]] = []
        self.notify_callbacks: dict[str, object] = {}
        self.read_calls = 0
        self.reconnect_calls = 0
        self.discovery_failures = 0
        self.discovery_calls = 0
        self.read_delay = 0.0
        self.resolve_delay = 0.0
        self.reconnect_keeps_link_down = False

    def add(self, service, char, properties, value: bytes = b"") -> CharacteristicHandle:
        service_uuid, char_uuid = normalize_uuid(service), normalize_uuid(char)
        handle = CharacteristicHandle(
            uuid=char_uuid,
            service_uuid=service_uuid,
            capabilities=Capabilities.from_properties(properties),
        )
        self.services.setdefault(service_uuid, {})[char_uuid] = handle
        self.values[char_uuid] = value
        return handle

    def on_state_change(self, callback):
        pass

    def on_disconnect(self, callback):
        pass

    def drop_link(self):
        self.is_connected = False

    async def connect(self, service_uuids=(), name=""):
        self.has_device = True
        self.is_connected = True
        self.info = DeviceInfo(
            name=name or "Fake", address="AA:BB:CC:DD:EE:FF",
            connection_state=ConnectionState.CONNECTED,
            service_uuids=list(service_uuids),
        )
        return self.info

    async def reconnect(self):
        if not self.has_device:
            raise TransportUnavailable("No device selected")
        self.reconnect_calls += 1
        self.is_connected = not self.reconnect_keeps_link_down

    async def disconnect(self):
        self.is_connected = False
        self.notify_callbacks.clear()

    def _require_link(self):
        if not self.has_device:
            raise TransportUnavailable("Not connected to any device")
        if not self.is_connected:
            raise LinkInactive("GATT link is not connected")

    async def get_primary_services(self):
        self.discovery_calls += 1
        self._require_link()
        if self.discovery_failures > 0:
            self.discovery_failures -= 1
            raise DiscoveryFailed("GATT discovery busy")
        return [ServiceHandle(uuid=u, raw=c) for u, c in self.services.items()]

    async def get_primary_service(self, uuid):
        self._require_link()
        if self.resolve_delay:
            await asyncio.sleep(self.resolve_delay)
        if uuid not in self.services:
            raise DiscoveryFailed(f"Service {uuid} not found")
        return ServiceHandle(uuid=uuid, raw=self.services[uuid])

    async def get_characteristics(self, service):
        return list(service.raw.values())

    async def get_characteristic(self, service, uuid):
        if uuid not in service.raw:
            raise DiscoveryFailed(f"Characteristic {uuid} not found")
        return service.raw[uuid]

    async def read(self, char):
        self._require_link()
        self.read_calls += 1
        if self.read_delay:
            await asyncio.sleep(self.read_delay)
        return self.values[char.uuid]

    async def write(self, char, data, mode):
        self._require_link()
        self.writes.append((char.uuid, bytes(data), mode))

    async def start_notify(self, char, callback):
        self._require_link()
        self.notify_callbacks[char.uuid] = callback

    async def stop_notify(self, char):
        self.notify_callbacks.pop(char.uuid, None)

    def push(self, char, data: bytes):
        self.notify_callbacks[normalize_uuid(char)](data)


def ref(char, service=SERVICE) -> CharacteristicRef:
    return CharacteristicRef.parse(service, char)


@pytest.fixture
def transport() -> FakeTransport:
    t = FakeTransport()
    t.add(SERVICE, CHAR_BOOL, ["read", "write"], b"\x01")
    t.add(SERVICE, CHAR_BYTE, ["read", "write", "write-without-response", "notify"], b"\x2a")
    t.add(SERVICE, CHAR_ADC, ["read", "notify"], bytes([0x01, 0x00, 0x02, 0x00, 0x03, 0x00, 0x04, 0x00]))
    t.add(SERVICE, CHAR_NOTIFY_ONLY, ["notify"])
    t.add(SERVICE, CHAR_WRITE_NR, ["write-without-response"])
    t.add(SERVICE, CHAR_INERT, [])
    return t


@pytest.fixture
def ble_config() -> BLEConfig:
    return BLEConfig(
        service_uuids=(SERVICE,),
        settle_ms=0,
        discovery_settle_ms=0,
        discovery_attempts=3,
        discovery_delay_ms=0,
    )


@pytest.fixture
async def session(transport, ble_config) -> ConnectionSession:
    await transport.connect([normalize_uuid(SERVICE)])
    return ConnectionSession(transport, ble_config)


@pytest.fixture
def resolver(session) -> Resolver:
    return Resolver(session)


@pytest.fixture
def operations(session, resolver) -> OperationFacade:
    return OperationFacade(session, resolver)


@pytest.fixture
def series() -> SampleSeries:
    return SampleSeries()


def make_poller(session, resolver, operations, series, min_interval_ms=1000, skip=False):
    config = PollConfig(min_interval_ms=min_interval_ms, skip_overlapping_ticks=skip)
    return PeriodicPoller(session, resolver, operations, series, config)


@pytest.fixture
def app_config(ble_config) -> AppConfig:
    config = AppConfig()
    config.ble = ble_config
    return config


async def settle(delay: float = 0.05, until: Optional[Callable[[], bool]] = None):
    """Let background tasks run."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + 2.0
    await asyncio.sleep(delay)
    while until is not None and not until() and loop.time() < deadline:
        await asyncio.sleep(0.01)
