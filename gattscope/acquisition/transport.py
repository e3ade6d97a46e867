"""
Generic GATT transport built on bleak.

Exposes the primitives every other component works through: scan/connect,
reconnect, disconnect events, service/characteristic discovery, read, the
three write flavours and notifications. Characteristic capabilities are
turned into an explicit flags struct once, at resolve time, so callers never
query the backend for methods.

Write flavours map onto bleak's ``response`` argument:
  WITH_RESPONSE    -> response=True
  WITHOUT_RESPONSE -> response=False
  GENERIC          -> response=None (backend picks from the properties)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Sequence

from bleak import BleakClient, BleakScanner
from bleak.backends.device import BLEDevice
from bleak.exc import BleakError

from gattscope.acquisition.refs import normalize_uuid
from gattscope.config.settings import BLEConfig
from gattscope.errors import (
    DiscoveryFailed,
    LinkInactive,
    TransportUnavailable,
)

logger = logging.getLogger(__name__)

ValueCallback = Callable[[bytes], Any]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class WriteMode(str, Enum):
    AUTO = "auto"
    WITH_RESPONSE = "with_response"
    WITHOUT_RESPONSE = "without_response"
    GENERIC = "generic"


@dataclass(frozen=True)
class Capabilities:
    read: bool = False
    write: bool = False
    write_without_response: bool = False
    notify: bool = False
    generic_write: bool = False

    @classmethod
    def from_properties(cls, properties: Sequence[str]) -> "Capabilities":
        props = {p.lower() for p in properties}
        write = "write" in props
        write_nr = "write-without-response" in props
        return cls(
            read="read" in props,
            write=write,
            write_without_response=write_nr,
            notify="notify" in props or "indicate" in props,
            generic_write=write or write_nr,
        )

    def supports(self, mode: WriteMode) -> bool:
        return {
            WriteMode.WITH_RESPONSE: self.write,
            WriteMode.WITHOUT_RESPONSE: self.write_without_response,
            WriteMode.GENERIC: self.generic_write,
        }.get(mode, False)

    def labels(self) -> list[str]:
        names = []
        if self.read:
            names.append("READ")
        if self.write:
            names.append("WRITE")
        if self.write_without_response:
            names.append("WRITEWITHOUTRESPONSE")
        if self.notify:
            names.append("NOTIFY")
        return names


@dataclass
class ServiceHandle:
    uuid: str
    raw: Any = None


@dataclass
class CharacteristicHandle:
    uuid: str
    service_uuid: str
    capabilities: Capabilities
    raw: Any = None

    def to_dict(self) -> dict:
        return {
            "uuid": self.uuid,
            "service": self.service_uuid,
            "properties": self.capabilities.labels(),
        }


@dataclass
class DeviceInfo:
    name: str = ""
    address: str = ""
    connection_state: ConnectionState = ConnectionState.DISCONNECTED
    service_uuids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "address": self.address,
            "connection_state": self.connection_state.value,
            "service_uuids": list(self.service_uuids),
        }


class BleakTransport:
    """GATT transport over a single bleak client."""

    supports_bulk_discovery = True

    def __init__(self, config: BLEConfig):
        self._config = config
        self._client: Optional[BleakClient] = None
        self._device: Optional[BLEDevice] = None
        self._info = DeviceInfo()
        self._on_state_change: Optional[Callable[[DeviceInfo], None]] = None
        self._on_disconnect: Optional[Callable[[], None]] = None

    @property
    def info(self) -> DeviceInfo:
        return self._info

    @property
    def has_device(self) -> bool:
        return self._device is not None

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected

    def on_state_change(self, callback: Callable[[DeviceInfo], None]):
        self._on_state_change = callback

    def on_disconnect(self, callback: Callable[[], None]):
        self._on_disconnect = callback

    def _set_state(self, state: ConnectionState):
        self._info.connection_state = state
        if self._on_state_change:
            self._on_state_change(self._info)

    # ─── Connection ───

    async def scan(self, service_uuids: Sequence[str], name: str = "") -> BLEDevice:
        self._set_state(ConnectionState.SCANNING)
        logger.info("Requesting device advertising %s...", ", ".join(service_uuids))
        try:
            devices = await BleakScanner.discover(
                timeout=self._config.scan_timeout,
                service_uuids=list(service_uuids),
            )
        except (BleakError, OSError) as e:
            self._set_state(ConnectionState.ERROR)
            raise TransportUnavailable(f"Bluetooth adapter unavailable: {e}") from e

        for d in devices:
            if name and name.lower() not in (d.name or "").lower():
                continue
            logger.info("> Found %s [%s]", d.name, d.address)
            return d

        self._set_state(ConnectionState.DISCONNECTED)
        raise TransportUnavailable("No device advertising the requested services")

    async def connect(self, service_uuids: Sequence[str] = (), name: str = "") -> DeviceInfo:
        """Scan for a device offering ``service_uuids`` and open the GATT link."""
        uuids = [normalize_uuid(u) for u in (service_uuids or self._config.service_uuids)]
        device = await self.scan(uuids, name or self._config.device_name)

        if self._client is not None and self._client.is_connected:
            await self.disconnect()

        self._device = device
        self._info.name = device.name or ""
        self._info.address = device.address
        self._info.service_uuids = uuids
        self._client = BleakClient(
            device,
            disconnected_callback=self._handle_disconnect,
            timeout=self._config.connect_timeout,
        )
        await self._open()
        self._log_gatt_tree()
        return self._info

    async def reconnect(self):
        if self._device is None:
            raise TransportUnavailable("No device selected")
        logger.info("Reconnecting to %s...", self._info.name or self._info.address)
        await self._open()

    async def _open(self):
        self._set_state(ConnectionState.CONNECTING)
        try:
            await self._client.connect()
        except (BleakError, OSError, asyncio.TimeoutError) as e:
            self._set_state(ConnectionState.ERROR)
            raise LinkInactive(f"GATT connect failed: {e}") from e
        logger.info("GATT connected")
        self._set_state(ConnectionState.CONNECTED)

    async def disconnect(self):
        if self._client is not None and self._client.is_connected:
            try:
                await self._client.disconnect()
            except (BleakError, OSError, EOFError) as e:
                logger.warning("Disconnect error: %s", e)
        self._set_state(ConnectionState.DISCONNECTED)

    def _handle_disconnect(self, _client):
        logger.info("BLE disconnected")
        self._set_state(ConnectionState.DISCONNECTED)
        if self._on_disconnect:
            self._on_disconnect()

    def _require_link(self) -> BleakClient:
        if self._client is None:
            raise TransportUnavailable("Not connected to any device")
        if not self._client.is_connected:
            raise LinkInactive("GATT link is not connected")
        return self._client

    # ─── Discovery ───

    async def get_primary_services(self) -> list[ServiceHandle]:
        client = self._require_link()
        return [ServiceHandle(uuid=s.uuid, raw=s) for s in client.services]

    async def get_primary_service(self, uuid: str) -> ServiceHandle:
        client = self._require_link()
        service = client.services.get_service(uuid)
        if service is None:
            raise DiscoveryFailed(f"Service {uuid} not found")
        return ServiceHandle(uuid=service.uuid, raw=service)

    async def get_characteristics(self, service: ServiceHandle) -> list[CharacteristicHandle]:
        return [self._wrap_characteristic(service, c) for c in service.raw.characteristics]

    async def get_characteristic(self, service: ServiceHandle, uuid: str) -> CharacteristicHandle:
        char = service.raw.get_characteristic(uuid)
        if char is None:
            raise DiscoveryFailed(f"Characteristic {uuid} not found in {service.uuid}")
        return self._wrap_characteristic(service, char)

    @staticmethod
    def _wrap_characteristic(service: ServiceHandle, char) -> CharacteristicHandle:
        return CharacteristicHandle(
            uuid=char.uuid,
            service_uuid=service.uuid,
            capabilities=Capabilities.from_properties(char.properties),
            raw=char,
        )

    def _log_gatt_tree(self):
        logger.info("Getting Services...")
        for service in self._client.services:
            logger.info("> Service: %s", service.uuid)
            for char in service.characteristics:
                caps = Capabilities.from_properties(char.properties)
                logger.info(">> Characteristic: %s [%s]", char.uuid, ", ".join(caps.labels()))

    # ─── Value access ───

    async def read(self, char: CharacteristicHandle) -> bytes:
        client = self._require_link()
        return bytes(await client.read_gatt_char(char.raw))

    async def write(self, char: CharacteristicHandle, data: bytes, mode: WriteMode):
        client = self._require_link()
        response = {
            WriteMode.WITH_RESPONSE: True,
            WriteMode.WITHOUT_RESPONSE: False,
        }.get(mode)
        await client.write_gatt_char(char.raw, data, response=response)

    async def start_notify(self, char: CharacteristicHandle, callback: ValueCallback):
        client = self._require_link()

        def _handler(_sender, data: bytearray):
            callback(bytes(data))

        await client.start_notify(char.raw, _handler)

    async def stop_notify(self, char: CharacteristicHandle):
        if self.is_connected:
            await self._client.stop_notify(char.raw)

