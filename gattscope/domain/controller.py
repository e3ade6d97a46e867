"""
Diagnostic controller.

Orchestrates one client: transport -> connection session -> resolver /
operation façade / poller -> sample series, and fans results out to the
API layer through callbacks (samples, notifications, device state).
"""

import logging
from typing import Callable, Optional, Sequence, Union

from gattscope.acquisition.refs import CharacteristicRef, normalize_uuid
from gattscope.acquisition.resolver import Resolver
from gattscope.acquisition.session import ConnectionSession, Subscription
from gattscope.acquisition.transport import BleakTransport, DeviceInfo
from gattscope.codec.auto_format import AutoFormatTable
from gattscope.codec.byte_codec import Format
from gattscope.config.settings import AppConfig, split_service_list
from gattscope.domain.operations import (
    OperationFacade,
    Terminator,
    parse_write_mode,
)
from gattscope.domain.poller import PeriodicPoller
from gattscope.errors import InvalidInput
from gattscope.storage.sample_store import Sample, SampleSeries

logger = logging.getLogger(__name__)


class DiagnosticController:
    def __init__(self, config: AppConfig, transport=None):
        self._config = config
        self._transport = transport if transport is not None else BleakTransport(config.ble)
        self._table = AutoFormatTable.parse(config.codec.auto_format_table)

        self._session = ConnectionSession(self._transport, config.ble)
        self._resolver = Resolver(self._session)
        self._operations = OperationFacade(self._session, self._resolver, self._table)
        self._series = SampleSeries()
        self._poller = PeriodicPoller(
            self._session,
            self._resolver,
            self._operations,
            self._series,
            config.poll,
            self._table,
        )

        self._on_notification: Optional[Callable[[Sample], None]] = None

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def session(self) -> ConnectionSession:
        return self._session

    @property
    def series(self) -> SampleSeries:
        return self._series

    @property
    def poller(self) -> PeriodicPoller:
        return self._poller

    @property
    def device_info(self) -> DeviceInfo:
        return self._transport.info

    def on_sample(self, callback: Callable[[Sample], None]):
        self._series.on_append(callback)

    def on_notification(self, callback: Callable[[Sample], None]):
        self._on_notification = callback

    def on_state_change(self, callback: Callable[[DeviceInfo], None]):
        self._transport.on_state_change(callback)

    def on_disconnect(self, callback: Callable[[], None]):
        self._transport.on_disconnect(callback)

    def _emit_notification(self, sample: Sample):
        logger.debug("Notification: %s", sample.decoded_value)
        if self._on_notification:
            self._on_notification(sample)

    # ─── Device ───

    async def connect(
        self, services: Union[str, Sequence[str], None] = None, name: str = ""
    ) -> DeviceInfo:
        if isinstance(services, str):
            services = split_service_list(services)
        uuids = list(services or self._config.ble.service_uuids)
        if not uuids:
            raise InvalidInput("No services specified")

        normalized = [normalize_uuid(u) for u in uuids]
        info = await self._transport.connect(normalized, name)
        self._session.service_uuids = normalized
        self._session.link_renewed()
        logger.info("Connected to %s [%s]", info.name, info.address)
        return info

    async def disconnect(self):
        await self._poller.stop()
        await self._operations.unsubscribe()
        await self._transport.disconnect()

    async def list_gatt(self) -> list[dict]:
        return await self._resolver.list_gatt()

    # ─── Characteristic operations ───

    async def read(self, service, characteristic, fmt=None) -> Sample:
        ref = CharacteristicRef.parse(service, characteristic)
        return await self._operations.read(ref, Format.from_name(fmt))

    async def write(
        self,
        service,
        characteristic,
        value: str,
        fmt=None,
        write_mode=None,
        terminator=None,
    ) -> bytes:
        ref = CharacteristicRef.parse(service, characteristic)
        return await self._operations.write(
            ref,
            Format.from_name(fmt),
            value,
            parse_write_mode(write_mode),
            Terminator.from_name(terminator),
        )

    async def subscribe(self, service, characteristic, fmt=None) -> Optional[Subscription]:
        ref = CharacteristicRef.parse(service, characteristic)
        return await self._operations.subscribe(
            ref, Format.from_name(fmt), self._emit_notification
        )

    async def unsubscribe(self):
        await self._operations.unsubscribe()

    # ─── Polling ───

    async def start_polling(
        self, service, characteristic, fmt=None, interval_ms: Optional[int] = None
    ) -> dict:
        ref = CharacteristicRef.parse(service, characteristic)
        fmt = Format.from_name(fmt or Format.AUTO)
        if interval_ms is None:
            interval_ms = self._config.poll.default_interval_ms
        interval_ms = int(interval_ms)

        if self._poller.is_running:
            state = self._poller.state
            if (
                ref != self._poller.target
                or fmt is not self._poller.format
                or interval_ms != state.interval_ms
            ):
                await self._poller.reconfigure(ref, fmt, interval_ms)
        else:
            await self._poller.start(interval_ms, ref, fmt)
        return self._poller.status()

    async def stop_polling(self) -> dict:
        await self._poller.stop()
        return self._poller.status()

    def clear_samples(self) -> int:
        return self._series.clear()
