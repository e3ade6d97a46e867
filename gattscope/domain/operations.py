"""
Operation façade: read / write / subscribe / unsubscribe on one characteristic.

Every operation runs the same chain: guard the link, resolve the service
and characteristic, act, decode. Values are decoded with ``decode_all`` so
multi-slot payloads show every slot, and ADC frames are decoded whenever
the target looks like one.
"""

import logging
import time
from enum import Enum
from typing import Callable, Optional, Union

from gattscope.acquisition.refs import CharacteristicRef
from gattscope.acquisition.resolver import Resolver
from gattscope.acquisition.session import ConnectionSession, Subscription
from gattscope.acquisition.transport import Capabilities, WriteMode
from gattscope.codec.adc import try_decode_adc
from gattscope.codec.auto_format import DEFAULT_TABLE, AutoFormatTable
from gattscope.codec.byte_codec import Format, decode_all_result, encode, to_hex
from gattscope.errors import InvalidInput, UnsupportedOperation
from gattscope.storage.sample_store import Sample

logger = logging.getLogger(__name__)

# Auto write mode tries these in order
WRITE_PREFERENCE = (
    WriteMode.WITH_RESPONSE,
    WriteMode.WITHOUT_RESPONSE,
    WriteMode.GENERIC,
)


class Terminator(str, Enum):
    NONE = "none"
    LF = "lf"
    CR = "cr"
    CRLF = "crlf"

    @property
    def suffix(self) -> bytes:
        return {
            Terminator.NONE: b"",
            Terminator.LF: b"\n",
            Terminator.CR: b"\r",
            Terminator.CRLF: b"\r\n",
        }[self]

    @classmethod
    def from_name(cls, name: Union[str, "Terminator", None]) -> "Terminator":
        if isinstance(name, Terminator):
            return name
        try:
            return cls((name or "none").strip().lower())
        except ValueError:
            raise InvalidInput(f"Unknown terminator: {name!r}") from None


def parse_write_mode(name: Union[str, WriteMode, None]) -> WriteMode:
    if isinstance(name, WriteMode):
        return name
    key = (name or "auto").strip().lower().replace("-", "_")
    try:
        return WriteMode(key)
    except ValueError:
        raise InvalidInput(f"Unknown write mode: {name!r}") from None


def select_write_mode(capabilities: Capabilities, requested: WriteMode) -> WriteMode:
    """Honour a forced mode when the characteristic supports it, else rank."""
    if requested is not WriteMode.AUTO and capabilities.supports(requested):
        return requested
    for mode in WRITE_PREFERENCE:
        if capabilities.supports(mode):
            return mode
    raise UnsupportedOperation("Characteristic does not support any write mode")


def build_sample(
    data: bytes,
    fmt: Format,
    ref: CharacteristicRef,
    table: AutoFormatTable = DEFAULT_TABLE,
) -> Sample:
    result = decode_all_result(data, fmt, ref, table)
    if result.is_degraded:
        logger.debug("%s shown as hex: %s", ref, result.degraded)
    return Sample(
        timestamp=time.time(),
        decoded_value=result.value,
        raw_hex=to_hex(data),
        raw_bytes=bytes(data),
        adc_channels=try_decode_adc(data, ref),
    )


class OperationFacade:
    def __init__(
        self,
        session: ConnectionSession,
        resolver: Resolver,
        table: AutoFormatTable = DEFAULT_TABLE,
    ):
        self._session = session
        self._resolver = resolver
        self._table = table

    @property
    def subscription(self) -> Optional[Subscription]:
        return self._session.subscription

    async def _resolve(self, ref: CharacteristicRef):
        await self._session.guard.ensure()
        return await self._resolver.resolve_characteristic(ref)

    async def read(self, ref: CharacteristicRef, fmt: Format) -> Sample:
        char = await self._resolve(ref)
        if not char.capabilities.read:
            # not pre-validated; let the transport report it
            logger.debug("%s does not advertise READ, reading anyway", ref)
        data = await self._session.transport.read(char)
        sample = build_sample(data, fmt, ref, self._table)
        logger.info("Received: %s", sample.decoded_value)
        return sample

    async def write(
        self,
        ref: CharacteristicRef,
        fmt: Format,
        text: str,
        write_mode: WriteMode = WriteMode.AUTO,
        terminator: Terminator = Terminator.NONE,
    ) -> bytes:
        """Encode ``text`` and write it. Returns the payload that was sent."""
        payload = encode(text, fmt) + terminator.suffix

        char = await self._resolve(ref)
        mode = select_write_mode(char.capabilities, write_mode)
        await self._session.transport.write(char, payload, mode)
        logger.info("Sent %s (%s): %s", ref, mode.value, to_hex(payload))
        return payload

    async def subscribe(
        self,
        ref: CharacteristicRef,
        fmt: Format,
        on_sample: Callable[[Sample], None],
    ) -> Optional[Subscription]:
        """Start notifications on ``ref``, feeding decoded samples to ``on_sample``.

        Returns None (and logs) when the characteristic cannot notify.
        """
        await self._session.guard.ensure()
        current = self._session.subscription
        if current is not None and self._session.is_stale(current):
            # the link was re-established; its notifications went with the old one
            logger.info("Re-arming notifications on %s after reconnect", current.ref)
            self._session.subscription = None
            current = None
        if current is not None and current.ref == ref:
            current.fmt = fmt
            current.on_sample = on_sample
            return current
        await self.unsubscribe()

        char = await self._resolve(ref)
        if not char.capabilities.notify:
            logger.error("%s does not support notifications", ref)
            return None

        subscription = Subscription(
            ref=ref,
            fmt=fmt,
            characteristic=char,
            on_sample=on_sample,
            link_epoch=self._session.link_epoch,
        )

        def _on_value(data: bytes):
            sample = build_sample(data, subscription.fmt, ref, self._table)
            subscription.on_sample(sample)

        await self._session.transport.start_notify(char, _on_value)
        self._session.subscription = subscription
        logger.info("Notifications started on %s", ref)
        return subscription

    async def unsubscribe(self):
        subscription = self._session.subscription
        if subscription is None:
            return
        self._session.subscription = None
        try:
            await self._session.transport.stop_notify(subscription.characteristic)
        except Exception as e:
            logger.warning("Error stopping notify on %s: %s", subscription.ref, e)
        logger.info("Notifications stopped on %s", subscription.ref)
