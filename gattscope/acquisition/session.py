"""
Connection session and guard.

A ConnectionSession is the one owner of everything components share about
a device link: the transport, the configured service UUIDs and the single
notification subscription slot. It is handed explicitly to the resolver,
the operation façade and the poller. Concurrent operation chains on the
same session are not serialized; last writer wins.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from gattscope.acquisition.refs import CharacteristicRef, normalize_uuid
from gattscope.config.settings import BLEConfig

logger = logging.getLogger(__name__)


@dataclass
class Subscription:
    ref: CharacteristicRef
    fmt: Any  # gattscope.codec.byte_codec.Format
    characteristic: Any  # CharacteristicHandle
    on_sample: Callable
    link_epoch: int = 0


class ConnectionSession:
    def __init__(self, transport, config: BLEConfig):
        self.transport = transport
        self.config = config
        self.service_uuids: list[str] = [normalize_uuid(u) for u in config.service_uuids]
        self.subscription: Optional[Subscription] = None
        # bumped on every (re)connect; notifications armed before it are gone
        self.link_epoch = 0
        self.guard = ConnectionGuard(self)

    def link_renewed(self):
        self.link_epoch += 1

    def is_stale(self, subscription: Subscription) -> bool:
        return subscription.link_epoch != self.link_epoch


class ConnectionGuard:
    """Makes sure the link is up before an operation runs."""

    def __init__(self, session: ConnectionSession):
        self._session = session

    async def ensure(self, wait_ms: Optional[int] = None):
        """Reconnect an inactive link, then wait for the peripheral to settle.

        No-op when no device was ever selected (the initial connect is the
        caller's job) or when the link is already up.
        """
        transport = self._session.transport
        if not transport.has_device or transport.is_connected:
            return

        if wait_ms is None:
            wait_ms = self._session.config.settle_ms
        logger.info("Link inactive, reconnecting")
        await transport.reconnect()
        self._session.link_renewed()
        logger.debug("Reconnected, settling for %d ms", wait_ms)
        await asyncio.sleep(wait_ms / 1000.0)
