"""
Service and characteristic resolution.

Service discovery right after a (re)connect is racy on the peripherals this
client talks to, so ``resolve_services`` retries with a fixed delay and
forces a reconnect when the link dropped underneath it. Single lookups via
``resolve_characteristic`` are not retried; callers wrap them with the
connection guard themselves.
"""

import asyncio
import logging
from typing import Optional

from gattscope.acquisition.refs import CharacteristicRef
from gattscope.acquisition.session import ConnectionSession
from gattscope.acquisition.transport import CharacteristicHandle, ServiceHandle
from gattscope.errors import DiscoveryFailed

logger = logging.getLogger(__name__)


class Resolver:
    def __init__(self, session: ConnectionSession):
        self._session = session

    async def resolve_services(
        self,
        max_attempts: Optional[int] = None,
        delay_ms: Optional[int] = None,
    ) -> list[ServiceHandle]:
        config = self._session.config
        if max_attempts is None:
            max_attempts = config.discovery_attempts
        if delay_ms is None:
            delay_ms = config.discovery_delay_ms
        transport = self._session.transport

        last_error: Optional[Exception] = None
        for attempt in range(1, max_attempts + 1):
            try:
                await self._session.guard.ensure(config.discovery_settle_ms)
                if transport.supports_bulk_discovery:
                    services = await transport.get_primary_services()
                else:
                    services = [
                        await transport.get_primary_service(uuid)
                        for uuid in self._session.service_uuids
                    ]
                logger.info("Discovered %d service(s) on attempt %d", len(services), attempt)
                return services
            except Exception as e:
                last_error = e
                logger.warning(
                    "Service discovery attempt %d/%d failed: %s", attempt, max_attempts, e
                )
                if transport.has_device and not transport.is_connected:
                    try:
                        await transport.reconnect()
                        self._session.link_renewed()
                    except Exception as reconnect_error:
                        logger.warning("Forced reconnect failed: %s", reconnect_error)
                if attempt < max_attempts:
                    await asyncio.sleep(delay_ms / 1000.0)

        raise DiscoveryFailed(
            f"Service discovery failed after {max_attempts} attempt(s): {last_error}"
        ) from last_error

    async def resolve_characteristic(self, ref: CharacteristicRef) -> CharacteristicHandle:
        transport = self._session.transport
        service = await transport.get_primary_service(ref.service)
        return await transport.get_characteristic(service, ref.characteristic)

    async def list_gatt(self) -> list[dict]:
        """Enumerate every service with its characteristics and properties."""
        tree = []
        for service in await self.resolve_services():
            chars = await self._session.transport.get_characteristics(service)
            for char in chars:
                logger.info(">> Characteristic: %s [%s]",
                            char.uuid, ", ".join(char.capabilities.labels()))
            tree.append({
                "uuid": service.uuid,
                "characteristics": [c.to_dict() for c in chars],
            })
        return tree
