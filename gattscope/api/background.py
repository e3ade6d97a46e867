"""
Persistent asyncio loop for BLE work.

bleak needs a loop that keeps running between requests to deliver
notification callbacks and to drive the poll timer. Flask and Socket.IO
handlers run in their own threads and submit coroutines here.
"""

import asyncio
import logging
import threading
from typing import Any, Coroutine

logger = logging.getLogger(__name__)


def _start_background_loop(loop: asyncio.AbstractEventLoop):
    """Run an asyncio event loop forever in a background thread."""
    asyncio.set_event_loop(loop)
    loop.run_forever()


class BackgroundLoop:
    def __init__(self, timeout: float = 60.0):
        self._timeout = timeout
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=_start_background_loop, args=(self._loop,), daemon=True
        )

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    def start(self):
        self._thread.start()
        logger.info("Background asyncio event loop started for BLE operations")

    def run(self, coro: Coroutine) -> Any:
        """Submit a coroutine to the background loop and wait for its result."""
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result(timeout=self._timeout)

    def stop(self):
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)
