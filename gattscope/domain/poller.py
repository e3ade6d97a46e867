"""
Periodic poll scheduler.

Stopped -> Running -> Stopped. While running, a single repeating timer
fires a tick every ``interval_ms``; one tick also fires immediately on
start. A tick guards the link, resolves the target and reads it. Targets
that cannot be read but can notify are switched to a notification
subscription that feeds the same series, so the tick itself appends
nothing. Tick failures are logged and the timer keeps going; only
``stop()`` ends polling. A tick that finishes arming that subscription
after the run it belongs to has ended unsubscribes again.

Ticks are not serialized by default: a slow tick can still be running when
the next one starts, and both then use the same link. Setting
``PollConfig.skip_overlapping_ticks`` drops a tick while another is in
flight instead.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from gattscope.acquisition.refs import CharacteristicRef
from gattscope.acquisition.resolver import Resolver
from gattscope.acquisition.session import ConnectionSession
from gattscope.codec.auto_format import DEFAULT_TABLE, AutoFormatTable
from gattscope.codec.byte_codec import Format
from gattscope.config.settings import PollConfig
from gattscope.domain.operations import OperationFacade, build_sample
from gattscope.errors import InvalidInput, UnsupportedOperation
from gattscope.storage.sample_store import SampleSeries

logger = logging.getLogger(__name__)


@dataclass
class PollState:
    running: bool = False
    interval_ms: int = 0
    invocation_count: int = 0
    last_error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "running": self.running,
            "interval_ms": self.interval_ms,
            "invocation_count": self.invocation_count,
            "last_error": self.last_error,
        }


class PeriodicPoller:
    def __init__(
        self,
        session: ConnectionSession,
        resolver: Resolver,
        operations: OperationFacade,
        series: SampleSeries,
        config: PollConfig,
        table: AutoFormatTable = DEFAULT_TABLE,
    ):
        self._session = session
        self._resolver = resolver
        self._operations = operations
        self._series = series
        self._config = config
        self._table = table

        self._state = PollState()
        self._target: Optional[CharacteristicRef] = None
        self._fmt: Format = Format.AUTO
        self._timer: Optional[asyncio.Task] = None
        self._in_flight: set[asyncio.Task] = set()
        # bumped by start() and stop(); ticks from an older run must not leave feeds behind
        self._generation = 0

    @property
    def state(self) -> PollState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state.running

    @property
    def target(self) -> Optional[CharacteristicRef]:
        return self._target

    @property
    def format(self) -> Format:
        return self._fmt

    def status(self) -> dict:
        status = self._state.to_dict()
        status["target"] = self._target.to_dict() if self._target else None
        status["format"] = self._fmt.value
        return status

    def _check_interval(self, interval_ms: int):
        if interval_ms < self._config.min_interval_ms:
            raise InvalidInput(
                f"Polling interval must be at least {self._config.min_interval_ms} ms"
            )

    async def start(
        self,
        interval_ms: int,
        target: Optional[CharacteristicRef] = None,
        fmt: Optional[Format] = None,
    ) -> bool:
        """Start polling. Returns False if polling was already running."""
        self._check_interval(interval_ms)
        if self._state.running:
            logger.debug("Polling already running, start ignored")
            return False

        if target is not None:
            self._target = target
        if fmt is not None:
            self._fmt = fmt
        if self._target is None:
            raise InvalidInput("No characteristic selected for polling")

        self._generation += 1
        self._state = PollState(running=True, interval_ms=interval_ms)
        logger.info("Polling %s every %d ms", self._target, interval_ms)
        self._spawn_tick()
        self._timer = asyncio.create_task(self._run_timer(interval_ms))
        return True

    async def stop(self) -> bool:
        """Cancel the timer and any notify fallback. In-flight ticks are left to finish."""
        if not self._state.running:
            return False
        self._state.running = False
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        subscription = self._session.subscription
        if subscription is not None and subscription.on_sample == self._series.append:
            # notify fallback belongs to this poll
            await self._operations.unsubscribe()
        logger.info("Polling stopped after %d tick(s)", self._state.invocation_count)
        return True

    async def reconfigure(
        self,
        target: Optional[CharacteristicRef] = None,
        fmt: Optional[Format] = None,
        interval_ms: Optional[int] = None,
    ):
        """Change target, format or interval; a running poll restarts."""
        if interval_ms is not None:
            self._check_interval(interval_ms)
        if target is not None:
            self._target = target
        if fmt is not None:
            self._fmt = fmt
        if self._state.running:
            interval = interval_ms if interval_ms is not None else self._state.interval_ms
            await self.stop()
            await self.start(interval)

    async def _run_timer(self, interval_ms: int):
        while True:
            await asyncio.sleep(interval_ms / 1000.0)
            self._spawn_tick()

    def _spawn_tick(self):
        if self._config.skip_overlapping_ticks and self._in_flight:
            logger.debug("Previous poll still in flight, tick skipped")
            return
        task = asyncio.create_task(self._tick(self._generation))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _drop_orphaned_feed(self, subscription):
        """Undo a notify fallback armed by a tick that outlived its run."""
        if self._session.subscription is not subscription:
            return
        if subscription.on_sample != self._series.append:
            return
        if self._state.running and subscription.ref == self._target:
            # the current run wants the same feed
            return
        logger.info("Polling stopped while subscribing to %s, dropping notifications", subscription.ref)
        await self._operations.unsubscribe()

    async def _tick(self, generation: int):
        self._state.invocation_count += 1
        count = self._state.invocation_count
        target, fmt = self._target, self._fmt
        try:
            await self._session.guard.ensure()
            char = await self._resolver.resolve_characteristic(target)

            if char.capabilities.read:
                data = await self._session.transport.read(char)
                sample = build_sample(data, fmt, target, self._table)
                self._series.append(sample)
                logger.debug("Poll #%d: %s", count, sample.decoded_value)
            elif char.capabilities.notify:
                logger.info("%s is not readable, using notifications instead", target)
                subscription = await self._operations.subscribe(target, fmt, self._series.append)
                if subscription is not None and generation != self._generation:
                    await self._drop_orphaned_feed(subscription)
            else:
                raise UnsupportedOperation(f"{target} supports neither read nor notify")
            self._state.last_error = None
        except Exception as e:
            self._state.last_error = str(e)
            logger.warning("Poll #%d failed: %s", count, e)
