"""Fixed-cadence broadcast and log cycle.

Once per period, independent of how often trackers report::

    registry empty?  → reset state, skip            (IDLE)
    reports stale?   → clear positions, skip        (STALE)
    nothing stored?  → skip                         (EMPTY)
    otherwise        → serialize once, fan out, log (SENT)

A run is fully synchronous; the only suspension point is the sleep
between runs.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from shiptrack.errors import SinkError
from shiptrack.models.messages import ShipsUpdate

if TYPE_CHECKING:
    from collections.abc import Callable

    from shiptrack.telemetry.fanout import Broadcaster
    from shiptrack.telemetry.log_sink import ShipLogSink
    from shiptrack.telemetry.state import FleetState

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 1.0
DEFAULT_STALE_AFTER = 5.0


class CycleOutcome(StrEnum):
    IDLE = "idle"
    STALE = "stale"
    EMPTY = "empty"
    SENT = "sent"


def format_local_time(moment: datetime | None = None) -> str:
    """Format *moment* (default: now) as ``DD/MM/YYYY, HH:MM:SS TZ`` in local time."""
    local = (moment or datetime.now()).astimezone()
    return local.strftime("%d/%m/%Y, %H:%M:%S %Z")


class BroadcastCycle:
    """Periodically broadcasts the fleet snapshot and logs what was sent.

    Parameters:
        state: Shared fleet state.
        broadcaster: Delivers the serialized packet to each open connection.
        sink: Log sink, or ``None`` to skip logging.
        interval: Seconds between runs.
        stale_after: Staleness window in seconds.
        reset_on_stale: Clear positions when no report arrived within
            *stale_after*.
        log_only_on_new_data: Skip the log record when no report was
            accepted since the previous record.
        clock: Monotonic clock, comparable with the times passed to
            :meth:`FleetState.accept`.
    """

    def __init__(
        self,
        state: FleetState,
        broadcaster: Broadcaster,
        sink: ShipLogSink | None = None,
        *,
        interval: float = DEFAULT_INTERVAL,
        stale_after: float = DEFAULT_STALE_AFTER,
        reset_on_stale: bool = True,
        log_only_on_new_data: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._state = state
        self._broadcaster = broadcaster
        self._sink = sink
        self._interval = interval
        self._stale_after = stale_after
        self._reset_on_stale = reset_on_stale
        self._log_only_on_new_data = log_only_on_new_data
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._broadcast_count = 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def broadcast_count(self) -> int:
        """Cycles that produced a broadcast."""
        return self._broadcast_count

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # -- One cycle ------------------------------------------------------------

    def run_once(self, now: float | None = None) -> CycleOutcome:
        """Run a single broadcast/log cycle at monotonic time *now*."""
        if now is None:
            now = self._clock()
        state = self._state

        if state.registry.is_empty():
            if state.reset_on_empty:
                state.reset()
            logger.debug("No clients connected, skipping broadcast and log")
            return CycleOutcome.IDLE

        if self._reset_on_stale and state.monitor.is_stale(now, self._stale_after):
            if len(state.store):
                logger.info(
                    "No valid GPS data in the last %.1fs, clearing positions", self._stale_after
                )
            state.store.clear()
            return CycleOutcome.STALE

        ships = state.snapshot()
        if not ships:
            logger.debug("No ship data available, skipping broadcast and log")
            return CycleOutcome.EMPTY

        packet = ShipsUpdate(ships=ships, timestamp=format_local_time())
        data = packet.to_json()
        delivered = state.registry.for_each_open(
            lambda conn: self._broadcaster.deliver(conn, data)
        )
        self._broadcast_count += 1
        logger.debug("Broadcast %d ships to %d clients", len(ships), delivered)

        new_data = state.take_new_data()
        if self._sink is not None:
            if self._log_only_on_new_data and not new_data:
                logger.debug("No new ship data received, skipping log")
            else:
                self._write_log(packet)
        return CycleOutcome.SENT

    def _write_log(self, packet: ShipsUpdate) -> None:
        assert self._sink is not None
        try:
            self._sink.write(packet.log_record())
        except SinkError:
            logger.error("Error writing to ship log", exc_info=True)

    # -- Scheduling -----------------------------------------------------------

    def start(self) -> None:
        """Start running every :attr:`interval` seconds on the current loop."""
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        """Cancel the schedule.  No final broadcast is sent."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_at = loop.time() + self._interval
        while True:
            await asyncio.sleep(max(0.0, next_at - loop.time()))
            next_at += self._interval
            # Skip missed ticks instead of bursting to catch up.
            if next_at < loop.time():
                next_at = loop.time() + self._interval
            try:
                self.run_once()
            except Exception:
                logger.exception("Broadcast cycle failed")
