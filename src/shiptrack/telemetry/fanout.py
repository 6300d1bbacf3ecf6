"""Non-blocking fan-out of serialized packets to subscriber connections.

Every send runs in its own task with a timeout, so one slow or stuck
subscriber never delays the others or the next broadcast cycle.  While a
send to a connection is still in flight, further packets for that
connection are dropped rather than queued.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from websockets.exceptions import ConnectionClosed

logger = logging.getLogger(__name__)

DEFAULT_SEND_TIMEOUT = 1.0


class Broadcaster:
    """Delivers one already-serialized payload to many connections."""

    def __init__(self, send_timeout: float = DEFAULT_SEND_TIMEOUT) -> None:
        self._send_timeout = send_timeout
        self._inflight: dict[Any, asyncio.Task[None]] = {}
        self._sent_count = 0
        self._dropped_count = 0

    @property
    def sent_count(self) -> int:
        """Payloads fully handed to the transport."""
        return self._sent_count

    @property
    def dropped_count(self) -> int:
        """Payloads skipped because the connection was still busy."""
        return self._dropped_count

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    def deliver(self, connection: Any, data: str) -> None:
        """Schedule *data* to be sent to *connection*.  Never blocks.

        Must be called from within the running event loop.
        """
        if connection in self._inflight:
            self._dropped_count += 1
            logger.debug("Previous send to %s still pending, dropping packet", _remote(connection))
            return
        task = asyncio.get_running_loop().create_task(self._send(connection, data))
        self._inflight[connection] = task
        task.add_done_callback(lambda _t, conn=connection: self._inflight.pop(conn, None))

    async def _send(self, connection: Any, data: str) -> None:
        try:
            await asyncio.wait_for(connection.send(data), timeout=self._send_timeout)
            self._sent_count += 1
        except TimeoutError:
            logger.warning(
                "Send to %s timed out after %.1fs", _remote(connection), self._send_timeout
            )
        except ConnectionClosed:
            # The connection handler takes care of removal.
            logger.debug("Connection %s closed during send", _remote(connection))
        except Exception:
            logger.warning("Send to %s failed", _remote(connection), exc_info=True)

    async def aclose(self) -> None:
        """Cancel every in-flight send and wait for them to finish."""
        tasks = list(self._inflight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._inflight.clear()


def _remote(connection: Any) -> Any:
    return getattr(connection, "remote_address", "unknown")
