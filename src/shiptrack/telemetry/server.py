"""Async WebSocket server that aggregates vessel telemetry.

Trackers and subscribers share one connection pool: every admitted
connection may push position reports and receives the periodic
``ships_update`` broadcast.  All listeners (one per configured port)
share a single :class:`~shiptrack.telemetry.state.FleetState`.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

from shiptrack.errors import CapacityError, TransportError, ValidationError
from shiptrack.models.messages import WelcomeMessage
from shiptrack.telemetry.cycle import BroadcastCycle
from shiptrack.telemetry.fanout import Broadcaster
from shiptrack.telemetry.state import FleetState
from shiptrack.telemetry.validator import decode_message, validate_report

if TYPE_CHECKING:
    from collections.abc import Callable

    import websockets.asyncio.server as ws_server

    from shiptrack.models.config import ServerSettings
    from shiptrack.models.position import PositionReport
    from shiptrack.telemetry.log_sink import ShipLogSink

logger = logging.getLogger(__name__)

CLOSE_NORMAL = 1000
CAPACITY_CLOSE_REASON = "Maximum clients reached"
SHUTDOWN_CLOSE_REASON = "Server shutting down"


class ShipTrackServer:
    """Aggregation server: admission, ingestion, and the broadcast cycle.

    Parameters:
        settings: Listener, capacity, cadence and reset options.
        sink: Log sink for broadcast records (``None`` disables logging).
        clock: Monotonic clock shared by ingestion and the cycle.
    """

    def __init__(
        self,
        settings: ServerSettings,
        *,
        sink: ShipLogSink | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings
        self._sink = sink
        self._clock = clock
        self._state = FleetState(settings.max_clients, reset_on_empty=settings.reset_on_empty)
        self._broadcaster = Broadcaster(send_timeout=settings.send_timeout)
        self._cycle = BroadcastCycle(
            self._state,
            self._broadcaster,
            sink,
            interval=settings.broadcast_interval,
            stale_after=settings.stale_after,
            reset_on_stale=settings.reset_on_stale,
            log_only_on_new_data=settings.log_only_on_new_data,
            clock=clock,
        )
        self._servers: list[ws_server.Server] = []
        self._rejected_count = 0

    # -- Properties -----------------------------------------------------------

    @property
    def state(self) -> FleetState:
        return self._state

    @property
    def cycle(self) -> BroadcastCycle:
        return self._cycle

    @property
    def connection_count(self) -> int:
        """Number of currently admitted connections."""
        return self._state.registry.count

    @property
    def rejected_count(self) -> int:
        """Connections turned away because the registry was full."""
        return self._rejected_count

    @property
    def bound_ports(self) -> list[int]:
        """Ports actually listened on (resolves port ``0``)."""
        ports: list[int] = []
        for server in self._servers:
            for sock in server.sockets:
                port = sock.getsockname()[1]
                if port not in ports:
                    ports.append(port)
        return ports

    # -- Lifecycle ------------------------------------------------------------

    async def start(self) -> None:
        """Start one listener per configured port, then the broadcast cycle.

        If any port fails to bind, listeners already opened are closed
        before the error propagates.
        """
        import websockets.asyncio.server as ws_server_mod

        host = self._settings.host
        try:
            for port in self._settings.ports:
                server = await ws_server_mod.serve(self._handler, host=host, port=port)
                self._servers.append(server)
        except OSError:
            await self._close_listeners()
            raise
        self._cycle.start()
        logger.info(
            "WebSocket server listening on %s (ports %s)",
            host,
            ", ".join(str(p) for p in self.bound_ports),
        )

    async def stop(self) -> None:
        """Cancel the cycle, close every connection normally, stop listening."""
        await self._cycle.stop()
        await self._broadcaster.aclose()

        connections = list(self._state.registry)
        if connections:
            await asyncio.gather(
                *(conn.close(CLOSE_NORMAL, SHUTDOWN_CLOSE_REASON) for conn in connections),
                return_exceptions=True,
            )

        await self._close_listeners()

        if self._sink is not None:
            self._sink.close()
        logger.info("WebSocket server stopped")

    async def _close_listeners(self) -> None:
        for server in self._servers:
            server.close()
        for server in self._servers:
            await server.wait_closed()
        self._servers.clear()

    # -- Connection lifecycle -------------------------------------------------

    async def _handler(self, websocket: Any) -> None:
        """Handle one connection: admit, welcome, ingest, and clean up."""
        remote = getattr(websocket, "remote_address", ("unknown", 0))
        try:
            receipt = self._state.admit(websocket)
        except CapacityError as exc:
            self._rejected_count += 1
            logger.warning("%s, rejecting connection from %s", exc, remote)
            await websocket.close(CLOSE_NORMAL, CAPACITY_CLOSE_REASON)
            return

        logger.info("Client connected: %s (total: %d)", remote, receipt.client_count)
        welcome = WelcomeMessage(
            message=f"Connected to WebSocket server at {self._url_for(websocket)}",
            client_count=receipt.client_count,
        )
        try:
            await self._session(websocket, welcome)
        except TransportError as exc:
            logger.warning("Client error from %s: %s", remote, exc)
        finally:
            self._state.remove(websocket)
            logger.info(
                "Client disconnected: %s (remaining: %d)", remote, self._state.registry.count
            )

    async def _session(self, websocket: Any, welcome: WelcomeMessage) -> None:
        """Send the welcome, then consume messages in arrival order until close."""
        try:
            await websocket.send(welcome.to_json())
            async for message in websocket:
                self.ingest(message)
        except ConnectionClosedOK:
            return
        except ConnectionClosedError as exc:
            raise TransportError(f"connection lost ({exc})") from exc

    def ingest(self, raw: str | bytes) -> PositionReport | None:
        """Decode, validate and store one inbound message.

        Rejections are logged and dropped; nothing is sent back to the
        tracker.  Returns the accepted report, or ``None``.
        """
        try:
            report = validate_report(decode_message(raw), received_at=datetime.now(UTC))
        except ValidationError as exc:
            logger.warning("Rejected telemetry message: %s", exc)
            return None
        self._state.accept(report, self._clock())
        logger.debug("Received for %s: %d fixes", report.vessel_id, len(report.fixes))
        return report

    def _url_for(self, websocket: Any) -> str:
        local = getattr(websocket, "local_address", None)
        port = local[1] if local else self._settings.ports[0]
        return f"ws://{self._settings.host}:{port}"
