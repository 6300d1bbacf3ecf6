"""``shiptrack serve``: run the aggregation and broadcast server."""

from __future__ import annotations

import asyncio
import contextlib
import signal
import socket
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click
import pydantic

if TYPE_CHECKING:
    from rich.console import Console

    from shiptrack.models.config import ServerSettings


def _check_port(host: str, port: int) -> None:
    """Raise ``click.UsageError`` if *port* is already bound on *host*.

    Port ``0`` (OS-assigned) is always accepted.
    """
    if port == 0:
        return
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            s.bind((host, port))
        except OSError:
            raise click.UsageError(
                f"Port {port} is already in use.\n"
                f"Use --port to specify a different port, e.g.:\n"
                f"  shiptrack serve --port {port + 1}"
            ) from None


def build_settings(**overrides: Any) -> ServerSettings:
    """Load settings from env/.env, then apply explicit CLI overrides.

    ``None`` and empty-tuple overrides are treated as "not given".
    """
    from shiptrack.models.config import ServerSettings

    given = {k: v for k, v in overrides.items() if v is not None and v != ()}
    if "ports" in given:
        given["ports"] = list(given["ports"])
    try:
        return ServerSettings(**given)
    except pydantic.ValidationError as exc:
        raise click.UsageError(f"Invalid server settings:\n{exc}") from None


@click.command("serve")
@click.option("--host", default=None, help="Bind address (default: 0.0.0.0)")
@click.option(
    "--port",
    "ports",
    type=int,
    multiple=True,
    help="Listen port; repeat to listen on several ports (default: 4001)",
)
@click.option("--max-clients", type=int, default=None, help="Connection limit (default: 200)")
@click.option(
    "--interval",
    "interval_ms",
    type=int,
    default=None,
    help="Broadcast period in milliseconds (default: 1000)",
)
@click.option(
    "--stale-after",
    "stale_after_ms",
    type=int,
    default=None,
    help="Clear positions after this many ms without valid data (default: 5000)",
)
@click.option(
    "--no-stale-reset",
    is_flag=True,
    default=False,
    help="Keep positions even when no valid data arrives",
)
@click.option(
    "--no-empty-reset",
    is_flag=True,
    default=False,
    help="Keep positions when the last client disconnects",
)
@click.option(
    "--log-new-only",
    is_flag=True,
    default=False,
    help="Only write a log record when new reports arrived since the last one",
)
@click.option("--log-dir", default=None, help="Directory for ships_log.jsonl (default: ./logs)")
@click.option("--no-log", is_flag=True, default=False, help="Disable the broadcast log")
@click.pass_obj
def serve_cmd(
    app_ctx: object,
    host: str | None,
    ports: tuple[int, ...],
    max_clients: int | None,
    interval_ms: int | None,
    stale_after_ms: int | None,
    no_stale_reset: bool,
    no_empty_reset: bool,
    log_new_only: bool,
    log_dir: str | None,
    no_log: bool,
) -> None:
    """Start the WebSocket aggregation server.

    Every connection may push position reports and receives a
    ``ships_update`` snapshot of all vessels once per interval.  Each
    broadcast is appended to a JSONL log.  Runs until interrupted.

    \b
    Examples:
      shiptrack serve                            # port 4001, defaults
      shiptrack serve --port 4001 --port 4002    # two ports, one fleet
      shiptrack serve --no-stale-reset --log-new-only
    """
    from shiptrack.cli.main import AppContext, configure_logging

    assert isinstance(app_ctx, AppContext)

    settings = build_settings(
        host=host,
        ports=ports,
        max_clients=max_clients,
        broadcast_interval_ms=interval_ms,
        stale_after_ms=stale_after_ms,
        reset_on_stale=False if no_stale_reset else None,
        reset_on_empty=False if no_empty_reset else None,
        log_only_on_new_data=True if log_new_only else None,
        log_dir=log_dir,
        no_log=True if no_log else None,
    )
    for port in settings.ports:
        _check_port(settings.host, port)

    configure_logging(app_ctx.verbose)
    asyncio.run(_cmd_serve(settings, app_ctx.console))


async def _cmd_serve(settings: ServerSettings, console: Console) -> None:
    from shiptrack.telemetry.log_sink import ShipLogSink, default_log_path
    from shiptrack.telemetry.server import ShipTrackServer

    sink = None
    if not settings.no_log:
        sink = ShipLogSink(
            default_log_path(Path(settings.log_dir)),
            max_bytes=settings.log_max_bytes,
            backup_count=settings.log_backup_count,
        )

    server = ShipTrackServer(settings, sink=sink)
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Windows doesn't support loop.add_signal_handler
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    try:
        await server.start()
        ports = ", ".join(str(p) for p in server.bound_ports)
        console.print(
            f"[green]shiptrack listening[/green] on ws://{settings.host} (ports {ports})"
        )
        console.print(
            f"  max clients {settings.max_clients}, "
            f"broadcast every {settings.broadcast_interval_ms} ms, "
            f"stale after {settings.stale_after_ms} ms"
        )
        if sink is not None:
            console.print(f"  ship log: {sink.log_path}")
        else:
            console.print("  ship log: [dim]disabled[/dim]")
        console.print("[dim]Press Ctrl+C to stop.[/dim]")
        await stop.wait()
    finally:
        await server.stop()
        console.print("shiptrack stopped.")
