"""CLI entry-point: Click command group and dispatch."""

from __future__ import annotations

import dataclasses
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

# Third-party loggers that are chatty at INFO/DEBUG.
_NOISY_LOGGERS = ("websockets", "websockets.server", "websockets.client")

# ---------------------------------------------------------------------------
# Application context (stored in ctx.obj)
# ---------------------------------------------------------------------------


@dataclasses.dataclass
class AppContext:
    """Shared state passed to every Click command via ``@click.pass_obj``."""

    verbose: bool
    quiet: bool = False
    _console: Console | None = dataclasses.field(default=None, repr=False)

    @property
    def console(self) -> Console:
        if self._console is None:
            self._console = Console(stderr=True, quiet=self.quiet)
        return self._console


def configure_logging(verbose: bool) -> None:
    """Route stdlib logging through Rich: INFO by default, DEBUG with ``--verbose``."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)
    handler = RichHandler(show_path=verbose, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if verbose else logging.WARNING)


# ---------------------------------------------------------------------------
# Root Click group
# ---------------------------------------------------------------------------


@click.group()
@click.option("--verbose", is_flag=True, default=False, help="Enable verbose logging")
@click.option("--quiet", is_flag=True, default=False, help="Suppress startup output")
@click.version_option(package_name="shiptrack")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, quiet: bool) -> None:
    """Aggregate vessel GPS telemetry and broadcast fleet snapshots."""
    ctx.ensure_object(dict)
    ctx.obj = AppContext(verbose=verbose, quiet=quiet)


# ---------------------------------------------------------------------------
# Register subcommands (lazy imports keep startup fast)
# ---------------------------------------------------------------------------


def _register_commands() -> None:
    """Import and attach all subcommands to the root CLI."""
    from shiptrack.cli.serve import serve_cmd

    cli.add_command(serve_cmd)


_register_commands()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """Parse arguments and dispatch to the appropriate command handler."""
    try:
        cli(args=argv, standalone_mode=False)
    except click.exceptions.Exit as exc:
        raise SystemExit(exc.exit_code) from None
    except click.exceptions.Abort:
        raise SystemExit(1) from None
    except click.ClickException as exc:
        exc.show()
        raise SystemExit(exc.exit_code) from None
    except KeyboardInterrupt:
        raise SystemExit(130) from None
    except SystemExit:
        raise
    except Exception as exc:
        console = Console(stderr=True)
        console.print(f"[red]Error ({type(exc).__name__}):[/red] {exc}")
        raise SystemExit(1) from exc
