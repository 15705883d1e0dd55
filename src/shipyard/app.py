"""Typer application and CLI entry point for shipyard.

This module wires together the top-level Typer application and registers the
built-in sub-commands (``run-wasm``, ``bundle``, ``config``).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers and invokes the Typer app.
Unhandled exceptions are written to a crash log under the data directory.

See Also:
    :mod:`shipyard.config`: Configuration resolution.
    :mod:`shipyard.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from typing import Any

import typer

from shipyard import __version__
from shipyard.commands.bundle import bundle_command
from shipyard.commands.config import config_app
from shipyard.commands.run_wasm import run_wasm_command
from shipyard.exit_codes import EXIT_GENERIC_FAILURE, EXIT_INTERRUPTED


app = typer.Typer(
    name="shipyard",
    help="Run Rust GUI apps in the browser and package them into installers.",
    no_args_is_help=True,
    add_completion=True,
    rich_markup_mode="rich",
)

app.command("run-wasm")(run_wasm_command)
app.command("bundle")(bundle_command)
app.add_typer(config_app, name="config", help="Configuration management.")


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"shipyard {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    """Send library debug logging to stderr under ``--verbose``."""
    if not verbose:
        return
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
        force=True,
    )


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Plain text output."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Stream tool output and enable debug logging."
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Print external commands instead of running them."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Skip confirmations."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~shipyard.output.OutputManager` from CLI
    flags, and stores shared options (``dry_run``, ``force``, ``verbose``) in
    the Typer context so that sub-commands can read them via ``ctx.obj``.
    """
    from shipyard.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))
    _configure_logging(verbose)

    ctx.ensure_object(dict)
    ctx.obj["dry_run"] = dry_run
    ctx.obj["force"] = force
    ctx.obj["verbose"] = verbose


def _setup_signal_handlers() -> None:
    """Turn SIGINT and SIGTERM into :class:`KeyboardInterrupt`.

    ``run-wasm`` catches the interrupt to stop its server child before
    exiting with code 130.
    """

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        raise KeyboardInterrupt

    signal.signal(signal.SIGINT, signal.default_int_handler)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from shipyard.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(
        "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    )
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``shipyard`` console script.

    Unhandled :class:`~shipyard.exceptions.ShipyardError` instances cause a
    clean exit with the error's ``exit_code``. All other exceptions produce
    a crash log and a generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)
    except Exception as exc:
        from shipyard.exceptions import ShipyardError
        from shipyard.output import error

        if isinstance(exc, ShipyardError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log(exc)
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
