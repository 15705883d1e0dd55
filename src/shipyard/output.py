"""Output formatting system with strict stdout/stderr discipline.

Follows `clig.dev <https://clig.dev/>`_ conventions:

* **stdout** -- primary data only (artifact lists, config dumps). This is
  what downstream tools pipe and parse.
* **stderr** -- all diagnostics (stage progress, echoed commands, warnings,
  errors, suggestions). Never contaminates the data stream.
* **TTY detection** -- Rich formatting when stdout is an interactive
  terminal, plain text when piped to another process.
* **Colour control** -- respects ``NO_COLOR``, ``TERM=dumb``, and the
  ``--no-color`` CLI flag.

The module exposes two layers:

1. :class:`OutputManager` -- a stateful object holding format preferences,
   Rich consoles, and quiet/verbose flags. Created once in
   :func:`~shipyard.app.main_callback` and installed via :func:`set_output`.
2. Module-level convenience functions (:func:`info`, :func:`error`,
   :func:`stage`, etc.) that delegate to the global ``OutputManager``
   instance so callers do not need to pass the manager around.
"""

from __future__ import annotations

import json
import os
import shlex
import sys
from enum import Enum
from typing import Any, Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table


class OutputFormat(str, Enum):
    """Enumeration of supported output formats.

    ``AUTO`` resolves to ``RICH`` when stdout is an interactive TTY and colour
    is not disabled, or to ``PLAIN`` otherwise. Callers can force a specific
    format via the ``--json`` or ``--plain`` CLI flags.
    """

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


class OutputManager:
    """Central manager for all CLI output with stdout/stderr discipline.

    Maintains two Rich :class:`~rich.console.Console` instances -- one for
    stdout (data) and one for stderr (diagnostics) -- and routes every
    output call to the correct stream with appropriate formatting.

    Args:
        format: Desired output format. ``AUTO`` resolves based on TTY
            detection.
        no_color: Disable all colour and Rich markup.
        quiet: Suppress non-essential informational messages on stderr.
        verbose: Enable debug-level messages on stderr.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose

        if format == OutputFormat.AUTO:
            self._format = (
                OutputFormat.RICH if _is_tty() and not self._no_color else OutputFormat.PLAIN
            )
        else:
            self._format = format

        self._stdout = Console(
            file=sys.stdout,
            no_color=self._no_color,
            force_terminal=(self._format == OutputFormat.RICH),
        )
        self._stderr = Console(
            file=sys.stderr,
            no_color=self._no_color,
            stderr=True,
            highlight=False,
        )

    @property
    def format(self) -> OutputFormat:
        """The resolved output format."""
        return self._format

    @property
    def is_quiet(self) -> bool:
        return self._quiet

    @property
    def is_verbose(self) -> bool:
        return self._verbose

    # ------------------------------------------------------------------ #
    # Data output (stdout)
    # ------------------------------------------------------------------ #

    def format_response(self, data: Any) -> None:
        """Write structured data (dict/list) to stdout in the active format."""
        if self._format == OutputFormat.JSON:
            self.print_data(json.dumps(data, indent=2, ensure_ascii=False, default=str))
        elif self._format == OutputFormat.PLAIN:
            self._print_plain(data)
        else:
            json_str = json.dumps(data, indent=2, ensure_ascii=False, default=str)
            self._stdout.print(Syntax(json_str, "json", theme="monokai", word_wrap=True))

    def print_data(self, text: str) -> None:
        """Print raw text to stdout."""
        print(text, file=sys.stdout, flush=True)

    def print_table(
        self,
        headers: list[str],
        rows: list[list[str]],
        title: Optional[str] = None,
    ) -> None:
        """Print tabular data to stdout in the active format.

        * **Rich mode** -- styled :class:`~rich.table.Table` with column
          headers.
        * **JSON mode** -- array of objects keyed by header names.
        * **Plain mode** -- tab-separated values, one row per line.
        """
        if self._format == OutputFormat.JSON:
            records = [dict(zip(headers, row)) for row in rows]
            self.print_data(json.dumps(records, indent=2, ensure_ascii=False))

        elif self._format == OutputFormat.PLAIN:
            self.print_data("\t".join(headers))
            for row in rows:
                self.print_data("\t".join(row))

        else:
            table = Table(title=title, show_header=True, header_style="bold cyan")
            for h in headers:
                table.add_column(h)
            for row in rows:
                table.add_row(*row)
            self._stdout.print(table)

    # ------------------------------------------------------------------ #
    # Diagnostics (stderr)
    # ------------------------------------------------------------------ #

    def _emit(self, plain: str, markup: str) -> None:
        if self._no_color:
            print(plain, file=sys.stderr, flush=True)
        else:
            self._stderr.print(markup)

    def info(self, message: str) -> None:
        """Print an informational message to stderr. Suppressed by ``--quiet``."""
        if not self._quiet:
            self._emit(message, escape(message))

    def stage(self, name: str, message: str) -> None:
        """Announce the start of a pipeline stage. Suppressed by ``--quiet``.

        Args:
            name: Short stage name (``build``, ``bindgen``, ``package:Deb`` ...).
            message: What the stage is about to do.
        """
        if not self._quiet:
            self._emit(f"[{name}] {message}", f"[bold cyan]\\[{name}][/bold cyan] {escape(message)}")

    def command(self, argv: Sequence[str], cwd: Optional[str] = None) -> None:
        """Echo an external command line. Shown with ``--verbose`` or dry runs."""
        line = "$ " + shlex.join(str(a) for a in argv)
        if cwd:
            line += f"  (in {cwd})"
        self._emit(line, f"[dim]{escape(line)}[/dim]")

    def success(self, message: str) -> None:
        """Print a green success message to stderr. Suppressed by ``--quiet``."""
        if not self._quiet:
            self._emit(message, f"[green]{escape(message)}[/green]")

    def warning(self, message: str) -> None:
        """Print a yellow warning to stderr. NOT suppressed by ``--quiet``."""
        self._emit(f"Warning: {message}", f"[yellow]Warning:[/yellow] {escape(message)}")

    def error(self, message: str) -> None:
        """Print a bold-red error to stderr. Never suppressed."""
        self._emit(f"Error: {message}", f"[bold red]Error:[/bold red] {escape(message)}")

    def suggest(self, message: str) -> None:
        """Print a dimmed next-step suggestion to stderr. Suppressed by ``--quiet``."""
        if not self._quiet:
            formatted = f"→ {message}"
            self._emit(formatted, f"[dim]{formatted}[/dim]")

    def debug(self, message: str) -> None:
        """Print a debug message to stderr. Only shown when ``--verbose`` is active."""
        if self._verbose:
            self._emit(f"[debug] {message}", f"[dim]\\[debug] {escape(message)}[/dim]")

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _print_plain(self, data: Any) -> None:
        if isinstance(data, dict):
            for key, value in data.items():
                if isinstance(value, (dict, list)):
                    value = json.dumps(value, ensure_ascii=False, default=str)
                self.print_data(f"{key}\t{value}")
        elif isinstance(data, list):
            for item in data:
                self.print_data(str(item))
        else:
            self.print_data(str(data))


# ------------------------------------------------------------------ #
# Module-level helpers
# ------------------------------------------------------------------ #


def _is_tty() -> bool:
    """Check if stdout is a TTY."""
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _should_disable_color() -> bool:
    """Check if color should be disabled per clig.dev.

    Returns True when NO_COLOR env var is set (any value) or TERM=dumb.
    """
    if os.environ.get("NO_COLOR") is not None:
        return True
    if os.environ.get("TERM") == "dumb":
        return True
    return False


# ------------------------------------------------------------------ #
# Global output instance (set during app startup)
# ------------------------------------------------------------------ #

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the global :class:`OutputManager`, creating a default one lazily."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    """Install *output* as the global :class:`OutputManager` instance."""
    global _output
    _output = output


def reset_output() -> None:
    """Reset the global :class:`OutputManager` to ``None``.

    Primarily useful in test suites to ensure a clean state between tests.
    """
    global _output
    _output = None


# ------------------------------------------------------------------ #
# Convenience functions that use the global instance
# ------------------------------------------------------------------ #


def format_response(data: Any) -> None:
    get_output().format_response(data)


def print_data(text: str) -> None:
    get_output().print_data(text)


def print_table(
    headers: list[str],
    rows: list[list[str]],
    title: Optional[str] = None,
) -> None:
    get_output().print_table(headers, rows, title)


def info(message: str) -> None:
    get_output().info(message)


def stage(name: str, message: str) -> None:
    get_output().stage(name, message)


def command(argv: Sequence[str], cwd: Optional[str] = None) -> None:
    get_output().command(argv, cwd)


def error(message: str) -> None:
    get_output().error(message)


def success(message: str) -> None:
    get_output().success(message)


def warning(message: str) -> None:
    get_output().warning(message)


def suggest(message: str) -> None:
    get_output().suggest(message)


def debug(message: str) -> None:
    get_output().debug(message)
