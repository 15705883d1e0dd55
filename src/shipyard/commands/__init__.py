"""Built-in shipyard commands: ``run-wasm``, ``bundle`` and ``config``."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

import typer

from shipyard.exceptions import ShipyardError
from shipyard.output import error
from shipyard.process import ToolRunner


@contextmanager
def reporting_errors() -> Iterator[None]:
    """Turn a :class:`ShipyardError` into an error message and its exit code."""
    try:
        yield
    except ShipyardError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def runner_from_context(ctx: typer.Context, timeout: int | None = None) -> ToolRunner:
    """Build the :class:`ToolRunner` for this invocation from root options."""
    obj: dict[str, Any] = ctx.obj or {}
    return ToolRunner(
        dry_run=obj.get("dry_run", False),
        timeout=timeout,
        stream=obj.get("verbose", False),
    )
