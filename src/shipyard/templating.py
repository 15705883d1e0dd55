"""Jinja2 rendering of the files shipyard generates.

Templates live in ``shipyard/templates/``: the ``index.html`` page served by
``run-wasm`` and the installer scripts and manifests written by the
packaging backends (WiX source, NSIS script, Debian control file, desktop
entry, ``AppRun`` launcher, ``Info.plist``).

Autoescaping is enabled for the HTML and XML-based templates and disabled
for the plain-text ones.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape


TEMPLATE_DIR = Path(__file__).parent / "templates"
"""Path to the Jinja2 template directory (``shipyard/templates/``)."""


@lru_cache(maxsize=1)
def _environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(
            enabled_extensions=("html", "xml", "wxs", "plist"),
            default_for_string=False,
            default=False,
        ),
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )


def render(template: str, **context: Any) -> str:
    """Render *template* from the template directory with *context*."""
    return _environment().get_template(template).render(**context)


def render_to(path: Path, template: str, **context: Any) -> Path:
    """Render *template* into *path*, creating parent directories.

    Returns:
        *path*, for chaining.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render(template, **context), encoding="utf-8")
    return path
