"""``shipyard run-wasm`` -- build an app for the browser and serve it locally.

The pipeline has four stages, each fatal on failure:

1. **build** -- ``cargo build -p <name> --target wasm32-unknown-unknown``.
2. **bindgen** -- ``wasm-bindgen --target web`` writes the JS glue and the
   processed ``.wasm`` into the output directory.
3. **site** -- an ``index.html`` that loads the glue module is rendered
   next to it.
4. **serve** -- ``python -m http.server`` serves the directory on
   ``127.0.0.1:8000`` until Ctrl-C.

Usage::

    shipyard run-wasm --name counter
    shipyard run-wasm --name counter --release --port 9000
    shipyard run-wasm -C examples/counter --no-serve
"""

from __future__ import annotations

import socket
import sys
from pathlib import Path
from typing import Optional

import typer

from shipyard.cargo import (
    BuildProfile,
    build_args,
    ensure_package_dir,
    load_metadata,
    select_package,
    wasm_artifact,
)
from shipyard.commands import reporting_errors, runner_from_context
from shipyard.config import resolve_config
from shipyard.exceptions import BindgenError, ServerError
from shipyard.exit_codes import EXIT_INTERRUPTED
from shipyard.models import ServerConfig
from shipyard.output import stage, success, suggest
from shipyard.process import ToolRunner
from shipyard.templating import render_to


def check_port_free(host: str, port: int) -> None:
    """Fail early when *host*:*port* is already taken.

    Raises:
        ServerError: If the address cannot be bound.
    """
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    with socket.socket(family, socket.SOCK_STREAM) as s:
        try:
            s.bind((host, port))
        except (OSError, OverflowError) as exc:
            reason = getattr(exc, "strerror", None) or exc
            raise ServerError(f"Cannot listen on {host}:{port}: {reason}") from exc


def server_args(server: ServerConfig, directory: Path) -> list[str]:
    """Command line of the static file server."""
    return [
        sys.executable, "-m", "http.server", str(server.port),
        "--bind", server.host,
        "--directory", str(directory),
    ]


def run_wasm(
    runner: ToolRunner,
    *,
    package_dir: Path,
    settings,
    name: Optional[str] = None,
    profile: BuildProfile = BuildProfile.DEBUG,
    out_dir: Optional[Path] = None,
    serve: bool = True,
) -> int:
    """Run the wasm pipeline and return the process exit code.

    Args:
        runner: Tool runner for this invocation.
        package_dir: Directory containing the crate or workspace.
        settings: Effective :class:`~shipyard.models.GlobalConfig`.
        name: Cargo package to build, or ``None`` for the package in
            *package_dir*.
        profile: Cargo profile.
        out_dir: Directory to generate and serve. Defaults to
            ``<package_dir>/<wasm.out_dir>/<package>``.
        serve: Start the static server after generating the site.

    Raises:
        ShipyardError: From the first stage that fails. Later stages,
            including the server, never start.
    """
    package_dir = ensure_package_dir(package_dir)
    wasm_cfg = settings.wasm
    cargo = runner.resolve(settings.tools.cargo, "tools.cargo")
    bindgen = runner.resolve(settings.tools.wasm_bindgen, "tools.wasm_bindgen")

    metadata = load_metadata(runner, cargo, package_dir)
    package = select_package(metadata, package_dir, name)

    stage("build", f"Compiling {package.name} for {wasm_cfg.target} ({profile.value})")
    runner.run(
        build_args(cargo, profile=profile, package=package.name, target=wasm_cfg.target),
        stage="build",
        cwd=package_dir,
    )
    wasm = wasm_artifact(metadata, package, profile, wasm_cfg.target, must_exist=not runner.dry_run)

    site = (out_dir or package_dir / wasm_cfg.out_dir / package.name).resolve()
    site.mkdir(parents=True, exist_ok=True)
    module = package.name.replace("-", "_")

    stage("bindgen", f"Generating JS bindings in {site}")
    runner.run(
        [
            bindgen,
            "--target", wasm_cfg.bindgen_target,
            "--no-typescript",
            "--out-dir", site,
            "--out-name", module,
            wasm,
        ],
        stage="bindgen",
        error_cls=BindgenError,
    )
    render_to(site / "index.html", "index.html", title=package.name, module=module)
    success(f"Site ready: {site}")

    if not serve:
        suggest(f"Serve it: {sys.executable} -m http.server --directory {site}")
        return 0

    server = settings.server
    stage("serve", f"Serving {site} at http://{server.host}:{server.port}/")
    if not runner.dry_run:
        check_port_free(server.host, server.port)
    return runner.serve(server_args(server, site))


def run_wasm_command(
    ctx: typer.Context,
    name: Optional[str] = typer.Option(
        None, "--name", "-n",
        help="Cargo package to build. [default: the package in --package-dir]",
    ),
    package_dir: Optional[str] = typer.Option(
        None, "--package-dir", "-C",
        help="Directory containing Cargo.toml. [default: .]",
    ),
    release: bool = typer.Option(
        False, "--release",
        help="Build with the release profile instead of debug.",
    ),
    out_dir: Optional[str] = typer.Option(
        None, "--out-dir", "-o",
        help="Directory to write and serve. [default: <package-dir>/target/wasm/<name>]",
    ),
    host: Optional[str] = typer.Option(
        None, "--host",
        help="Address for the local server. [default: 127.0.0.1]",
    ),
    port: Optional[int] = typer.Option(
        None, "--port", min=1, max=65535,
        help="Port for the local server. [default: 8000]",
    ),
    no_serve: bool = typer.Option(
        False, "--no-serve",
        help="Stop after generating the site.",
    ),
) -> None:
    """Compile an app to WebAssembly and serve it in the browser.

    Builds the package for ``wasm32-unknown-unknown``, runs
    ``wasm-bindgen`` to produce the JavaScript glue, writes an
    ``index.html`` and serves the result on a local static server.

    Example::

        shipyard run-wasm --name counter
        shipyard run-wasm -C examples/counter --port 9000
    """
    with reporting_errors():
        resolved = resolve_config(cli_package_dir=package_dir, cli_port=port, cli_host=host)
        runner = runner_from_context(ctx, resolved.settings.build.timeout_seconds)
        code = run_wasm(
            runner,
            package_dir=resolved.package_dir,
            settings=resolved.settings,
            name=name or resolved.wasm_package,
            profile=BuildProfile.RELEASE if release else BuildProfile.DEBUG,
            out_dir=Path(out_dir) if out_dir else None,
            serve=not no_serve,
        )
    if code == EXIT_INTERRUPTED:
        raise typer.Exit(code=EXIT_INTERRUPTED)
