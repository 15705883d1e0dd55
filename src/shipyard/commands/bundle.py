"""``shipyard bundle`` -- build a native app and package it into installers.

Usage::

    shipyard bundle --config bundle.json
    shipyard bundle -c bundle.json --debug -t Msi
    shipyard --dry-run bundle -c bundle.json -C apps/counter
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from shipyard.bundler import BackendRegistry, BundleContext, run_backends
from shipyard.cargo import (
    BuildProfile,
    binary_path,
    build_args,
    ensure_package_dir,
    load_metadata,
    main_binary,
    output_dir,
    select_package,
)
from shipyard.commands import reporting_errors, runner_from_context
from shipyard.config import load_bundle_config, resolve_config
from shipyard.exceptions import BuildError, InvalidUsageError
from shipyard.models import BundleConfig, BundleTarget
from shipyard.output import print_table, stage, success, warning
from shipyard.process import ToolRunner


def select_targets(config: BundleConfig, requested: Optional[list[str]]) -> set[BundleTarget]:
    """Narrow the configured targets to *requested*.

    Raises:
        InvalidUsageError: If a requested tag is unknown or not configured.
    """
    if not requested:
        return set(config.targets)
    selected = set()
    for tag in requested:
        try:
            target = BundleTarget.parse(tag)
        except ValueError as exc:
            raise InvalidUsageError(str(exc)) from exc
        if target not in config.targets:
            configured = ", ".join(sorted(t.value for t in config.targets))
            raise InvalidUsageError(
                f"Target '{target.value}' is not enabled in the bundle config "
                f"(configured: {configured})"
            )
        selected.add(target)
    return selected


def bundle(
    runner: ToolRunner,
    *,
    config_path: Path,
    package_dir: Path,
    settings,
    profile: BuildProfile = BuildProfile.RELEASE,
    targets: Optional[list[str]] = None,
    out_dir: Optional[Path] = None,
    registry: Optional[BackendRegistry] = None,
) -> dict[BundleTarget, list[Path]]:
    """Build the app in *package_dir* and produce every selected installer.

    Returns:
        Artifacts keyed by target, in the order they were produced.

    Raises:
        ShipyardError: From the first stage that fails.
    """
    package_dir = ensure_package_dir(package_dir)

    stage("config", f"Loading {config_path}")
    config = load_bundle_config(config_path)
    selected = select_targets(config, targets)

    cargo = runner.resolve(settings.tools.cargo, "tools.cargo")
    stage("build", f"Compiling {config.product_name} ({profile.value})")
    runner.run(build_args(cargo, profile=profile), stage="build", cwd=package_dir)

    metadata = load_metadata(runner, cargo, package_dir)
    package = select_package(metadata, package_dir)
    binary = binary_path(metadata, main_binary(package, config.main_binary_name), profile)
    if not binary.is_file():
        if not runner.dry_run:
            raise BuildError(f"Built binary not found: {binary}", stage="build")
        warning(f"{binary} does not exist yet (dry run)")

    ctx = BundleContext(
        config=config,
        binary=binary,
        profile=profile,
        out_dir=(out_dir or output_dir(metadata, profile) / "bundle").resolve(),
        tools=settings.tools,
        runner=runner,
    )
    if registry is None:
        registry = BackendRegistry()
        registry.discover()
    return run_backends(ctx, selected, registry)


def bundle_command(
    ctx: typer.Context,
    config: str = typer.Option(
        ..., "--config", "-c",
        help="Path to the bundle configuration JSON.",
    ),
    debug: bool = typer.Option(
        False, "--debug",
        help="Build with the debug profile instead of release.",
    ),
    package_dir: Optional[str] = typer.Option(
        None, "--package-dir", "-C",
        help="Directory containing the app's Cargo.toml. [default: .]",
    ),
    target: Optional[list[str]] = typer.Option(
        None, "--target", "-t",
        help="Only build this installer format (repeatable).",
    ),
    out_dir: Optional[str] = typer.Option(
        None, "--out-dir", "-o",
        help="Bundle output root. [default: target/<profile>/bundle]",
    ),
) -> None:
    """Build the native app and package it into installers.

    The installer formats come from the ``targets`` list of the bundle
    config and may be narrowed with ``--target``.

    Example::

        shipyard bundle --config bundle.json
        shipyard bundle -c bundle.json --debug -t Deb
    """
    with reporting_errors():
        resolved = resolve_config(cli_package_dir=package_dir)
        runner = runner_from_context(ctx, resolved.settings.build.timeout_seconds)
        artifacts = bundle(
            runner,
            config_path=Path(config),
            package_dir=resolved.package_dir,
            settings=resolved.settings,
            profile=BuildProfile.DEBUG if debug else BuildProfile.RELEASE,
            targets=target,
            out_dir=Path(out_dir) if out_dir else None,
        )

    rows = [[t.value, str(path)] for t, paths in artifacts.items() for path in paths]
    print_table(["Target", "Artifact"], rows, title="Bundles")
    success(f"Created {len(rows)} bundle(s)")
