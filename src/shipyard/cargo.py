"""Cargo invocations and artifact discovery.

shipyard never parses ``Cargo.toml`` itself. Instead it asks cargo:
``cargo metadata --format-version 1 --no-deps`` reports the workspace
members, their build targets and the shared target directory, which is
enough to predict where ``cargo build`` leaves its output.

Example::

    runner = ToolRunner()
    metadata = load_metadata(runner, "cargo", Path("examples/counter"))
    package = select_package(metadata, Path("examples/counter"))
    exe = binary_path(metadata, main_binary(package), BuildProfile.RELEASE)
"""

from __future__ import annotations

import enum
import sys
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from shipyard.exceptions import BuildError, ConfigError
from shipyard.models import CargoMetadata, CargoPackage
from shipyard.process import ToolRunner


class BuildProfile(str, enum.Enum):
    """Cargo build profile; the value doubles as the target sub-directory name."""

    DEBUG = "debug"
    RELEASE = "release"


def ensure_package_dir(directory: Path) -> Path:
    """Return *directory* resolved, after checking it holds a ``Cargo.toml``.

    Raises:
        ConfigError: If the directory or its manifest does not exist.
    """
    directory = directory.expanduser().resolve()
    if not directory.is_dir():
        raise ConfigError(f"Package directory does not exist: {directory}")
    if not (directory / "Cargo.toml").is_file():
        raise ConfigError(f"No Cargo.toml in package directory: {directory}")
    return directory


def build_args(
    cargo: str,
    *,
    profile: BuildProfile,
    package: Optional[str] = None,
    target: Optional[str] = None,
) -> list[str]:
    """Return the ``cargo build`` command line for the given options."""
    argv = [cargo, "build"]
    if package:
        argv += ["-p", package]
    if target:
        argv += ["--target", target]
    if profile is BuildProfile.RELEASE:
        argv.append("--release")
    return argv


def load_metadata(runner: ToolRunner, cargo: str, package_dir: Path) -> CargoMetadata:
    """Run ``cargo metadata`` in *package_dir* and parse the result.

    Raises:
        BuildError: With stage ``metadata`` if cargo fails or prints
            something that is not valid metadata JSON.
    """
    stdout = runner.capture(
        [cargo, "metadata", "--format-version", "1", "--no-deps"],
        stage="metadata",
        cwd=package_dir,
    )
    try:
        return CargoMetadata.model_validate_json(stdout)
    except ValidationError as exc:
        raise BuildError(
            f"Unexpected output from cargo metadata: {exc.error_count()} validation error(s)",
            stage="metadata",
        ) from exc


def select_package(
    metadata: CargoMetadata,
    package_dir: Path,
    name: Optional[str] = None,
) -> CargoPackage:
    """Pick the package to build.

    With *name*, the workspace member of that name is returned. Without it,
    the member whose manifest lives in *package_dir* is used, falling back
    to the only member of a single-package workspace.

    Raises:
        BuildError: With stage ``metadata`` when no package matches.
    """
    if name:
        package = metadata.find_package(name)
        if package is None:
            known = ", ".join(sorted(p.name for p in metadata.packages)) or "none"
            raise BuildError(
                f"No package named '{name}' in workspace (available: {known})",
                stage="metadata",
            )
        return package

    package = metadata.package_for_dir(package_dir)
    if package is not None:
        return package
    if len(metadata.packages) == 1:
        return metadata.packages[0]
    raise BuildError(
        f"{package_dir} is a workspace root with several packages; pass --name",
        stage="metadata",
    )


def main_binary(package: CargoPackage, override: Optional[str] = None) -> str:
    """Return the binary to ship: *override*, the bin named like the package, or the first bin.

    Raises:
        BuildError: If the package has no binary targets.
    """
    if override:
        return override
    binaries = package.binaries()
    if not binaries:
        raise BuildError(f"Package '{package.name}' has no binary targets", stage="metadata")
    if package.name in binaries:
        return package.name
    return binaries[0]


def output_dir(
    metadata: CargoMetadata,
    profile: BuildProfile,
    target: Optional[str] = None,
) -> Path:
    """Directory where cargo writes artifacts for *profile* (and *target*)."""
    base = Path(metadata.target_directory)
    if target:
        base = base / target
    return base / profile.value


def binary_path(
    metadata: CargoMetadata,
    binary: str,
    profile: BuildProfile,
    platform: Optional[str] = None,
) -> Path:
    """Path of a native executable produced by ``cargo build``."""
    platform = platform or sys.platform
    suffix = ".exe" if platform.startswith("win") else ""
    return output_dir(metadata, profile) / f"{binary}{suffix}"


def wasm_artifact(
    metadata: CargoMetadata,
    package: CargoPackage,
    profile: BuildProfile,
    target: str,
    must_exist: bool = True,
) -> Path:
    """Locate the ``.wasm`` module built for *package*.

    Binary targets keep their name (``my-app.wasm``); ``cdylib`` targets
    are reported by cargo with dashes already replaced
    (``my_app.wasm``). The first candidate that exists wins.

    Raises:
        BuildError: If *must_exist* and no candidate file exists.
    """
    directory = output_dir(metadata, profile, target)
    candidates = [
        directory / f"{t.name}.wasm"
        for t in package.targets
        if "bin" in t.kind or "cdylib" in t.kind
    ]
    if not candidates:
        candidates = [directory / f"{package.name.replace('-', '_')}.wasm"]
    if not must_exist:
        return candidates[0]
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    raise BuildError(
        f"Build did not produce a wasm module (looked for: "
        f"{', '.join(c.name for c in candidates)} in {directory})",
        stage="build",
    )
