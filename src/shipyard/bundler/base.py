"""Abstract base class and shared context for packaging backends.

Every installer format is produced by one :class:`Backend` subclass. A
backend stages files under the bundle output directory, renders whatever
manifest or script its packaging tool needs, and invokes that tool through
the invocation's :class:`~shipyard.process.ToolRunner`.

Backends are stateless; everything they need travels in a
:class:`BundleContext`, which also collects the artifacts each backend
produced so later backends (``Dmg`` after ``App``) can build on them.

Example:
    Minimal backend implementation::

        class ZipBackend(Backend):
            target = BundleTarget.APP
            directory = "zip"

            def bundle(self, ctx):
                out = self.output_dir(ctx) / f"{ctx.config.slug}.zip"
                self.run(ctx, ["zip", "-j", out, ctx.binary])
                return [out]
"""

from __future__ import annotations

import logging
import platform
import re
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar, Optional, Sequence

from shipyard.cargo import BuildProfile
from shipyard.exceptions import PackagingError
from shipyard.models import BundleConfig, BundleTarget, ToolsConfig
from shipyard.output import command
from shipyard.process import ToolRunner
from shipyard.templating import render_to

logger = logging.getLogger(__name__)


_DEB_ARCH = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "i386",
    "i686": "i386",
    "armv7l": "armhf",
}

_WINDOWS_ARCH = {
    "x86_64": "x64",
    "amd64": "x64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "x86",
    "i686": "x86",
    "x86": "x86",
}


def host_machine() -> str:
    """Normalised machine name of the host (``x86_64``, ``aarch64`` ...)."""
    machine = platform.machine().lower()
    if machine in ("amd64", "x64"):
        return "x86_64"
    if machine == "arm64":
        return "aarch64"
    return machine or "x86_64"


def deb_arch(machine: str) -> str:
    return _DEB_ARCH.get(machine, machine)


def windows_arch(machine: str) -> str:
    return _WINDOWS_ARCH.get(machine, "x64")


def numeric_version(version: str, parts: int = 3) -> str:
    """Strip pre-release/build suffixes and pad to *parts* numeric fields.

    Windows installers only accept dotted integers: ``1.2.0-beta.1`` becomes
    ``1.2.0`` (or ``1.2.0.0`` with ``parts=4``).
    """
    numbers = re.findall(r"\d+", re.split(r"[-+]", version, maxsplit=1)[0])
    numbers = (numbers + ["0"] * parts)[:parts]
    return ".".join(str(int(n)) for n in numbers)


@dataclass
class BundleContext:
    """Everything a backend needs to produce its installer.

    Attributes:
        config: The validated bundle configuration.
        binary: Path of the built executable.
        profile: Cargo profile the binary was built with.
        out_dir: Bundle output root; each backend writes to a sub-directory.
        tools: Executable names/paths from the global config.
        runner: Tool runner for this invocation (honours ``--dry-run``).
        machine: Normalised host machine name used for file names.
        artifacts: Files produced so far, keyed by target.
    """

    config: BundleConfig
    binary: Path
    profile: BuildProfile
    out_dir: Path
    tools: ToolsConfig
    runner: ToolRunner
    machine: str = field(default_factory=host_machine)
    artifacts: dict[BundleTarget, list[Path]] = field(default_factory=dict)

    @property
    def dry_run(self) -> bool:
        return self.runner.dry_run

    def icon(self, *suffixes: str) -> Optional[Path]:
        """First configured icon with one of *suffixes* (case-insensitive)."""
        wanted = tuple(s.lower() for s in suffixes)
        for icon in self.config.icon:
            path = Path(icon)
            if path.suffix.lower() in wanted:
                return path
        return None

    def copy_file(self, src: Path, dest: Path, mode: Optional[int] = None) -> Path:
        """Copy *src* to *dest*, creating parents.

        During a dry run the copy is echoed instead, so a binary that was
        never built is not an error.

        Raises:
            PackagingError: If *src* does not exist outside a dry run.
        """
        if self.dry_run:
            command(["cp", str(src), str(dest)])
            return dest
        if not src.exists():
            raise PackagingError(f"File to bundle does not exist: {src}")
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src, dest)
        if mode is not None:
            dest.chmod(mode)
        return dest

    def render(self, path: Path, template: str, mode: Optional[int] = None, **context: Any) -> Path:
        """Render *template* into *path*; nothing is written during a dry run."""
        if self.dry_run:
            logger.debug("Dry run: not writing %s", path)
            return path
        render_to(path, template, **context)
        if mode is not None:
            path.chmod(mode)
        return path


class Backend(ABC):
    """Base class for all packaging backends.

    Subclasses set :attr:`target` and :attr:`directory` and implement
    :meth:`bundle`. Backends that shell out set :attr:`tool` to the
    :class:`~shipyard.models.ToolsConfig` field naming their executable.

    Class attributes:
        target: The installer format this backend produces.
        directory: Sub-directory of the bundle root it writes into.
        tool: ``ToolsConfig`` field of the packaging executable, or ``None``.
        requires: Targets that must be bundled first.
    """

    target: ClassVar[BundleTarget]
    directory: ClassVar[str]
    tool: ClassVar[Optional[str]] = None
    requires: ClassVar[tuple[BundleTarget, ...]] = ()

    @property
    def stage(self) -> str:
        return f"package:{self.target.value}"

    @abstractmethod
    def bundle(self, ctx: BundleContext) -> list[Path]:
        """Produce the installer and return the paths of the created artifacts.

        Raises:
            PackagingError: If staging or the packaging tool fails.
            ToolNotFoundError: If :attr:`tool` is not installed.
        """
        ...

    def output_dir(self, ctx: BundleContext) -> Path:
        path = ctx.out_dir / self.directory
        if not ctx.dry_run:
            path.mkdir(parents=True, exist_ok=True)
        return path

    def tool_path(self, ctx: BundleContext) -> str:
        if self.tool is None:
            raise PackagingError(f"{type(self).__name__} does not use an external tool", stage=self.stage)
        return ctx.runner.resolve(getattr(ctx.tools, self.tool), f"tools.{self.tool}")

    def run(self, ctx: BundleContext, argv: Sequence[object], cwd: Optional[Path] = None) -> None:
        ctx.runner.run(
            [str(a) for a in argv],
            stage=self.stage,
            error_cls=PackagingError,
            cwd=cwd,
        )

    def fresh_dir(self, ctx: BundleContext, path: Path) -> Path:
        """Remove *path* if present and recreate it empty.

        Only directories below ``ctx.out_dir`` are touched. A dry run
        leaves the filesystem alone.

        Raises:
            PackagingError: If *path* lies outside the bundle output root.
        """
        root = ctx.out_dir.resolve()
        resolved = path.resolve()
        if resolved == root or not resolved.is_relative_to(root):
            raise PackagingError(
                f"Refusing to stage {path} outside the bundle directory {root}",
                stage=self.stage,
            )
        if ctx.dry_run:
            logger.debug("Dry run: not recreating %s", path)
            return path
        if path.exists():
            shutil.rmtree(path)
        path.mkdir(parents=True)
        return path
