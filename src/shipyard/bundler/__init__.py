"""Installer packaging backends.

One :class:`Backend` per installer format, selected by the ``targets`` of a
:class:`~shipyard.models.BundleConfig`:

* :class:`~shipyard.bundler.windows.MsiBackend` -- ``.msi`` via WiX.
* :class:`~shipyard.bundler.windows.NsisBackend` -- ``-setup.exe`` via NSIS.
* :class:`~shipyard.bundler.linux.DebBackend` -- ``.deb`` via ``dpkg-deb``.
* :class:`~shipyard.bundler.linux.AppImageBackend` -- ``.AppImage`` via ``appimagetool``.
* :class:`~shipyard.bundler.macos.AppBackend` -- ``.app`` directory.
* :class:`~shipyard.bundler.macos.DmgBackend` -- ``.dmg`` via ``hdiutil``.

:func:`run_backends` drives them for one invocation.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

from shipyard.bundler.base import Backend, BundleContext
from shipyard.bundler.registry import BackendRegistry
from shipyard.models import BundleTarget
from shipyard.output import stage


def run_backends(
    ctx: BundleContext,
    targets: Iterable[BundleTarget],
    registry: BackendRegistry | None = None,
) -> dict[BundleTarget, list[Path]]:
    """Run the backend of every target in dependency order.

    Artifacts are recorded in ``ctx.artifacts`` as each backend finishes,
    so a failure leaves earlier results visible to the caller.

    Returns:
        ``ctx.artifacts``.

    Raises:
        PackagingError: From the first backend that fails; later backends
            do not run.
    """
    registry = registry or BackendRegistry()
    for target in registry.plan(targets):
        backend = registry.get(target)
        stage(backend.stage, f"Creating {target.value} bundle")
        ctx.artifacts[target] = backend.bundle(ctx)
    return ctx.artifacts


__all__ = ["Backend", "BackendRegistry", "BundleContext", "run_backends"]
