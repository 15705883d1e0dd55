"""Windows installers: MSI through WiX and setup executables through NSIS.

Both backends render a source file from a template into
``<bundle>/<format>/`` and hand it to the respective compiler:

* ``Msi`` -- ``wix build -arch <arch> -o <msi> main.wxs`` (WiX Toolset v4+).
* ``Nsis`` -- ``makensis -V3 installer.nsi``; the script names its own
  ``OutFile``.

Windows only accepts dotted-integer versions, so pre-release suffixes
are stripped (see :func:`~shipyard.bundler.base.numeric_version`).
"""

from __future__ import annotations

from pathlib import Path

from shipyard.bundler.base import Backend, BundleContext, numeric_version, windows_arch
from shipyard.models import BundleTarget


def _common_context(ctx: BundleContext) -> dict:
    config = ctx.config
    resources = [Path(r) for r in config.resources]
    icon = ctx.icon(".ico")
    return {
        "product_name": config.product_name,
        "manufacturer": config.publisher or config.product_name,
        "description": config.description,
        "identifier": config.identifier,
        "homepage": config.homepage,
        "copyright": config.copyright,
        "binary": str(ctx.binary),
        "binary_name": ctx.binary.name,
        "resources": [str(r) for r in resources],
        "resource_names": [r.name for r in resources],
        "icon": str(icon) if icon else None,
        "license_file": config.license_file,
    }


class MsiBackend(Backend):
    """Build a Windows Installer package with the WiX Toolset."""

    target = BundleTarget.MSI
    directory = "msi"
    tool = "wix"

    def bundle(self, ctx: BundleContext) -> list[Path]:
        wix = self.tool_path(ctx)
        out_dir = self.output_dir(ctx)
        arch = windows_arch(ctx.machine)
        version = numeric_version(ctx.config.version)

        source = ctx.render(
            out_dir / "main.wxs",
            "main.wxs",
            version=version,
            upgrade_code=ctx.config.upgrade_code,
            **_common_context(ctx),
        )
        msi = out_dir / f"{ctx.config.file_stem}_{version}_{arch}.msi"
        self.run(ctx, [wix, "build", "-arch", arch, "-o", msi, source], cwd=out_dir)
        return [msi]


class NsisBackend(Backend):
    """Build a ``-setup.exe`` installer with NSIS."""

    target = BundleTarget.NSIS
    directory = "nsis"
    tool = "makensis"

    def bundle(self, ctx: BundleContext) -> list[Path]:
        makensis = self.tool_path(ctx)
        out_dir = self.output_dir(ctx)
        arch = windows_arch(ctx.machine)
        config = ctx.config

        setup = out_dir / f"{config.file_stem}_{config.version}_{arch}-setup.exe"
        script = ctx.render(
            out_dir / "installer.nsi",
            "installer.nsi",
            out_file=str(setup),
            version=config.version,
            numeric_version=numeric_version(config.version, parts=4),
            **_common_context(ctx),
        )
        self.run(ctx, [makensis, "-V3", script], cwd=out_dir)
        return [setup]
