"""Linux packages: Debian archives and AppImages.

* ``Deb`` stages a filesystem tree (``usr/bin``, a desktop entry, an icon,
  ``DEBIAN/control``) and runs ``dpkg-deb --build --root-owner-group``.
* ``AppImage`` stages an ``AppDir`` (``AppRun`` launcher, desktop entry and
  icon at the root, binary under ``usr/bin``) and runs ``appimagetool``.

Both use the lower-case, dash-separated product name
(:attr:`~shipyard.models.BundleConfig.slug`) as the package name.
"""

from __future__ import annotations

import os
from pathlib import Path

from shipyard.bundler.base import Backend, BundleContext, deb_arch
from shipyard.exceptions import PackagingError
from shipyard.models import BundleConfig, BundleTarget

_EXECUTABLE = 0o755

# Freedesktop main categories, keyed by the lower-cased bundle category.
_DESKTOP_CATEGORIES = {
    "developertool": "Development",
    "development": "Development",
    "education": "Education",
    "game": "Game",
    "graphics": "Graphics",
    "network": "Network",
    "productivity": "Office",
    "office": "Office",
    "video": "AudioVideo",
    "music": "AudioVideo",
    "utility": "Utility",
}


def desktop_category(config: BundleConfig) -> str:
    return _DESKTOP_CATEGORIES.get((config.category or "").lower(), "Utility")


def _installed_size_kib(root: Path) -> int:
    total = 0
    for dirpath, _dirnames, filenames in os.walk(root):
        for name in filenames:
            path = Path(dirpath) / name
            if not path.is_symlink():
                total += path.stat().st_size
    return total // 1024 + 1


def _write_desktop_entry(path: Path, ctx: BundleContext, exec_name: str) -> Path:
    config = ctx.config
    return ctx.render(
        path,
        "app.desktop",
        name=config.product_name,
        comment=config.description,
        exec=exec_name,
        icon=config.slug,
        categories=desktop_category(config),
    )


class DebBackend(Backend):
    """Build a Debian ``.deb`` archive."""

    target = BundleTarget.DEB
    directory = "deb"
    tool = "dpkg_deb"

    def bundle(self, ctx: BundleContext) -> list[Path]:
        dpkg_deb = self.tool_path(ctx)
        config = ctx.config
        arch = deb_arch(ctx.machine)
        name = f"{config.slug}_{config.version}_{arch}"

        root = self.fresh_dir(ctx, self.output_dir(ctx) / name)
        binary_name = ctx.binary.name
        ctx.copy_file(ctx.binary, root / "usr" / "bin" / binary_name, mode=_EXECUTABLE)
        _write_desktop_entry(
            root / "usr" / "share" / "applications" / f"{config.slug}.desktop",
            ctx,
            binary_name,
        )
        icon = ctx.icon(".png")
        if icon is not None:
            ctx.copy_file(icon, root / "usr" / "share" / "pixmaps" / f"{config.slug}.png")
        for resource in config.resources:
            src = Path(resource)
            ctx.copy_file(src, root / "usr" / "lib" / config.slug / src.name)

        long_lines = (config.long_description or "").splitlines()
        ctx.render(
            root / "DEBIAN" / "control",
            "control",
            package=config.slug,
            version=config.version,
            arch=arch,
            installed_size=_installed_size_kib(root),
            maintainer=config.publisher or config.product_name,
            section="utils",
            homepage=config.homepage,
            depends=config.deb.depends,
            description=config.description,
            long_description=[line.strip() for line in long_lines],
        )

        deb = self.output_dir(ctx) / f"{name}.deb"
        self.run(ctx, [dpkg_deb, "--build", "--root-owner-group", root, deb])
        return [deb]


class AppImageBackend(Backend):
    """Build a portable ``.AppImage``."""

    target = BundleTarget.APPIMAGE
    directory = "appimage"
    tool = "appimagetool"

    def bundle(self, ctx: BundleContext) -> list[Path]:
        appimagetool = self.tool_path(ctx)
        config = ctx.config
        icon = ctx.icon(".png")
        if icon is None:
            raise PackagingError(
                "AppImage needs a .png entry in the bundle config 'icon' list",
                stage=self.stage,
            )

        out_dir = self.output_dir(ctx)
        appdir = self.fresh_dir(ctx, out_dir / f"{config.slug}.AppDir")
        binary_name = ctx.binary.name
        ctx.copy_file(ctx.binary, appdir / "usr" / "bin" / binary_name, mode=_EXECUTABLE)
        ctx.copy_file(icon, appdir / f"{config.slug}.png")
        _write_desktop_entry(appdir / f"{config.slug}.desktop", ctx, binary_name)
        for resource in config.resources:
            src = Path(resource)
            ctx.copy_file(src, appdir / "usr" / "bin" / src.name)
        ctx.render(appdir / "AppRun", "AppRun", mode=_EXECUTABLE, binary=binary_name)

        image = out_dir / f"{config.slug}_{config.version}_{ctx.machine}.AppImage"
        self.run(ctx, [appimagetool, appdir, image])
        return [image]
