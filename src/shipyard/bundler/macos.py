"""macOS bundles: ``.app`` directories and ``.dmg`` disk images.

``App`` needs no external tool: an application bundle is a directory
layout (``Contents/MacOS``, ``Contents/Resources``, ``Contents/Info.plist``).
``Dmg`` wraps the ``.app`` produced by the ``App`` backend with
``hdiutil create -format UDZO``; it declares ``App`` as a requirement so the
bundle command always runs it first.
"""

from __future__ import annotations

from pathlib import Path

from shipyard.bundler.base import Backend, BundleContext
from shipyard.exceptions import PackagingError
from shipyard.models import BundleTarget

# Apple's LSApplicationCategoryType values, keyed by the lower-cased bundle category.
_APPLE_CATEGORIES = {
    "developertool": "public.app-category.developer-tools",
    "development": "public.app-category.developer-tools",
    "education": "public.app-category.education",
    "game": "public.app-category.games",
    "graphics": "public.app-category.graphics-design",
    "network": "public.app-category.social-networking",
    "productivity": "public.app-category.productivity",
    "office": "public.app-category.productivity",
    "video": "public.app-category.video",
    "music": "public.app-category.music",
    "utility": "public.app-category.utilities",
}


class AppBackend(Backend):
    """Assemble ``<Product>.app``."""

    target = BundleTarget.APP
    directory = "macos"

    def bundle(self, ctx: BundleContext) -> list[Path]:
        config = ctx.config
        app = self.fresh_dir(ctx, self.output_dir(ctx) / f"{config.file_stem}.app")
        contents = app / "Contents"
        executable = ctx.binary.name

        ctx.copy_file(ctx.binary, contents / "MacOS" / executable, mode=0o755)
        resources_dir = contents / "Resources"
        if not ctx.dry_run:
            resources_dir.mkdir(parents=True, exist_ok=True)

        icon = ctx.icon(".icns")
        icon_file = None
        if icon is not None:
            icon_file = icon.name
            ctx.copy_file(icon, resources_dir / icon_file)
        for resource in config.resources:
            src = Path(resource)
            ctx.copy_file(src, resources_dir / src.name)

        ctx.render(
            contents / "Info.plist",
            "Info.plist",
            product_name=config.product_name,
            executable=executable,
            icon_file=icon_file,
            identifier=config.identifier,
            version=config.version,
            category=_APPLE_CATEGORIES.get((config.category or "").lower()),
            minimum_system_version=config.macos.minimum_system_version,
            copyright=config.copyright,
        )
        return [app]


class DmgBackend(Backend):
    """Wrap the ``.app`` bundle into a compressed disk image."""

    target = BundleTarget.DMG
    directory = "dmg"
    tool = "hdiutil"
    requires = (BundleTarget.APP,)

    def bundle(self, ctx: BundleContext) -> list[Path]:
        hdiutil = self.tool_path(ctx)
        apps = ctx.artifacts.get(BundleTarget.APP)
        if not apps:
            raise PackagingError("No .app bundle was produced to put in the disk image", stage=self.stage)

        config = ctx.config
        dmg = self.output_dir(ctx) / f"{config.file_stem}_{config.version}_{ctx.machine}.dmg"
        self.run(
            ctx,
            [
                hdiutil, "create",
                "-volname", config.product_name,
                "-srcfolder", apps[0],
                "-ov",
                "-format", "UDZO",
                dmg,
            ],
        )
        return [dmg]
