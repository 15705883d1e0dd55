"""Canonical Pydantic models shared across all shipyard modules.

This is the single source of truth for data shapes in the project. Every other
module imports from here rather than defining its own models. The models fall
into three groups:

**Bundle configuration** -- the user-supplied JSON document that drives
``shipyard bundle``:
    :class:`BundleTarget`, :class:`DebConfig`, :class:`WindowsConfig`,
    :class:`MacOSConfig`, and :class:`BundleConfig`.

**Tool configuration** -- serialised as JSON in the user's config directory
or in a project-local ``shipyard.json``:
    :class:`ToolsConfig`, :class:`ServerConfig`, :class:`WasmConfig`,
    :class:`BuildConfig`, :class:`GlobalConfig`, and :class:`ProjectConfig`.

**Cargo metadata** -- the subset of ``cargo metadata`` output needed to
locate build artifacts:
    :class:`CargoTarget`, :class:`CargoPackage`, and :class:`CargoMetadata`.

All models use Pydantic v2. The bundle configuration uses camelCase JSON
keys (``productName``) while accepting snake_case as well.
"""

from __future__ import annotations

import enum
import re
import sys
import uuid
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# --- Bundle targets ---


class BundleTarget(str, enum.Enum):
    """Installer formats a :class:`BundleConfig` can request.

    Values are the canonical tags written in bundle configs. Parsing is
    case-insensitive via :meth:`parse`.
    """

    MSI = "Msi"
    NSIS = "Nsis"
    DEB = "Deb"
    APPIMAGE = "AppImage"
    APP = "App"
    DMG = "Dmg"

    @classmethod
    def parse(cls, value: str) -> "BundleTarget":
        """Return the target matching *value*, ignoring case.

        Raises:
            ValueError: If *value* names no known installer format.
        """
        needle = value.strip().lower()
        for member in cls:
            if member.value.lower() == needle:
                return member
        known = ", ".join(m.value for m in cls)
        raise ValueError(f"unknown bundle target '{value}' (expected one of: {known})")

    @classmethod
    def for_platform(cls, platform: Optional[str] = None) -> set["BundleTarget"]:
        """Return the targets that can be built on *platform* (default: the host)."""
        platform = platform or sys.platform
        if platform.startswith("win"):
            return {cls.MSI, cls.NSIS}
        if platform == "darwin":
            return {cls.APP, cls.DMG}
        return {cls.DEB, cls.APPIMAGE}


_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9-]+(\.[A-Za-z0-9-]+)+$")
_UNSAFE_FILENAME_RE = re.compile(r"[\\/:*?\"<>|\x00-\x1f]+")


# --- Bundle config ---


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class DebConfig(_CamelModel):
    """Debian-specific settings (``"deb"`` key)."""

    depends: list[str] = Field(default_factory=list)


class WindowsConfig(_CamelModel):
    """Windows installer settings (``"windows"`` key)."""

    upgrade_code: Optional[str] = Field(
        default=None,
        description="MSI UpgradeCode. Derived from the identifier when omitted.",
    )

    @field_validator("upgrade_code")
    @classmethod
    def _check_uuid(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            uuid.UUID(value)
        return value


class MacOSConfig(_CamelModel):
    """macOS bundle settings (``"macOS"`` key)."""

    minimum_system_version: str = "10.13"


class BundleConfig(_CamelModel):
    """The JSON document controlling bundle metadata and output formats.

    ``productName``, ``version``, ``identifier`` and ``targets`` are
    required; everything else is optional. Unknown keys are ignored.

    Example::

        {
          "productName": "Counter",
          "version": "0.1.0",
          "identifier": "com.example.counter",
          "targets": ["Msi", "Nsis"]
        }

    The ``targets`` key also accepts the string ``"all"``, which expands to
    every format buildable on the current platform.
    """

    product_name: str = Field(min_length=1)
    version: str = Field(min_length=1)
    identifier: str
    targets: set[BundleTarget]
    publisher: Optional[str] = None
    homepage: Optional[str] = None
    icon: list[str] = Field(default_factory=list)
    copyright: Optional[str] = None
    category: Optional[str] = None
    short_description: Optional[str] = None
    long_description: Optional[str] = None
    main_binary_name: Optional[str] = None
    resources: list[str] = Field(default_factory=list)
    license_file: Optional[str] = None
    deb: DebConfig = Field(default_factory=DebConfig)
    windows: WindowsConfig = Field(default_factory=WindowsConfig)
    macos: MacOSConfig = Field(default_factory=MacOSConfig, alias="macOS")

    @field_validator("identifier")
    @classmethod
    def _check_identifier(cls, value: str) -> str:
        if not _IDENTIFIER_RE.match(value):
            raise ValueError(
                f"'{value}' is not a reverse-domain identifier (e.g. com.example.app)"
            )
        return value

    @field_validator("version")
    @classmethod
    def _check_version(cls, value: str) -> str:
        if _UNSAFE_FILENAME_RE.search(value) or ".." in value:
            raise ValueError(f"'{value}' cannot be used in a file name")
        return value

    @field_validator("homepage")
    @classmethod
    def _check_homepage(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"'{value}' is not an absolute http(s) URL")
        return value

    @field_validator("targets", mode="before")
    @classmethod
    def _parse_targets(cls, value: Any) -> Any:  # noqa: ANN401
        if isinstance(value, str):
            if value.strip().lower() == "all":
                return BundleTarget.for_platform()
            return {BundleTarget.parse(value)}
        if isinstance(value, (list, tuple, set, frozenset)):
            if not value:
                raise ValueError("at least one bundle target is required")
            parsed = set()
            for item in value:
                if isinstance(item, BundleTarget):
                    parsed.add(item)
                elif isinstance(item, str):
                    parsed.add(BundleTarget.parse(item))
                else:
                    raise ValueError(f"bundle target must be a string, got {item!r}")
            return parsed
        return value

    @property
    def slug(self) -> str:
        """Lower-case, dash-separated product name used for package file names.

        Names without ASCII letters or digits fall back to the last segment
        of ``identifier``.
        """
        slug = re.sub(r"[^a-z0-9]+", "-", self.product_name.lower()).strip("-")
        if not slug:
            last = self.identifier.rsplit(".", 1)[-1]
            slug = re.sub(r"[^a-z0-9]+", "-", last.lower()).strip("-")
        return slug or "app"

    @property
    def file_stem(self) -> str:
        """Product name as a single file-name component.

        Path separators and characters Windows forbids become ``-``;
        leading and trailing dots, dashes and spaces are dropped, so the
        result can never climb out of the directory it is joined to.
        """
        stem = _UNSAFE_FILENAME_RE.sub("-", self.product_name).strip(" .-")
        return stem or self.slug

    @property
    def description(self) -> str:
        """Short description, falling back to the product name."""
        return self.short_description or self.product_name

    @property
    def upgrade_code(self) -> str:
        """MSI UpgradeCode: the configured one, or a UUIDv5 of the identifier."""
        if self.windows.upgrade_code:
            return self.windows.upgrade_code.upper()
        return str(uuid.uuid5(uuid.NAMESPACE_DNS, self.identifier)).upper()


# --- Tool config ---


class ToolsConfig(BaseModel):
    """Executable names (or absolute paths) for every external tool."""

    cargo: str = "cargo"
    wasm_bindgen: str = "wasm-bindgen"
    wix: str = "wix"
    makensis: str = "makensis"
    dpkg_deb: str = "dpkg-deb"
    appimagetool: str = "appimagetool"
    hdiutil: str = "hdiutil"


class ServerConfig(BaseModel):
    """Bind address for the static server started by ``run-wasm``."""

    host: str = "127.0.0.1"
    port: int = Field(default=8000, ge=1, le=65535)


class WasmConfig(BaseModel):
    """Defaults for the ``run-wasm`` pipeline."""

    package: Optional[str] = Field(
        default=None, description="Cargo package built when --name is omitted"
    )
    target: str = "wasm32-unknown-unknown"
    out_dir: str = Field(
        default="target/wasm",
        description="Output root, relative to the package directory",
    )
    bindgen_target: str = "web"


class BuildConfig(BaseModel):
    """Limits applied to every finite external stage."""

    timeout_seconds: int = Field(default=1800, ge=1)


class GlobalConfig(BaseModel):
    """Top-level tool configuration stored in the user's config directory.

    Persisted as ``config.json`` inside the shipyard config directory (see
    :func:`~shipyard.config.get_config_dir`). Every section has defaults, so
    an empty file or a missing file both yield a usable configuration.
    """

    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    wasm: WasmConfig = Field(default_factory=WasmConfig)
    build: BuildConfig = Field(default_factory=BuildConfig)


class ProjectConfig(BaseModel):
    """Project-local ``./shipyard.json`` pinning per-repository defaults."""

    model_config = ConfigDict(extra="allow")

    package_dir: Optional[str] = None
    wasm_package: Optional[str] = None


# --- Cargo metadata ---


class CargoTarget(BaseModel):
    """One build target (lib, bin, example ...) of a cargo package."""

    model_config = ConfigDict(extra="ignore")

    name: str
    kind: list[str] = Field(default_factory=list)


class CargoPackage(BaseModel):
    """A workspace member as reported by ``cargo metadata --no-deps``."""

    model_config = ConfigDict(extra="ignore")

    name: str
    version: str
    manifest_path: str
    targets: list[CargoTarget] = Field(default_factory=list)

    @property
    def directory(self) -> Path:
        return Path(self.manifest_path).parent

    def binaries(self) -> list[str]:
        """Names of all ``bin`` targets, in manifest order."""
        return [t.name for t in self.targets if "bin" in t.kind]


class CargoMetadata(BaseModel):
    """The subset of ``cargo metadata --format-version 1`` shipyard relies on."""

    model_config = ConfigDict(extra="ignore")

    packages: list[CargoPackage] = Field(default_factory=list)
    target_directory: str
    workspace_root: str

    def find_package(self, name: str) -> Optional[CargoPackage]:
        for package in self.packages:
            if package.name == name:
                return package
        return None

    def package_for_dir(self, directory: Path) -> Optional[CargoPackage]:
        """Return the package whose ``Cargo.toml`` sits directly in *directory*."""
        directory = directory.resolve()
        for package in self.packages:
            if package.directory.resolve() == directory:
                return package
        return None
