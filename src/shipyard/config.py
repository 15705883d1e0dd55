"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all configuration for shipyard:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.shipyard/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Global config** -- A single :class:`~shipyard.models.GlobalConfig`
  JSON file storing tool paths, server address and wasm defaults.
* **Project config** -- An optional ``./shipyard.json`` deserialised into a
  :class:`~shipyard.models.ProjectConfig`.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, project-local config, and global config into the
  final effective configuration.
* **Bundle configs** -- :func:`load_bundle_config` parses the JSON file
  handed to ``shipyard bundle --config``.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from shipyard.exceptions import BundleConfigError, ConfigError
from shipyard.models import BundleConfig, GlobalConfig, ProjectConfig, ServerConfig

_APP_NAME = "shipyard"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "shipyard.json"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/shipyard/`` (default ``~/.config/shipyard/``).
    On macOS/Windows: ``~/.shipyard/``.

    Returns:
        Absolute path to the configuration directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_CONFIG_HOME", (".config",))
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/shipyard/`` (default ``~/.local/share/shipyard/``).
    On macOS/Windows: ``~/.shipyard/data/``.

    Returns:
        Absolute path to the data directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_DATA_HOME", (".local", "share"))
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is guaranteed to be an atomic rename on POSIX systems.
    On success the temp file is renamed over *path*; on any failure the temp
    file is cleaned up.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close in finally
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up the temp file on any error (including KeyboardInterrupt).
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Global config ---


def global_config_path() -> Path:
    """Path to the global config file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration from the config directory.

    Returns:
        The deserialised :class:`~shipyard.models.GlobalConfig`. If the
        file does not exist, a default instance is returned.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text)
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically to disk."""
    data = config.model_dump(mode="json")
    _atomic_write(global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Project-local config ---


def load_project_config(directory: Optional[Path] = None) -> Optional[ProjectConfig]:
    """Load project-local configuration from ``./shipyard.json``.

    Project-local config sits between global config and environment variables
    in the precedence chain. It typically pins the package directory or the
    default wasm package of a repository.

    Args:
        directory: Directory to look in (default: the current directory).

    Returns:
        The parsed config, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but contains invalid JSON.
    """
    path = (directory or Path.cwd()) / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    try:
        text = path.read_text(encoding="utf-8")
        return ProjectConfig.model_validate(json.loads(text))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid project config at {path}: {exc}") from exc


# --- Precedence resolution ---


def _server_with(server: ServerConfig, source: str, **changes: object) -> ServerConfig:
    """Return *server* with *changes* applied and validated.

    Raises:
        ConfigError: If a changed value is out of range, naming *source*.
    """
    try:
        return ServerConfig.model_validate({**server.model_dump(), **changes})
    except ValidationError as exc:
        raise ConfigError(f"Invalid {source}: {exc.errors()[0]['msg']}") from exc


@dataclass
class ResolvedConfig:
    """Effective configuration for one invocation.

    Attributes:
        settings: Global settings with env and CLI overrides applied.
        package_dir: Absolute directory holding the app's ``Cargo.toml``.
        wasm_package: Package to build for ``run-wasm``, if any was pinned.
    """

    settings: GlobalConfig
    package_dir: Path
    wasm_package: Optional[str] = None


def resolve_config(
    cli_package_dir: Optional[str] = None,
    cli_port: Optional[int] = None,
    cli_host: Optional[str] = None,
) -> ResolvedConfig:
    """Resolve config with full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_package_dir``, ``cli_port``, ``cli_host``)
        2. Environment variables (``SHIPYARD_PACKAGE_DIR``, ``SHIPYARD_SERVER_PORT``)
        3. Project config (``./shipyard.json``)
        4. User config (``~/.config/shipyard/config.json``)
        5. Defaults

    Raises:
        ConfigError: If a config file is invalid or a port override is not
            an integer between 1 and 65535.
    """
    # 5 + 4. Load base global config (fills in defaults automatically)
    settings = load_global_config()

    # 3. Project-local config
    project = load_project_config()
    cwd = Path.cwd()
    package_dir: Path = cwd
    wasm_package = settings.wasm.package
    if project is not None:
        if project.package_dir:
            package_dir = cwd / project.package_dir
        if project.wasm_package:
            wasm_package = project.wasm_package

    # 2. Environment variables
    env_dir = os.environ.get("SHIPYARD_PACKAGE_DIR")
    if env_dir:
        package_dir = Path(env_dir)
    env_port = os.environ.get("SHIPYARD_SERVER_PORT")
    if env_port:
        try:
            port = int(env_port)
        except ValueError as exc:
            raise ConfigError(
                f"SHIPYARD_SERVER_PORT must be an integer, got '{env_port}'"
            ) from exc
        settings.server = _server_with(settings.server, "SHIPYARD_SERVER_PORT", port=port)

    # 1. CLI flags (highest precedence)
    if cli_package_dir is not None:
        package_dir = Path(cli_package_dir)
    if cli_port is not None:
        settings.server = _server_with(settings.server, "--port", port=cli_port)
    if cli_host is not None:
        settings.server = _server_with(settings.server, "--host", host=cli_host)

    return ResolvedConfig(
        settings=settings,
        package_dir=package_dir.expanduser().resolve(),
        wasm_package=wasm_package,
    )


# --- Bundle config ---


def _resolve_against(base: Path, value: str) -> str:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = base / path
    return str(path)


def load_bundle_config(path: str | Path) -> BundleConfig:
    """Load and validate a bundle configuration file.

    Relative ``icon``, ``resources`` and ``licenseFile`` paths are resolved
    against the directory containing the config file, so a config keeps
    working no matter where ``shipyard`` is invoked from.

    Args:
        path: Path to the JSON document.

    Returns:
        The fully validated :class:`~shipyard.models.BundleConfig`.

    Raises:
        BundleConfigError: If the file is missing or unreadable, is not valid
            JSON, is not a JSON object, or fails validation (including
            missing required fields).
    """
    path = Path(path).expanduser()
    if not path.is_file():
        raise BundleConfigError(f"Bundle config not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise BundleConfigError(f"Cannot read bundle config {path}: {exc}") from exc

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise BundleConfigError(
            f"Malformed JSON in {path} (line {exc.lineno}, column {exc.colno}): {exc.msg}"
        ) from exc

    if not isinstance(data, dict):
        raise BundleConfigError(
            f"Bundle config {path} must be a JSON object, got {type(data).__name__}"
        )

    try:
        config = BundleConfig.model_validate(data)
    except ValidationError as exc:
        problems = []
        for err in exc.errors():
            loc = ".".join(str(part) for part in err["loc"]) or "<root>"
            if err["type"] == "missing":
                problems.append(f"missing required field '{loc}'")
            else:
                problems.append(f"{loc}: {err['msg']}")
        raise BundleConfigError(
            f"Invalid bundle config {path}: " + "; ".join(problems)
        ) from exc

    base = path.resolve().parent
    updates: dict = {
        "icon": [_resolve_against(base, p) for p in config.icon],
        "resources": [_resolve_against(base, p) for p in config.resources],
    }
    if config.license_file:
        updates["license_file"] = _resolve_against(base, config.license_file)
    return config.model_copy(update=updates)
