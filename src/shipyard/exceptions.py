"""Exception hierarchy for shipyard.

All exceptions inherit from :class:`ShipyardError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`shipyard.exit_codes`.
The top-level error handler in :func:`shipyard.app.main` catches
``ShipyardError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    ShipyardError (exit 1)
    +-- InvalidUsageError     (exit 2)
    +-- ConfigError           (exit 3)
    |   +-- BundleConfigError (exit 3)
    +-- ToolNotFoundError     (exit 4)
    +-- StageError            (exit 5)
        +-- BuildError        (exit 5)
        +-- BindgenError      (exit 6)
        +-- PackagingError    (exit 7)
        +-- ServerError       (exit 8)
"""

from __future__ import annotations

from shipyard.exit_codes import (
    EXIT_BINDGEN_FAILURE,
    EXIT_BUILD_FAILURE,
    EXIT_CONFIG_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_PACKAGING_FAILURE,
    EXIT_SERVER_ERROR,
    EXIT_TOOL_NOT_FOUND,
)


class ShipyardError(Exception):
    """Base exception for all shipyard errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`shipyard.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(ShipyardError):
    """Raised for invalid CLI arguments or flag combinations."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(ShipyardError):
    """Raised for tool configuration problems (invalid JSON, bad keys, missing package dir)."""

    exit_code = EXIT_CONFIG_ERROR


class BundleConfigError(ConfigError):
    """Raised when a bundle configuration file is missing, malformed, or incomplete."""


class ToolNotFoundError(ShipyardError):
    """Raised when an external executable cannot be found.

    Args:
        tool: Executable name or path that was looked up.
        config_key: Dotted global-config key that overrides the executable,
            included in the message so users know how to point at it.
    """

    exit_code = EXIT_TOOL_NOT_FOUND

    def __init__(self, tool: str, config_key: str | None = None):
        message = f"Required tool '{tool}' was not found on PATH"
        if config_key:
            message += f" (set it with: shipyard config set {config_key} /path/to/{tool})"
        super().__init__(message)
        self.tool = tool
        self.config_key = config_key


class StageError(ShipyardError):
    """Raised when one named stage of a pipeline fails.

    The ``stage`` attribute (``"build"``, ``"bindgen"``, ``"serve"``,
    ``"package:Msi"`` ...) is prepended to the message when the error is
    reported so users can tell which step broke.
    """

    exit_code = EXIT_BUILD_FAILURE
    default_stage = "build"

    def __init__(self, message: str, stage: str | None = None, exit_code: int | None = None):
        super().__init__(message, exit_code=exit_code)
        self.stage = stage or self.default_stage

    def __str__(self) -> str:
        return f"[{self.stage}] {super().__str__()}"


class BuildError(StageError):
    """Raised when ``cargo build`` or ``cargo metadata`` fails."""


class BindgenError(StageError):
    """Raised when ``wasm-bindgen`` fails."""

    exit_code = EXIT_BINDGEN_FAILURE
    default_stage = "bindgen"


class PackagingError(StageError):
    """Raised when an installer packaging backend fails."""

    exit_code = EXIT_PACKAGING_FAILURE
    default_stage = "package"


class ServerError(StageError):
    """Raised when the local static file server cannot be started."""

    exit_code = EXIT_SERVER_ERROR
    default_stage = "serve"
