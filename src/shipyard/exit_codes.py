"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~shipyard.exceptions.ShipyardError` subclass.
CI scripts can inspect the exit code to tell which stage of a pipeline
failed without parsing stderr.

Example::

    $ shipyard bundle --config bundle.json
    $ echo $?
    5   # EXIT_BUILD_FAILURE -- cargo build failed
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_CONFIG_ERROR = 3
"""A configuration file is missing, unreadable, or invalid."""

EXIT_TOOL_NOT_FOUND = 4
"""A required external executable is not installed or not on ``PATH``."""

EXIT_BUILD_FAILURE = 5
"""The cargo build (native or wasm) failed."""

EXIT_BINDGEN_FAILURE = 6
"""``wasm-bindgen`` failed to generate the JavaScript glue."""

EXIT_PACKAGING_FAILURE = 7
"""An installer packaging backend failed."""

EXIT_SERVER_ERROR = 8
"""The local static file server could not be started."""

EXIT_INTERRUPTED = 130
"""The user pressed Ctrl-C."""
