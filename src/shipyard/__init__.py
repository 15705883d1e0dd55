"""shipyard -- Run Rust apps in the browser and package them as installers.

This package wraps the external tools needed to ship a Rust GUI
application. It never compiles or packages anything itself; every step is
an invocation of ``cargo``, ``wasm-bindgen``, a static file server, or an
installer tool, sequenced and configured from the command line.

Typical workflow::

    shipyard run-wasm --name counter          # build for wasm32 and serve it
    shipyard bundle --config bundle.json      # release build + installers

Modules:
    app: Typer application factory and CLI entry point.
    models: Pydantic models for bundle configs, tool config and cargo metadata.
    config: XDG-aware tool configuration and bundle config loading.
    cargo: Cargo invocations and artifact discovery.
    process: External tool lookup and execution.
    bundler: Installer packaging backends.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.3.0"
