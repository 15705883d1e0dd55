"""Shared test fixtures for shipyard.

Provides reusable fixtures for isolated config environments, a fake cargo
package on disk, canned ``cargo metadata`` output, patched external tools,
output state management and running CLI commands.
"""

from __future__ import annotations

import json
import shutil
import subprocess
from pathlib import Path
from typing import Any, Callable, Optional
from unittest.mock import patch

import pytest

from shipyard.output import reset_output


FIXTURES_DIR = Path(__file__).parent / "fixtures"


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time. When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points XDG_CONFIG_HOME and XDG_DATA_HOME below tmp_path, clears the
    SHIPYARD_* environment variables, forces plain uncoloured diagnostics
    and changes the working directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("shipyard.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("NO_COLOR", "1")

    for var in ["SHIPYARD_PACKAGE_DIR", "SHIPYARD_SERVER_PORT"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Cargo fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def app_package(isolated_config: Path) -> Path:
    """A cargo package directory named ``counter`` with a Cargo.toml."""
    package = isolated_config / "counter"
    (package / "src").mkdir(parents=True)
    (package / "Cargo.toml").write_text(
        '[package]\nname = "counter"\nversion = "0.1.0"\nedition = "2021"\n'
    )
    (package / "src" / "main.rs").write_text("fn main() {}\n")
    return package


def metadata_json(package_dir: Path, name: str = "counter") -> str:
    """``cargo metadata`` output for a single bin package living in *package_dir*."""
    package_dir = package_dir.resolve()
    return json.dumps(
        {
            "packages": [
                {
                    "name": name,
                    "version": "0.1.0",
                    "manifest_path": str(package_dir / "Cargo.toml"),
                    "targets": [{"kind": ["bin"], "name": name}],
                }
            ],
            "target_directory": str(package_dir / "target"),
            "workspace_root": str(package_dir),
        }
    )


@pytest.fixture
def make_metadata() -> Callable[..., str]:
    """Factory for single-package ``cargo metadata`` output."""
    return metadata_json


@pytest.fixture
def cargo_metadata_raw() -> str:
    """Canned two-package workspace metadata from ``fixtures/``."""
    return (FIXTURES_DIR / "cargo_metadata.json").read_text()


class FakeTools:
    """Stands in for ``subprocess.run``, recording every command line.

    ``cargo metadata`` answers with :attr:`metadata`. Commands listed in
    :attr:`failures` as ``"<tool> <subcommand>"`` (e.g. ``"cargo build"``)
    exit with the mapped status.
    """

    def __init__(self, metadata: str) -> None:
        self.metadata = metadata
        self.failures: dict[str, int] = {}
        self.calls: list[list[str]] = []
        self.cwds: list[Optional[str]] = []

    def __call__(self, argv: list[str], **kwargs: Any) -> subprocess.CompletedProcess:
        self.calls.append(list(argv))
        self.cwds.append(kwargs.get("cwd"))
        key = " ".join([Path(argv[0]).name, *argv[1:2]])
        if key in self.failures:
            return subprocess.CompletedProcess(
                argv, self.failures[key], "", "error: something went wrong\n"
            )
        if len(argv) > 1 and argv[1] == "metadata":
            return subprocess.CompletedProcess(argv, 0, self.metadata, "")
        return subprocess.CompletedProcess(argv, 0, "", "")

    def commands(self, tool: str, subcommand: Optional[str] = None) -> list[list[str]]:
        """Recorded command lines of *tool*, optionally narrowed to *subcommand*."""
        return [
            argv for argv in self.calls
            if Path(argv[0]).name == tool and (subcommand is None or argv[1:2] == [subcommand])
        ]


@pytest.fixture
def fake_tools(app_package: Path):
    """Patch tool lookup and ``subprocess.run`` for the pipeline commands."""
    tools = FakeTools(metadata_json(app_package))
    with patch("shipyard.process.shutil.which", side_effect=lambda name: f"/usr/bin/{name}"), \
         patch("shipyard.process.subprocess.run", side_effect=tools):
        yield tools


# ---------------------------------------------------------------------------
# Bundle config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def bundle_config_path(tmp_path: Path) -> Path:
    """The example bundle config copied next to the test's files."""
    path = tmp_path / "bundle.json"
    shutil.copy(FIXTURES_DIR / "bundle.json", path)
    return path


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
