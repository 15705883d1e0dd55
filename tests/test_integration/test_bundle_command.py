"""End-to-end tests for ``shipyard bundle`` with cargo and the packaging tools faked."""

from __future__ import annotations

import json
import shutil
from pathlib import Path
from unittest.mock import patch

import pytest

from shipyard.app import app
from shipyard.exit_codes import (
    EXIT_BUILD_FAILURE,
    EXIT_CONFIG_ERROR,
    EXIT_INVALID_USAGE,
    EXIT_TOOL_NOT_FOUND,
)

FIXTURES_DIR = Path(__file__).parent.parent / "fixtures"


@pytest.fixture
def config_file(app_package: Path) -> Path:
    path = app_package / "bundle.json"
    shutil.copy(FIXTURES_DIR / "bundle.json", path)
    return path


def _build_binary(app_package: Path, profile: str) -> Path:
    binary = app_package.resolve() / "target" / profile / "counter"
    binary.parent.mkdir(parents=True, exist_ok=True)
    binary.write_bytes(b"\x7fELF")
    return binary


# ---------------------------------------------------------------------------
# Config handling happens before any build step
# ---------------------------------------------------------------------------


class TestRequiredConfig:

    def test_missing_config_flag_is_usage_error(self, cli_runner, fake_tools, app_package: Path) -> None:
        result = cli_runner.invoke(app, ["bundle", "-C", str(app_package)])
        assert result.exit_code == EXIT_INVALID_USAGE
        assert "--config" in result.output
        assert fake_tools.calls == []

    def test_missing_config_file(self, cli_runner, fake_tools, app_package: Path) -> None:
        result = cli_runner.invoke(
            app, ["bundle", "--config", str(app_package / "nope.json"), "-C", str(app_package)]
        )
        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "Bundle config not found" in result.output
        assert fake_tools.calls == []

    def test_malformed_config(self, cli_runner, fake_tools, app_package: Path) -> None:
        bad = app_package / "bundle.json"
        bad.write_text('{"productName": ', encoding="utf-8")
        result = cli_runner.invoke(app, ["bundle", "-c", str(bad), "-C", str(app_package)])
        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "Malformed JSON" in result.output
        assert fake_tools.calls == []

    def test_missing_required_field(self, cli_runner, fake_tools, app_package: Path) -> None:
        path = app_package / "bundle.json"
        path.write_text(json.dumps({"productName": "Counter", "version": "0.1.0"}))
        result = cli_runner.invoke(app, ["bundle", "-c", str(path), "-C", str(app_package)])
        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "missing required field 'identifier'" in result.output
        assert "missing required field 'targets'" in result.output

    def test_package_dir_without_manifest(
        self, cli_runner, fake_tools, config_file: Path, tmp_path: Path
    ) -> None:
        empty = tmp_path / "empty"
        empty.mkdir()
        result = cli_runner.invoke(app, ["bundle", "-c", str(config_file), "-C", str(empty)])
        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "No Cargo.toml" in result.output

    def test_target_not_in_config(self, cli_runner, fake_tools, app_package: Path, config_file: Path) -> None:
        result = cli_runner.invoke(
            app, ["bundle", "-c", str(config_file), "-C", str(app_package), "-t", "deb"]
        )
        assert result.exit_code == EXIT_INVALID_USAGE
        assert "'Deb' is not enabled" in result.output
        assert fake_tools.calls == []


# ---------------------------------------------------------------------------
# Build profile
# ---------------------------------------------------------------------------


class TestProfiles:

    def test_release_by_default(self, cli_runner, fake_tools, app_package: Path, config_file: Path) -> None:
        _build_binary(app_package, "release")
        result = cli_runner.invoke(app, ["bundle", "--config", str(config_file), "-C", str(app_package)])
        assert result.exit_code == 0, result.output
        [build] = fake_tools.commands("cargo", "build")
        assert build[-1] == "--release"

    def test_debug_flag(self, cli_runner, fake_tools, app_package: Path, config_file: Path) -> None:
        _build_binary(app_package, "debug")
        result = cli_runner.invoke(
            app, ["bundle", "--config", str(config_file), "--debug", "-C", str(app_package)]
        )
        assert result.exit_code == 0, result.output
        [build] = fake_tools.commands("cargo", "build")
        assert "--release" not in build
        [wix] = fake_tools.commands("wix")
        assert "/target/debug/bundle/msi/" in wix[wix.index("-o") + 1].replace("\\", "/")

    def test_build_runs_in_package_dir(self, cli_runner, fake_tools, app_package: Path, config_file: Path) -> None:
        _build_binary(app_package, "release")
        result = cli_runner.invoke(app, ["bundle", "-c", str(config_file), "-C", str(app_package)])
        assert result.exit_code == 0, result.output
        index = fake_tools.calls.index(fake_tools.commands("cargo", "build")[0])
        assert fake_tools.cwds[index] == str(app_package.resolve())


# ---------------------------------------------------------------------------
# Packaging
# ---------------------------------------------------------------------------


class TestPackaging:

    def test_configured_targets_run(self, cli_runner, fake_tools, app_package: Path, config_file: Path) -> None:
        _build_binary(app_package, "release")
        result = cli_runner.invoke(app, ["--plain", "bundle", "-c", str(config_file), "-C", str(app_package)])
        assert result.exit_code == 0, result.output

        assert len(fake_tools.commands("wix", "build")) == 1
        assert len(fake_tools.commands("makensis")) == 1
        assert fake_tools.commands("dpkg-deb") == []
        assert "Target\tArtifact" in result.output
        assert "[package:Msi]" in result.output
        assert "[package:Nsis]" in result.output

        bundle_dir = app_package.resolve() / "target" / "release" / "bundle"
        assert (bundle_dir / "msi" / "main.wxs").is_file()
        assert (bundle_dir / "nsis" / "installer.nsi").is_file()

    def test_target_flag_narrows(self, cli_runner, fake_tools, app_package: Path, config_file: Path) -> None:
        _build_binary(app_package, "release")
        result = cli_runner.invoke(
            app, ["bundle", "-c", str(config_file), "-C", str(app_package), "--target", "nsis"]
        )
        assert result.exit_code == 0, result.output
        assert fake_tools.commands("wix") == []
        assert len(fake_tools.commands("makensis")) == 1

    def test_json_artifact_list(self, cli_runner, fake_tools, app_package: Path, config_file: Path) -> None:
        _build_binary(app_package, "release")
        result = cli_runner.invoke(
            app, ["--json", "--quiet", "bundle", "-c", str(config_file), "-C", str(app_package)]
        )
        assert result.exit_code == 0, result.output
        start = result.output.index("[")
        records = json.loads(result.output[start:result.output.rindex("]") + 1])
        assert [r["Target"] for r in records] == ["Msi", "Nsis"]

    def test_out_dir(self, cli_runner, fake_tools, app_package: Path, config_file: Path, tmp_path: Path) -> None:
        _build_binary(app_package, "release")
        out = tmp_path / "dist"
        result = cli_runner.invoke(
            app, ["bundle", "-c", str(config_file), "-C", str(app_package), "--out-dir", str(out)]
        )
        assert result.exit_code == 0, result.output
        assert (out.resolve() / "msi" / "main.wxs").is_file()


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:

    def test_build_failure_skips_packaging(
        self, cli_runner, fake_tools, app_package: Path, config_file: Path
    ) -> None:
        fake_tools.failures["cargo build"] = 101
        result = cli_runner.invoke(app, ["bundle", "-c", str(config_file), "-C", str(app_package)])
        assert result.exit_code == EXIT_BUILD_FAILURE
        assert "[build] cargo exited with status 101" in result.output
        assert fake_tools.commands("wix") == []
        assert fake_tools.commands("makensis") == []

    def test_missing_binary_after_build(
        self, cli_runner, fake_tools, app_package: Path, config_file: Path
    ) -> None:
        result = cli_runner.invoke(app, ["bundle", "-c", str(config_file), "-C", str(app_package)])
        assert result.exit_code == EXIT_BUILD_FAILURE
        assert "Built binary not found" in result.output

    def test_packaging_tool_missing(self, cli_runner, fake_tools, app_package: Path, config_file: Path) -> None:
        _build_binary(app_package, "release")

        def which(name: str):
            return None if name == "wix" else f"/usr/bin/{name}"

        with patch("shipyard.process.shutil.which", side_effect=which):
            result = cli_runner.invoke(app, ["bundle", "-c", str(config_file), "-C", str(app_package)])
        assert result.exit_code == EXIT_TOOL_NOT_FOUND
        assert "shipyard config set tools.wix" in result.output

    def test_dry_run_runs_nothing(self, cli_runner, fake_tools, app_package: Path, config_file: Path) -> None:
        result = cli_runner.invoke(
            app, ["--dry-run", "bundle", "-c", str(config_file), "-C", str(app_package)]
        )
        assert result.exit_code == 0, result.output
        assert [argv[1] for argv in fake_tools.calls] == ["metadata"]
        assert "$ /usr/bin/cargo build --release" in result.output
        assert "/usr/bin/wix build" in result.output
