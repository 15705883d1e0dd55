"""End-to-end tests for ``shipyard run-wasm`` with cargo, wasm-bindgen and the server faked."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from shipyard.app import app
from shipyard.commands.run_wasm import check_port_free, server_args
from shipyard.exceptions import ServerError
from shipyard.exit_codes import (
    EXIT_BINDGEN_FAILURE,
    EXIT_BUILD_FAILURE,
    EXIT_CONFIG_ERROR,
    EXIT_INTERRUPTED,
    EXIT_SERVER_ERROR,
)
from shipyard.models import ServerConfig

WASM_TARGET = "wasm32-unknown-unknown"


def _build_wasm(app_package: Path, profile: str = "debug") -> Path:
    wasm = app_package.resolve() / "target" / WASM_TARGET / profile / "counter.wasm"
    wasm.parent.mkdir(parents=True, exist_ok=True)
    wasm.write_bytes(b"\0asm")
    return wasm


@pytest.fixture
def server():
    """Patch the server process and the port probe."""
    proc = MagicMock()
    proc.wait.return_value = 0
    with patch("shipyard.process.subprocess.Popen", return_value=proc) as mock_popen, \
         patch("shipyard.commands.run_wasm.check_port_free") as mock_probe:
        mock_popen.proc = proc
        mock_popen.probe = mock_probe
        yield mock_popen


class TestCompileFailure:

    def test_server_never_starts(self, cli_runner, fake_tools, server, app_package: Path) -> None:
        fake_tools.failures["cargo build"] = 101
        result = cli_runner.invoke(app, ["run-wasm", "-C", str(app_package)])

        assert result.exit_code == EXIT_BUILD_FAILURE
        assert "[build] cargo exited with status 101" in result.output
        assert "something went wrong" in result.output
        server.assert_not_called()
        server.probe.assert_not_called()
        assert fake_tools.commands("wasm-bindgen") == []

    def test_missing_wasm_module(self, cli_runner, fake_tools, server, app_package: Path) -> None:
        result = cli_runner.invoke(app, ["run-wasm", "-C", str(app_package)])
        assert result.exit_code == EXIT_BUILD_FAILURE
        assert "did not produce a wasm module" in result.output
        server.assert_not_called()

    def test_bindgen_failure(self, cli_runner, fake_tools, server, app_package: Path) -> None:
        _build_wasm(app_package)
        fake_tools.failures["wasm-bindgen --target"] = 1
        result = cli_runner.invoke(app, ["run-wasm", "-C", str(app_package)])
        assert result.exit_code == EXIT_BINDGEN_FAILURE
        assert "[bindgen]" in result.output
        server.assert_not_called()


class TestPipeline:

    def test_full_pipeline(self, cli_runner, fake_tools, server, app_package: Path) -> None:
        wasm = _build_wasm(app_package)
        result = cli_runner.invoke(app, ["run-wasm", "--name", "counter", "-C", str(app_package)])
        assert result.exit_code == 0, result.output

        [build] = fake_tools.commands("cargo", "build")
        assert build[1:] == ["build", "-p", "counter", "--target", WASM_TARGET]

        site = app_package.resolve() / "target" / "wasm" / "counter"
        [bindgen] = fake_tools.commands("wasm-bindgen")
        assert bindgen[1:] == [
            "--target", "web",
            "--no-typescript",
            "--out-dir", str(site),
            "--out-name", "counter",
            str(wasm),
        ]

        index = (site / "index.html").read_text()
        assert 'import init from "./counter.js";' in index
        assert "<title>counter</title>" in index

        argv = server.call_args.args[0]
        assert argv == [sys.executable, "-m", "http.server", "8000", "--bind", "127.0.0.1", "--directory", str(site)]
        server.probe.assert_called_once_with("127.0.0.1", 8000)

    def test_release_profile(self, cli_runner, fake_tools, server, app_package: Path) -> None:
        _build_wasm(app_package, "release")
        result = cli_runner.invoke(app, ["run-wasm", "--release", "-C", str(app_package)])
        assert result.exit_code == 0, result.output
        [build] = fake_tools.commands("cargo", "build")
        assert build[-1] == "--release"

    def test_host_port_and_out_dir(self, cli_runner, fake_tools, server, app_package: Path, tmp_path: Path) -> None:
        _build_wasm(app_package)
        out = tmp_path / "site"
        result = cli_runner.invoke(
            app,
            ["run-wasm", "-C", str(app_package), "--host", "0.0.0.0", "--port", "9000", "--out-dir", str(out)],
        )
        assert result.exit_code == 0, result.output
        argv = server.call_args.args[0]
        assert argv[3:] == ["9000", "--bind", "0.0.0.0", "--directory", str(out.resolve())]
        assert (out / "index.html").is_file()

    def test_port_from_environment(
        self, cli_runner, fake_tools, server, app_package: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _build_wasm(app_package)
        monkeypatch.setenv("SHIPYARD_SERVER_PORT", "8123")
        result = cli_runner.invoke(app, ["run-wasm", "-C", str(app_package)])
        assert result.exit_code == 0, result.output
        assert server.call_args.args[0][3] == "8123"

    def test_package_from_project_config(
        self, cli_runner, fake_tools, server, app_package: Path, isolated_config: Path
    ) -> None:
        _build_wasm(app_package)
        (isolated_config / "shipyard.json").write_text(
            json.dumps({"package_dir": "counter", "wasm_package": "counter"})
        )
        result = cli_runner.invoke(app, ["run-wasm"])
        assert result.exit_code == 0, result.output
        [build] = fake_tools.commands("cargo", "build")
        assert build[2:4] == ["-p", "counter"]

    def test_no_serve(self, cli_runner, fake_tools, server, app_package: Path) -> None:
        _build_wasm(app_package)
        result = cli_runner.invoke(app, ["run-wasm", "-C", str(app_package), "--no-serve"])
        assert result.exit_code == 0, result.output
        server.assert_not_called()
        assert "Site ready" in result.output

    def test_unknown_package(self, cli_runner, fake_tools, server, app_package: Path) -> None:
        result = cli_runner.invoke(app, ["run-wasm", "-C", str(app_package), "-n", "nope"])
        assert result.exit_code == EXIT_BUILD_FAILURE
        assert "No package named 'nope'" in result.output
        assert fake_tools.commands("cargo", "build") == []


class TestServer:

    def test_ctrl_c_exits_130(self, cli_runner, fake_tools, server, app_package: Path) -> None:
        _build_wasm(app_package)
        server.proc.wait.side_effect = [KeyboardInterrupt(), 0]
        result = cli_runner.invoke(app, ["run-wasm", "-C", str(app_package)])
        assert result.exit_code == EXIT_INTERRUPTED
        server.proc.terminate.assert_called_once()

    def test_busy_port(self, cli_runner, fake_tools, server, app_package: Path) -> None:
        _build_wasm(app_package)
        server.probe.side_effect = ServerError("Cannot listen on 127.0.0.1:8000: Address already in use")
        result = cli_runner.invoke(app, ["run-wasm", "-C", str(app_package)])
        assert result.exit_code == EXIT_SERVER_ERROR
        assert "[serve] Cannot listen on 127.0.0.1:8000" in result.output
        server.assert_not_called()

    def test_dry_run_serves_nothing(self, cli_runner, fake_tools, server, app_package: Path) -> None:
        result = cli_runner.invoke(app, ["--dry-run", "run-wasm", "-C", str(app_package)])
        assert result.exit_code == 0, result.output
        server.assert_not_called()
        assert "-m http.server 8000" in result.output

    def test_check_port_free_rejects_out_of_range_port(self) -> None:
        with pytest.raises(ServerError, match="127.0.0.1:70000"):
            check_port_free("127.0.0.1", 70000)

    def test_out_of_range_env_port(
        self, cli_runner, fake_tools, server, app_package: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SHIPYARD_SERVER_PORT", "70000")
        result = cli_runner.invoke(app, ["run-wasm", "-C", str(app_package)])
        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "SHIPYARD_SERVER_PORT" in result.output
        assert fake_tools.calls == []
        server.assert_not_called()

    def test_check_port_free_detects_busy_port(self) -> None:
        import socket

        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
            busy.bind(("127.0.0.1", 0))
            busy.listen(1)
            port = busy.getsockname()[1]
            with pytest.raises(ServerError, match=f"127.0.0.1:{port}"):
                check_port_free("127.0.0.1", port)

    def test_server_args(self, tmp_path: Path) -> None:
        argv = server_args(ServerConfig(host="::1", port=8080), tmp_path)
        assert argv[1:] == ["-m", "http.server", "8080", "--bind", "::1", "--directory", str(tmp_path)]
