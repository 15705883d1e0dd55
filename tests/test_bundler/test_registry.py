"""Tests for backend registration, entry-point discovery and execution order."""

from __future__ import annotations

import logging
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from shipyard.bundler import run_backends
from shipyard.bundler.base import Backend, BundleContext
from shipyard.bundler.registry import ENTRY_POINT_GROUP, BackendRegistry
from shipyard.bundler.windows import MsiBackend
from shipyard.exceptions import PackagingError
from shipyard.models import BundleTarget

T = BundleTarget


class RecordingMsi(Backend):
    target = BundleTarget.MSI
    directory = "msi"

    def bundle(self, ctx: BundleContext) -> list[Path]:
        return [ctx.out_dir / "custom.msi"]


class TestPlan:

    def test_dmg_pulls_in_app_first(self) -> None:
        assert BackendRegistry().plan({T.DMG}) == [T.APP, T.DMG]

    def test_app_and_dmg_not_duplicated(self) -> None:
        assert BackendRegistry().plan([T.DMG, T.APP, T.DMG]) == [T.APP, T.DMG]

    def test_stable_order(self) -> None:
        assert BackendRegistry().plan({T.NSIS, T.MSI}) == [T.MSI, T.NSIS]
        assert BackendRegistry().plan({T.APPIMAGE, T.DEB}) == [T.DEB, T.APPIMAGE]

    def test_cycle_detected(self) -> None:
        class LoopyApp(Backend):
            target = BundleTarget.APP
            directory = "macos"
            requires = (BundleTarget.DMG,)

            def bundle(self, ctx):
                return []

        registry = BackendRegistry()
        registry.register(LoopyApp)
        with pytest.raises(PackagingError, match="Circular"):
            registry.plan({T.DMG})


class TestRegister:

    def test_builtins_present(self) -> None:
        registry = BackendRegistry()
        for target in BundleTarget:
            assert isinstance(registry.get(target), Backend)

    def test_replace_builtin(self, caplog: pytest.LogCaptureFixture) -> None:
        registry = BackendRegistry()
        with caplog.at_level(logging.INFO, logger="shipyard.bundler.registry"):
            registry.register(RecordingMsi)
        assert isinstance(registry.get(T.MSI), RecordingMsi)
        assert "RecordingMsi replaces MsiBackend" in caplog.text

    def test_rejects_non_backend(self) -> None:
        with pytest.raises(PackagingError, match="not a Backend subclass"):
            BackendRegistry().register(object)  # type: ignore[arg-type]


class TestDiscover:

    def _entry_point(self, name: str, loaded: object) -> MagicMock:
        ep = MagicMock()
        ep.name = name
        ep.load.return_value = loaded
        return ep

    def test_loads_entry_points(self) -> None:
        ep = self._entry_point("custom-msi", RecordingMsi)
        with patch(
            "shipyard.bundler.registry.importlib.metadata.entry_points", return_value=[ep]
        ) as mock_eps:
            registry = BackendRegistry()
            assert registry.discover() == ["custom-msi"]
        mock_eps.assert_called_once_with(group=ENTRY_POINT_GROUP)
        assert isinstance(registry.get(T.MSI), RecordingMsi)

    def test_broken_entry_point_is_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        broken = MagicMock()
        broken.name = "broken"
        broken.load.side_effect = ImportError("no module named nope")
        with patch(
            "shipyard.bundler.registry.importlib.metadata.entry_points", return_value=[broken]
        ):
            registry = BackendRegistry()
            assert registry.discover() == []
        assert "Failed to load backend 'broken'" in caplog.text
        assert type(registry.get(T.MSI)) is MsiBackend


class TestRunBackends:

    def test_records_artifacts_in_order(self, tmp_path: Path) -> None:
        ctx = MagicMock()
        ctx.out_dir = tmp_path
        ctx.artifacts = {}
        registry = BackendRegistry()
        registry.register(RecordingMsi)

        artifacts = run_backends(ctx, {T.MSI}, registry)
        assert artifacts == {T.MSI: [tmp_path / "custom.msi"]}
        assert ctx.artifacts is artifacts

    def test_failure_stops_later_backends(self, tmp_path: Path) -> None:
        calls: list[str] = []

        class FailingApp(Backend):
            target = BundleTarget.APP
            directory = "macos"

            def bundle(self, ctx):
                calls.append("App")
                raise PackagingError("boom", stage=self.stage)

        class CountingDmg(Backend):
            target = BundleTarget.DMG
            directory = "dmg"
            requires = (BundleTarget.APP,)

            def bundle(self, ctx):
                calls.append("Dmg")
                return []

        registry = BackendRegistry()
        registry.register(FailingApp)
        registry.register(CountingDmg)
        ctx = MagicMock()
        ctx.artifacts = {}

        with pytest.raises(PackagingError, match=r"\[package:App\] boom"):
            run_backends(ctx, {T.DMG}, registry)
        assert calls == ["App"]
