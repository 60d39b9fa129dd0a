"""Tests for the cargo-gc-target command line."""

import importlib
import json
import logging
from pathlib import Path

import pytest
from click.testing import CliRunner

from targetgc.foundation.config import FingerprintConfig, TargetGcConfig
from targetgc.foundation.errors import ErrorCode, TargetGcError, toolchain_error
from targetgc.interface.cli import main
from targetgc.interface.cli.core import format_error_for_json, format_size
from targetgc.units.toolchain import CargoWorkspace, RustcInfo

cli_main = importlib.import_module("targetgc.interface.cli.core.main")

CORE_UNIT = {
    "pkg_id": "path+file:///work/core#core@0.1.0",
    "target": {
        "kind": ["lib"],
        "crate_types": ["lib"],
        "name": "core",
        "src_path": "/work/core/src/lib.rs",
        "edition": "2021",
    },
    "profile": {"name": "dev", "opt_level": "0", "lto": "false"},
    "platform": None,
    "mode": "build",
    "features": [],
    "dependencies": [],
}


@pytest.fixture(autouse=True)
def _fake_toolchain(monkeypatch: pytest.MonkeyPatch, rustc: RustcInfo):
    """No rustc or cargo runs; logging handlers are restored afterwards."""
    monkeypatch.setattr(cli_main, "query_rustc", lambda program="rustc": rustc)
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def unit_graphs(tmp_path: Path) -> Path:
    graphs = tmp_path / "graphs"
    graphs.mkdir()
    doc = {"version": 1, "units": [CORE_UNIT], "roots": [0]}
    (graphs / "host.dev.build.json").write_text(json.dumps(doc))
    return graphs


@pytest.fixture
def target(tmp_path: Path, write_file) -> Path:
    target = tmp_path / "target"
    write_file(target / "debug" / "libcore.rlib", 64)
    write_file(target / "debug" / "deps" / "libstale-0123456789abcdef.rlib", 10)
    return target


def _invoke(*args: str):
    return CliRunner().invoke(main, ["gc-target", *args])


class TestGcTarget:
    """Tests for the gc-target command."""

    def test_collects(self, target: Path, unit_graphs: Path) -> None:
        result = _invoke("--target-dir", str(target), "--unit-graphs", str(unit_graphs))

        assert result.exit_code == 0, result.output
        assert "Collecting debug" in result.output
        assert "Finished 10 bytes freed" in result.output
        assert not (target / "debug" / "deps" / "libstale-0123456789abcdef.rlib").exists()
        assert (target / "debug" / "libcore.rlib").exists()

    def test_dry_run_verbose(self, target: Path, unit_graphs: Path) -> None:
        stale = target / "debug" / "deps" / "libstale-0123456789abcdef.rlib"

        result = _invoke("--target-dir", str(target), "--unit-graphs", str(unit_graphs), "--dry-run", "-v")

        assert result.exit_code == 0, result.output
        assert f"Would remove {stale}" in result.output
        assert "(dry run)" in result.output
        assert stale.exists()

    def test_quiet(self, target: Path, unit_graphs: Path) -> None:
        result = _invoke("--target-dir", str(target), "--unit-graphs", str(unit_graphs), "-q")

        assert result.exit_code == 0
        assert result.output == ""

    def test_json_report(self, target: Path, unit_graphs: Path) -> None:
        result = _invoke("--target-dir", str(target), "--unit-graphs", str(unit_graphs), "--json", "--dry-run")

        assert result.exit_code == 0, result.output
        report = json.loads(result.output)
        assert report["dry_run"] is True
        assert report["bytes_freed"] == 10
        assert report["swept"] == ["debug"]
        assert [entry["zone"] for entry in report["removed"]] == ["dependency"]

    def test_workspace_target_dir(
        self, target: Path, unit_graphs: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Without --target-dir the workspace's target directory is used."""
        seen = {}

        def _query_workspace(cargo, manifest_path, extra_args):
            seen["args"] = (manifest_path, extra_args)
            return CargoWorkspace(Path("/work"), target, frozenset({"core"}))

        monkeypatch.setattr(cli_main, "query_workspace", _query_workspace)

        result = _invoke("--unit-graphs", str(unit_graphs), "--offline", "--manifest-path", "/work/Cargo.toml")

        assert result.exit_code == 0, result.output
        assert seen["args"] == (Path("/work/Cargo.toml"), ("--offline",))
        assert not (target / "debug" / "deps" / "libstale-0123456789abcdef.rlib").exists()

    def test_per_dir_error_exits_nonzero(self, target: Path, unit_graphs: Path, write_file) -> None:
        write_file(target / "release" / "build")  # unlistable zone

        result = _invoke("--target-dir", str(target), "--unit-graphs", str(unit_graphs))

        assert result.exit_code == 1
        assert "TG-2001" in result.output
        assert not (target / "debug" / "deps" / "libstale-0123456789abcdef.rlib").exists()

    def test_malformed_unit_graph(self, target: Path, tmp_path: Path) -> None:
        graphs = tmp_path / "bad"
        graphs.mkdir()
        (graphs / "host.dev.build.json").write_text("{not json")

        result = _invoke("--target-dir", str(target), "--unit-graphs", str(graphs))

        assert result.exit_code == 1
        assert "TG-1002" in result.output
        assert (target / "debug" / "deps" / "libstale-0123456789abcdef.rlib").exists()

    def test_toolchain_failure_as_json(
        self, target: Path, unit_graphs: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def _fail(rustc="rustc"):
            raise toolchain_error("rustc", "No such file or directory", key="rustc")

        monkeypatch.setattr(cli_main, "query_rustc", _fail)

        result = _invoke("--target-dir", str(target), "--unit-graphs", str(unit_graphs), "--json")

        assert result.exit_code == 1
        assert '"error_id": "TG-7001"' in result.output

    def test_bad_config(self, target: Path, unit_graphs: Path, tmp_path: Path) -> None:
        config = tmp_path / "gc.yaml"
        config.write_text("gc:\n  compile_modes: [doc]\n")

        result = _invoke("--target-dir", str(target), "--unit-graphs", str(unit_graphs), "--config", str(config))

        assert result.exit_code == 1
        assert "TG-5002" in result.output

    def test_config_profiles(self, target: Path, unit_graphs: Path, tmp_path: Path, write_file) -> None:
        """Only the configured profile directories are collected."""
        release_stale = write_file(target / "release" / "deps" / "libold.rlib")
        config = tmp_path / "gc.yaml"
        config.write_text("gc:\n  profiles: [release]\n")

        result = _invoke("--target-dir", str(target), "--unit-graphs", str(unit_graphs), "--config", str(config))

        assert result.exit_code == 0, result.output
        assert not release_stale.exists()
        assert (target / "debug" / "deps" / "libstale-0123456789abcdef.rlib").exists()

    def test_log_file_records_removals(self, target: Path, unit_graphs: Path, tmp_path: Path) -> None:
        """Removals reach the log file even though the console shows only warnings."""
        log_file = tmp_path / "logs" / "gc.log"

        result = _invoke("--target-dir", str(target), "--unit-graphs", str(unit_graphs), "--log-file", str(log_file))

        assert result.exit_code == 0, result.output
        text = log_file.read_text()
        assert "Removing" in text
        assert "libstale-0123456789abcdef.rlib" in text
        assert "targetgc.gc.sweeper" not in result.output

    def test_help_warns_about_hash_mismatch(self) -> None:
        result = _invoke("--help")

        assert result.exit_code == 0
        assert "not guaranteed to match" in result.output
        assert "--dry-run first" in result.output

    def test_version(self) -> None:
        result = CliRunner().invoke(main, ["--version"])

        assert result.exit_code == 0
        assert "cargo-gc-target" in result.output


@pytest.mark.parametrize(
    ("size", "expected"),
    [
        (0, "0 bytes"),
        (1, "1 byte"),
        (1023, "1023 bytes"),
        (1536, "1.5 KiB"),
        (3 * 1024**3, "3.0 GiB"),
    ],
)
def test_format_size(size: int, expected: str) -> None:
    assert format_size(size) == expected


def test_format_error_for_json() -> None:
    err = TargetGcError(code=ErrorCode.OUTPUT_DIR_LOCKED, context={"path": "target/debug"})

    data = json.loads(format_error_for_json(err))

    assert data["error_id"] == "TG-2002"
    assert data["fatal"] is False
    assert data["message"] == "Output directory 'target/debug' is locked by another process."


def test_format_error_for_json_wraps_plain_exceptions() -> None:
    data = json.loads(format_error_for_json(ValueError("boom")))

    assert data["error_id"] == "TG-6001"
    assert data["cause"] == "boom"


class TestPrepare:
    """Tests for building the fingerprint context."""

    def test_cargo_variables_fill_in(
        self, target: Path, unit_graphs: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("RUSTC_WORKSPACE_WRAPPER", "/usr/bin/clippy-driver")
        monkeypatch.setenv("__CARGO_DEFAULT_LIB_METADATA", "stable")

        _, _, ctx = cli_main.prepare(TargetGcConfig(), None, target, unit_graphs)

        assert ctx.workspace_wrapper == "/usr/bin/clippy-driver"
        assert ctx.default_lib_metadata == "stable"

    def test_config_beats_cargo_variables(
        self, target: Path, unit_graphs: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("RUSTC_WORKSPACE_WRAPPER", "/usr/bin/clippy-driver")
        monkeypatch.setenv("__CARGO_DEFAULT_LIB_METADATA", "stable")
        config = TargetGcConfig(
            fingerprint=FingerprintConfig(workspace_wrapper="my-wrapper", default_lib_metadata="pinned")
        )

        _, _, ctx = cli_main.prepare(config, None, target, unit_graphs)

        assert ctx.workspace_wrapper == "my-wrapper"
        assert ctx.default_lib_metadata == "pinned"

    def test_unset(self, target: Path, unit_graphs: Path) -> None:
        _, _, ctx = cli_main.prepare(TargetGcConfig(), None, target, unit_graphs)

        assert ctx.workspace_wrapper is None
        assert ctx.default_lib_metadata is None
