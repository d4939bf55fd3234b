"""CLI 系统测试 — 退出码约定与输出"""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from tapkit.cli import main
from tapkit.services.container import set_container
from tapkit.utils import shell


@pytest.fixture()
def prefix(tmp_path: Path) -> Path:
    return tmp_path / "prefix"


@pytest.fixture()
def run_cli(tmp_path, prefix, fake_executor, monkeypatch):
    """以隔离的配置/前缀/缓存调用 CLI；冒烟测试走假执行器"""
    monkeypatch.setattr("tapkit.cli.setup_logging", lambda **kwargs: None)
    monkeypatch.setenv("PATH", str(tmp_path / "empty-path"))
    executor = fake_executor(stdout="usage: tool")
    monkeypatch.setattr(shell, "_default_executor", executor)

    def _run(formula_dir: Path, *args: str, config: Path | None = None, prefix_opt: str | None = None):
        base = [
            "--config", str(config or tmp_path / "no-config.yml"),
            "--prefix", prefix_opt or str(prefix),
            "--formula-dir", str(formula_dir),
            "--cache-dir", str(tmp_path / "cache"),
        ]
        return CliRunner().invoke(main, [*base, *args])

    yield _run
    set_container(None)


def _sha(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class TestInstallExitCodes:
    def test_success_exit_0(self, run_cli, write_formula, tool_archive, serve_archive, prefix) -> None:
        serve_archive(tool_archive)
        formula_dir = write_formula(sha256=_sha(tool_archive), caveats="To get started, run:\n  tool-setup\n")

        result = run_cli(formula_dir, "install", "tool")

        assert result.exit_code == 0, result.output
        assert "[installed]" in result.output
        assert str(prefix / "bin" / "tool") in result.output
        assert "==> Caveats" in result.output
        assert "tool-setup" in result.output

    def test_dependency_warning_still_exit_0(self, run_cli, write_formula, tool_archive, serve_archive) -> None:
        serve_archive(tool_archive)
        formula_dir = write_formula(sha256=_sha(tool_archive), depends_on=["gum"])

        result = run_cli(formula_dir, "install", "tool")

        assert result.exit_code == 0, result.output
        assert "[installed_with_warnings]" in result.output
        assert "gum" in result.output

    def test_smoke_failure_exit_1(self, run_cli, write_formula, tool_archive, serve_archive, monkeypatch, fake_executor) -> None:
        serve_archive(tool_archive)
        monkeypatch.setattr(shell, "_default_executor", fake_executor(stdout="nope"))
        formula_dir = write_formula(sha256=_sha(tool_archive))

        result = run_cli(formula_dir, "install", "tool")

        assert result.exit_code == 1
        assert "[verification_failed]" in result.output

    def test_integrity_error_exit_2(self, run_cli, write_formula, tool_archive, serve_archive, prefix) -> None:
        serve_archive(tool_archive)
        formula_dir = write_formula(sha256="abc123")

        result = run_cli(formula_dir, "install", "tool")

        assert result.exit_code == 2
        assert "INTEGRITY_ERROR" in result.output
        assert not (prefix / "bin").exists()

    def test_missing_source_exit_3(self, run_cli, write_formula, make_tarball, serve_archive, tmp_path) -> None:
        archive = make_tarball({"README.md": "x"})
        serve_archive(archive)
        dest = tmp_path / "usr" / "local" / "bin" / "tool"
        formula_dir = write_formula(
            sha256=_sha(archive),
            install=[{"source": "bin/tool.sh", "to": str(dest)}],
        )

        result = run_cli(formula_dir, "install", "tool")

        assert result.exit_code == 3
        assert "MISSING_SOURCE" in result.output
        assert not dest.exists()

    def test_unknown_formula_exit_4(self, run_cli, write_formula) -> None:
        result = run_cli(write_formula(), "install", "nope")
        assert result.exit_code == 4
        assert "FORMULA_NOT_FOUND" in result.output

    def test_bad_config_exit_4(self, run_cli, write_formula, tmp_path) -> None:
        config = tmp_path / "bad.yml"
        config.write_text(yaml.safe_dump({"download_retries": -1}))
        result = run_cli(write_formula(), "list", config=config)
        assert result.exit_code == 4
        assert "CONFIG_ERROR" in result.output

    def test_malformed_config_exit_4(self, run_cli, write_formula, tmp_path) -> None:
        config = tmp_path / "broken.yml"
        config.write_text("prefix: [unclosed\n")
        result = run_cli(write_formula(), "list", config=config)
        assert result.exit_code == 4
        assert "CONFIG_ERROR" in result.output

    def test_relative_prefix_exit_0(
        self, run_cli, write_formula, tool_archive, serve_archive, tmp_path, monkeypatch,
    ) -> None:
        serve_archive(tool_archive)
        formula_dir = write_formula(sha256=_sha(tool_archive))
        monkeypatch.chdir(tmp_path)

        result = run_cli(formula_dir, "install", "tool", prefix_opt="rel")

        assert result.exit_code == 0, result.output
        assert "[installed]" in result.output
        assert (tmp_path / "rel" / "bin" / "tool").is_file()
        receipt = yaml.safe_load((tmp_path / "rel" / "var" / "tapkit" / "receipts" / "tool.yml").read_text())
        assert all(Path(f).is_absolute() for f in receipt["files"])


class TestOtherCommands:
    def test_list_and_info(self, run_cli, write_formula) -> None:
        formula_dir = write_formula(depends_on=["yq", "gum"])

        listed = run_cli(formula_dir, "list")
        assert listed.exit_code == 0
        assert "tool" in listed.output and "1.0.0" in listed.output

        info = run_cli(formula_dir, "info", "tool")
        assert info.exit_code == 0
        assert "依赖: gum, yq" in info.output
        assert "状态: 未安装" in info.output

    def test_invalid_formula_shows_details(self, run_cli, write_formula) -> None:
        formula_dir = write_formula(url="file:///tmp/tool.tar.gz")
        result = run_cli(formula_dir, "list")
        assert result.exit_code == 4
        assert "不允许的 URL 协议" in result.output

    def test_install_then_uninstall(self, run_cli, write_formula, tool_archive, serve_archive, prefix) -> None:
        serve_archive(tool_archive)
        formula_dir = write_formula(sha256=_sha(tool_archive))
        assert run_cli(formula_dir, "install", "tool").exit_code == 0

        result = run_cli(formula_dir, "uninstall", "tool")

        assert result.exit_code == 0
        assert not (prefix / "bin" / "tool").exists()
        assert run_cli(formula_dir, "uninstall", "tool").exit_code == 4

    def test_fetch(self, run_cli, write_formula, tool_archive, serve_archive, tmp_path) -> None:
        serve_archive(tool_archive)
        result = run_cli(write_formula(sha256=_sha(tool_archive)), "fetch", "tool")
        assert result.exit_code == 0
        assert (tmp_path / "cache" / "tool--1.0.0.tar.gz").read_bytes() == tool_archive
