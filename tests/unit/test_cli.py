"""
Smoke tests for the command-line interface.
"""

import json

import pytest
from typer.testing import CliRunner

from packsync import __version__
from packsync.cli import app as cli

runner = CliRunner()


@pytest.fixture(autouse=True)
def config_file(tmp_path, monkeypatch):
    path = tmp_path / "config" / "config.ini"
    monkeypatch.setattr(cli, "CONFIG_FILE", path)
    return path


def test_version():
    result = runner.invoke(cli.app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_init_then_validate(config_file):
    result = runner.invoke(cli.app, ["init", "--workers", "7", "--force"])
    assert result.exit_code == 0
    assert config_file.is_file()

    result = runner.invoke(cli.app, ["validate"])
    assert result.exit_code == 0
    assert "7" in result.output


def test_validate_reports_bad_config(config_file):
    config_file.parent.mkdir(parents=True)
    config_file.write_text("[DEFAULT]\nmax_workers = 0\n", encoding="utf-8")

    result = runner.invoke(cli.app, ["validate"])

    assert result.exit_code == 1
    assert "invalid" in result.output


def test_cleanup_command(tmp_path):
    mods = tmp_path / "mods"
    mods.mkdir()
    for name in ("keep.jar", "stale.jar", "figura.jar"):
        (mods / name).write_bytes(b"x")

    result = runner.invoke(cli.app, ["cleanup", str(mods), "-k", "keep.jar"])

    assert result.exit_code == 0
    assert sorted(p.name for p in mods.iterdir()) == ["figura.jar", "keep.jar"]


def test_provision_rejects_invalid_bundle(tmp_path):
    bundle = tmp_path / "bundle.json"
    bundle.write_text(json.dumps({"mods": []}), encoding="utf-8")

    result = runner.invoke(cli.app, ["provision", str(bundle)])

    assert result.exit_code != 0
