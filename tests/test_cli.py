"""CLI smoke tests."""

import pytest
from typer.testing import CliRunner

from genstudio import cli

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_settings(settings, monkeypatch):
    settings.ensure_dirs()
    monkeypatch.setattr(cli, "get_settings", lambda: settings)
    return settings


def test_models_lists_capabilities():
    result = runner.invoke(cli.app, ["models", "--feature", "image-to-image"])
    assert result.exit_code == 0
    assert "Imagen" in result.output
    assert "Veo" not in result.output


def test_status_of_unknown_generation():
    result = runner.invoke(cli.app, ["status", "gen_missing"])
    assert result.exit_code == 1
    assert "not found" in result.output


def test_clean_uploads(cli_settings):
    orphan = cli_settings.uploads_dir / "orphan.png"
    orphan.write_bytes(b"x" * 10)

    result = runner.invoke(cli.app, ["clean-uploads", "--dry-run"])
    assert result.exit_code == 0
    assert "would delete orphan.png" in result.output
    assert orphan.exists()

    result = runner.invoke(cli.app, ["clean-uploads"])
    assert result.exit_code == 0
    assert not orphan.exists()
