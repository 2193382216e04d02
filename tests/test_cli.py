"""Tests for the command-line interface."""

from typer.testing import CliRunner

from stayhard_assistant.cli import app

runner = CliRunner()


def test_config_shows_sections(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-secret-value")
    result = runner.invoke(app, ["config"])

    assert result.exit_code == 0
    assert "conversation" in result.output
    assert "max_exchanges" in result.output
    assert "sk-secret-value" not in result.output


def test_config_from_file(tmp_path):
    path = tmp_path / "coach.yaml"
    path.write_text("conversation:\n  wake_phrase: yo coach\n")
    result = runner.invoke(app, ["config", "--config", str(path)])

    assert result.exit_code == 0
    assert "yo coach" in result.output


def test_missing_config_file(tmp_path):
    result = runner.invoke(app, ["config", "--config", str(tmp_path / "nope.yaml")])
    assert result.exit_code == 1
    assert "not found" in result.output


def test_info_lists_backends():
    result = runner.invoke(app, ["info"])
    assert result.exit_code == 0
    assert "whisper" in result.output
    assert "piper" in result.output
