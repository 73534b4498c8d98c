"""Tests for the command-line interface."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from llm_vetting import __version__
from llm_vetting.cli.main import app

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "llm-vetting.config.json"
    path.write_text(json.dumps({"providers": {"openai": {"api_key": "sk-test"}}}))
    return path


class TestCLI:
    """Tests for CLI commands."""

    def test_version(self):
        """Test the version flag."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_models_lists_catalogue(self, config_file: Path):
        """Test that the catalogue and credential status are shown."""
        result = runner.invoke(app, ["models", "--config", str(config_file)], env={"COLUMNS": "200"})

        assert result.exit_code == 0
        assert "gpt-4o-mini" in result.output
        assert "deepseek-chat" in result.output
        assert "missing" in result.output

    def test_run_rejects_unknown_model(self, config_file: Path):
        """Test that an unknown model id exits with an error."""
        result = runner.invoke(app, ["run", "Hello?", "-m", "no-such-model", "--config", str(config_file)])

        assert result.exit_code == 1
        assert "Unknown model" in result.output

    def test_run_rejects_loops_over_cap(self, config_file: Path):
        """Test that the repetition cap is enforced."""
        result = runner.invoke(
            app, ["run", "Hello?", "-m", "gpt-4o-mini", "--loops", "99", "--config", str(config_file)]
        )

        assert result.exit_code == 1
        assert "loop_count" in result.output

    def test_run_requires_models(self, config_file: Path):
        """Test that a run with nothing enabled is refused."""
        result = runner.invoke(app, ["run", "Hello?", "--config", str(config_file)])

        assert result.exit_code == 1
        assert "No models selected" in result.output

    def test_models_reports_invalid_config(self, tmp_path: Path):
        """Test that a config failing validation exits cleanly with an error."""
        path = tmp_path / "llm-vetting.config.json"
        path.write_text(json.dumps({"run": {"concurrency": 0}}))

        result = runner.invoke(app, ["models", "--config", str(path)])

        assert result.exit_code == 1
        assert "Error" in result.output
