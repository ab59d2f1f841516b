"""Tests for the sane command-line interface."""

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from sane import cli
from sane.cli import app
from sane.config import SaneConfig, load_config, save_config

runner = CliRunner()


@pytest.fixture
def invoke(vault, tmp_path, mock_backend, monkeypatch):
    """Run the CLI against the test vault with the mock backend."""
    monkeypatch.setattr(cli, "_vault_override", None)
    monkeypatch.setattr(cli, "_store_override", None)
    for var in ("SANE_STORE_PATH", "SANE_VAULT", "SANE_VERBOSE"):
        monkeypatch.delenv(var, raising=False)
    state = tmp_path / "state"

    def run(*args, **kwargs):
        return runner.invoke(
            app, ["--vault", str(vault.root), "--store", str(state), *args], **kwargs
        )

    run.state = state
    with patch("sane.api.create_backend", return_value=mock_backend):
        yield run


class TestProcess:
    def test_process_path(self, invoke, vault, mock_backend):
        vault.write("a.md", "Alpha note")

        result = invoke("process", "a.md")

        assert result.exit_code == 0, result.output
        assert "Enhanced 1 note(s): a.md" in result.output
        assert mock_backend.embed_calls == ["Alpha note"]
        assert (invoke.state / "sane-embeddings.json").exists()

    def test_process_shows_neighbors(self, invoke, vault):
        vault.write("a.md", "Alpha note")
        vault.write("b.md", "Alpha note too")
        invoke("process", "a.md")

        result = invoke("process", "b.md")

        assert result.exit_code == 0, result.output
        assert "a.md" in result.output

    def test_process_current(self, invoke, vault):
        vault.write("only.md", "The only note")

        result = invoke("process")

        assert result.exit_code == 0, result.output
        assert "only.md" in result.output

    def test_process_missing(self, invoke):
        result = invoke("process", "missing.md")
        assert result.exit_code == 1
        assert "note not found" in result.output

    def test_not_configured(self, invoke, vault, mock_backend):
        vault.write("a.md", "Alpha")
        mock_backend.configured = False

        result = invoke("process", "a.md")

        assert result.exit_code == 1
        assert "not configured" in result.output

    def test_process_queued(self, invoke, vault, mock_backend):
        vault.write("a.md", "Alpha")
        (invoke.state).mkdir()
        (invoke.state / "sane-queue.json").write_text('["a.md"]')

        result = invoke("process", "--queued")

        assert result.exit_code == 0, result.output
        assert "Processed 1 queued note(s)" in result.output
        assert mock_backend.embed_calls == ["Alpha"]


class TestInit:
    def test_init_yes(self, invoke, vault):
        vault.write("a.md", "Alpha")
        vault.write("b.md", "Beta")

        result = invoke("init", "--yes")

        assert result.exit_code == 0, result.output
        assert "2 note(s) processed" in result.output

    def test_init_declined(self, invoke, vault, mock_backend):
        vault.write("a.md", "Alpha")

        result = invoke("init", input="n\n")

        assert result.exit_code == 0, result.output
        assert "This will process 1 notes" in result.output
        assert mock_backend.embed_calls == []


class TestReports:
    def test_status(self, invoke):
        result = invoke("status")
        assert result.exit_code == 0, result.output
        assert "Provider:      openai" in result.output
        assert "Configured:    yes" in result.output
        assert "Trigger:       delayed" in result.output
        assert "Target folder: all notes" in result.output

    def test_costs(self, invoke, vault):
        vault.write("a.md", "Alpha")
        invoke("process", "a.md")

        result = invoke("costs")

        assert result.exit_code == 0, result.output
        assert "Today:" in result.output
        assert "Embeddings: 1" in result.output
        assert "Provider:   openai" in result.output


class TestConfig:
    def test_show_masks_credentials(self, invoke):
        save_config(SaneConfig(state_path=invoke.state, openai_api_key="sk-abcdefghijkl"))

        result = invoke("config")

        assert result.exit_code == 0, result.output
        assert "openai_api_key = sk-a..." in result.output
        assert "sk-abcdefghijkl" not in result.output

    def test_get_one(self, invoke):
        result = invoke("config", "trigger")
        assert result.exit_code == 0
        assert result.output.strip() == "delayed"

    def test_set_value(self, invoke):
        result = invoke("config", "trigger", "manual")

        assert result.exit_code == 0, result.output
        assert "trigger = manual" in result.output
        assert load_config(invoke.state).trigger == "manual"

    def test_set_bool_and_number(self, invoke):
        assert invoke("config", "enable_summary", "false").exit_code == 0
        assert invoke("config", "daily_budget", "2.5").exit_code == 0

        config = load_config(invoke.state)
        assert config.enable_summary is False
        assert config.daily_budget == 2.5

    def test_set_invalid_value(self, invoke):
        result = invoke("config", "schedule_hour", "25")
        assert result.exit_code == 1
        assert "schedule_hour" in result.output

    def test_set_not_a_number(self, invoke):
        result = invoke("config", "delay_minutes", "soon")
        assert result.exit_code == 1

    def test_unknown_key(self, invoke):
        assert invoke("config", "nope").exit_code == 1
        assert invoke("config", "nope", "1").exit_code == 1


class TestTestAI:
    def test_refused_without_debug(self, invoke, mock_backend):
        result = invoke("test-ai")
        assert result.exit_code == 1
        assert "debug mode" in result.output
        assert mock_backend.enhance_calls == []

    def test_runs_in_debug(self, invoke, mock_backend):
        save_config(SaneConfig(state_path=invoke.state, debug=True))

        with patch("sane.cli.enable_debug_mode") as debug_mode:
            result = invoke("test-ai")

        debug_mode.assert_called_once()

        assert result.exit_code == 0, result.output
        assert "Provider:  mock" in result.output
        assert "Tags:      mock-tag" in result.output


class TestWatch:
    def test_dispatches_changes_until_interrupted(self, invoke, vault, mock_backend):
        save_config(SaneConfig(state_path=invoke.state, trigger="immediate"))
        sleeps = []

        def fake_sleep(seconds):
            sleeps.append(seconds)
            if len(sleeps) == 1:
                (vault.root / "new.md").write_text("Fresh note")
                return
            raise KeyboardInterrupt

        with patch("sane.cli.time.sleep", side_effect=fake_sleep):
            result = invoke("watch", "--interval", "0.5")

        assert result.exit_code == 0, result.output
        assert sleeps == [0.5, 0.5]
        assert mock_backend.embed_calls == ["Fresh note"]
        assert "Stopping" in result.output
