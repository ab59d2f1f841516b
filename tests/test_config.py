"""Tests for configuration loading, saving and validation."""

import tomllib
from pathlib import Path

import pytest

from sane.config import (
    CONFIG_FILENAME,
    DEFAULT_LOCAL_ENDPOINT,
    SaneConfig,
    load_config,
    load_or_create_config,
    resolve_state_path,
    save_config,
    validate_config,
)

_CREDENTIAL_VARS = (
    "SANE_OPENAI_API_KEY", "OPENAI_API_KEY", "GEMINI_API_KEY", "GOOGLE_API_KEY",
    "XAI_API_KEY", "GROK_API_KEY", "AZURE_OPENAI_API_KEY", "AZURE_OPENAI_ENDPOINT",
    "OLLAMA_HOST", "SANE_STORE_PATH",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in _CREDENTIAL_VARS:
        monkeypatch.delenv(var, raising=False)


class TestDefaults:
    def test_defaults(self, tmp_path):
        config = SaneConfig(state_path=tmp_path)
        assert config.provider == "openai"
        assert config.trigger == "delayed"
        assert config.relevant_notes_count == 3
        assert config.delay_minutes == 10
        assert config.schedule_hour == 2
        assert config.daily_budget == 1.0
        assert config.max_tokens == 2000
        assert config.temperature == 0.3
        assert config.local_endpoint == DEFAULT_LOCAL_ENDPOINT
        assert config.debug is False

    def test_effective_models(self, tmp_path):
        assert SaneConfig(state_path=tmp_path, provider="local").effective_llm_model == "llama3"
        assert SaneConfig(
            state_path=tmp_path, provider="local"
        ).effective_embedding_model == "nomic-embed-text"
        assert SaneConfig(
            state_path=tmp_path, provider="openai", llm_model="gpt-4.1"
        ).effective_llm_model == "gpt-4.1"


class TestValidation:
    @pytest.mark.parametrize("changes,message", [
        ({"provider": "anthropic"}, "Unknown provider"),
        ({"trigger": "hourly"}, "Unknown processing trigger"),
        ({"schedule_hour": 24}, "schedule_hour"),
        ({"schedule_hour": -1}, "schedule_hour"),
        ({"delay_minutes": 0}, "delay_minutes"),
        ({"daily_budget": -0.01}, "daily_budget"),
        ({"relevant_notes_count": -1}, "relevant_notes_count"),
    ])
    def test_invalid_values(self, tmp_path, changes, message):
        with pytest.raises(ValueError, match=message):
            SaneConfig(state_path=tmp_path).with_changes(**changes)

    def test_valid_config_passes(self, tmp_path):
        validate_config(SaneConfig(state_path=tmp_path, trigger="scheduled", schedule_hour=23))


class TestLoadSave:
    def test_round_trip(self, tmp_path):
        config = SaneConfig(
            state_path=tmp_path,
            provider="grok",
            grok_api_key="xai-secret",
            trigger="scheduled",
            schedule_hour=5,
            target_folder="Projects",
            enable_summary=False,
            daily_budget=2.5,
        )
        save_config(config)

        loaded = load_config(tmp_path)

        assert loaded.provider == "grok"
        assert loaded.grok_api_key == "xai-secret"
        assert loaded.trigger == "scheduled"
        assert loaded.schedule_hour == 5
        assert loaded.target_folder == "Projects"
        assert loaded.enable_summary is False
        assert loaded.daily_budget == 2.5

    def test_file_layout(self, tmp_path):
        save_config(SaneConfig(state_path=tmp_path, provider="azure"))

        with open(tmp_path / CONFIG_FILENAME, "rb") as f:
            data = tomllib.load(f)

        assert data["sane"]["version"] == 1
        assert data["provider"]["name"] == "azure"
        assert "daily_budget" in data["budget"]
        assert "enable_tags" in data["features"]
        assert "debug" in data["advanced"]

    def test_integer_budget_becomes_float(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("[budget]\ndaily_budget = 3\n")
        config = load_config(tmp_path)
        assert config.daily_budget == 3.0
        assert isinstance(config.daily_budget, float)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path)

    def test_invalid_file_values(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text('[processing]\ntrigger = "sometimes"\n')
        with pytest.raises(ValueError, match="trigger"):
            load_config(tmp_path)

    def test_newer_version_rejected(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("[sane]\nversion = 99\n")
        with pytest.raises(ValueError, match="newer"):
            load_config(tmp_path)

    def test_load_or_create(self, tmp_path):
        state = tmp_path / "new-state"
        config = load_or_create_config(state)
        assert (state / CONFIG_FILENAME).exists()
        assert config.provider == "openai"


class TestEnvironment:
    def test_env_credentials_fill_blanks(self, tmp_path, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        monkeypatch.setenv("OLLAMA_HOST", "gpu-box:11434")
        save_config(SaneConfig(state_path=tmp_path))

        config = load_config(tmp_path)

        assert config.openai_api_key == "sk-env"
        assert config.local_endpoint == "gpu-box:11434"

    def test_file_value_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv("XAI_API_KEY", "from-env")
        save_config(SaneConfig(state_path=tmp_path, grok_api_key="from-file"))

        assert load_config(tmp_path).grok_api_key == "from-file"

    def test_env_credentials_not_written_back(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "g-env")
        config = load_or_create_config(tmp_path)
        assert config.google_api_key == "g-env"

        save_config(config)

        with open(tmp_path / CONFIG_FILENAME, "rb") as f:
            data = tomllib.load(f)
        assert data["credentials"]["google_api_key"] == ""

    def test_masked(self, tmp_path):
        shown = SaneConfig(state_path=tmp_path, openai_api_key="sk-1234567890").masked()
        assert shown["openai_api_key"] == "sk-1..."
        assert shown["state_path"] == str(tmp_path)


class TestStatePath:
    def test_explicit_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SANE_STORE_PATH", str(tmp_path / "env"))
        assert resolve_state_path(tmp_path / "vault", tmp_path / "x") == tmp_path / "x"

    def test_env_before_vault(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SANE_STORE_PATH", str(tmp_path / "env"))
        assert resolve_state_path(tmp_path / "vault") == tmp_path / "env"

    def test_vault_default(self, tmp_path):
        assert resolve_state_path(tmp_path / "vault") == tmp_path / "vault" / ".sane"

    def test_home_fallback(self):
        assert resolve_state_path() == Path.home() / ".sane"
