"""
Configuration management for sane.

The configuration is stored as a TOML file in the state directory.
It specifies which AI provider to use, its credentials, when notes are
processed, which front-matter fields are written, and the daily budget.
"""

import os
import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Optional

# tomli_w for writing TOML (tomllib is read-only)
try:
    import tomli_w
except ImportError:
    tomli_w = None  # type: ignore


CONFIG_FILENAME = "sane.toml"
CONFIG_VERSION = 1
STATE_DIRNAME = ".sane"

PROVIDERS = ("openai", "google", "grok", "azure", "local")
TRIGGERS = ("immediate", "delayed", "scheduled", "manual")

DEFAULT_LOCAL_ENDPOINT = "http://localhost:11434"

DEFAULT_LLM_MODELS = {
    "openai": "gpt-4o-mini",
    "google": "gemini-2.0-flash",
    "grok": "grok-3-latest",
    "azure": "gpt-4o-mini",
    "local": "llama3",
}

DEFAULT_EMBEDDING_MODELS = {
    "openai": "text-embedding-3-small",
    "google": "embedding-001",
    "local": "nomic-embed-text",
}

# credential field -> environment variables checked in priority order
CREDENTIAL_ENV = {
    "openai_api_key": ("SANE_OPENAI_API_KEY", "OPENAI_API_KEY"),
    "google_api_key": ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    "grok_api_key": ("XAI_API_KEY", "GROK_API_KEY"),
    "azure_api_key": ("AZURE_OPENAI_API_KEY",),
    "azure_endpoint": ("AZURE_OPENAI_ENDPOINT",),
    "local_endpoint": ("OLLAMA_HOST",),
}

# TOML section -> field names stored in it
SECTIONS = {
    "provider": ("provider", "llm_model", "embedding_model"),
    "credentials": tuple(CREDENTIAL_ENV),
    "processing": (
        "relevant_notes_count", "trigger", "delay_minutes",
        "schedule_hour", "target_folder",
    ),
    "budget": ("daily_budget", "cost_tracking"),
    "features": (
        "enable_tags", "enable_keywords", "enable_links", "enable_summary",
        "enable_creation_timestamp", "enable_modification_timestamp",
    ),
    "generation": ("max_tokens", "temperature"),
    "advanced": ("debug",),
}

# TOML key names differ from field names only for the [provider] name
_TOML_KEYS = {"provider": "name"}


@dataclass
class SaneConfig:
    """Complete configuration snapshot."""
    state_path: Path
    version: int = CONFIG_VERSION

    # AI provider
    provider: str = "openai"
    llm_model: str = ""
    embedding_model: str = ""

    # Credentials / endpoints
    openai_api_key: str = ""
    google_api_key: str = ""
    grok_api_key: str = ""
    azure_api_key: str = ""
    azure_endpoint: str = ""
    local_endpoint: str = DEFAULT_LOCAL_ENDPOINT

    # Processing
    relevant_notes_count: int = 3
    trigger: str = "delayed"
    delay_minutes: float = 10
    schedule_hour: int = 2
    target_folder: str = ""

    # Cost management
    daily_budget: float = 1.0
    cost_tracking: bool = True

    # Front-matter fields
    enable_tags: bool = True
    enable_keywords: bool = True
    enable_links: bool = True
    enable_summary: bool = True
    enable_creation_timestamp: bool = True
    enable_modification_timestamp: bool = True

    # Generation
    max_tokens: int = 2000
    temperature: float = 0.3

    debug: bool = False

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.state_path / CONFIG_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()

    @property
    def effective_llm_model(self) -> str:
        return self.llm_model or DEFAULT_LLM_MODELS.get(self.provider, "gpt-4o-mini")

    @property
    def effective_embedding_model(self) -> str:
        return self.embedding_model or DEFAULT_EMBEDDING_MODELS.get(
            self.provider, "text-embedding-3-small"
        )

    def with_changes(self, **changes: Any) -> "SaneConfig":
        """Return a validated copy with some fields replaced."""
        updated = replace(self, **changes)
        validate_config(updated)
        return updated

    def masked(self) -> dict[str, Any]:
        """Config as a flat dict with credentials masked, for display."""
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name.endswith("_api_key") and value:
                value = value[:4] + "..." if len(value) > 8 else "***"
            elif isinstance(value, Path):
                value = str(value)
            out[f.name] = value
        return out


def validate_config(config: SaneConfig) -> None:
    """
    Check option values.

    Raises:
        ValueError: If any option is out of range or unknown
    """
    if config.provider not in PROVIDERS:
        raise ValueError(
            f"Unknown provider: '{config.provider}'. Available: {', '.join(PROVIDERS)}"
        )
    if config.trigger not in TRIGGERS:
        raise ValueError(
            f"Unknown processing trigger: '{config.trigger}'. Available: {', '.join(TRIGGERS)}"
        )
    if not 0 <= config.schedule_hour <= 23:
        raise ValueError(f"schedule_hour must be 0-23 (got {config.schedule_hour})")
    if config.delay_minutes <= 0:
        raise ValueError(f"delay_minutes must be positive (got {config.delay_minutes})")
    if config.daily_budget < 0:
        raise ValueError(f"daily_budget must not be negative (got {config.daily_budget})")
    if config.relevant_notes_count < 0:
        raise ValueError(
            f"relevant_notes_count must not be negative (got {config.relevant_notes_count})"
        )


def resolve_state_path(vault_path: Optional[Path] = None, explicit: Optional[Path] = None) -> Path:
    """
    Resolve the state directory.

    Priority:
    1. Explicit path (--store)
    2. SANE_STORE_PATH environment variable
    3. <vault>/.sane
    4. ~/.sane
    """
    if explicit is not None:
        return Path(explicit).expanduser()
    env_path = os.environ.get("SANE_STORE_PATH")
    if env_path:
        return Path(env_path).expanduser()
    if vault_path is not None:
        return Path(vault_path) / STATE_DIRNAME
    return Path.home() / STATE_DIRNAME


def apply_env_credentials(config: SaneConfig) -> SaneConfig:
    """Fill blank credentials from the environment. File values take priority."""
    changes = {}
    for name, env_vars in CREDENTIAL_ENV.items():
        current = getattr(config, name)
        if current and not (name == "local_endpoint" and current == DEFAULT_LOCAL_ENDPOINT):
            continue
        for var in env_vars:
            value = os.environ.get(var)
            if value:
                changes[name] = value
                break
    return replace(config, **changes) if changes else config


def load_config(state_path: Path) -> SaneConfig:
    """
    Load configuration from a state directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = state_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    # Validate version
    version = data.get("sane", {}).get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    values: dict[str, Any] = {}
    for section, names in SECTIONS.items():
        section_data = data.get(section, {})
        for name in names:
            key = _TOML_KEYS.get(name, name)
            if key in section_data:
                values[name] = section_data[key]

    # Coerce TOML ints where floats are expected (budget = 1 → 1.0)
    for name in ("daily_budget", "temperature", "delay_minutes"):
        if name in values:
            values[name] = float(values[name])

    config = SaneConfig(state_path=state_path, version=version, **values)
    validate_config(config)
    return apply_env_credentials(config)


def _stored_value(config: SaneConfig, name: str) -> Any:
    value = getattr(config, name)
    env_vars = CREDENTIAL_ENV.get(name)
    if env_vars and value and any(os.environ.get(var) == value for var in env_vars):
        return DEFAULT_LOCAL_ENDPOINT if name == "local_endpoint" else ""
    return value


def save_config(config: SaneConfig) -> None:
    """
    Save configuration to the state directory.

    Creates the directory if it doesn't exist. Credentials that were
    picked up from the environment are not written back to the file.
    """
    if tomli_w is None:
        raise RuntimeError("tomli_w is required to save config. Install with: pip install tomli-w")

    config.state_path.mkdir(parents=True, exist_ok=True)

    data: dict[str, dict] = {"sane": {"version": config.version}}
    for section, names in SECTIONS.items():
        data[section] = {
            _TOML_KEYS.get(name, name): _stored_value(config, name) for name in names
        }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(state_path: Path) -> SaneConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = state_path / CONFIG_FILENAME

    if config_path.exists():
        return load_config(state_path)
    config = SaneConfig(state_path=state_path)
    save_config(config)
    return apply_env_credentials(config)
