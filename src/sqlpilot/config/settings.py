"""
config/settings.py — SQLPilot Runtime Settings

Merges config.yaml (defaults/structure) with .env (secrets).
Pydantic-powered — all fields are validated and typed.

  - AgentConfig bounds the loop: step budget, history window, row cap
  - SafetyConfig holds the Policy Gate threshold and the reflector override
  - validate_all() performs cross-field startup validation and raises
    ConfigError with a human-readable message listing every problem found
  - load_settings() respects SQLPILOT_CONFIG env var as a fallback
    when no explicit config_path argument is given
"""

from __future__ import annotations

import os
import threading as _threading
from pathlib import Path
from typing import Any, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ─────────────────────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────────────────────

class ConfigError(Exception):
    """Raised by validate_all() when one or more config problems are found."""


_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_KNOWN_PROVIDERS = {"openai", "openrouter", "groq", "ollama"}
_VALID_OPERATION_TYPES = {"read", "write", "ddl", "schema"}


# ─────────────────────────────────────────────────────────────────────────────
# Sub-models
# ─────────────────────────────────────────────────────────────────────────────

class AgentConfig(BaseModel):
    name: str = "SQLPilot"
    max_steps: int = 10
    history_window: int = 3
    history_row_cap: int = 5
    max_decision_attempts: int = 3
    default_roles: List[str] = Field(default_factory=lambda: ["readonly"])

    @field_validator("max_steps", "history_window", "history_row_cap", "max_decision_attempts")
    @classmethod
    def _positive(cls, v: int, info) -> int:
        if v < 1:
            raise ValueError(f"agent.{info.field_name} must be >= 1")
        return v


class SafetyConfig(BaseModel):
    confidence_threshold: float = 0.95
    override_confidence: float = 0.96
    require_approval_for: List[str] = Field(default_factory=list)

    @field_validator("confidence_threshold", "override_confidence")
    @classmethod
    def _unit_interval(cls, v: float, info) -> float:
        if not (0.0 <= v <= 1.0):
            raise ValueError(f"safety.{info.field_name} must be between 0.0 and 1.0")
        return v

    @field_validator("require_approval_for")
    @classmethod
    def _valid_operation_types(cls, v: list[str]) -> list[str]:
        lowered = [x.lower() for x in v]
        bad = [x for x in lowered if x not in _VALID_OPERATION_TYPES]
        if bad:
            raise ValueError(
                f"safety.require_approval_for has unknown operation types: {bad}. "
                f"Valid values: {sorted(_VALID_OPERATION_TYPES)}"
            )
        return lowered


class LLMRetryConfig(BaseModel):
    """Exponential backoff config for transient LLM errors."""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0


class LLMConfig(BaseModel):
    default_provider: str = "openai"
    default_model: str = "gpt-4o"
    base_url: Optional[str] = None
    temperature: float = 0.0
    max_tokens: int = 4096
    timeout_seconds: float = 60.0
    retry: LLMRetryConfig = Field(default_factory=LLMRetryConfig)
    fallback_providers: List[str] = Field(default_factory=list)

    @field_validator("default_provider")
    @classmethod
    def _known_provider(cls, v: str) -> str:
        if v not in _KNOWN_PROVIDERS:
            raise ValueError(
                f"llm.default_provider '{v}' is not supported. "
                f"Supported: {sorted(_KNOWN_PROVIDERS)}"
            )
        return v

    @field_validator("temperature")
    @classmethod
    def _valid_temperature(cls, v: float) -> float:
        if not (0.0 <= v <= 2.0):
            raise ValueError("llm.temperature must be between 0.0 and 2.0")
        return v

    @field_validator("max_tokens")
    @classmethod
    def _positive_tokens(cls, v: int) -> int:
        if v < 1:
            raise ValueError("llm.max_tokens must be >= 1")
        return v


class DatabaseConfig(BaseModel):
    url: str = "sqlite+aiosqlite:///./data/sqlpilot.db"
    pool_size: int = 5
    echo: bool = False

    @field_validator("pool_size")
    @classmethod
    def _positive_pool(cls, v: int) -> int:
        if v < 1:
            raise ValueError("database.pool_size must be >= 1")
        return v


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_dir: str = "./data/logs"
    max_file_size_mb: int = 100
    backup_count: int = 5
    console_output: bool = False
    json_format: bool = True

    @field_validator("level")
    @classmethod
    def _valid_log_level(cls, v: str) -> str:
        upper = v.upper()
        if upper not in _VALID_LOG_LEVELS:
            raise ValueError(
                f"logging.level '{v}' is not valid. "
                f"Must be one of: {sorted(_VALID_LOG_LEVELS)}"
            )
        return upper


# ─────────────────────────────────────────────────────────────────────────────
# Root Settings
# ─────────────────────────────────────────────────────────────────────────────

class Settings(BaseSettings):
    """
    SQLPilot runtime settings.

    Priority (highest to lowest):
      1. Environment variables
      2. .env file
      3. config.yaml
      4. Field defaults
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    # -- Secrets from .env ---------------------------------------------------
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    openrouter_api_key: Optional[str] = Field(default=None, alias="OPENROUTER_API_KEY")
    groq_api_key: Optional[str] = Field(default=None, alias="GROQ_API_KEY")
    ollama_base_url: str = Field(default="http://localhost:11434", alias="OLLAMA_BASE_URL")
    database_url: Optional[str] = Field(default=None, alias="DATABASE_URL")

    # -- Structured config (from config.yaml) --------------------------------
    agent: AgentConfig = Field(default_factory=AgentConfig)
    safety: SafetyConfig = Field(default_factory=SafetyConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("agent", mode="before")
    @classmethod
    def _coerce_agent(cls, v: Any) -> Any:
        return AgentConfig(**v) if isinstance(v, dict) else v

    @field_validator("safety", mode="before")
    @classmethod
    def _coerce_safety(cls, v: Any) -> Any:
        return SafetyConfig(**v) if isinstance(v, dict) else v

    @field_validator("llm", mode="before")
    @classmethod
    def _coerce_llm(cls, v: Any) -> Any:
        return LLMConfig(**v) if isinstance(v, dict) else v

    @field_validator("database", mode="before")
    @classmethod
    def _coerce_database(cls, v: Any) -> Any:
        return DatabaseConfig(**v) if isinstance(v, dict) else v

    @field_validator("logging", mode="before")
    @classmethod
    def _coerce_logging(cls, v: Any) -> Any:
        return LoggingConfig(**v) if isinstance(v, dict) else v

    # -- Convenience properties ----------------------------------------------

    @property
    def default_llm_provider(self) -> str:
        return self.llm.default_provider

    @property
    def default_llm_model(self) -> str:
        return self.llm.default_model

    @property
    def effective_database_url(self) -> str:
        """DATABASE_URL from the environment wins over config.yaml."""
        return self.database_url or self.database.url

    @property
    def log_level(self) -> str:
        return self.logging.level.upper()

    @property
    def log_dir(self) -> Path:
        return Path(self.logging.log_dir)

    def api_key_for(self, provider: str) -> Optional[str]:
        return {
            "openai":     self.openai_api_key,
            "openrouter": self.openrouter_api_key,
            "groq":       self.groq_api_key,
            "ollama":     None,
        }.get(provider)

    def validate_all(self) -> None:
        """
        Full startup validation. Raises ConfigError listing every problem found.

        Pydantic field validators catch type/value errors at parse time; this
        method catches cross-field problems that Pydantic can't see.
        """
        errors: list[str] = []

        key_env = {
            "openai":     "OPENAI_API_KEY",
            "openrouter": "OPENROUTER_API_KEY",
            "groq":       "GROQ_API_KEY",
        }

        # ── LLM provider API key ─────────────────────────────────────────────
        provider = self.llm.default_provider
        if provider in key_env and not self.api_key_for(provider) and not self.llm.base_url:
            errors.append(
                f"LLM provider '{provider}' requires {key_env[provider]} to be set "
                f"in your .env file."
            )

        # ── Fallback providers also need their keys ──────────────────────────
        for fp in self.llm.fallback_providers:
            if fp not in _KNOWN_PROVIDERS:
                errors.append(f"llm.fallback_providers contains unknown provider '{fp}'.")
            elif fp in key_env and not self.api_key_for(fp):
                errors.append(
                    f"Fallback provider '{fp}' requires {key_env[fp]} but it "
                    f"is not set. Remove '{fp}' from llm.fallback_providers "
                    f"or add the key to .env."
                )

        # ── Override must sit above the gate threshold ───────────────────────
        if self.safety.override_confidence <= self.safety.confidence_threshold:
            errors.append(
                f"safety.override_confidence ({self.safety.override_confidence}) must be "
                f"greater than safety.confidence_threshold "
                f"({self.safety.confidence_threshold}); otherwise a fully satisfied "
                f"requirements checklist can never pass the Policy Gate."
            )

        if not self.effective_database_url.strip():
            errors.append("database.url must not be empty (or set DATABASE_URL).")

        if errors:
            numbered = "\n".join(f"  {i+1}. {e}" for i, e in enumerate(errors))
            raise ConfigError(
                f"\n\nSQLPilot startup failed — {len(errors)} configuration "
                f"problem(s) found:\n\n{numbered}\n\n"
                f"Fix the issues above in config/config.yaml or your .env file "
                f"and restart.\n"
            )


# ─────────────────────────────────────────────────────────────────────────────
# Loader + singleton
# ─────────────────────────────────────────────────────────────────────────────

_singleton: Optional[Settings] = None
_singleton_lock = _threading.Lock()

_KNOWN_SECTIONS = {"agent", "safety", "llm", "database", "logging"}
_PACKAGED_CONFIG = Path(__file__).with_name("config.yaml")


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _resolve_config_path(config_path: str | Path | None) -> Path:
    """
    Resolve the config file path with this priority:
      1. Explicit config_path argument (from --config CLI flag)
      2. SQLPILOT_CONFIG environment variable
      3. config/config.yaml in the working directory
      4. The config.yaml shipped next to this module
    """
    if config_path is not None:
        return Path(config_path)
    env_path = os.environ.get("SQLPILOT_CONFIG")
    if env_path:
        return Path(env_path)
    local = Path("config/config.yaml")
    if local.exists():
        return local
    return _PACKAGED_CONFIG


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings by merging config.yaml with environment variables."""
    global _singleton
    yaml_data = _load_yaml(_resolve_config_path(config_path))
    init_kwargs = {k: v for k, v in yaml_data.items() if k in _KNOWN_SECTIONS}

    instance = Settings(**init_kwargs)
    with _singleton_lock:
        _singleton = instance
    return instance


def get_settings() -> Settings:
    """
    Return the global Settings singleton, loading it from the default
    config path on first use.
    """
    global _singleton
    if _singleton is not None:
        return _singleton
    with _singleton_lock:
        if _singleton is None:
            yaml_data = _load_yaml(_resolve_config_path(None))
            _singleton = Settings(**{k: v for k, v in yaml_data.items() if k in _KNOWN_SECTIONS})
    return _singleton
