"""
tests/unit/test_config.py — Config Loading and Validation Tests

Covers:
  - Packaged defaults load cleanly
  - Field validators: provider, log level, thresholds, operation types, budgets
  - validate_all() raises ConfigError with numbered list
  - validate_all() catches missing API keys (primary and fallback)
  - validate_all() catches an override that cannot pass the gate
  - DATABASE_URL env var beats config.yaml
  - SQLPILOT_CONFIG env var and explicit config_path priority
"""

from __future__ import annotations

import textwrap

import pytest
from pydantic import ValidationError


# ── Helpers ───────────────────────────────────────────────────────────────────

def _make_settings(**overrides):
    """Build a Settings object from keyword overrides (no YAML file needed)."""
    from sqlpilot.config.settings import Settings
    return Settings(**overrides)


def _write_config(tmp_path, body: str):
    path = tmp_path / "config.yaml"
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return path


# ── Sub-model validators ──────────────────────────────────────────────────────

class TestFieldValidators:
    def test_defaults(self):
        s = _make_settings()
        assert s.agent.max_steps == 10
        assert s.agent.default_roles == ["readonly"]
        assert s.safety.confidence_threshold == 0.95
        assert s.safety.override_confidence == 0.96
        assert s.database.url.startswith("sqlite+aiosqlite")

    def test_unknown_provider_rejected(self):
        with pytest.raises(ValidationError):
            _make_settings(llm={"default_provider": "anthropic"})

    def test_invalid_log_level_rejected(self):
        with pytest.raises(ValidationError):
            _make_settings(logging={"level": "LOUD"})

    def test_log_level_normalised(self):
        assert _make_settings(logging={"level": "debug"}).log_level == "DEBUG"

    def test_threshold_outside_unit_interval(self):
        with pytest.raises(ValidationError):
            _make_settings(safety={"confidence_threshold": 1.5})

    def test_unknown_operation_type(self):
        with pytest.raises(ValidationError):
            _make_settings(safety={"require_approval_for": ["nuke"]})

    def test_operation_types_lowercased(self):
        s = _make_settings(safety={"require_approval_for": ["DDL"]})
        assert s.safety.require_approval_for == ["ddl"]

    def test_zero_budget_rejected(self):
        with pytest.raises(ValidationError):
            _make_settings(agent={"max_steps": 0})


# ── validate_all ──────────────────────────────────────────────────────────────

class TestValidateAll:
    def test_missing_openai_key(self):
        from sqlpilot.config.settings import ConfigError
        with pytest.raises(ConfigError) as exc_info:
            _make_settings().validate_all()
        assert "OPENAI_API_KEY" in str(exc_info.value)
        assert "1." in str(exc_info.value)

    def test_key_present_passes(self):
        _make_settings(OPENAI_API_KEY="sk-test").validate_all()

    def test_ollama_needs_no_key(self):
        _make_settings(llm={"default_provider": "ollama"}).validate_all()

    def test_custom_base_url_needs_no_key(self):
        _make_settings(llm={"base_url": "http://localhost:8000/v1"}).validate_all()

    def test_fallback_key_missing(self):
        from sqlpilot.config.settings import ConfigError
        s = _make_settings(OPENAI_API_KEY="sk-test", llm={"fallback_providers": ["groq"]})
        with pytest.raises(ConfigError, match="GROQ_API_KEY"):
            s.validate_all()

    def test_override_must_exceed_threshold(self):
        from sqlpilot.config.settings import ConfigError
        s = _make_settings(
            OPENAI_API_KEY="sk-test",
            safety={"confidence_threshold": 0.97, "override_confidence": 0.96},
        )
        with pytest.raises(ConfigError, match="override_confidence"):
            s.validate_all()

    def test_all_problems_reported_together(self):
        from sqlpilot.config.settings import ConfigError
        s = _make_settings(
            llm={"fallback_providers": ["groq"]},
            safety={"confidence_threshold": 0.99, "override_confidence": 0.5},
        )
        with pytest.raises(ConfigError) as exc_info:
            s.validate_all()
        message = str(exc_info.value)
        assert "1." in message and "2." in message and "3." in message


# ── Loading ───────────────────────────────────────────────────────────────────

class TestLoadSettings:
    def test_packaged_defaults(self, tmp_path, monkeypatch):
        from sqlpilot.config.settings import load_settings
        monkeypatch.chdir(tmp_path)
        s = load_settings()
        assert s.agent.name == "SQLPilot"
        assert s.llm.retry.max_attempts == 3

    def test_explicit_path(self, tmp_path):
        from sqlpilot.config.settings import load_settings
        path = _write_config(tmp_path, """
            agent:
              max_steps: 4
            safety:
              require_approval_for: [write]
            unknown_section:
              ignored: true
        """)
        s = load_settings(path)
        assert s.agent.max_steps == 4
        assert s.safety.require_approval_for == ["write"]

    def test_env_var_path(self, tmp_path, monkeypatch):
        from sqlpilot.config.settings import load_settings
        path = _write_config(tmp_path, "agent:\n  max_steps: 7\n")
        monkeypatch.setenv("SQLPILOT_CONFIG", str(path))
        assert load_settings().agent.max_steps == 7

    def test_explicit_path_beats_env_var(self, tmp_path, monkeypatch):
        from sqlpilot.config.settings import load_settings
        env_path = _write_config(tmp_path, "agent:\n  max_steps: 7\n")
        other = tmp_path / "other.yaml"
        other.write_text("agent:\n  max_steps: 2\n", encoding="utf-8")
        monkeypatch.setenv("SQLPILOT_CONFIG", str(env_path))
        assert load_settings(other).agent.max_steps == 2

    def test_database_url_env_wins(self, tmp_path, monkeypatch):
        from sqlpilot.config.settings import load_settings
        path = _write_config(tmp_path, "database:\n  url: sqlite+aiosqlite:///./a.db\n")
        monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///./b.db")
        assert load_settings(path).effective_database_url == "sqlite+aiosqlite:///./b.db"

    def test_api_key_from_env(self, monkeypatch):
        monkeypatch.setenv("GROQ_API_KEY", "gsk-env")
        assert _make_settings().api_key_for("groq") == "gsk-env"
        assert _make_settings().api_key_for("ollama") is None

    def test_get_settings_returns_loaded_instance(self, tmp_path):
        from sqlpilot.config.settings import get_settings, load_settings
        loaded = load_settings(_write_config(tmp_path, "agent:\n  max_steps: 3\n"))
        assert get_settings() is loaded
