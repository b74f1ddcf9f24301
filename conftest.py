"""
Root conftest — isolate environment variables so that Settings tests are
not affected by real keys or database URLs in the developer's or CI
environment.
"""
import pytest

_ISOLATED_ENV_VARS = [
    "OPENAI_API_KEY",
    "OPENROUTER_API_KEY",
    "GROQ_API_KEY",
    "OLLAMA_BASE_URL",
    "DATABASE_URL",
    "SQLPILOT_CONFIG",
]


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch):
    """Remove key and URL env vars for every test so Settings() behaves
    as if nothing is set unless the test explicitly provides it.
    Also disables .env file loading so local developer .env files don't
    leak real credentials into tests."""
    for var in _ISOLATED_ENV_VARS:
        monkeypatch.delenv(var, raising=False)

    import sqlpilot.config.settings as settings_module
    from pydantic_settings import SettingsConfigDict
    patched_config = SettingsConfigDict(
        env_file=None,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )
    monkeypatch.setattr(settings_module.Settings, "model_config", patched_config)
