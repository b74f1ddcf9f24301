"""
brain/__init__.py — SQLPilot LLM Brain
"""

from __future__ import annotations

from typing import Optional

from sqlpilot.brain.llm_client import (
    BaseLLMClient,
    ResilientLLMClient,
    LLMConnectionError,
    LLMContextError,
    LLMError,
    LLMInvalidRequestError,
    LLMRateLimitError,
)
from sqlpilot.brain.types import (
    FinishReason,
    LLMConfig,
    LLMResponse,
    Message,
    Provider,
    Role,
    TokenUsage,
)
from sqlpilot.brain.reasoning import (
    REASONING_ERRORS,
    LLMReasoningPort,
    ReasoningPort,
    parse_json_object,
    strip_reasoning_trace,
)
from sqlpilot.observability.logger import get_logger

log = get_logger(__name__)

__all__ = [
    "LLMClientFactory",
    "BaseLLMClient",
    "ResilientLLMClient",
    "LLMError",
    "LLMConnectionError",
    "LLMRateLimitError",
    "LLMContextError",
    "LLMInvalidRequestError",
    "Message",
    "LLMConfig",
    "LLMResponse",
    "TokenUsage",
    "Role",
    "Provider",
    "FinishReason",
    "ReasoningPort",
    "LLMReasoningPort",
    "REASONING_ERRORS",
    "parse_json_object",
    "strip_reasoning_trace",
]

# Default models per provider
_DEFAULT_MODELS: dict[str, str] = {
    "openai":      "gpt-4o",
    "openrouter":  "openai/gpt-4o",
    "groq":        "llama-3.3-70b-versatile",
    "ollama":      "llama3.1",
}

_DEFAULT_BASE_URLS: dict[str, str] = {
    "openrouter": "https://openrouter.ai/api/v1",
    "groq":       "https://api.groq.com/openai/v1",
}


class LLMClientFactory:

    @staticmethod
    def create(
        provider: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> BaseLLMClient:

        from sqlpilot.brain.openai_client import OpenAIClient

        provider = provider.lower().strip()

        if provider == "openai":
            if not api_key and not base_url:
                raise LLMConnectionError("OPENAI_API_KEY is required", provider="openai")
            return OpenAIClient(api_key=api_key, base_url=base_url)

        elif provider in ("openrouter", "groq"):
            if not api_key:
                raise LLMConnectionError(
                    f"{provider.upper()}_API_KEY is required", provider=provider
                )
            return OpenAIClient(
                api_key=api_key,
                base_url=base_url or _DEFAULT_BASE_URLS[provider],
                provider=Provider(provider),
            )

        elif provider == "ollama":
            return OpenAIClient(
                api_key=None,
                base_url=base_url or "http://localhost:11434/v1",
                provider=Provider.OLLAMA,
            )

        else:
            raise ValueError(
                f"Unknown LLM provider: '{provider}'. "
                f"Valid options: openai, openrouter, groq, ollama"
            )

    @staticmethod
    def from_settings(settings) -> BaseLLMClient:
        """
        Create an LLM client from Settings, wrapped in ResilientLLMClient.

        Reads settings.llm.retry (max_attempts, base_delay, max_delay) and
        settings.llm.fallback_providers to configure retry behaviour and the
        optional failover chain.

        Example config.yaml:
            llm:
              default_provider: openai
              retry:
                max_attempts: 3
                base_delay: 1.0
                max_delay: 30.0
              fallback_providers:
                - ollama      # tried if openai exhausts retries
        """
        provider = settings.default_llm_provider
        base_url_map = {
            "ollama": settings.ollama_base_url.rstrip("/") + "/v1",
        }

        primary = LLMClientFactory.create(
            provider=provider,
            api_key=settings.api_key_for(provider),
            base_url=settings.llm.base_url or base_url_map.get(provider),
        )

        fallbacks: list[BaseLLMClient] = []
        for fp in settings.llm.fallback_providers:
            fp = fp.lower().strip()
            if fp == provider:
                continue
            try:
                fallbacks.append(LLMClientFactory.create(
                    provider=fp,
                    api_key=settings.api_key_for(fp),
                    base_url=base_url_map.get(fp),
                ))
            except (LLMError, ValueError) as e:
                log.warning("llm.fallback_skipped", provider=fp, error=str(e))

        retry_cfg = settings.llm.retry
        return ResilientLLMClient(
            primary=primary,
            fallbacks=fallbacks,
            max_attempts=retry_cfg.max_attempts,
            base_delay=retry_cfg.base_delay,
            max_delay=retry_cfg.max_delay,
        )

    @staticmethod
    def default_model(provider: str) -> str:
        return _DEFAULT_MODELS.get(provider.lower(), "gpt-4o")
