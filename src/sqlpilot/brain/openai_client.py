"""
brain/openai_client.py — OpenAI LLM Client

Supports the official OpenAI endpoint and any OpenAI-compatible endpoint
(OpenRouter, Groq, Ollama's /v1 API, LiteLLM proxies, local vLLM).
Handles JSON mode, token counting and error normalisation.
"""

from __future__ import annotations

from typing import Optional

import openai
from openai import AsyncOpenAI

from sqlpilot.brain.llm_client import (
    BaseLLMClient,
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
    TokenUsage,
)
from sqlpilot.observability.logger import get_logger

log = get_logger(__name__)


class OpenAIClient(BaseLLMClient):
    """
    OpenAI chat-completions client. ``provider`` only labels responses and
    errors; the wire protocol is the same for every compatible endpoint.
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: Optional[str] = None,     # None = official OpenAI endpoint
        organization: Optional[str] = None,
        provider: Provider = Provider.OPENAI,
    ):
        super().__init__(api_key=api_key, base_url=base_url)
        self._provider = provider
        self._client = AsyncOpenAI(
            # local endpoints ignore the key but the SDK insists on one
            api_key=api_key or "not-needed",
            base_url=base_url,
            organization=organization,
        )

    # ── Public API ────────────────────────────────────────────────────────────

    async def generate(self, messages: list[Message], config: LLMConfig) -> LLMResponse:
        oai_messages = self._to_provider_messages(messages)
        name = self._provider.value

        log.debug(
            "openai.generate.start",
            provider=name,
            model=config.model,
            message_count=len(messages),
            json_mode=config.json_mode,
        )

        try:
            response = await self._client.chat.completions.create(
                model=config.model,
                messages=oai_messages,
                response_format=(
                    {"type": "json_object"} if config.json_mode else openai.NOT_GIVEN
                ),
                temperature=config.temperature,
                max_tokens=config.max_tokens,
                top_p=config.top_p,
                timeout=config.timeout_seconds,
            )
        except openai.AuthenticationError as e:
            raise LLMConnectionError(str(e), provider=name, status_code=401) from e
        except openai.RateLimitError as e:
            raise LLMRateLimitError(str(e), provider=name) from e
        except openai.BadRequestError as e:
            if "context" in str(e).lower() or "too long" in str(e).lower():
                raise LLMContextError(str(e), provider=name) from e
            raise LLMInvalidRequestError(str(e), provider=name) from e
        except (openai.APIConnectionError, openai.InternalServerError) as e:
            raise LLMConnectionError(str(e), provider=name) from e
        except openai.APIError as e:
            raise LLMError(str(e), provider=name, status_code=getattr(e, "status_code", None)) from e

        result = self._from_provider_response(response)
        log.debug(
            "openai.generate.complete",
            provider=name,
            model=result.model,
            input_tokens=result.usage.input_tokens,
            output_tokens=result.usage.output_tokens,
            finish_reason=result.finish_reason,
        )
        return result

    async def health_check(self) -> bool:
        try:
            await self._client.models.list()
            return True
        except (openai.APIError, OSError) as e:
            log.warning("openai.health_check.failed", error=str(e), error_type=type(e).__name__)
            return False

    def __repr__(self) -> str:
        return f"<OpenAIClient provider={self._provider.value}>"

    # ── Private helpers ───────────────────────────────────────────────────────

    def _to_provider_messages(self, messages: list[Message]) -> list[dict]:
        """Translate internal Message list → OpenAI chat message format."""
        return [{"role": m.role.value, "content": m.content or ""} for m in messages]

    def _from_provider_response(self, response) -> LLMResponse:
        """Translate OpenAI ChatCompletion → internal LLMResponse."""
        choice = response.choices[0]

        raw_reason = choice.finish_reason or "stop"
        finish_reason = FinishReason.LENGTH if raw_reason == "length" else FinishReason.STOP

        usage = TokenUsage(
            input_tokens=response.usage.prompt_tokens if response.usage else 0,
            output_tokens=response.usage.completion_tokens if response.usage else 0,
        )

        return LLMResponse(
            content=choice.message.content,
            finish_reason=finish_reason,
            usage=usage,
            model=response.model or "",
            provider=self._provider,
        )
