"""
brain/reasoning.py — Reasoning Port

The agent components never talk to an LLM client directly. They depend on
a single-method capability:

    await reasoning.complete(prompt, json_mode=True) -> str

LLMReasoningPort adapts any BaseLLMClient to that shape. Tests substitute a
scripted object that returns canned JSON.

Some models (DeepSeek-R1, QwQ) prefix their answer with a
<think>...</think> trace; it is stripped before the text is returned.
"""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any, Protocol, runtime_checkable

from sqlpilot.brain.llm_client import BaseLLMClient, LLMError
from sqlpilot.brain.types import LLMConfig, Message
from sqlpilot.exceptions import ReasoningError, ReasoningParseError

_THINK_RE = re.compile(r"<think>.*?</think>", re.IGNORECASE | re.DOTALL)

# Faults a component absorbs with its own fallback. Anything else is a bug
# and reaches the orchestrator.
REASONING_ERRORS: tuple[type[Exception], ...] = (
    LLMError,
    ReasoningError,
    asyncio.TimeoutError,
    OSError,
)


@runtime_checkable
class ReasoningPort(Protocol):
    async def complete(self, prompt: str, *, json_mode: bool = False) -> str:
        ...


class LLMReasoningPort:
    """Reasoning Port backed by an LLM client (usually a ResilientLLMClient)."""

    def __init__(
        self,
        client: BaseLLMClient,
        model: str,
        temperature: float = 0.0,
        max_tokens: int = 4096,
        timeout_seconds: float = 60.0,
    ):
        self._client = client
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._timeout = timeout_seconds

    async def complete(self, prompt: str, *, json_mode: bool = False) -> str:
        config = LLMConfig(
            model=self._model,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
            timeout_seconds=self._timeout,
            json_mode=json_mode,
        )
        response = await self._client.generate([Message.user(prompt)], config)
        return strip_reasoning_trace(response.text)

    def __repr__(self) -> str:
        return f"<LLMReasoningPort model={self._model} client={self._client!r}>"


# ─────────────────────────────────────────────────────────────────────────────
# Text helpers
# ─────────────────────────────────────────────────────────────────────────────


def strip_reasoning_trace(text: str) -> str:
    return _THINK_RE.sub("", text or "").strip()


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        lines = text.splitlines()
        end = len(lines) - 1 if lines[-1].strip() == "```" else len(lines)
        text = "\n".join(lines[1:end])
    return text.strip()


def parse_json_object(text: str) -> dict[str, Any]:
    """
    Extract the outermost JSON object from a model response.

    Handles reasoning traces, markdown fences and chatter around the object.
    Raises ReasoningParseError when no object can be decoded.
    """
    cleaned = _strip_fences(strip_reasoning_trace(text))
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end <= start:
        raise ReasoningParseError("no JSON object in response", raw=text)
    try:
        return json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError as e:
        raise ReasoningParseError(f"invalid JSON: {e}", raw=text) from e
