"""
LLM Client
==========

Completion provider clients used for chat turns.
Supports OpenAI (and OpenAI-compatible endpoints via base_url) and Claude
(Anthropic).

Every provider exception is wrapped in CompletionProviderError. There is no
client-side retry: providers enforce their own rate limits and a failure is
surfaced to the chat caller.
"""

import os
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, List, Dict, Any

from ..core.errors import CompletionProviderError

logger = logging.getLogger(__name__)


class LLMProvider(Enum):
    """Supported completion providers."""
    ANTHROPIC = "anthropic"
    OPENAI = "openai"


@dataclass
class CompletionResult:
    """Result of a completion call."""
    text: str
    tokens_used: int
    model: str
    provider: LLMProvider


class LLMClient(ABC):
    """Abstract completion client."""

    provider: LLMProvider

    @abstractmethod
    def complete(
        self,
        messages: List[Dict[str, str]],
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> CompletionResult:
        """
        Run a completion over an ordered list of {role, content} messages.

        Raises:
            CompletionProviderError: On any provider failure
        """


class OpenAIClient(LLMClient):
    """
    Client for OpenAI chat completions.

    `base_url` points the client at any OpenAI-compatible endpoint configured
    for a tenant.
    """

    provider = LLMProvider.OPENAI

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[Any] = None,
    ):
        # Support both OPENAI_API_KEY and GPT_API_KEY
        self.api_key = api_key or os.getenv("OPENAI_API_KEY") or os.getenv("GPT_API_KEY")
        self.base_url = base_url
        self._client = client

    def _get_client(self):
        if self._client is None:
            if not self.api_key:
                raise CompletionProviderError("OPENAI_API_KEY required", provider="openai")
            import openai
            kwargs = {"api_key": self.api_key}
            if self.base_url:
                kwargs["base_url"] = self.base_url
            self._client = openai.OpenAI(**kwargs)
        return self._client

    def complete(self, messages, model, temperature=0.7, max_tokens=2000) -> CompletionResult:
        client = self._get_client()
        try:
            response = client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except Exception as e:
            logger.error(f"OpenAI completion failed ({model}): {e}")
            raise CompletionProviderError(f"Completion provider error: {e}", provider="openai") from e

        content = response.choices[0].message.content or ""
        usage = getattr(response, "usage", None)
        tokens = getattr(usage, "total_tokens", 0) or 0

        return CompletionResult(
            text=content,
            tokens_used=tokens,
            model=model,
            provider=self.provider,
        )


class AnthropicClient(LLMClient):
    """
    Client for Claude (Anthropic).

    System messages are folded into the `system` parameter; the remaining
    messages keep their order.
    """

    provider = LLMProvider.ANTHROPIC

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[Any] = None,
    ):
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        self._client = client

        if client is None and not self.api_key:
            logger.warning("ANTHROPIC_API_KEY not set - Anthropic completions disabled")

    def _get_client(self):
        """Lazy init of the Anthropic client."""
        if self._client is None:
            if not self.api_key:
                raise CompletionProviderError("ANTHROPIC_API_KEY required", provider="anthropic")
            import anthropic
            self._client = anthropic.Anthropic(api_key=self.api_key)
        return self._client

    def complete(self, messages, model, temperature=0.7, max_tokens=2000) -> CompletionResult:
        client = self._get_client()

        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        kwargs = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [m for m in messages if m["role"] != "system"],
        }
        if system:
            kwargs["system"] = system

        try:
            response = client.messages.create(**kwargs)
        except Exception as e:
            logger.error(f"Anthropic completion failed ({model}): {e}")
            raise CompletionProviderError(f"Completion provider error: {e}", provider="anthropic") from e

        content = "".join(getattr(block, "text", "") for block in response.content)
        tokens = response.usage.input_tokens + response.usage.output_tokens

        return CompletionResult(
            text=content,
            tokens_used=tokens,
            model=model,
            provider=self.provider,
        )


def get_llm_client(
    provider: Optional[str] = None,
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
) -> LLMClient:
    """
    Factory for a completion client.

    Priority:
    1. Explicit provider
    2. OPENAI_API_KEY or GPT_API_KEY present -> OpenAI
    3. ANTHROPIC_API_KEY present -> Claude
    4. Error
    """
    if provider:
        provider = provider.lower()
    if provider == "openai":
        return OpenAIClient(api_key=api_key, base_url=base_url)
    if provider == "anthropic":
        return AnthropicClient(api_key=api_key)
    if provider:
        # Unknown names are assumed to be OpenAI-compatible endpoints
        return OpenAIClient(api_key=api_key, base_url=base_url)

    if os.getenv("OPENAI_API_KEY") or os.getenv("GPT_API_KEY"):
        return OpenAIClient()
    if os.getenv("ANTHROPIC_API_KEY"):
        return AnthropicClient()

    raise ValueError(
        "No LLM API key found. Set OPENAI_API_KEY, GPT_API_KEY, or ANTHROPIC_API_KEY"
    )
