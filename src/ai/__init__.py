"""
AI Module
=========

Completion providers and the governed chat service:
- LLM clients for OpenAI (and compatible endpoints) and Claude
- Per-tenant provider resolution with encrypted API keys
- ChatService: the governed chat turn
"""

from .llm_client import (
    AnthropicClient,
    CompletionResult,
    LLMClient,
    LLMProvider,
    OpenAIClient,
    get_llm_client,
)
from .providers import ProviderResolver, decrypt_secret, encrypt_secret
from .chat_service import ChatResponse, ChatService

__all__ = [
    "AnthropicClient",
    "CompletionResult",
    "LLMClient",
    "LLMProvider",
    "OpenAIClient",
    "get_llm_client",
    "ProviderResolver",
    "decrypt_secret",
    "encrypt_secret",
    "ChatResponse",
    "ChatService",
]
