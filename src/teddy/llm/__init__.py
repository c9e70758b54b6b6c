"""Teddy LLM Package - streaming capability and provider adapters."""

from __future__ import annotations

from teddy.llm.base import (
    LLMError,
    ProviderHTTPError,
    StreamingLLM,
    collect_stream,
)
from teddy.llm.anthropic import AnthropicStreamingClient
from teddy.llm.openai_compat import OpenAICompatibleStreamingClient
from teddy.llm.providers import ProviderRegistry, ProviderSpec, create_llm, registry

__all__ = [
    # Capability
    "StreamingLLM",
    "collect_stream",
    # Errors
    "LLMError",
    "ProviderHTTPError",
    # Adapters
    "AnthropicStreamingClient",
    "OpenAICompatibleStreamingClient",
    # Registry
    "ProviderRegistry",
    "ProviderSpec",
    "create_llm",
    "registry",
]
