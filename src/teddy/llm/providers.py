"""LLM Provider Registry - maps provider names to streaming adapters.

Provides:
- ProviderSpec: How to build one provider (env key names, base URL, default model)
- ProviderRegistry: Central registry of provider specs
- create_llm(): Build a StreamingLLM for a provider name
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Callable, Optional

from teddy.llm.anthropic import DEFAULT_CLAUDE_MODEL, AnthropicStreamingClient
from teddy.llm.base import StreamingLLM
from teddy.llm.openai_compat import OpenAICompatibleStreamingClient

logger = logging.getLogger(__name__)


@dataclass
class ProviderSpec:
    """Holds how to construct a provider's client."""
    name: str
    factory: Callable[..., StreamingLLM]
    default_model: str
    env_key_name: str = ""  # e.g., "GROQ_API_KEYS"
    env_single_key_name: str = ""  # e.g., "GROQ_API_KEY" (fallback)
    base_url: str = ""
    env_base_url_name: str = ""
    requires_key: bool = True

    def resolve_key(self) -> Optional[str]:
        """Read the API key from the environment.

        Precedence:
        1. ENV_KEY_NAME (_KEYS) - first entry of a comma-separated list
        2. ENV_SINGLE_KEY_NAME (_KEY) - single key as fallback
        """
        if self.env_key_name:
            keys_str = os.environ.get(self.env_key_name, "")
            keys = [k.strip() for k in keys_str.split(",") if k.strip()]
            if keys:
                return keys[0]
        if self.env_single_key_name:
            key = os.environ.get(self.env_single_key_name, "")
            if key:
                return key
        return None

    def resolve_base_url(self) -> str:
        if self.env_base_url_name:
            return os.environ.get(self.env_base_url_name, self.base_url)
        return self.base_url


class ProviderRegistry:
    def __init__(self):
        self._providers: dict[str, ProviderSpec] = {}

    def register(self, spec: ProviderSpec):
        self._providers[spec.name] = spec
        logger.debug(f"Registered provider: {spec.name}")

    def get(self, name: str) -> ProviderSpec:
        try:
            return self._providers[name]
        except KeyError:
            raise ValueError(
                f"Unknown provider: {name}. Available: {', '.join(self.list_providers())}"
            ) from None

    def list_providers(self) -> list[str]:
        return sorted(self._providers)


def _anthropic_factory(spec: ProviderSpec, model: str, api_key: Optional[str], **kwargs) -> StreamingLLM:
    return AnthropicStreamingClient(api_key=api_key, model=model, **kwargs)


def _openai_compat_factory(spec: ProviderSpec, model: str, api_key: Optional[str], **kwargs) -> StreamingLLM:
    return OpenAICompatibleStreamingClient(
        base_url=spec.resolve_base_url(),
        model=model,
        api_key=api_key,
        provider=spec.name,
        **kwargs,
    )


registry = ProviderRegistry()

registry.register(ProviderSpec(
    name="anthropic",
    factory=_anthropic_factory,
    default_model=DEFAULT_CLAUDE_MODEL,
    env_key_name="ANTHROPIC_API_KEYS",
    env_single_key_name="ANTHROPIC_API_KEY",
))
registry.register(ProviderSpec(
    name="groq",
    factory=_openai_compat_factory,
    default_model="llama-3.3-70b-versatile",
    env_key_name="GROQ_API_KEYS",
    env_single_key_name="GROQ_API_KEY",
    base_url="https://api.groq.com/openai/v1",
    env_base_url_name="GROQ_API_BASE",
))
registry.register(ProviderSpec(
    name="openai",
    factory=_openai_compat_factory,
    default_model="gpt-4o-mini",
    env_key_name="OPENAI_API_KEYS",
    env_single_key_name="OPENAI_API_KEY",
    base_url="https://api.openai.com/v1",
    env_base_url_name="OPENAI_BASE_URL",
))
registry.register(ProviderSpec(
    name="ollama",
    factory=_openai_compat_factory,
    default_model="qwen2.5-coder:7b",
    base_url="http://localhost:11434/v1",
    env_base_url_name="OLLAMA_BASE_URL",
    requires_key=False,
))


def create_llm(provider: str, model: Optional[str] = None, **kwargs) -> StreamingLLM:
    """Build a StreamingLLM for a registered provider.

    Raises:
        ValueError: If the provider is unknown or its API key is missing
    """
    spec = registry.get(provider)
    api_key = spec.resolve_key()
    if spec.requires_key and not api_key:
        env_names = " or ".join(n for n in (spec.env_single_key_name, spec.env_key_name) if n)
        raise ValueError(f"{provider} API key missing. Set {env_names} in .env or environment.")
    chosen = model or spec.default_model
    logger.info(f"Using provider {provider} with model {chosen}")
    return spec.factory(spec, chosen, api_key, **kwargs)
