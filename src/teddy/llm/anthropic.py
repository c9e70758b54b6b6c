"""
Anthropic Claude provider for Teddy.

Streams completions from the Anthropic Messages API over server-sent events.
"""

from __future__ import annotations

import logging
import os
from typing import AsyncIterator, Optional

import httpx

from teddy.config.defaults import (
    LLM_DEFAULT_MAX_TOKENS,
    LLM_DEFAULT_TEMPERATURE,
    LLM_REQUEST_TIMEOUT_SECONDS,
)
from teddy.llm.base import (
    LLMError,
    ProviderHTTPError,
    error_message_from_body,
    parse_sse_data,
)
from teddy.retry import RetryConfig, retry_stream

logger = logging.getLogger(__name__)

ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_CLAUDE_MODEL = "claude-3-5-sonnet-20241022"


def _get_anthropic_api_key() -> Optional[str]:
    """Get Anthropic API key from environment."""
    return os.environ.get("ANTHROPIC_API_KEY")


class AnthropicStreamingClient:
    """StreamingLLM backed by the Anthropic Messages API.

    Args:
        api_key: API key (defaults to ANTHROPIC_API_KEY)
        model: Model name
        system: Optional system prompt sent with every request
        max_tokens: Maximum tokens to generate
        temperature: Sampling temperature
        retry_config: Policy for re-opening a stream that failed before its first fragment
        transport: Optional httpx transport (tests inject httpx.MockTransport)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_CLAUDE_MODEL,
        system: Optional[str] = None,
        max_tokens: int = LLM_DEFAULT_MAX_TOKENS,
        temperature: float = LLM_DEFAULT_TEMPERATURE,
        retry_config: Optional[RetryConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        url: str = ANTHROPIC_API_URL,
    ):
        self.api_key = api_key or _get_anthropic_api_key()
        if not self.api_key:
            raise ValueError(
                "Anthropic API key not found. Set ANTHROPIC_API_KEY environment variable."
            )
        self.model = model
        self.system = system
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.retry_config = retry_config or RetryConfig()
        self.transport = transport
        self.url = url

    def _payload(self, prompt: str) -> dict:
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "stream": True,
            "messages": [{"role": "user", "content": prompt}],
        }
        if self.system:
            payload["system"] = self.system
        return payload

    async def _stream_once(self, prompt: str) -> AsyncIterator[str]:
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }
        async with httpx.AsyncClient(
            timeout=LLM_REQUEST_TIMEOUT_SECONDS, transport=self.transport
        ) as client:
            try:
                async with client.stream(
                    "POST", self.url, json=self._payload(prompt), headers=headers
                ) as response:
                    if response.status_code >= 400:
                        body = await response.aread()
                        raise ProviderHTTPError(
                            "anthropic", response.status_code, error_message_from_body(body)
                        )
                    async for line in response.aiter_lines():
                        event = parse_sse_data(line)
                        if event is None:
                            continue
                        kind = event.get("type")
                        if kind == "content_block_delta":
                            delta = event.get("delta", {})
                            if delta.get("type") == "text_delta" and delta.get("text"):
                                yield delta["text"]
                        elif kind == "error":
                            error = event.get("error", {})
                            raise LLMError(f"Anthropic stream error: {error.get('message', error)}")
                        elif kind == "message_stop":
                            return
            except httpx.TransportError as e:
                raise LLMError(f"Anthropic request failed: {e}", cause=e) from e

    def stream_complete(self, prompt: str) -> AsyncIterator[str]:
        """Stream completion fragments for a prompt."""
        logger.debug(f"Anthropic stream: model={self.model}, prompt={len(prompt)} chars")
        return retry_stream(
            lambda: self._stream_once(prompt),
            config=self.retry_config,
            label=f"anthropic/{self.model}",
        )
