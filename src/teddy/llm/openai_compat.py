"""
OpenAI-compatible chat-completions provider for Teddy.

Covers Groq, OpenAI and local Ollama servers, which all speak the same
streaming chat-completions protocol.
"""

from __future__ import annotations

import logging
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


class OpenAICompatibleStreamingClient:
    """StreamingLLM for any /chat/completions endpoint that streams SSE chunks.

    Args:
        base_url: API base, e.g. https://api.groq.com/openai/v1
        model: Model name
        api_key: Bearer token; local servers may not need one
        provider: Name used in errors and logs
        system: Optional system prompt sent with every request
        transport: Optional httpx transport (tests inject httpx.MockTransport)
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        api_key: Optional[str] = None,
        provider: str = "openai",
        system: Optional[str] = None,
        max_tokens: int = LLM_DEFAULT_MAX_TOKENS,
        temperature: float = LLM_DEFAULT_TEMPERATURE,
        retry_config: Optional[RetryConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = base_url.rstrip("/") + "/chat/completions"
        self.model = model
        self.api_key = api_key
        self.provider = provider
        self.system = system
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.retry_config = retry_config or RetryConfig()
        self.transport = transport

    def _payload(self, prompt: str) -> dict:
        messages = []
        if self.system:
            messages.append({"role": "system", "content": self.system})
        messages.append({"role": "user", "content": prompt})
        return {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "stream": True,
        }

    async def _stream_once(self, prompt: str) -> AsyncIterator[str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

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
                            self.provider, response.status_code, error_message_from_body(body)
                        )
                    async for line in response.aiter_lines():
                        if line.strip() == "data: [DONE]":
                            return
                        chunk = parse_sse_data(line)
                        if chunk is None:
                            continue
                        if "error" in chunk:
                            raise LLMError(f"{self.provider} stream error: {chunk['error']}")
                        choices = chunk.get("choices") or [{}]
                        content = (choices[0].get("delta") or {}).get("content")
                        if content:
                            yield content
            except httpx.TransportError as e:
                raise LLMError(f"{self.provider} request failed: {e}", cause=e) from e

    def stream_complete(self, prompt: str) -> AsyncIterator[str]:
        """Stream completion fragments for a prompt."""
        logger.debug(f"{self.provider} stream: model={self.model}, prompt={len(prompt)} chars")
        return retry_stream(
            lambda: self._stream_once(prompt),
            config=self.retry_config,
            label=f"{self.provider}/{self.model}",
        )
