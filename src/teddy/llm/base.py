"""LLM capability shared by every provider adapter.

The core only ever needs one operation: stream a completion for a prompt as
text fragments. Provider adapters satisfy StreamingLLM; nothing else in the
package depends on a concrete provider.
"""

from __future__ import annotations

import json
import logging
from typing import AsyncIterator, Optional, Protocol, runtime_checkable

from teddy.cancellation import CancelToken

logger = logging.getLogger(__name__)


# =============================================================================
# Custom Exceptions
# =============================================================================


class LLMError(Exception):
    """Raised when an LLM call fails (network, timeout, bad response, etc.)."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.cause = cause


class ProviderHTTPError(LLMError):
    """Raised when a provider answers with a non-2xx status."""

    def __init__(self, provider: str, status_code: int, message: str):
        super().__init__(f"{provider} API {status_code}: {message}")
        self.provider = provider
        self.status_code = status_code


# =============================================================================
# Capability Protocol
# =============================================================================


@runtime_checkable
class StreamingLLM(Protocol):
    """Anything that can stream a completion as text fragments."""

    def stream_complete(self, prompt: str) -> AsyncIterator[str]:
        ...


async def collect_stream(
    llm: StreamingLLM,
    prompt: str,
    cancel: Optional[CancelToken] = None,
) -> str:
    """Drain one completion into a string.

    The cancel token is checked before the call and between fragments; a
    cancelled stream raises PipelineCancelled and the partial text is dropped.
    """
    if cancel is not None:
        cancel.raise_if_cancelled()

    parts: list[str] = []
    async for fragment in llm.stream_complete(prompt):
        if cancel is not None:
            cancel.raise_if_cancelled()
        parts.append(fragment)

    text = "".join(parts)
    logger.debug(f"Collected completion: {len(text)} chars from {len(parts)} fragments")
    return text


# =============================================================================
# Server-sent events
# =============================================================================


def parse_sse_data(line: str) -> Optional[dict]:
    """Return the JSON payload of an SSE `data:` line, or None.

    Comment lines, `event:` lines, blank keep-alives and the OpenAI `[DONE]`
    sentinel all yield None.
    """
    if not line.startswith("data:"):
        return None
    payload = line[len("data:"):].strip()
    if not payload or payload == "[DONE]":
        return None
    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        logger.debug(f"Skipping malformed SSE payload: {payload[:120]}")
        return None
    return data if isinstance(data, dict) else None


def error_message_from_body(body: bytes) -> str:
    """Extract a provider error message from a response body."""
    text = body.decode("utf-8", errors="replace")
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return text[:200] or "no response body"
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return str(error.get("message", text[:200]))
    if isinstance(error, str):
        return error
    return text[:200]
