"""Teddy - plan detection, step execution and self-verifying retries for coding agents."""

from teddy.cancellation import CancelToken, PipelineCancelled
from teddy.content import ChatMessage, MessagePart, extract_content
from teddy.pipeline import TeddyPipeline
from teddy.workspace import LocalWorkspace, Workspace

__version__ = "0.1.0"

__all__ = [
    "CancelToken",
    "ChatMessage",
    "LocalWorkspace",
    "MessagePart",
    "PipelineCancelled",
    "TeddyPipeline",
    "Workspace",
    "extract_content",
]
