"""Chat message model and content extraction.

A user turn may carry several ordered text fragments: attached context first,
then the actual ask. extract_content() splits them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence, Union


@dataclass
class MessagePart:
    """One fragment of a chat message."""
    text: str = ""
    type: str = "text"


@dataclass
class ChatMessage:
    role: str
    content: Union[str, list[MessagePart]] = field(default_factory=list)

    def fragments(self) -> list[str]:
        """Text fragments in order; non-text parts are ignored."""
        if isinstance(self.content, str):
            return [self.content]
        return [part.text for part in self.content if part.type == "text"]

    def text(self) -> str:
        return "\n\n".join(self.fragments())


@dataclass(frozen=True)
class ExtractedContent:
    context_content: str
    user_instruction: str
    full_content: str


def extract_content(message: ChatMessage) -> ExtractedContent:
    """Split a user turn into attached context and the instruction.

    With exactly one fragment, that fragment is both context and instruction.
    With several, all but the last are joined (blank-line separated) as context
    and the last one alone is the instruction.
    """
    fragments = message.fragments()
    full_content = "\n\n".join(fragments)

    if not fragments:
        return ExtractedContent(context_content="", user_instruction="", full_content="")
    if len(fragments) == 1:
        return ExtractedContent(
            context_content=fragments[0],
            user_instruction=fragments[0],
            full_content=full_content,
        )
    return ExtractedContent(
        context_content="\n\n".join(fragments[:-1]),
        user_instruction=fragments[-1],
        full_content=full_content,
    )


def last_user_message(messages: Sequence[ChatMessage]) -> Optional[ChatMessage]:
    for message in reversed(messages):
        if message.role == "user":
            return message
    return None


def previous_assistant_text(messages: Sequence[ChatMessage]) -> str:
    """Text of the most recent assistant turn before the last user turn."""
    seen_user = False
    for message in reversed(messages):
        if message.role == "user" and not seen_user:
            seen_user = True
            continue
        if seen_user and message.role == "assistant":
            return message.text()
    return ""
