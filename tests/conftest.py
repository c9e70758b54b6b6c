"""Pytest configuration for teddy tests."""
import sys
from pathlib import Path

import pytest

# Add src to path for the tests - conftest is in tests/, so parent.parent is project root
project_root = Path(__file__).resolve().parent.parent
src_path = project_root / "src"

# Insert at the very beginning to override any other paths
sys.path.insert(0, str(src_path))

from teddy.workspace import LocalWorkspace  # noqa: E402


class ScriptedLLM:
    """StreamingLLM that replays canned replies in order and records prompts.

    A reply may be a string or a callable taking the prompt. Once the script
    runs out, every further call streams an empty completion.
    """

    def __init__(self, replies=(), chunk_size=16):
        self.replies = list(replies)
        self.chunk_size = chunk_size
        self.prompts = []

    def stream_complete(self, prompt):
        self.prompts.append(prompt)
        reply = self.replies.pop(0) if self.replies else ""
        if callable(reply):
            reply = reply(prompt)
        return self._stream(reply)

    async def _stream(self, reply):
        for i in range(0, len(reply), self.chunk_size):
            yield reply[i:i + self.chunk_size]


@pytest.fixture
def scripted_llm():
    """Factory for ScriptedLLM instances."""
    return ScriptedLLM


@pytest.fixture
def workspace(tmp_path):
    """LocalWorkspace rooted at a temporary directory."""
    return LocalWorkspace([tmp_path])


@pytest.fixture
def write_file(tmp_path):
    """Write a workspace-relative file and return its path."""
    def _write(relative, content):
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path
    return _write
