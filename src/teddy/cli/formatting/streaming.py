"""
Streaming output for pipeline progress.
"""

from __future__ import annotations

from typing import AsyncIterator, Optional

from teddy.cli.formatting.output import ConsoleOutput


class ProgressStream:
    """Prints progress fragments as they arrive, one complete line at a time.

    Fragments may split or join lines; partial lines are buffered until their
    newline arrives.
    """

    def __init__(self, output: Optional[ConsoleOutput] = None):
        self.output = output or ConsoleOutput()
        self._buffer = ""
        self.lines: list[str] = []

    def feed(self, fragment: str) -> None:
        self._buffer += fragment
        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            self._emit(line)

    def flush(self) -> None:
        if self._buffer:
            self._emit(self._buffer)
            self._buffer = ""

    def _emit(self, line: str) -> None:
        self.lines.append(line)
        self.output.print_progress(line)

    async def stream(self, chunks: AsyncIterator[str]) -> list[str]:
        """Drain chunks to the console and return the printed lines."""
        try:
            async for chunk in chunks:
                self.feed(chunk)
        finally:
            self.flush()
        return self.lines
