"""Workspace capability - the file tree and shell a pipeline acts on.

The core consumes the Workspace protocol only. LocalWorkspace is the
filesystem-backed implementation used by the CLI and the tests.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Sequence, runtime_checkable

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """Raised when a shell command cannot be spawned or exits non-zero."""

    def __init__(self, command: str, returncode: Optional[int], output: str = ""):
        detail = f"exit code {returncode}" if returncode is not None else (output or "could not start")
        super().__init__(f"Command failed ({detail}): {command}")
        self.command = command
        self.returncode = returncode
        self.output = output


@dataclass
class CurrentFile:
    """The file focused in the user's editor."""
    path: str
    contents: str


@runtime_checkable
class Workspace(Protocol):
    """Async workspace operations consumed by the pipeline.

    Paths passed in are absolute; read_file raises FileNotFoundError when the
    file is absent and UnicodeDecodeError when it is not UTF-8 text;
    run_command raises CommandError on failure.
    """

    async def get_workspace_dirs(self) -> Sequence[str]: ...

    async def read_file(self, path: str) -> str: ...

    async def write_file(self, path: str, content: str) -> None: ...

    async def open_file(self, path: str) -> None: ...

    async def file_exists(self, path: str) -> bool: ...

    async def run_command(self, command: str) -> None: ...

    async def get_current_file(self) -> Optional[CurrentFile]: ...


class LocalWorkspace:
    """Workspace backed by the local filesystem.

    Args:
        roots: Workspace root directories, first one is the primary root
        current_file: Optional path reported as the editor's current file
        command_timeout: Seconds before a shell command is killed (None = no limit)
    """

    def __init__(
        self,
        roots: Sequence[str | Path],
        current_file: Optional[str | Path] = None,
        command_timeout: Optional[float] = None,
    ):
        self.roots = [str(Path(r).resolve()) for r in roots]
        self.current_file = str(current_file) if current_file else None
        self.command_timeout = command_timeout
        self.opened: list[str] = []
        self.commands: list[str] = []

    async def get_workspace_dirs(self) -> Sequence[str]:
        return list(self.roots)

    async def read_file(self, path: str) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: Path(path).read_text(encoding="utf-8"))

    async def write_file(self, path: str, content: str) -> None:
        def _write() -> None:
            target = Path(path)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, _write)
        logger.debug(f"Wrote {len(content)} chars to {path}")

    async def open_file(self, path: str) -> None:
        self.opened.append(path)
        logger.info(f"Opened {path}")

    async def file_exists(self, path: str) -> bool:
        return Path(path).is_file()

    async def run_command(self, command: str) -> None:
        cwd = self.roots[0] if self.roots else None
        self.commands.append(command)
        logger.info(f"Running command in {cwd}: {command}")
        try:
            proc = await asyncio.create_subprocess_shell(
                command,
                cwd=cwd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise CommandError(command, None, str(e)) from e

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=self.command_timeout)
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise CommandError(command, None, f"timed out after {self.command_timeout}s") from e

        output = stdout.decode(errors="replace") if stdout else ""
        if proc.returncode != 0:
            raise CommandError(command, proc.returncode, output[-2000:])

    async def get_current_file(self) -> Optional[CurrentFile]:
        if not self.current_file:
            return None
        try:
            contents = await self.read_file(self.current_file)
        except FileNotFoundError:
            logger.warning(f"Current file not found: {self.current_file}")
            return None
        except UnicodeDecodeError:
            logger.warning(f"Current file is not UTF-8 text: {self.current_file}")
            return None
        return CurrentFile(path=self.current_file, contents=contents)
