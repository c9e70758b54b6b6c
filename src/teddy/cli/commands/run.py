"""
Run command - carry out one instruction against a workspace.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path
from typing import Optional, Sequence

from teddy.cancellation import CancelToken
from teddy.cli.formatting.output import ConsoleOutput
from teddy.cli.formatting.streaming import ProgressStream
from teddy.config.settings import TeddyConfig, load_config
from teddy.content import ChatMessage, MessagePart
from teddy.llm.base import StreamingLLM
from teddy.llm.providers import create_llm
from teddy.pipeline import TeddyPipeline
from teddy.verification.engine import VerificationEngine
from teddy.verification.models import LoopState
from teddy.workspace import LocalWorkspace

logger = logging.getLogger(__name__)


def build_messages(instruction: str, context_files: Sequence[str] = (),
                   previous: Optional[str] = None) -> list[ChatMessage]:
    """Chat history for a one-shot run: optional prior assistant turn, then the user turn."""
    messages: list[ChatMessage] = []
    if previous:
        messages.append(ChatMessage(role="assistant", content=previous))
    parts = [MessagePart(text=Path(f).read_text(encoding="utf-8")) for f in context_files]
    parts.append(MessagePart(text=instruction))
    messages.append(ChatMessage(role="user", content=parts))
    return messages


def prepare(workspace_dir: Optional[str], provider: Optional[str], model: Optional[str],
            console: ConsoleOutput) -> Optional[tuple[Path, TeddyConfig, StreamingLLM]]:
    """Resolve the workspace root, its config and the LLM; None after reporting an error."""
    root = Path(workspace_dir or Path.cwd()).resolve()

    config = load_config(root)
    if provider:
        config.provider = provider
    if model:
        config.model = model

    try:
        llm = create_llm(config.provider, config.model)
    except ValueError as e:
        console.print_error(str(e))
        return None
    return root, config, llm


def cancel_on_interrupt() -> CancelToken:
    """CancelToken that Ctrl-C cancels while the running loop is alive."""
    cancel = CancelToken()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel.cancel)
    except (NotImplementedError, RuntimeError):
        # Windows event loops have no signal handlers; Ctrl-C raises KeyboardInterrupt instead
        logger.debug("Signal handlers unavailable, Ctrl-C will not cancel gracefully")
    return cancel


def exit_code(lines: Sequence[str], engine: Optional[VerificationEngine], cancel: CancelToken) -> int:
    if cancel.cancelled:
        return 130
    if engine is None:
        # Stopped before execution (no workspace, no steps, LLM failure)
        return 1 if any(line.startswith("❌") for line in lines) else 0
    return 0 if engine.state is LoopState.DONE else 1


async def run(
    instruction: str,
    workspace_dir: Optional[str] = None,
    context_files: Sequence[str] = (),
    plan_file: Optional[str] = None,
    provider: Optional[str] = None,
    model: Optional[str] = None,
    current_file: Optional[str] = None,
) -> int:
    """Run the run command."""
    console = ConsoleOutput()
    prepared = prepare(workspace_dir, provider, model, console)
    if prepared is None:
        return 1
    root, config, llm = prepared

    try:
        previous = Path(plan_file).read_text(encoding="utf-8") if plan_file else None
        messages = build_messages(instruction, context_files, previous)
    except OSError as e:
        console.print_error(f"Could not read input file: {e}")
        return 1

    cancel = cancel_on_interrupt()
    workspace = LocalWorkspace([root], current_file=current_file)
    pipeline = TeddyPipeline(llm, workspace, config=config, cancel=cancel)
    lines = await ProgressStream(console).stream(pipeline.run(messages))
    return exit_code(lines, pipeline.engine, cancel)
