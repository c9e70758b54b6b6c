"""Step execution engine - applies plan steps to a workspace, in order."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Optional

from teddy.cancellation import CancelToken
from teddy.config.paths import resolve_target
from teddy.config.settings import TeddyConfig
from teddy.execution.locator import locate_and_insert
from teddy.execution.prompts import (
    build_create_prompt,
    build_edit_prompt,
    strip_code_fences,
)
from teddy.llm.base import LLMError, StreamingLLM, collect_stream
from teddy.plan.models import PlanStep, StepType
from teddy.plan.targets import is_malformed_target
from teddy.progress import Status, progress_line, step_label
from teddy.workspace import CommandError, Workspace

logger = logging.getLogger(__name__)

FILE_STEP_TYPES = (StepType.CREATE_FILE, StepType.EDIT_FILE, StepType.INSERT_CODE)


@dataclass
class ExecutionSummary:
    """Per-run counters, complete once execute() has been drained."""
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    written: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.completed + self.failed + self.skipped


class StepExecutor:
    """Executes PlanSteps sequentially and narrates each one.

    Every step yields its progress line before the side effect starts and an
    outcome line once it is done. Per-step failures are reported and counted;
    only cancellation stops the run.

    Args:
        llm: Completion capability used by create_file and edit_file
        workspace: Workspace the steps act on
        root: Workspace root that relative targets resolve against
        config: Character budgets and rewrite threshold
        spec_context: Originating specification, given to create_file prompts
        cancel: Token checked before every step and between stream fragments
    """

    def __init__(
        self,
        llm: StreamingLLM,
        workspace: Workspace,
        root: str,
        config: Optional[TeddyConfig] = None,
        spec_context: Optional[str] = None,
        cancel: Optional[CancelToken] = None,
    ):
        self.llm = llm
        self.workspace = workspace
        self.root = root
        self.config = config or TeddyConfig()
        self.spec_context = spec_context
        self.cancel = cancel or CancelToken()
        self.summary = ExecutionSummary()

        self._handlers: dict[StepType, Callable[[PlanStep, str], AsyncIterator[str]]] = {
            StepType.CREATE_FILE: self._create_file,
            StepType.INSERT_CODE: self._insert_code,
            StepType.EDIT_FILE: self._edit_file,
            StepType.RUN_COMMAND: self._run_command,
            StepType.ANALYZE: self._analyze,
        }

    def _path(self, target: str) -> str:
        return str(resolve_target(self.root, target))

    async def execute(self, steps: list[PlanStep]) -> AsyncIterator[str]:
        """Run steps in order, yielding progress lines."""
        self.summary = ExecutionSummary()
        total = len(steps)

        for step in steps:
            self.cancel.raise_if_cancelled()
            label = step_label(step.id, total)
            logger.info(f"Step {step.id}/{total}: {step.type.value} {step.target!r}")

            if step.type in FILE_STEP_TYPES and is_malformed_target(step.target):
                self.summary.skipped += 1
                yield progress_line(
                    Status.SKIPPED,
                    f"{label} skipped: malformed target `{(step.target or '')[:80]}`",
                )
                continue

            async for line in self._handlers[step.type](step, label):
                yield line

        logger.info(
            f"Execution finished: {self.summary.completed} completed, "
            f"{self.summary.failed} failed, {self.summary.skipped} skipped"
        )

    # -------------------------------------------------------------------------
    # Step handlers
    # -------------------------------------------------------------------------

    async def _write(self, target: str, content: str) -> None:
        path = self._path(target)
        await self.workspace.write_file(path, content)
        await self.workspace.open_file(path)
        self.summary.written.append(target)

    async def _guarded(
        self,
        label: str,
        action: Callable[[], Awaitable[tuple[Status, str]]],
    ) -> str:
        """Run one side effect, converting per-step errors into a failure line."""
        try:
            status, message = await action()
        except LLMError as e:
            logger.warning(f"LLM failure: {e}")
            status, message = Status.FAILURE, f"LLM request failed: {e}"
        except OSError as e:
            logger.warning(f"Filesystem failure: {e}")
            status, message = Status.FAILURE, f"could not write file: {e}"
        except UnicodeDecodeError as e:
            logger.warning(f"Undecodable file: {e}")
            status, message = Status.FAILURE, f"file is not UTF-8 text ({e.reason} at byte {e.start})"

        if status is Status.SUCCESS:
            self.summary.completed += 1
        elif status is Status.SKIPPED:
            self.summary.skipped += 1
        else:
            self.summary.failed += 1
        return progress_line(status, f"{label} {message}")

    async def _create_file(self, step: PlanStep, label: str) -> AsyncIterator[str]:
        yield progress_line(Status.RUNNING, f"{label} Creating `{step.target}`...")

        async def action() -> tuple[Status, str]:
            prompt = build_create_prompt(
                step.target, step.description, self.spec_context, self.config.spec_context_chars
            )
            content = strip_code_fences(
                await collect_stream(self.llm, prompt, self.cancel), step.target
            )
            if not content.strip():
                return Status.FAILURE, f"model returned no content for `{step.target}`"
            await self._write(step.target, content.rstrip("\n") + "\n")
            return Status.SUCCESS, f"Created `{step.target}`"

        yield await self._guarded(label, action)

    async def _insert_code(self, step: PlanStep, label: str) -> AsyncIterator[str]:
        if not step.code_block:
            self.summary.skipped += 1
            yield progress_line(Status.SKIPPED, f"{label} no code to insert into `{step.target}`")
            return

        yield progress_line(Status.RUNNING, f"{label} Inserting code into `{step.target}`...")

        async def action() -> tuple[Status, str]:
            path = self._path(step.target)
            if not await self.workspace.file_exists(path):
                await self._write(step.target, step.code_block.rstrip("\n") + "\n")
                return Status.SUCCESS, f"Created `{step.target}` with the provided code"

            existing = await self.workspace.read_file(path)
            insertion = locate_and_insert(existing, step.description, step.code_block)
            await self._write(step.target, insertion.content)
            return Status.SUCCESS, f"Inserted code into `{step.target}` ({insertion.strategy})"

        yield await self._guarded(label, action)

    async def _edit_file(self, step: PlanStep, label: str) -> AsyncIterator[str]:
        path = self._path(step.target)
        if not await self.workspace.file_exists(path) and not step.code_block:
            self.summary.skipped += 1
            yield progress_line(Status.SKIPPED, f"{label} file not found: `{step.target}`")
            return

        yield progress_line(Status.RUNNING, f"{label} Editing `{step.target}`...")

        async def action() -> tuple[Status, str]:
            if not await self.workspace.file_exists(path):
                await self._write(step.target, step.code_block.rstrip("\n") + "\n")
                return Status.SUCCESS, f"Created `{step.target}` from the plan's code block"

            existing = await self.workspace.read_file(path)
            prompt = build_edit_prompt(
                step.target,
                step.description,
                existing,
                step.code_block,
                self.config.edit_context_chars,
            )
            content = strip_code_fences(
                await collect_stream(self.llm, prompt, self.cancel), step.target
            )
            if len(content.strip()) < self.config.min_rewrite_length:
                logger.warning(f"Rejected {len(content)}-char rewrite of {step.target}")
                return (
                    Status.WARNING,
                    f"rewrite of `{step.target}` was too short ({len(content.strip())} chars), "
                    f"original kept",
                )
            await self._write(step.target, content.rstrip("\n") + "\n")
            return Status.SUCCESS, f"Updated `{step.target}`"

        yield await self._guarded(label, action)

    async def _run_command(self, step: PlanStep, label: str) -> AsyncIterator[str]:
        command = (step.target or "").strip()
        if not command:
            self.summary.skipped += 1
            yield progress_line(Status.SKIPPED, f"{label} empty command")
            return

        yield progress_line(Status.RUNNING, f"{label} Running `{command}`...")
        try:
            await self.workspace.run_command(command)
        except (CommandError, OSError) as e:
            logger.warning(f"Command failed: {e}")
            self.summary.failed += 1
            yield progress_line(
                Status.WARNING,
                f"{label} `{command}` failed ({e}); it may need manual execution",
            )
            return

        self.summary.completed += 1
        yield progress_line(Status.SUCCESS, f"{label} Ran `{command}`")

    async def _analyze(self, step: PlanStep, label: str) -> AsyncIterator[str]:
        self.summary.skipped += 1
        yield progress_line(Status.SKIPPED, f"{label} analysis step: {step.description or step.target}")
