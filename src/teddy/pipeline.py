"""The Teddy pipeline: chat history in, narrated workspace changes out.

    messages -> extract content -> detect plan ---------------------+
                                      | (no plan / no intent)       |
                                      v                             v
                      specification -> plan -> parse  ->  verified execution

run() is an async generator of markdown progress lines. Side effects happen
as the generator is drained, so callers must consume it to the end.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import AsyncIterator, Optional, Sequence

from teddy.cancellation import CancelToken, PipelineCancelled
from teddy.config.paths import plan_path, spec_path
from teddy.config.settings import TeddyConfig
from teddy.content import (
    ChatMessage,
    ExtractedContent,
    extract_content,
    last_user_message,
    previous_assistant_text,
)
from teddy.execution.prompts import build_plan_prompt, build_spec_prompt
from teddy.llm.base import LLMError, StreamingLLM, collect_stream
from teddy.plan.detector import detect_plan_document, wants_execution
from teddy.plan.extractors import parse_structured_plan
from teddy.plan.models import PlanStep
from teddy.plan.simple import parse_simple_plan
from teddy.progress import Status, heading, progress_line
from teddy.verification.engine import VerificationEngine
from teddy.workspace import Workspace

logger = logging.getLogger(__name__)

RULES_FILE = "CATALYST.md"
NO_STEPS_MESSAGE = "Could not parse actionable steps"


def artifact_label(path: Path) -> str:
    """Short display form of an artifact path, e.g. `.teddy/plan.md`."""
    return f"{path.parent.name}/{path.name}"


class TeddyPipeline:
    """One instruction's detector -> execution -> verification run.

    Collaborators are passed in; the pipeline holds no global state.
    """

    def __init__(
        self,
        llm: StreamingLLM,
        workspace: Workspace,
        config: Optional[TeddyConfig] = None,
        cancel: Optional[CancelToken] = None,
    ):
        self.llm = llm
        self.workspace = workspace
        self.config = config or TeddyConfig()
        self.cancel = cancel or CancelToken()
        self.routing = self.config.routing()
        self.engine: Optional[VerificationEngine] = None

    async def run(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        async for line in self._cancellable(self._run(messages)):
            yield line

    async def _cancellable(self, lines: AsyncIterator[str]) -> AsyncIterator[str]:
        """Relay lines, turning cancellation into a final progress line."""
        try:
            async for line in lines:
                yield line
        except PipelineCancelled as e:
            logger.info(f"Pipeline cancelled: {e}")
            yield progress_line(Status.CANCELLED, f"Cancelled: {e}")

    async def _workspace_root(self) -> Optional[str]:
        dirs = await self.workspace.get_workspace_dirs()
        return dirs[0] if dirs else None

    async def _run(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        root = await self._workspace_root()
        if root is None:
            yield progress_line(Status.FAILURE, "No workspace open.")
            return

        message = last_user_message(messages)
        if message is None:
            yield progress_line(Status.FAILURE, "No request found.")
            return
        extracted = extract_content(message)
        instruction = extracted.user_instruction.strip()

        if wants_execution(instruction):
            for candidate in self._plan_candidates(extracted, messages):
                detection = detect_plan_document(candidate, self.routing)
                if not detection.is_plan_document:
                    continue

                yield heading("Executing Plan")
                yield progress_line(
                    Status.INFO,
                    f"Detected a {detection.format.value} plan with {len(detection.steps)} step(s)",
                )
                if not detection.steps:
                    yield progress_line(Status.FAILURE, f"{NO_STEPS_MESSAGE} from the plan.")
                    return
                async for line in self._execute(root, instruction, detection.steps):
                    yield line
                return

        async for line in self._generate_and_execute(root, instruction, extracted):
            yield line

    def _plan_candidates(self, extracted: ExtractedContent, messages: Sequence[ChatMessage]) -> list[str]:
        candidates = []
        if extracted.context_content:
            candidates.append(extracted.context_content)
        previous = previous_assistant_text(messages)
        if previous:
            candidates.append(previous)
        return candidates

    async def _execute(
        self,
        root: str,
        instruction: str,
        steps: list[PlanStep],
        spec: Optional[str] = None,
    ) -> AsyncIterator[str]:
        self.engine = VerificationEngine(
            self.llm,
            self.workspace,
            root,
            config=self.config,
            spec_context=spec,
            cancel=self.cancel,
        )
        async for line in self.engine.run(instruction, steps):
            yield line

    async def _save_artifact(self, path: Path, content: str, label: str) -> str:
        try:
            await self.workspace.write_file(str(path), content)
            await self.workspace.open_file(str(path))
        except OSError as e:
            logger.warning(f"Could not save {path}: {e}")
            return progress_line(Status.WARNING, f"Could not save {label} file")
        return progress_line(Status.SUCCESS, f"{label.capitalize()} saved to `{artifact_label(path)}`")

    async def _read_artifact(self, path: Path) -> Optional[str]:
        """Contents of an optional workspace file, None when absent or unreadable."""
        if not await self.workspace.file_exists(str(path)):
            return None
        try:
            return await self.workspace.read_file(str(path))
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read {path}: {e}")
            return None

    async def _read_rules(self, root: str) -> Optional[str]:
        return await self._read_artifact(Path(root) / RULES_FILE)

    def _parse_generated(self, plan: str) -> list[PlanStep]:
        return parse_simple_plan(plan) or parse_structured_plan(plan, self.routing)

    def _step_lines(self, steps: list[PlanStep]) -> list[str]:
        lines = [progress_line(Status.INFO, f"Parsed {len(steps)} step(s)")]
        lines += [f"{step.id}. **{step.type.value}** `{step.target}`\n" for step in steps]
        return lines

    async def _generate_and_execute(
        self,
        root: str,
        instruction: str,
        extracted: ExtractedContent,
    ) -> AsyncIterator[str]:
        # Phase 1: Specification
        yield heading("Phase 1: Specification")
        yield progress_line(Status.RUNNING, "Generating detailed specification...")

        current = await self.workspace.get_current_file()
        context = extracted.context_content if extracted.context_content != extracted.user_instruction else None
        prompt = build_spec_prompt(
            instruction,
            current_file=(current.path, current.contents) if current else None,
            rules=await self._read_rules(root),
            context=context,
            budget=self.config.spec_context_chars,
        )
        try:
            spec = await collect_stream(self.llm, prompt, self.cancel)
        except LLMError as e:
            yield progress_line(Status.FAILURE, f"Specification failed: {e}")
            return
        yield await self._save_artifact(spec_path(root), spec, "specification")

        # Phase 2: Planning
        yield heading("Phase 2: Planning")
        yield progress_line(Status.RUNNING, "Creating step-by-step implementation plan...")
        try:
            plan = await collect_stream(self.llm, build_plan_prompt(spec), self.cancel)
        except LLMError as e:
            yield progress_line(Status.FAILURE, f"Planning failed: {e}")
            return
        yield await self._save_artifact(plan_path(root), plan, "plan")

        steps = self._parse_generated(plan)
        if not steps:
            yield progress_line(Status.FAILURE, f"{NO_STEPS_MESSAGE} from the generated plan.")
            return
        for line in self._step_lines(steps):
            yield line

        # Phase 3: Execution
        yield heading("Phase 3: Execution")
        async for line in self._execute(root, instruction, steps, spec=spec):
            yield line
