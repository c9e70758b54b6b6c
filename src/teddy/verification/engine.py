"""Self-verifying execution loop.

    ANALYZING -> EXECUTING -> VERIFYING -> DONE
                     ^            |
                     |            +-> GAVE_UP   (attempt limit or stuck)
                     |            |
                     +-- REGENERATING

Criteria are derived once, from the instruction and the files as they were
before the first attempt. Every attempt snapshots its targets fresh, so later
attempts always judge the files as the previous attempt left them.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Optional

from teddy.cancellation import CancelToken
from teddy.config.defaults import REGENERATE_CONTENT_CHAR_CAP
from teddy.config.paths import resolve_target
from teddy.config.settings import TeddyConfig
from teddy.execution.engine import StepExecutor
from teddy.execution.prompts import build_regenerate_prompt, truncate_content
from teddy.llm.base import LLMError, StreamingLLM, collect_stream
from teddy.plan.models import PlanStep, StepType, renumber
from teddy.plan.simple import parse_simple_plan
from teddy.plan.targets import is_malformed_target
from teddy.progress import Status, heading, progress_line
from teddy.verification.criteria import TaskAnalyzer, step_targets
from teddy.verification.models import (
    FileSnapshot,
    LoopState,
    SuccessCriterion,
    VerificationResult,
)
from teddy.verification.review import LLMReviewer
from teddy.workspace import Workspace

logger = logging.getLogger(__name__)


def made_progress(previous: VerificationResult, current: VerificationResult) -> bool:
    """True when the failing set shrank to a proper subset of the previous one.

    Comparing names rather than counts means a criterion that starts failing
    while another is fixed does not count as progress.
    """
    before, after = set(previous.failing), set(current.failing)
    return after < before


class VerificationEngine:
    """Runs steps until the derived criteria pass, the loop is stuck, or attempts run out."""

    def __init__(
        self,
        llm: StreamingLLM,
        workspace: Workspace,
        root: str,
        config: Optional[TeddyConfig] = None,
        spec_context: Optional[str] = None,
        cancel: Optional[CancelToken] = None,
        analyzer: Optional[TaskAnalyzer] = None,
        reviewer: Optional[LLMReviewer] = None,
    ):
        self.llm = llm
        self.workspace = workspace
        self.root = root
        self.config = config or TeddyConfig()
        self.spec_context = spec_context
        self.cancel = cancel or CancelToken()
        self.analyzer = analyzer or TaskAnalyzer()
        if reviewer is None and self.config.llm_review:
            reviewer = LLMReviewer(llm, self.cancel)
        self.reviewer = reviewer

        self.state = LoopState.ANALYZING
        self.criteria: list[SuccessCriterion] = []
        self.previous_results: list[VerificationResult] = []
        self.primary_target: Optional[str] = None

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    async def _read(self, target: str) -> tuple[bool, str]:
        path = str(resolve_target(self.root, target))
        if not await self.workspace.file_exists(path):
            return False, ""
        try:
            return True, await self.workspace.read_file(path)
        except FileNotFoundError:
            return False, ""
        except UnicodeDecodeError as e:
            logger.warning(f"Snapshot of {target} skipped, not UTF-8 text: {e}")
            return True, ""

    async def snapshot_before(self, targets: list[str]) -> dict[str, FileSnapshot]:
        snapshots = {}
        for target in targets:
            exists, content = await self._read(target)
            snapshots[target] = FileSnapshot(target=target, before_content=content, existed_before=exists)
        return snapshots

    async def snapshot_after(self, snapshots: dict[str, FileSnapshot]) -> dict[str, FileSnapshot]:
        for snap in snapshots.values():
            snap.exists_after, snap.after_content = await self._read(snap.target)
        return snapshots

    # -------------------------------------------------------------------------
    # Loop
    # -------------------------------------------------------------------------

    def _set_state(self, state: LoopState) -> None:
        logger.debug(f"Verification: {self.state.value} -> {state.value}")
        self.state = state

    def is_stuck(self) -> bool:
        """No progress across the last `stuck_window` attempts."""
        window = max(self.config.stuck_window, 2)
        if len(self.previous_results) < window:
            return False
        recent = self.previous_results[-window:]
        return not any(made_progress(a, b) for a, b in zip(recent, recent[1:]))

    async def run(self, instruction: str, steps: list[PlanStep]) -> AsyncIterator[str]:
        self.state = LoopState.ANALYZING
        self.previous_results = []
        tracked = step_targets(steps)
        self.primary_target = tracked[0] if tracked else None

        before = await self.snapshot_before(tracked)
        self.criteria = self.analyzer.derive_criteria(instruction, steps, before)
        use_review = self.reviewer is not None and not any(c.task_specific for c in self.criteria)

        names = ", ".join(c.name for c in self.criteria) or "none"
        yield progress_line(Status.INFO, f"Success criteria: {names}")

        current = steps
        attempt = 0
        while True:
            attempt += 1
            self._set_state(LoopState.EXECUTING)
            yield heading(f"Attempt {attempt}/{self.config.max_attempts}")

            targets = tracked + [t for t in step_targets(current) if t not in tracked]
            snapshots = await self.snapshot_before(targets)

            executor = StepExecutor(
                self.llm,
                self.workspace,
                self.root,
                config=self.config,
                spec_context=self.spec_context,
                cancel=self.cancel,
            )
            async for line in executor.execute(current):
                yield line
            await self.snapshot_after(snapshots)

            self._set_state(LoopState.VERIFYING)
            result = self.analyzer.evaluate(self.criteria, snapshots, attempt)
            if use_review:
                review = await self.reviewer.review(instruction, snapshots)
                result.criteria_results.append(review)
                result.passed = result.passed and review.passed
            self.previous_results.append(result)

            for r in result.failing_results:
                yield progress_line(Status.FAILURE, f"{r.name}: {r.explanation}")

            if result.passed:
                self._set_state(LoopState.DONE)
                yield progress_line(
                    Status.SUCCESS,
                    f"Verified on attempt {attempt}: {len(result.criteria_results)} criteria passed",
                )
                return

            reason = None
            if attempt >= self.config.max_attempts:
                reason = f"reached the limit of {self.config.max_attempts} attempts"
            elif self.is_stuck():
                reason = f"no progress across {max(self.config.stuck_window, 2)} attempts"
            if reason:
                self._set_state(LoopState.GAVE_UP)
                for line in self._give_up(reason, result):
                    yield line
                return

            self._set_state(LoopState.REGENERATING)
            yield progress_line(
                Status.RUNNING,
                f"{len(result.failing)} criteria failing, regenerating corrective steps...",
            )
            current = await self.regenerate(instruction, result)
            if not current:
                self._set_state(LoopState.GAVE_UP)
                for line in self._give_up("no corrective steps could be produced", result):
                    yield line
                return
            yield progress_line(Status.INFO, f"Regenerated {len(current)} step(s)")

    def _give_up(self, reason: str, result: VerificationResult) -> list[str]:
        logger.info(f"Giving up: {reason}")
        lines = [progress_line(Status.WARNING, f"Stopped: {reason}. Needs manual follow-up:")]
        lines += [f"- **{r.name}**: {r.explanation}\n" for r in result.failing_results]
        return lines

    # -------------------------------------------------------------------------
    # Regeneration
    # -------------------------------------------------------------------------

    def _repair_target(self, step: PlanStep) -> Optional[str]:
        target = step.target
        if step.type in (StepType.RUN_COMMAND, StepType.ANALYZE):
            return target
        if not target or " " in target.strip() or is_malformed_target(target):
            logger.debug(f"Replacing regenerated target {target!r} with {self.primary_target!r}")
            return self.primary_target
        return target

    async def regenerate(self, instruction: str, result: VerificationResult) -> list[PlanStep]:
        """Ask the model for a smaller plan that closes the failing criteria."""
        explanations = [f"{r.name}: {r.explanation}" for r in result.failing_results]
        content = ""
        if self.primary_target:
            _, content = await self._read(self.primary_target)
            content = truncate_content(content, REGENERATE_CONTENT_CHAR_CAP)

        prompt = build_regenerate_prompt(
            instruction, explanations, self.primary_target, content, result.suggestions
        )
        try:
            reply = await collect_stream(self.llm, prompt, self.cancel)
        except LLMError as e:
            logger.warning(f"Regeneration call failed: {e}")
            reply = ""

        steps = []
        for step in parse_simple_plan(reply):
            target = self._repair_target(step)
            if step.type is not StepType.ANALYZE and not target:
                continue
            steps.append(PlanStep(
                id=step.id,
                type=step.type,
                target=target,
                description=f"{step.description} (goal: {instruction})",
                code_block=step.code_block,
            ))

        if not steps and self.primary_target:
            steps = [PlanStep(
                id=1,
                type=StepType.EDIT_FILE,
                target=self.primary_target,
                description=f"Fix: {'; '.join(explanations)} (goal: {instruction})",
            )]
        return renumber(steps)
