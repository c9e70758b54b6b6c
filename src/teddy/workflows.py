"""Checklist and test-first workflows built on the pipeline.

    .teddy/plan.md -> .teddy/tasks.md checklist -> next open task -> verified -> ticked
    feature -> failing tests (red) -> implementation verified against them (green)

Each entry point is an async generator of progress lines, like
TeddyPipeline.run(), and shares its collaborators and artifact helpers.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import AsyncIterator, Optional

from teddy.config.paths import plan_path, resolve_target, spec_path, tasks_path
from teddy.execution.engine import StepExecutor
from teddy.execution.prompts import (
    build_implementation_plan_prompt,
    build_task_plan_prompt,
    build_tasks_prompt,
    build_test_plan_prompt,
)
from teddy.llm.base import LLMError, collect_stream
from teddy.pipeline import NO_STEPS_MESSAGE, TeddyPipeline, artifact_label
from teddy.plan.checklist import ChecklistItem, check_item, next_open_item, parse_checklist
from teddy.plan.models import StepType, renumber
from teddy.progress import Status, heading, progress_line
from teddy.verification.models import LoopState

logger = logging.getLogger(__name__)


class TaskWorkflow(TeddyPipeline):
    """Breaks the saved plan into a checklist and implements it one task per call."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.task: Optional[ChecklistItem] = None

    async def generate_tasks(self) -> AsyncIterator[str]:
        async for line in self._cancellable(self._generate_tasks()):
            yield line

    async def implement_next(self) -> AsyncIterator[str]:
        async for line in self._cancellable(self._implement_next()):
            yield line

    async def _generate_tasks(self) -> AsyncIterator[str]:
        root = await self._workspace_root()
        if root is None:
            yield progress_line(Status.FAILURE, "No workspace open.")
            return

        yield heading("Tasks")
        plan = await self._read_artifact(plan_path(root))
        if not plan:
            yield progress_line(
                Status.FAILURE,
                f"No plan at `{artifact_label(plan_path(root))}`; run `teddy run` first.",
            )
            return

        yield progress_line(Status.RUNNING, "Breaking the plan into tasks...")
        try:
            tasks = await collect_stream(self.llm, build_tasks_prompt(plan), self.cancel)
        except LLMError as e:
            yield progress_line(Status.FAILURE, f"Task generation failed: {e}")
            return

        items = parse_checklist(tasks)
        if not items:
            yield progress_line(Status.FAILURE, "The model returned no checklist items; task list not saved.")
            return
        yield await self._save_artifact(tasks_path(root), tasks.strip() + "\n", "task list")
        yield progress_line(Status.INFO, f"{len(items)} task(s) listed")

    async def _implement_next(self) -> AsyncIterator[str]:
        root = await self._workspace_root()
        if root is None:
            yield progress_line(Status.FAILURE, "No workspace open.")
            return

        yield heading("Implement Next Task")
        path = tasks_path(root)
        tasks = await self._read_artifact(path)
        if tasks is None:
            yield progress_line(
                Status.FAILURE,
                f"No task list at `{artifact_label(path)}`; run `teddy tasks` first.",
            )
            return

        items = parse_checklist(tasks)
        item = next_open_item(items)
        if item is None:
            yield progress_line(Status.SUCCESS, "All tasks are complete.")
            return
        self.task = item
        yield progress_line(Status.INFO, f"Task {item.number}/{len(items)}: {item.text}")

        spec = await self._read_artifact(spec_path(root))
        plan = await self._read_artifact(plan_path(root))
        yield progress_line(Status.RUNNING, "Planning the task...")
        prompt = build_task_plan_prompt(item.text, spec=spec, plan=plan, budget=self.config.spec_context_chars)
        try:
            task_plan = await collect_stream(self.llm, prompt, self.cancel)
        except LLMError as e:
            yield progress_line(Status.FAILURE, f"Planning failed: {e}")
            return

        steps = self._parse_generated(task_plan)
        if not steps:
            yield progress_line(Status.FAILURE, f"{NO_STEPS_MESSAGE} for this task.")
            return
        for line in self._step_lines(steps):
            yield line

        async for line in self._execute(root, item.text, steps, spec=spec):
            yield line

        if self.engine.state is not LoopState.DONE:
            yield progress_line(Status.WARNING, f"Task {item.number} left unchecked")
            return
        yield await self._tick(path, tasks, item)

    async def _tick(self, path: Path, tasks: str, item: ChecklistItem) -> str:
        # Steps may have rewritten the list; find the task again by its text
        current = await self._read_artifact(path) or tasks
        match = next((i for i in parse_checklist(current) if not i.done and i.text == item.text), None)
        if match is None:
            logger.warning(f"Task {item.text!r} no longer open in {path}")
            return progress_line(Status.WARNING, f"Task {item.number} is no longer open in the task list")
        try:
            await self.workspace.write_file(str(path), check_item(current, match))
        except OSError as e:
            logger.warning(f"Could not update {path}: {e}")
            return progress_line(Status.WARNING, f"Could not update `{artifact_label(path)}`")
        return progress_line(Status.SUCCESS, f"Checked off task {item.number}: {item.text}")


class TddWorkflow(TeddyPipeline):
    """Red-green cycle: write failing tests, then an implementation verified against them."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.test_files: list[str] = []

    async def run_tdd(self, feature: str) -> AsyncIterator[str]:
        async for line in self._cancellable(self._run_tdd(feature.strip())):
            yield line

    async def _run_tdd(self, feature: str) -> AsyncIterator[str]:
        if not feature:
            yield progress_line(Status.FAILURE, "Describe the feature to build test-first.")
            return
        root = await self._workspace_root()
        if root is None:
            yield progress_line(Status.FAILURE, "No workspace open.")
            return

        # Red
        yield heading("Red: Failing Tests")
        yield progress_line(Status.RUNNING, "Writing tests...")
        current = await self.workspace.get_current_file()
        prompt = build_test_plan_prompt(
            feature,
            current_file=(current.path, current.contents) if current else None,
            budget=self.config.spec_context_chars,
        )
        try:
            test_plan = await collect_stream(self.llm, prompt, self.cancel)
        except LLMError as e:
            yield progress_line(Status.FAILURE, f"Test generation failed: {e}")
            return
        steps = self._parse_generated(test_plan)
        if not steps:
            yield progress_line(Status.FAILURE, f"{NO_STEPS_MESSAGE} for the tests.")
            return

        executor = StepExecutor(
            self.llm,
            self.workspace,
            root,
            config=self.config,
            spec_context=feature,
            cancel=self.cancel,
        )
        async for line in executor.execute(steps):
            yield line
        self.test_files = list(dict.fromkeys(executor.summary.written))
        if not self.test_files:
            yield progress_line(Status.FAILURE, "No test file was written; stopping before implementation.")
            return
        yield progress_line(
            Status.INFO,
            "Tests written: " + ", ".join(f"`{t}`" for t in self.test_files),
        )

        # Green
        yield heading("Green: Implementation")
        tests = []
        for target in self.test_files:
            content = await self._read_artifact(resolve_target(root, target))
            if content is not None:
                tests.append((target, content))

        yield progress_line(Status.RUNNING, "Planning the implementation...")
        prompt = build_implementation_plan_prompt(feature, tests, budget=self.config.spec_context_chars)
        try:
            impl_plan = await collect_stream(self.llm, prompt, self.cancel)
        except LLMError as e:
            yield progress_line(Status.FAILURE, f"Planning failed: {e}")
            return

        steps = renumber([
            step for step in self._parse_generated(impl_plan)
            if step.type is StepType.RUN_COMMAND or step.target not in self.test_files
        ])
        if not steps:
            yield progress_line(Status.FAILURE, f"{NO_STEPS_MESSAGE} for the implementation.")
            return
        for line in self._step_lines(steps):
            yield line

        spec = "\n\n".join(f"Test file `{path}`:\n{content}" for path, content in tests)
        async for line in self._execute(root, feature, steps, spec=spec):
            yield line

        if self.engine.state is LoopState.DONE:
            yield progress_line(Status.SUCCESS, "Red-green cycle complete; refactor with the tests as a safety net.")
        else:
            yield progress_line(Status.WARNING, "Implementation did not verify; the tests are left in place.")
