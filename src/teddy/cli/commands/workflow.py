"""
Workflow commands - task checklist and test-first runs over a workspace.
"""

from __future__ import annotations

from typing import Optional

from teddy.cli.commands.run import cancel_on_interrupt, exit_code, prepare
from teddy.cli.formatting.output import ConsoleOutput
from teddy.cli.formatting.streaming import ProgressStream
from teddy.workflows import TaskWorkflow, TddWorkflow
from teddy.workspace import LocalWorkspace


async def tasks(workspace_dir: Optional[str] = None, provider: Optional[str] = None,
                model: Optional[str] = None) -> int:
    """Turn the saved plan into a task checklist."""
    console = ConsoleOutput()
    prepared = prepare(workspace_dir, provider, model, console)
    if prepared is None:
        return 1
    root, config, llm = prepared

    cancel = cancel_on_interrupt()
    workflow = TaskWorkflow(llm, LocalWorkspace([root]), config=config, cancel=cancel)
    lines = await ProgressStream(console).stream(workflow.generate_tasks())
    return exit_code(lines, None, cancel)


async def implement(workspace_dir: Optional[str] = None, provider: Optional[str] = None,
                    model: Optional[str] = None) -> int:
    """Implement the next open task of the checklist."""
    console = ConsoleOutput()
    prepared = prepare(workspace_dir, provider, model, console)
    if prepared is None:
        return 1
    root, config, llm = prepared

    cancel = cancel_on_interrupt()
    workflow = TaskWorkflow(llm, LocalWorkspace([root]), config=config, cancel=cancel)
    lines = await ProgressStream(console).stream(workflow.implement_next())
    return exit_code(lines, workflow.engine, cancel)


async def tdd(feature: str, workspace_dir: Optional[str] = None, provider: Optional[str] = None,
              model: Optional[str] = None, current_file: Optional[str] = None) -> int:
    """Write failing tests for a feature, then implement until they pass."""
    console = ConsoleOutput()
    prepared = prepare(workspace_dir, provider, model, console)
    if prepared is None:
        return 1
    root, config, llm = prepared

    cancel = cancel_on_interrupt()
    workspace = LocalWorkspace([root], current_file=current_file)
    workflow = TddWorkflow(llm, workspace, config=config, cancel=cancel)
    lines = await ProgressStream(console).stream(workflow.run_tdd(feature))
    return exit_code(lines, workflow.engine, cancel)
