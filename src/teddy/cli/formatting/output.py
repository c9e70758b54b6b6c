"""
Output formatting with Rich console.
"""

from __future__ import annotations

from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table
from rich.theme import Theme

from teddy.plan.models import PlanDetection
from teddy.progress import STATUS_ICONS, Status

# Custom theme for Teddy CLI
custom_theme = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "red",
    "success": "green",
})

STATUS_STYLES = {
    Status.SUCCESS: "success",
    Status.FAILURE: "error",
    Status.WARNING: "warning",
    Status.CANCELLED: "warning",
    Status.INFO: "info",
    Status.RUNNING: "dim",
    Status.SKIPPED: "dim",
}


def status_of(line: str) -> Status | None:
    """The Status whose icon starts a progress line, if any."""
    stripped = line.lstrip()
    for status, icon in STATUS_ICONS.items():
        if stripped.startswith(icon):
            return status
    return None


class ConsoleOutput:
    """Console output with Rich formatting."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console(theme=custom_theme)

    def print(self, text: str = "", **kwargs):
        """Print text to console."""
        self.console.print(text, **kwargs)

    def print_markdown(self, text: str):
        """Print markdown-formatted text."""
        self.console.print(Markdown(text))

    def print_error(self, text: str):
        self.console.print(f"[red]Error:[/red] {text}")

    def print_warning(self, text: str):
        self.console.print(f"[yellow]Warning:[/yellow] {text}")

    def print_json(self, data: str):
        self.console.print_json(data)

    def print_progress(self, line: str):
        """Print one pipeline progress line, styled by its status icon."""
        text = line.rstrip("\n")
        if not text.strip():
            return
        if text.lstrip().startswith("#"):
            self.print_markdown(text)
            return
        status = status_of(text)
        style = STATUS_STYLES.get(status) if status else None
        self.console.print(text, style=style, markup=False, highlight=False)

    def print_detection(self, detection: PlanDetection, source: str = ""):
        """Render a plan detection as a table."""
        if not detection.is_plan_document:
            self.print_warning(f"{source or 'Input'} is not a plan document")
            return

        table = Table(title=f"{source} ({detection.format.value})" if source else detection.format.value)
        table.add_column("#", justify="right", style="cyan")
        table.add_column("Type", style="magenta")
        table.add_column("Target")
        table.add_column("Description", overflow="fold")
        table.add_column("Code", justify="right", style="dim")
        for step in detection.steps:
            code_lines = len(step.code_block.splitlines()) if step.code_block else 0
            table.add_row(
                str(step.id),
                step.type.value,
                step.target or "",
                step.description,
                f"{code_lines} lines" if code_lines else "",
            )
        self.console.print(table)
        if not detection.steps:
            self.print_warning("Could not parse actionable steps")
