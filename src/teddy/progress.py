"""Progress line formatting.

Every stage of the pipeline narrates what it did as markdown-flavored lines;
this module keeps their shape consistent.
"""

from enum import Enum


class Status(Enum):
    """Status enum for progress reporting."""
    RUNNING = "running"
    SUCCESS = "success"
    FAILURE = "failure"
    WARNING = "warning"
    SKIPPED = "skipped"
    INFO = "info"
    CANCELLED = "cancelled"


STATUS_ICONS = {
    Status.RUNNING: "⏳",
    Status.SUCCESS: "✅",
    Status.FAILURE: "❌",
    Status.WARNING: "⚠️",
    Status.SKIPPED: "⏭️",
    Status.INFO: "ℹ️",
    Status.CANCELLED: "⏹️",
}


def progress_line(status: Status, message: str) -> str:
    """Format a single progress line, newline-terminated."""
    return f"{STATUS_ICONS[status]} {message}\n"


def heading(text: str) -> str:
    return f"\n## {text}\n"


def step_label(step_id: int, total: int) -> str:
    return f"**Step {step_id}/{total}**"
