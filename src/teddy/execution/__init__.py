"""Execution of plan steps against a workspace."""

from teddy.execution.engine import ExecutionSummary, StepExecutor
from teddy.execution.locator import (
    Insertion,
    TextCursor,
    append_to_end,
    brace_balance,
    insert_after_imports,
    insert_after_symbol,
    insert_at_top,
    insert_before_line,
    insert_inside_symbol,
    locate_and_insert,
)
from teddy.execution.prompts import strip_code_fences, truncate_content

__all__ = [
    "ExecutionSummary",
    "Insertion",
    "StepExecutor",
    "TextCursor",
    "append_to_end",
    "brace_balance",
    "insert_after_imports",
    "insert_after_symbol",
    "insert_at_top",
    "insert_before_line",
    "insert_inside_symbol",
    "locate_and_insert",
    "strip_code_fences",
    "truncate_content",
]
