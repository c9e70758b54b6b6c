"""Prompt builders and LLM output cleanup for step execution."""

from __future__ import annotations

import re
from typing import Optional

from teddy.config.defaults import EDIT_CONTEXT_CHAR_CAP, SPEC_CONTEXT_CHAR_BUDGET

REFACTOR_INTENT_RE = re.compile(
    r"\b(?:refactor|convert|rewrite|transform)\w*\b|callback.*async|async.*await",
    re.IGNORECASE | re.DOTALL,
)

_WRAPPING_FENCE_RE = re.compile(r"^\s*(`{3,}|~{3,})[^\n]*\n(.*?)\n?\s*\1\s*$", re.DOTALL)
_FENCED_BLOCK_RE = re.compile(r"^[ \t]*(`{3,}|~{3,})[^\n]*\n(.*?)\n[ \t]*\1[ \t]*$", re.DOTALL | re.MULTILINE)

# Targets whose contents legitimately contain fenced blocks
DOC_EXTENSIONS = frozenset({".md", ".mdx", ".markdown", ".rst", ".txt", ".adoc"})

# Most non-blank prose lines allowed around a single fenced block
SURROUNDING_PROSE_LINES = 4

TRUNCATION_MARKER = "\n\n... [truncated] ...\n\n"


def truncate_content(text: str, limit: int) -> str:
    """Keep the head and tail of text within limit characters."""
    if limit <= 0 or len(text) <= limit:
        return text
    room = max(limit - len(TRUNCATION_MARKER), 0)
    head = room * 2 // 3
    tail = room - head
    return text[:head] + TRUNCATION_MARKER + (text[-tail:] if tail else "")


def _is_doc_target(target: Optional[str]) -> bool:
    if not target:
        return False
    name = target.strip().lower()
    return any(name.endswith(ext) for ext in DOC_EXTENSIONS)


def strip_code_fences(text: str, target: Optional[str] = None) -> str:
    """Remove a markdown fence wrapper from generated code.

    A reply that is one fenced block loses the fence lines. When the model put
    a little prose around a single fenced block, the block body is returned,
    except for documentation targets, whose fenced blocks are content.
    """
    stripped = text.strip()
    m = _WRAPPING_FENCE_RE.match(stripped)
    if m and not re.search(rf"^[ \t]*{re.escape(m.group(1))}", m.group(2), re.MULTILINE):
        return m.group(2)

    if _is_doc_target(target):
        return stripped

    blocks = list(_FENCED_BLOCK_RE.finditer(stripped))
    if len(blocks) != 1:
        return stripped
    block = blocks[0]
    prose = stripped[:block.start()] + "\n" + stripped[block.end():]
    if sum(1 for line in prose.splitlines() if line.strip()) > SURROUNDING_PROSE_LINES:
        return stripped
    return block.group(2)


def is_refactor_intent(description: str) -> bool:
    return bool(REFACTOR_INTENT_RE.search(description or ""))


def build_create_prompt(target: str, description: str, spec: Optional[str] = None,
                        spec_budget: int = SPEC_CONTEXT_CHAR_BUDGET) -> str:
    parts = [
        f"Create the file `{target}`.",
        f"Purpose: {description}",
        "",
        "Requirements:",
        "- Output the complete file contents, including every import it needs.",
        "- No placeholders, no TODO stubs, no elided sections.",
        "- Output only the code, no explanation.",
    ]
    if spec:
        parts += ["", "Specification for context:", truncate_content(spec, spec_budget)]
    return "\n".join(parts)


def build_edit_prompt(target: str, description: str, existing: str,
                      code: Optional[str] = None,
                      context_cap: int = EDIT_CONTEXT_CHAR_CAP) -> str:
    """Rewrite prompt for one file.

    Refactor-style changes get the whole file and an instruction to apply the
    change everywhere; other edits see a truncated window.
    """
    proposed = ["", "Proposed code to incorporate:", code] if code else []

    if is_refactor_intent(description):
        return "\n".join([
            f"Rewrite the file `{target}`.",
            f"Change: {description}",
            "",
            "Apply the change consistently everywhere in the file, not only to the first occurrence.",
            "Output the ENTIRE file with all changes applied, and nothing else.",
            *proposed,
            "",
            "Current file:",
            existing,
        ])

    return "\n".join([
        f"Modify the file `{target}`.",
        f"Change: {description}",
        "",
        "Output the complete modified file, and nothing else.",
        *proposed,
        "",
        "Current file:",
        truncate_content(existing, context_cap),
    ])


def build_spec_prompt(instruction: str, current_file: Optional[tuple[str, str]] = None,
                      rules: Optional[str] = None, context: Optional[str] = None,
                      budget: int = SPEC_CONTEXT_CHAR_BUDGET) -> str:
    parts = [
        "You are an expert software architect. Create a detailed implementation "
        "specification for the following request. Include:",
        "1. Overview of the solution",
        "2. Files to create/modify",
        "3. Key interfaces and data structures",
        "4. Dependencies required",
        "5. Testing strategy",
        "",
        f"Request: {instruction}",
    ]
    if context:
        parts += ["", "Attached context:", truncate_content(context, budget)]
    if rules:
        parts += ["", "Architectural rules to follow:", truncate_content(rules, budget)]
    if current_file:
        path, contents = current_file
        parts += ["", f"Currently open file `{path}`:", truncate_content(contents, budget)]
    parts += ["", "Respond in markdown format."]
    return "\n".join(parts)


MACHINE_FORMAT_HELP = (
    "Each step must be on its own numbered line in exactly one of these forms:\n"
    "1. CREATE_FILE: path/to/file | description\n"
    "2. EDIT_FILE: path/to/file | what to change\n"
    "3. RUN_COMMAND: command | purpose\n"
    "Use workspace-relative paths and no other text on step lines."
)


def build_plan_prompt(spec: str) -> str:
    return "\n".join([
        "Based on this specification, create a numbered implementation plan.",
        MACHINE_FORMAT_HELP,
        "",
        "Specification:",
        spec,
    ])


def build_regenerate_prompt(instruction: str, failing: list[str], primary_target: Optional[str],
                            content: str, suggestions: list[str]) -> str:
    parts = [
        "A previous attempt did not fully complete this task.",
        f"Task: {instruction}",
        "",
        "Unmet criteria:",
        *[f"- {line}" for line in failing],
    ]
    if suggestions:
        parts += ["", "Suggestions:", *[f"- {s}" for s in suggestions]]
    if primary_target:
        parts += ["", f"Current content of `{primary_target}`:", content]
    parts += [
        "",
        "Produce only the steps needed to close the gap.",
        MACHINE_FORMAT_HELP,
    ]
    return "\n".join(parts)


def build_tasks_prompt(plan: str) -> str:
    return "\n".join([
        "Convert the following implementation plan into a granular checklist of "
        "atomic tasks, in the order they should be done.",
        "Format every task as a markdown checklist line:",
        "- [ ] Task 1",
        "- [ ] Task 2",
        "Output only the markdown checklist.",
        "",
        "Plan:",
        plan,
    ])


def build_task_plan_prompt(task: str, spec: Optional[str] = None, plan: Optional[str] = None,
                           budget: int = SPEC_CONTEXT_CHAR_BUDGET) -> str:
    parts = [
        f"Create the implementation steps for this single task: {task}",
        "Only cover this task; later tasks are handled separately.",
        MACHINE_FORMAT_HELP,
    ]
    if plan:
        parts += ["", "Overall plan:", truncate_content(plan, budget)]
    if spec:
        parts += ["", "Specification:", truncate_content(spec, budget)]
    return "\n".join(parts)


def build_test_plan_prompt(feature: str, current_file: Optional[tuple[str, str]] = None,
                           budget: int = SPEC_CONTEXT_CHAR_BUDGET) -> str:
    """Red phase: tests for a feature that does not exist yet."""
    parts = [
        f"Write failing tests for this feature: {feature}",
        "Use the project's usual test framework (e.g. Jest for TS/JS, pytest for Python).",
        "Create only test files, no implementation; finish with a RUN_COMMAND that runs them.",
        MACHINE_FORMAT_HELP,
    ]
    if current_file:
        path, contents = current_file
        parts += ["", f"Currently open file `{path}`:", truncate_content(contents, budget)]
    return "\n".join(parts)


def build_implementation_plan_prompt(feature: str, tests: list[tuple[str, str]],
                                     budget: int = SPEC_CONTEXT_CHAR_BUDGET) -> str:
    """Green phase: the smallest implementation that passes the tests."""
    parts = [
        f"Implement this feature so that the tests below pass: {feature}",
        "Do not modify the test files; finish with a RUN_COMMAND that runs the tests.",
        MACHINE_FORMAT_HELP,
    ]
    for path, contents in tests:
        parts += ["", f"Test file `{path}`:", truncate_content(contents, budget)]
    return "\n".join(parts)
