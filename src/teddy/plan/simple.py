"""Parser for the machine plan format.

One step per line:

    1. CREATE_FILE: src/calc.ts | entry point
    2. EDIT_FILE: src/index.ts - export the calculator
    - RUN_COMMAND: npm test | verify

The verb is case-insensitive; the remainder splits on `|` (preferred) or
` - ` into target and description.
"""

from __future__ import annotations

import logging
import re

from teddy.plan.models import PlanStep, StepType

logger = logging.getLogger(__name__)

SIMPLE_LINE_RE = re.compile(
    r"^\s*(\d+\.|-|\*)\s*(CREATE_FILE|EDIT_FILE|RUN_COMMAND|ANALYZE):\s*(.+)$",
    re.IGNORECASE,
)

# Looser form used by the detector: any `VERB: value` line
SIMPLE_SIGNAL_RE = re.compile(
    r"^\s*(?:\d+\.|-|\*)?\s*(?:CREATE_FILE|EDIT_FILE|RUN_COMMAND|ANALYZE):\s*\S",
    re.IGNORECASE | re.MULTILINE,
)

# `src/a.ts Create the entry point` -> `src/a.ts`
_TRAILING_DESCRIPTION_RE = re.compile(r"^(\S+)\s+[A-Z].*$")


def _split_rest(rest: str) -> tuple[str, str]:
    if "|" in rest:
        target, _, description = rest.partition("|")
    elif " - " in rest:
        target, _, description = rest.partition(" - ")
    else:
        target, description = rest, ""
    return target.strip(), description.strip()


def _clean_file_target(target: str) -> str:
    target = target.replace("`", "").strip()
    m = _TRAILING_DESCRIPTION_RE.match(target)
    if m:
        target = m.group(1)
    return target.rstrip(":,;")


def parse_simple_line(line: str, step_id: int) -> PlanStep | None:
    match = SIMPLE_LINE_RE.match(line)
    if not match:
        return None

    step_type = StepType(match.group(2).lower())
    target, description = _split_rest(match.group(3))

    if step_type is StepType.RUN_COMMAND:
        target = target.strip().strip("`").strip()
    else:
        target = _clean_file_target(target)

    return PlanStep(
        id=step_id,
        type=step_type,
        target=target or None,
        description=description or target,
    )


def parse_simple_plan(text: str) -> list[PlanStep]:
    """Parse every machine-format line of text into steps, numbered from 1."""
    steps: list[PlanStep] = []
    for line in text.splitlines():
        step = parse_simple_line(line, len(steps) + 1)
        if step is not None:
            steps.append(step)
    logger.debug(f"Simple parser found {len(steps)} steps")
    return steps


def has_simple_signal(text: str) -> bool:
    return bool(SIMPLE_SIGNAL_RE.search(text))
