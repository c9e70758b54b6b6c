"""Decide whether text is a plan document, and whether the user wants it run.

Detection is intentionally cheap: a length gate, a marker count, then the
machine-format signal. Only texts that pass are handed to the extractors.
"""

from __future__ import annotations

import logging
import re

from teddy.config.defaults import PLAN_MIN_LENGTH, PLAN_MIN_MARKERS
from teddy.plan.extractors import parse_structured_plan
from teddy.plan.models import PlanDetection, PlanFormat
from teddy.plan.routing import DEFAULT_ROUTING, StepRouting
from teddy.plan.simple import has_simple_signal, parse_simple_plan

logger = logging.getLogger(__name__)

PLAN_MARKERS = {
    "target": re.compile(r"\*\*Target(?::\*\*|\*\*:)"),
    "action": re.compile(r"\*\*Action(?::\*\*|\*\*:)"),
    "implementation_logic": re.compile(r"\*\*Implementation Logic(?::\*\*|\*\*:)"),
    "goal": re.compile(r"\*\*Goal(?::\*\*|\*\*:)"),
    "step_header": re.compile(r"^\s{0,3}#{2,6}\s*Step\s+\d+", re.MULTILINE),
    "task_header": re.compile(r"^\s{0,3}#{3,6}\s*Task\s+[\w.]+\s*:", re.MULTILINE),
}

_BOLD_NUMBERED_RE = re.compile(r"^\s*\d+[.)]\s+\*\*[^*\n]+\*\*", re.MULTILINE)
_FENCE_RE = re.compile(r"^\s*(```|~~~)", re.MULTILINE)

EXECUTION_INTENT_RE = re.compile(
    r"\b(?:execute|implement|fix|do|run|perform|apply)\s+"
    r"(?:(?:the|these|those|all)\s+)?(?:(?:next|immediate|remaining)\s+)*"
    r"(?:steps?|plan|changes|tasks)\b"
    r"|\bcarry\s+out\b"
    r"|\bfollow\s+(?:this|the)\s+plan\b"
    r"|\bstart\s+(?:the\s+)?implementation\b",
    re.IGNORECASE,
)


def find_markers(text: str) -> list[str]:
    """Names of the structured-plan markers present in text."""
    return [name for name, pattern in PLAN_MARKERS.items() if pattern.search(text)]


def has_numbered_code_plan(text: str) -> bool:
    """A bold lead-in numbered list together with at least one fenced block."""
    return bool(_BOLD_NUMBERED_RE.search(text) and _FENCE_RE.search(text))


def detect_plan_document(text: str, routing: StepRouting = DEFAULT_ROUTING) -> PlanDetection:
    """Classify text and, when it is a plan, parse its steps.

    A detected plan may still carry zero steps; the caller reports that
    instead of inventing any.
    """
    if not text or len(text.strip()) < PLAN_MIN_LENGTH:
        return PlanDetection(is_plan_document=False)

    markers = find_markers(text)
    structured = len(markers) >= PLAN_MIN_MARKERS or has_numbered_code_plan(text)
    simple_signal = has_simple_signal(text)

    if structured:
        fmt = PlanFormat.TEDDY_SPEC if len(markers) >= PLAN_MIN_MARKERS else PlanFormat.NUMBERED_STEPS
        steps = parse_structured_plan(text, routing)
        if not steps and simple_signal:
            steps, fmt = parse_simple_plan(text), PlanFormat.SIMPLE
        logger.debug(f"Structured plan ({fmt.value}), markers={markers}, steps={len(steps)}")
        return PlanDetection(is_plan_document=True, steps=steps, format=fmt)

    if simple_signal:
        steps = parse_simple_plan(text)
        logger.debug(f"Machine-format plan, steps={len(steps)}")
        return PlanDetection(is_plan_document=True, steps=steps, format=PlanFormat.SIMPLE)

    return PlanDetection(is_plan_document=False)


def wants_execution(instruction: str) -> bool:
    """True when the instruction asks to carry out an existing plan."""
    return bool(instruction and EXECUTION_INTENT_RE.search(instruction))
