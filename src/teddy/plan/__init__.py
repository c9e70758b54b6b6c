"""Plan documents: detection, segmentation and step extraction."""

from teddy.plan.checklist import ChecklistItem, check_item, next_open_item, parse_checklist
from teddy.plan.detector import detect_plan_document, find_markers, wants_execution
from teddy.plan.extractors import parse_structured_plan
from teddy.plan.models import PlanDetection, PlanFormat, PlanStep, StepType, renumber
from teddy.plan.routing import DEFAULT_ROUTING, StepRouting
from teddy.plan.simple import has_simple_signal, parse_simple_line, parse_simple_plan
from teddy.plan.targets import (
    clean_target,
    find_inline_target,
    infer_target_from_code,
    is_malformed_target,
)
from teddy.plan.tokenizer import Block, BlockKind, section, segment

__all__ = [
    "Block",
    "BlockKind",
    "ChecklistItem",
    "DEFAULT_ROUTING",
    "PlanDetection",
    "PlanFormat",
    "PlanStep",
    "StepRouting",
    "StepType",
    "check_item",
    "clean_target",
    "detect_plan_document",
    "find_inline_target",
    "find_markers",
    "has_simple_signal",
    "infer_target_from_code",
    "is_malformed_target",
    "next_open_item",
    "parse_checklist",
    "parse_simple_line",
    "parse_simple_plan",
    "parse_structured_plan",
    "renumber",
    "segment",
    "section",
    "wants_execution",
]
