"""Extract typed steps from a segmented plan document.

Four extractors run in priority order over the same block list. Each one
claims the blocks it turns into steps, so a later, broader extractor never
re-derives a step from text an earlier, more specific one already used:

    1. headed steps        `## Step N: Title` / `### Task N: Title` sections
    2. target-then-code    `**Target:** path` followed by a fenced block
    3. shell blocks        any remaining ```bash block, one step per line
    4. numbered lead-ins   `N. **Title**: details` items

Steps come out in document order regardless of which extractor found them.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional

from teddy.config.defaults import SHELL_LANGUAGES
from teddy.plan.models import PlanStep, StepType
from teddy.plan.routing import DEFAULT_ROUTING, StepRouting
from teddy.plan.targets import (
    clean_target,
    find_inline_target,
    infer_target_from_code,
)
from teddy.plan.tokenizer import Block, BlockKind, section, segment

logger = logging.getLogger(__name__)

_STEP_HEADER_RE = re.compile(r"^(?:Step|Task)\s+([\w.]+)\s*[:.)\-]?\s*(.*)$", re.IGNORECASE)
_PROMPT_PREFIX_RE = re.compile(r"^(?:\$|>|PS>)\s+")
TARGET_FIELDS = ("target", "file", "files")


@dataclass
class _Draft:
    order: tuple[int, int]
    type: StepType
    target: Optional[str]
    description: str
    code_block: Optional[str] = None


class _Extraction:
    """Shared state of one parse: the blocks and which of them are claimed."""

    def __init__(self, blocks: list[Block], routing: StepRouting):
        self.blocks = blocks
        self.routing = routing
        self.consumed: set[int] = set()
        self.drafts: list[_Draft] = []

    def free(self, blocks: Iterable[Block]) -> list[Block]:
        return [b for b in blocks if b.index not in self.consumed]

    def claim(self, blocks: Iterable[Block]) -> None:
        self.consumed.update(b.index for b in blocks)

    def add(self, block: Block, seq: int, step_type: StepType, target: Optional[str],
            description: str, code_block: Optional[str] = None) -> None:
        self.drafts.append(_Draft(
            order=(block.index, seq),
            type=step_type,
            target=target,
            description=description,
            code_block=code_block,
        ))

    def steps(self) -> list[PlanStep]:
        ordered = sorted(self.drafts, key=lambda d: d.order)
        return [
            PlanStep(
                id=i,
                type=d.type,
                target=d.target,
                description=d.description,
                code_block=d.code_block,
            )
            for i, d in enumerate(ordered, start=1)
        ]


# =============================================================================
# Shared helpers
# =============================================================================


def is_shell_block(block: Block) -> bool:
    return block.kind is BlockKind.FENCE and block.lang in SHELL_LANGUAGES


def shell_commands(body: str) -> list[str]:
    """Non-blank, non-comment lines of a shell block, prompt markers removed."""
    commands = []
    for line in body.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or stripped.upper().startswith("REM "):
            continue
        commands.append(_PROMPT_PREFIX_RE.sub("", stripped))
    return commands


def _field(blocks: Iterable[Block], names: Iterable[str]) -> Optional[str]:
    names = tuple(names)
    for block in blocks:
        if block.kind is BlockKind.FIELD and block.name in names and block.value:
            return block.value
    return None


def _join_description(*parts: Optional[str]) -> str:
    seen: list[str] = []
    for part in parts:
        if part and part.strip() and part.strip() not in seen:
            seen.append(part.strip())
    return ". ".join(seen)


def _emit_code_block(
    ex: _Extraction,
    fence: Block,
    title: str,
    description: str,
    target: Optional[str],
) -> bool:
    """Route one fenced block to steps. Returns False when the block is dropped."""
    if is_shell_block(fence):
        commands = shell_commands(fence.body)
        for seq, command in enumerate(commands):
            ex.add(fence, seq, StepType.RUN_COMMAND, command, description or command, fence.body)
        return bool(commands)

    resolved = target or infer_target_from_code(fence.body, fence.lang)
    if not resolved:
        logger.debug(f"Dropping code block at line {fence.start_line + 1}: no target")
        return False

    ex.add(fence, 0, ex.routing.code_step_type(title), resolved, description, fence.body)
    return True


# =============================================================================
# Pattern 1: headed steps
# =============================================================================


def extract_headed_steps(ex: _Extraction) -> None:
    for block in ex.blocks:
        if block.kind is not BlockKind.HEADER or block.index in ex.consumed:
            continue
        m = _STEP_HEADER_RE.match(block.title)
        if not m:
            continue

        title = m.group(2).strip() or block.title
        body = section(ex.blocks, block.index)
        raw_target = _field(body, TARGET_FIELDS)
        target = clean_target(raw_target) if raw_target else None
        action = _field(body, ("action",))
        location = _field(body, ("location",))
        description = _join_description(title, action, location)

        emitted = False
        for fence in ex.free(b for b in body if b.kind is BlockKind.FENCE):
            emitted |= _emit_code_block(ex, fence, title, description, target)

        if emitted:
            ex.claim([block, *body])


# =============================================================================
# Pattern 2: target-then-code
# =============================================================================


def _target_region(blocks: list[Block], start: int) -> list[Block]:
    region = []
    for block in blocks[start + 1:]:
        if block.kind is BlockKind.HEADER:
            break
        if block.kind is BlockKind.FIELD and block.name in TARGET_FIELDS:
            break
        region.append(block)
    return region


def _preceding_action(blocks: list[Block], start: int) -> Optional[str]:
    for block in reversed(blocks[:start]):
        if block.kind is BlockKind.HEADER:
            return None
        if block.kind is BlockKind.FIELD and block.name in TARGET_FIELDS:
            return None
        if block.kind is BlockKind.FIELD and block.name == "action":
            return block.value
    return None


def extract_target_blocks(ex: _Extraction) -> None:
    for block in ex.blocks:
        if (
            block.kind is not BlockKind.FIELD
            or block.name not in TARGET_FIELDS
            or block.index in ex.consumed
        ):
            continue
        target = clean_target(block.value)
        if not target:
            continue

        region = _target_region(ex.blocks, block.index)
        action = _field(region, ("action",)) or _preceding_action(ex.blocks, block.index)
        action = action or f"Modify {target}"
        location = _field(region, ("location",))

        fence = next(
            (b for b in ex.free(region) if b.kind is BlockKind.FENCE and not is_shell_block(b)),
            None,
        )
        if fence is None:
            continue

        description = _join_description(action, location)
        ex.add(fence, 0, ex.routing.code_step_type(action), target, description, fence.body)
        ex.claim([block, fence, *(b for b in region if b.kind is BlockKind.FIELD)])


# =============================================================================
# Pattern 3: standalone shell blocks
# =============================================================================


def extract_shell_blocks(ex: _Extraction) -> None:
    for block in ex.free(ex.blocks):
        if not is_shell_block(block):
            continue
        for seq, command in enumerate(shell_commands(block.body)):
            ex.add(block, seq, StepType.RUN_COMMAND, command, command, block.body)
        ex.claim([block])


# =============================================================================
# Pattern 4: numbered bold lead-ins
# =============================================================================


def extract_numbered_items(ex: _Extraction) -> None:
    for block in ex.blocks:
        if (
            block.kind is not BlockKind.NUMBERED
            or not block.bold_lead
            or block.index in ex.consumed
        ):
            continue

        extent = ex.free(section(ex.blocks, block.index, stop_at_numbered=True))
        title = block.title
        details = " ".join(
            [block.value] + [b.text for b in extent if b.kind in (BlockKind.PROSE, BlockKind.FIELD)]
        )
        description = _join_description(title, block.value)

        raw_target = _field(extent, TARGET_FIELDS)
        target = clean_target(raw_target) if raw_target else find_inline_target(f"{title} {details}")

        fences = [b for b in extent if b.kind is BlockKind.FENCE]
        if fences:
            emitted = False
            for fence in fences:
                emitted |= _emit_code_block(ex, fence, title, description, target)
            if emitted:
                ex.claim([block, *extent])
            continue

        if target and ex.routing.has_action_verb(f"{title} {details}"):
            ex.add(block, 0, StepType.EDIT_FILE, target, description)
            ex.claim([block, *extent])
        else:
            logger.debug(f"Numbered item {block.number} is informational, skipping")


EXTRACTORS = (
    extract_headed_steps,
    extract_target_blocks,
    extract_shell_blocks,
    extract_numbered_items,
)


def parse_structured_plan(text: str, routing: StepRouting = DEFAULT_ROUTING) -> list[PlanStep]:
    """Convert a markdown plan into ordered steps."""
    ex = _Extraction(segment(text), routing)
    for extractor in EXTRACTORS:
        before = len(ex.drafts)
        extractor(ex)
        logger.debug(f"{extractor.__name__}: {len(ex.drafts) - before} steps")
    return ex.steps()
