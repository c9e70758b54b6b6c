"""Segment a markdown plan into labelled blocks.

The document is scanned once, line by line, with a small state machine
(inside / outside a fenced block). Extractors then work on the block list
instead of re-running regexes over raw text, and claim blocks by index.

Block kinds:
    HEADER    `## Step 1: Title`         level, title
    FENCE     ```lang ... ```            lang, body
    FIELD     `**Target:** src/a.ts`     name, value
    NUMBERED  `3. **Title**: details`    number, title (bold lead-in), text
    PROSE     any other run of non-blank lines
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class BlockKind(Enum):
    HEADER = "header"
    FENCE = "fence"
    FIELD = "field"
    NUMBERED = "numbered"
    PROSE = "prose"


@dataclass(frozen=True)
class Block:
    index: int
    kind: BlockKind
    text: str
    start_line: int
    end_line: int
    level: int = 0
    title: str = ""
    lang: str = ""
    body: str = ""
    name: str = ""
    value: str = ""
    number: int = 0
    bold_lead: bool = False


_FENCE_OPEN_RE = re.compile(r"^\s*(`{3,}|~{3,})\s*([\w.+#-]*)[^\n]*$")
_HEADER_RE = re.compile(r"^\s{0,3}(#{1,6})\s+(.*?)\s*#*\s*$")
_FIELD_RE = re.compile(r"^\s*(?:[-*]\s+)?\*\*([A-Za-z][A-Za-z ]{0,40}?)\s*:\s*\*\*\s*(.*)$")
_FIELD_ALT_RE = re.compile(r"^\s*(?:[-*]\s+)?\*\*([A-Za-z][A-Za-z ]{0,40}?)\*\*\s*:\s*(.*)$")
_NUMBERED_RE = re.compile(r"^\s*(\d+)[.)]\s+(.*)$")
_BOLD_LEAD_RE = re.compile(r"^\*\*(.+?)\*\*\s*:?\s*(.*)$")

# Field names recognised as plan fields rather than bold prose
FIELD_NAMES = frozenset({
    "target", "action", "implementation logic", "goal", "file", "files",
    "location", "description", "rationale", "purpose",
})


def _match_field(line: str) -> Optional[tuple[str, str]]:
    for pattern in (_FIELD_RE, _FIELD_ALT_RE):
        m = pattern.match(line)
        if m and m.group(1).strip().lower() in FIELD_NAMES:
            return m.group(1).strip(), m.group(2).strip()
    return None


def segment(text: str) -> list[Block]:
    """Split text into an ordered list of blocks."""
    lines = text.splitlines()
    blocks: list[Block] = []
    prose: list[str] = []
    prose_start = 0

    def flush_prose(end_line: int) -> None:
        nonlocal prose
        if prose:
            blocks.append(Block(
                index=len(blocks),
                kind=BlockKind.PROSE,
                text="\n".join(prose),
                start_line=prose_start,
                end_line=end_line,
            ))
            prose = []

    i = 0
    while i < len(lines):
        line = lines[i]

        fence = _FENCE_OPEN_RE.match(line)
        if fence:
            flush_prose(i - 1)
            marker = fence.group(1)
            lang = fence.group(2).lower()
            body: list[str] = []
            j = i + 1
            while j < len(lines):
                closing = lines[j].strip()
                if closing.startswith(marker[0] * len(marker)) and not closing.strip(marker[0]):
                    break
                body.append(lines[j])
                j += 1
            # An unterminated fence runs to end of document
            end = min(j, len(lines) - 1)
            blocks.append(Block(
                index=len(blocks),
                kind=BlockKind.FENCE,
                text="\n".join(lines[i:end + 1]),
                start_line=i,
                end_line=end,
                lang=lang,
                body="\n".join(body),
            ))
            i = j + 1
            continue

        if not line.strip():
            flush_prose(i - 1)
            i += 1
            continue

        header = _HEADER_RE.match(line)
        if header:
            flush_prose(i - 1)
            blocks.append(Block(
                index=len(blocks),
                kind=BlockKind.HEADER,
                text=line,
                start_line=i,
                end_line=i,
                level=len(header.group(1)),
                title=header.group(2).strip(),
            ))
            i += 1
            continue

        field = _match_field(line)
        if field:
            flush_prose(i - 1)
            blocks.append(Block(
                index=len(blocks),
                kind=BlockKind.FIELD,
                text=line,
                start_line=i,
                end_line=i,
                name=field[0].lower(),
                value=field[1],
            ))
            i += 1
            continue

        numbered = _NUMBERED_RE.match(line)
        if numbered:
            flush_prose(i - 1)
            item_text = numbered.group(2).strip()
            bold = _BOLD_LEAD_RE.match(item_text)
            blocks.append(Block(
                index=len(blocks),
                kind=BlockKind.NUMBERED,
                text=item_text,
                start_line=i,
                end_line=i,
                number=int(numbered.group(1)),
                title=bold.group(1).strip().rstrip(":") if bold else "",
                value=bold.group(2).strip() if bold else item_text,
                bold_lead=bool(bold),
            ))
            i += 1
            continue

        if not prose:
            prose_start = i
        prose.append(line)
        i += 1

    flush_prose(len(lines) - 1)
    return blocks


def section(blocks: list[Block], start: int, stop_at_numbered: bool = False) -> list[Block]:
    """Blocks following blocks[start] up to the next header of the same or higher level.

    For a NUMBERED start block the section ends at any header, and also at the
    next numbered item when stop_at_numbered is set.
    """
    head = blocks[start]
    result: list[Block] = []
    for block in blocks[start + 1:]:
        if block.kind is BlockKind.HEADER:
            if head.kind is not BlockKind.HEADER or block.level <= head.level:
                break
        if stop_at_numbered and block.kind is BlockKind.NUMBERED:
            break
        result.append(block)
    return result
