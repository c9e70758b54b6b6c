"""Markdown task checklists (`- [ ] task` lines).

The task list derived from a plan is a plain markdown checklist. Items are
addressed by line number so checking one off rewrites only that line.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

CHECKBOX_RE = re.compile(r"^(\s*(?:[-*+]|\d+[.)])\s+\[)([ xX])(\]\s+)(.*\S)\s*$")


@dataclass
class ChecklistItem:
    line: int  # 0-based line index in the document
    number: int  # 1-based position among checklist items
    text: str
    done: bool


def parse_checklist(text: str) -> list[ChecklistItem]:
    items = []
    for index, line in enumerate(text.split("\n")):
        m = CHECKBOX_RE.match(line)
        if m:
            items.append(ChecklistItem(
                line=index,
                number=len(items) + 1,
                text=m.group(4).strip(),
                done=m.group(2) != " ",
            ))
    return items


def next_open_item(items: list[ChecklistItem]) -> Optional[ChecklistItem]:
    return next((item for item in items if not item.done), None)


def check_item(text: str, item: ChecklistItem) -> str:
    """Return text with item's checkbox ticked."""
    lines = text.split("\n")
    m = CHECKBOX_RE.match(lines[item.line]) if item.line < len(lines) else None
    if not m:
        raise ValueError(f"Line {item.line + 1} is not a checklist item")
    lines[item.line] = CHECKBOX_RE.sub(r"\g<1>x\g<3>\g<4>", lines[item.line])
    return "\n".join(lines)
