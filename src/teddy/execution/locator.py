"""Decide where inside an existing file a code fragment goes.

Every strategy is a pure function over the file text. `locate_and_insert`
reads the step description and tries them in a fixed priority:

    1. top / beginning / first line      -> insert_at_top
    2. after imports                     -> insert_after_imports
    3. line N / around line N            -> insert_before_line
    4. in / into / inside / within NAME  -> insert_inside_symbol
    5. after / following NAME            -> insert_after_symbol
    6. anything else                     -> append_to_end

Brace matching goes through TextCursor, which skips string literals and
comments so a `}` inside a string does not close a block.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterator, Optional

from teddy.plan.targets import FILE_EXTENSIONS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Insertion:
    content: str
    strategy: str


# =============================================================================
# Cursor
# =============================================================================


class TextCursor:
    """Offset-based scanner that knows which characters are code."""

    OPEN, CLOSE = "{", "}"

    def __init__(self, text: str, pos: int = 0):
        self.text = text
        self.pos = pos

    def code_chars(self, start: Optional[int] = None) -> Iterator[tuple[int, str]]:
        """Yield (offset, char) for characters outside strings and comments."""
        text = self.text
        i = self.pos if start is None else start
        n = len(text)
        while i < n:
            ch = text[i]
            nxt = text[i + 1] if i + 1 < n else ""

            if ch == "/" and nxt == "/":
                end = text.find("\n", i)
                i = n if end == -1 else end
                continue
            if ch == "/" and nxt == "*":
                end = text.find("*/", i + 2)
                i = n if end == -1 else end + 2
                continue
            if ch in "'\"`":
                i = self._skip_string(i, ch)
                continue

            yield i, ch
            i += 1

    def _skip_string(self, i: int, quote: str) -> int:
        text = self.text
        j = i + 1
        while j < len(text):
            c = text[j]
            if c == "\\":
                j += 2
                continue
            if c == quote:
                return j + 1
            # Only template literals span lines; a stray quote ends at the newline
            if c == "\n" and quote != "`":
                return j
            j += 1
        return j

    def find_code(self, char: str, start: Optional[int] = None) -> Optional[int]:
        for i, ch in self.code_chars(start):
            if ch == char:
                return i
        return None

    def match_brace(self, open_index: int) -> Optional[int]:
        """Offset of the `}` closing the `{` at open_index, or None if unbalanced."""
        depth = 0
        for i, ch in self.code_chars(open_index):
            if ch == self.OPEN:
                depth += 1
            elif ch == self.CLOSE:
                depth -= 1
                if depth == 0:
                    return i
        return None

    def line_start(self, offset: int) -> int:
        return self.text.rfind("\n", 0, offset) + 1

    def line_end(self, offset: int) -> int:
        end = self.text.find("\n", offset)
        return len(self.text) if end == -1 else end

    def indent_at(self, offset: int) -> str:
        start = self.line_start(offset)
        line = self.text[start:self.line_end(offset)]
        return line[:len(line) - len(line.lstrip())]


def brace_balance(text: str) -> int:
    """Net `{` minus `}` count over code characters."""
    balance = 0
    for _, ch in TextCursor(text).code_chars():
        if ch == "{":
            balance += 1
        elif ch == "}":
            balance -= 1
    return balance


def _indent_block(code: str, indent: str) -> str:
    lines = code.strip("\n").splitlines()
    non_blank = [l for l in lines if l.strip()]
    common = min((len(l) - len(l.lstrip()) for l in non_blank), default=0)
    return "\n".join(indent + l[common:] if l.strip() else "" for l in lines)


def _ensure_newline(text: str) -> str:
    return text if not text or text.endswith("\n") else text + "\n"


# =============================================================================
# Strategies
# =============================================================================


def append_to_end(text: str, code: str, strategy: str = "append") -> Insertion:
    body = code.strip("\n")
    if not text.strip():
        return Insertion(body + "\n", strategy)
    return Insertion(text.rstrip("\n") + "\n\n" + body + "\n", strategy)


def insert_at_top(text: str, code: str, strategy: str = "top of file") -> Insertion:
    return Insertion(code.strip("\n") + "\n\n" + text.lstrip("\n"), strategy)


IMPORT_LINE_RE = re.compile(
    r"^\s*(?:"
    r"import\b"
    r"|from\s+\S+\s+import\b"
    r"|export\s+(?:\*|\{[^}]*\}?|type\s+\{)[^;]*\bfrom\b"
    r"|export\s+\{\s*$"
    r"|use\s+[\w:{]"
    r"|(?:const|let|var)\s+[^=]+=\s*require\s*\("
    r"|require(?:_once)?\b"
    r"|#\s*include\b"
    r"|using\s+[\w.]+\s*;"
    r"|extern\s+crate\b"
    r")"
)
_PREAMBLE_RE = re.compile(r"^\s*(?:#!|//|/\*|\*|\"use strict\"|'use strict'|package\s)")


def _bracket_delta(line: str) -> int:
    return (line.count("{") + line.count("(")) - (line.count("}") + line.count(")"))


def insert_after_imports(text: str, code: str) -> Insertion:
    """Insert after the leading run of import-style lines, else prepend."""
    lines = text.splitlines(keepends=True)
    last_import: Optional[int] = None
    i = 0
    while i < len(lines):
        line = lines[i]
        stripped = line.strip()

        if IMPORT_LINE_RE.match(line):
            depth = _bracket_delta(line)
            # Multi-line `import {` ... `} from "x"` or `from x import (` ... `)`
            while depth > 0 and i + 1 < len(lines):
                i += 1
                depth += _bracket_delta(lines[i])
            last_import = i
            i += 1
            continue

        if last_import is None and (not stripped or _PREAMBLE_RE.match(line)):
            i += 1
            continue

        if last_import is not None and not stripped:
            j = i
            while j < len(lines) and not lines[j].strip():
                j += 1
            if j < len(lines) and IMPORT_LINE_RE.match(lines[j]):
                i = j
                continue
        break

    if last_import is None:
        return insert_at_top(text, code, "prepend (no imports found)")

    head = _ensure_newline("".join(lines[:last_import + 1]))
    tail = "".join(lines[last_import + 1:])
    return Insertion(head + "\n" + code.strip("\n") + "\n" + tail, "after imports")


def insert_before_line(text: str, line_number: int, code: str) -> Insertion:
    """Insert before the 1-based line, clamped to the file."""
    lines = text.splitlines(keepends=True)
    index = min(max(line_number - 1, 0), len(lines))
    if index == len(lines) and lines:
        lines[-1] = _ensure_newline(lines[-1])
    lines.insert(index, _ensure_newline(code.strip("\n")))
    return Insertion("".join(lines), f"before line {index + 1}")


_NAME = "NAME"
_PARAMS = r"\((?:[^()]|\([^()]*\))*\)"
_TO_BRACE = r"[^{;\n]*(?:\n[ \t]*)?\{"

# Definition shapes whose match ends on the opening brace
DEFINITION_PATTERNS = [
    r"\bfunction\s*\*?\s*NAME\s*" + _PARAMS + _TO_BRACE,
    r"\b(?:fn|func|fun|def)\s+(?:\([^)]*\)\s*)?NAME\s*(?:<[^>\n]*>)?\s*" + _PARAMS + _TO_BRACE,
    r"^[ \t]*(?:(?:public|private|protected|static|async|override|readonly|abstract|get|set)\s+)*"
    r"NAME\s*(?:<[^>\n]*>)?\s*" + _PARAMS + r"\s*(?::\s*[^{;=\n]+)?(?:\n[ \t]*)?\{",
    r"^[ \t]*(?:[\w$<>\[\],.?]+[ \t]+)+NAME\s*" + _PARAMS + r"\s*(?:throws\s+[\w.,\s]+?)?\s*(?:const\s*)?\{",
    r"\b(?:const|let|var)\s+NAME\s*(?::[^=\n]+)?=\s*(?:async\s+)?(?:" + _PARAMS + r"|[\w$]+)"
    r"\s*(?::\s*[^=\n]+)?=>\s*\{",
    r"\bNAME\s*[:=]\s*(?:async\s+)?function\s*\*?\s*" + _PARAMS + r"\s*\{",
]
PYTHON_DEF_PATTERN = (
    r"^([ \t]*)(?:async\s+)?def\s+NAME\s*" + _PARAMS + r"\s*(?:->\s*[^:\n]+)?:[ \t]*(?:#.*)?$"
)
_DOCSTRING_OPEN_RE = re.compile(r"\n[ \t]*[rRbBuU]?(\"\"\"|''')")


def _compile(pattern: str, name: str) -> re.Pattern:
    return re.compile(pattern.replace(_NAME, re.escape(name)), re.MULTILINE)


def find_definition(text: str, name: str) -> Optional[re.Match]:
    for pattern in DEFINITION_PATTERNS:
        m = _compile(pattern, name).search(text)
        if m:
            return m
    return None


def _insert_after_open_brace(text: str, open_index: int, code: str) -> str:
    cursor = TextCursor(text)
    line_end = cursor.line_end(open_index)
    rest_of_body = text[line_end + 1:] if line_end < len(text) else ""
    first_body_line = next((l for l in rest_of_body.splitlines() if l.strip()), "")
    outer = cursor.indent_at(open_index)
    inner = first_body_line[:len(first_body_line) - len(first_body_line.lstrip())]
    if len(inner) <= len(outer):
        inner = outer + "    "
    return text[:open_index + 1] + "\n" + _indent_block(code, inner) + text[open_index + 1:]


def _insert_into_python_def(text: str, m: re.Match, code: str) -> str:
    def_indent = m.group(1)
    lines_after = text[m.end():].split("\n")[1:]
    body_indent = next(
        (l[:len(l) - len(l.lstrip())] for l in lines_after if l.strip()),
        "",
    )
    if len(body_indent) <= len(def_indent):
        body_indent = def_indent + "    "

    pos = m.end()
    # Keep a docstring as the first statement
    doc = _DOCSTRING_OPEN_RE.match(text, pos)
    if doc:
        close = text.find(doc.group(1), doc.end())
        if close != -1:
            pos = close + 3

    return text[:pos] + "\n" + _indent_block(code, body_indent) + text[pos:]


def insert_inside_symbol(text: str, name: str, code: str) -> Insertion:
    """Insert at the start of the body of function/method `name`."""
    m = _compile(PYTHON_DEF_PATTERN, name).search(text)
    if m:
        return Insertion(_insert_into_python_def(text, m, code), f"inside {name}()")

    m = find_definition(text, name)
    if m:
        return Insertion(_insert_after_open_brace(text, m.end() - 1, code), f"inside {name}()")

    bare = re.search(rf"(?<![\w$]){re.escape(name)}(?![\w$])", text)
    if bare:
        open_index = TextCursor(text).find_code("{", bare.end())
        if open_index is not None:
            return Insertion(
                _insert_after_open_brace(text, open_index, code),
                f"after first brace following {name}",
            )
    logger.debug(f"Symbol {name!r} not found, appending")
    return append_to_end(text, code, f"append ({name} not found)")


def insert_after_symbol(text: str, name: str, code: str) -> Insertion:
    """Insert after the block that follows `name`, found by a balanced brace scan."""
    m = find_definition(text, name) or re.search(rf"(?<![\w$]){re.escape(name)}(?![\w$])", text)
    if not m:
        return append_to_end(text, code, "append (reference not found)")

    cursor = TextCursor(text)
    open_index = cursor.find_code("{", m.start())
    if open_index is None:
        return append_to_end(text, code, f"append (no block after {name})")

    close_index = cursor.match_brace(open_index)
    if close_index is None:
        return append_to_end(text, code, f"append (unbalanced block after {name})")

    pos = close_index + 1
    # Carry trailing `);` or `,` of the same statement
    line_end = cursor.line_end(pos)
    if re.fullmatch(r"[;),\s]*", text[pos:line_end]):
        pos = line_end

    indent = cursor.indent_at(m.start())
    block = _indent_block(code, indent)
    return Insertion(text[:pos] + "\n\n" + block + text[pos:], f"after {name}")


# =============================================================================
# Description parsing
# =============================================================================

TOP_RE = re.compile(r"\b(?:top|beginning|first\s+line)\b|\bstart\s+of\s+(?:the\s+)?file\b", re.IGNORECASE)
AFTER_IMPORTS_RE = re.compile(r"\bafter\s+(?:the\s+|all\s+|existing\s+)*(?:import|require|include|use)", re.IGNORECASE)
LINE_NUMBER_RE = re.compile(r"\bline\s+(\d+)\b", re.IGNORECASE)

_SYMBOL = r"`?([A-Za-z_$][\w$]*(?:\.[A-Za-z_$][\w$]*)?)`?(?:\(\))?(?![\w$/]|\.\w)"
_KIND = r"(?:(?:function|method|func|fn|def|class|block)\s+)?"
INSIDE_RE = re.compile(r"\b(?:in|into|inside|within)\s+(?:the\s+)?" + _KIND + _SYMBOL, re.IGNORECASE)
# "to" is too common in prose to take a plain word after it
INSIDE_TO_RE = re.compile(
    r"\bto\s+(?:the\s+)?(?:"
    r"(?:function|method)\s+`?([A-Za-z_$][\w$]*)`?"
    r"|`([A-Za-z_$][\w$]*)(?:\(\))?`"
    r"|([A-Za-z_$][\w$]*)\(\)"
    r")",
    re.IGNORECASE,
)
# A plain word after "to" only counts when the file defines it
INSIDE_TO_NAME_RE = re.compile(r"\bto\s+(?:the\s+)?([A-Za-z_$][\w$]*)(?![\w$(]|\.\w)")
AFTER_RE = re.compile(r"\b(?:after|following)\s+(?:the\s+)?" + _KIND + _SYMBOL, re.IGNORECASE)

STOPWORDS = frozenset({
    "a", "an", "the", "this", "that", "it", "its", "file", "files", "end", "top", "line",
    "code", "order", "place", "body", "existing", "same", "import", "imports", "all",
    "function", "method", "class", "module", "project", "case", "addition", "general",
    "python", "typescript", "javascript", "java", "go", "rust", "each", "every",
})


def _symbol_candidates(pattern: re.Pattern, description: str) -> list[str]:
    names = []
    for m in pattern.finditer(description):
        name = next((g for g in m.groups() if g), None)
        if name:
            head, _, last = name.rpartition(".")
            # `utils.ts` is a file reference, `api.fetchData` a member
            if head and last.lower() in FILE_EXTENSIONS:
                continue
            name = last
            if name.lower() not in STOPWORDS:
                names.append(name)
    return names


def _pick_symbol(candidates: list[str], text: str) -> Optional[str]:
    """Prefer a candidate that occurs in the file."""
    for name in candidates:
        if re.search(rf"(?<![\w$]){re.escape(name)}(?![\w$])", text):
            return name
    return candidates[0] if candidates else None


def locate_and_insert(text: str, description: str, code: str) -> Insertion:
    """Splice code into text at the place the description asks for."""
    description = description or ""

    if TOP_RE.search(description):
        return insert_at_top(text, code)

    if AFTER_IMPORTS_RE.search(description):
        return insert_after_imports(text, code)

    m = LINE_NUMBER_RE.search(description)
    if m:
        return insert_before_line(text, int(m.group(1)), code)

    defined_to = [
        name for name in _symbol_candidates(INSIDE_TO_NAME_RE, description)
        if _compile(PYTHON_DEF_PATTERN, name).search(text) or find_definition(text, name)
    ]
    inside = _pick_symbol(
        _symbol_candidates(INSIDE_RE, description)
        + _symbol_candidates(INSIDE_TO_RE, description)
        + defined_to,
        text,
    )
    if inside:
        return insert_inside_symbol(text, inside, code)

    after = _pick_symbol(_symbol_candidates(AFTER_RE, description), text)
    if after:
        return insert_after_symbol(text, after, code)

    return append_to_end(text, code)
