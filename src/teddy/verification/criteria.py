"""Task analysis - derive checkable success criteria from an instruction.

Criteria come from a small ordered list of rules. Each rule looks at the
instruction (plus the step descriptions) and the pre-execution content of
the target files, and contributes zero or more SuccessCriterion objects.
Add a rule by appending a callable to TaskAnalyzer.rules.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Optional

from teddy.execution.locator import TextCursor, brace_balance
from teddy.execution.prompts import is_refactor_intent
from teddy.plan.models import PlanStep
from teddy.plan.targets import is_malformed_target
from teddy.verification.models import (
    FileSnapshot,
    Snapshots,
    SuccessCriterion,
    VerificationResult,
)

logger = logging.getLogger(__name__)

BRACE_EXTENSIONS = frozenset({
    "js", "jsx", "mjs", "cjs", "ts", "tsx", "java", "c", "h", "cpp", "hpp", "cc",
    "cs", "go", "rs", "swift", "kt", "scala", "dart", "php", "css", "scss", "less",
})


def step_targets(steps: list[PlanStep]) -> list[str]:
    """Distinct, well-formed file targets of steps, in order."""
    targets: list[str] = []
    for step in steps:
        target = step.file_target
        if target and not is_malformed_target(target) and target not in targets:
            targets.append(target)
    return targets


@dataclass
class AnalysisContext:
    instruction: str
    steps: list[PlanStep]
    before: dict[str, FileSnapshot] = field(default_factory=dict)

    @property
    def text(self) -> str:
        """Instruction plus step descriptions, the text keyword rules read."""
        return " ".join([self.instruction] + [s.description for s in self.steps if s.description])

    @property
    def targets(self) -> list[str]:
        return step_targets(self.steps)

    @property
    def primary_target(self) -> Optional[str]:
        targets = self.targets
        return targets[0] if targets else None

    def existing_targets(self) -> list[str]:
        return [t for t in self.targets if t in self.before and self.before[t].existed_before]


CriterionRule = Callable[[AnalysisContext], list[SuccessCriterion]]


def _after(snapshots: Snapshots, target: str) -> str:
    snap = snapshots.get(target)
    return snap.after_content if snap else ""


# =============================================================================
# Generic rules
# =============================================================================


def targets_present_rule(ctx: AnalysisContext) -> list[SuccessCriterion]:
    criteria = []
    for target in ctx.targets:
        def check(snapshots: Snapshots, target=target) -> tuple[bool, str]:
            snap = snapshots.get(target)
            if snap is None or not snap.exists_after:
                return False, f"`{target}` does not exist"
            if not snap.after_content.strip():
                return False, f"`{target}` is empty"
            return True, f"`{target}` exists"

        criteria.append(SuccessCriterion(
            name=f"exists:{target}",
            description=f"`{target}` exists and is not empty",
            predicate=check,
            suggestion=f"Create `{target}` with its complete contents",
            task_specific=False,
        ))
    return criteria


def targets_changed_rule(ctx: AnalysisContext) -> list[SuccessCriterion]:
    criteria = []
    for target in ctx.existing_targets():
        original = ctx.before[target].before_content

        def check(snapshots: Snapshots, target=target, original=original) -> tuple[bool, str]:
            if _after(snapshots, target) == original:
                return False, f"`{target}` is unchanged"
            return True, f"`{target}` was modified"

        criteria.append(SuccessCriterion(
            name=f"changed:{target}",
            description=f"`{target}` differs from its original content",
            predicate=check,
            suggestion=f"Apply the requested change to `{target}`",
            task_specific=False,
        ))
    return criteria


def balanced_braces_rule(ctx: AnalysisContext) -> list[SuccessCriterion]:
    criteria = []
    for target in ctx.targets:
        if target.rsplit(".", 1)[-1].lower() not in BRACE_EXTENSIONS:
            continue

        def check(snapshots: Snapshots, target=target) -> tuple[bool, str]:
            balance = brace_balance(_after(snapshots, target))
            if balance:
                return False, f"`{target}` has {abs(balance)} unmatched {'{' if balance > 0 else '}'}"
            return True, "braces balance"

        criteria.append(SuccessCriterion(
            name=f"balanced:{target}",
            description=f"`{target}` has balanced braces",
            predicate=check,
            suggestion=f"Fix the unbalanced braces in `{target}`",
            task_specific=False,
        ))
    return criteria


# =============================================================================
# Task-specific rules
# =============================================================================

CALLBACK_TASK_RE = re.compile(r"callback", re.IGNORECASE)
ASYNC_TASK_RE = re.compile(r"\basync\b|\bawait\b|promise", re.IGNORECASE)
ERROR_FIRST_CALLBACK_RE = re.compile(
    r"function\s*\w*\s*\(\s*(?:err|error|e)\s*[,)]|\(\s*(?:err|error)\s*,[^)]*\)\s*=>"
)
ASYNC_AWAIT_RE = re.compile(r"\basync\b[\s\S]*\bawait\b")


def count_nested_callbacks(content: str) -> int:
    """Error-first callbacks opened inside another error-first callback's body."""
    cursor = TextCursor(content)
    spans = []
    for m in ERROR_FIRST_CALLBACK_RE.finditer(content):
        open_index = cursor.find_code("{", m.end())
        if open_index is None:
            continue
        close_index = cursor.match_brace(open_index)
        spans.append((m.start(), open_index, close_index if close_index is not None else len(content)))

    nested = 0
    for start, _, _ in spans:
        if any(o < start < c for s, o, c in spans if s != start):
            nested += 1
    return nested


def callback_to_async_rule(ctx: AnalysisContext) -> list[SuccessCriterion]:
    if not (CALLBACK_TASK_RE.search(ctx.text) and ASYNC_TASK_RE.search(ctx.text)):
        return []
    targets = ctx.targets

    def no_nested(snapshots: Snapshots) -> tuple[bool, str]:
        offenders = [t for t in targets if count_nested_callbacks(_after(snapshots, t))]
        if offenders:
            return False, f"nested callbacks remain in {', '.join(f'`{t}`' for t in offenders)}"
        return True, "no nested callbacks"

    def uses_async(snapshots: Snapshots) -> tuple[bool, str]:
        if any(ASYNC_AWAIT_RE.search(_after(snapshots, t)) for t in targets):
            return True, "uses async/await"
        return False, "no async function with await found"

    return [
        SuccessCriterion(
            name="no_nested_callbacks",
            description="No remaining nested-callback pattern",
            predicate=no_nested,
            suggestion="Replace every nested callback with awaited promises",
        ),
        SuccessCriterion(
            name="uses_async_await",
            description="Uses async/await",
            predicate=uses_async,
            suggestion="Declare the functions async and await each asynchronous call",
        ),
    ]


_EXPORT_PATTERNS = [
    re.compile(r"^\s*export\s+(?:default\s+)?(?:async\s+)?(?:function\*?|class|const|let|var|interface|type|enum)\s+([A-Za-z_$][\w$]*)", re.MULTILINE),
    re.compile(r"^\s*export\s*\{([^}]*)\}", re.MULTILINE),
    re.compile(r"\bmodule\.exports\s*=\s*\{([^}]*)\}"),
    re.compile(r"\b(?:module\.)?exports\.([A-Za-z_$][\w$]*)\s*="),
    re.compile(r"\bmodule\.exports\s*=\s*([A-Za-z_$][\w$]*)\s*;?\s*$", re.MULTILINE),
    re.compile(r"^(?:async\s+)?def\s+([A-Za-z][\w]*)|^class\s+([A-Za-z][\w]*)", re.MULTILINE),
]


def exported_symbols(content: str) -> set[str]:
    names: set[str] = set()
    for pattern in _EXPORT_PATTERNS:
        for m in pattern.finditer(content):
            for group in m.groups():
                if not group:
                    continue
                for part in group.split(","):
                    # `a as b`, `key: value`
                    name = re.split(r"\s+as\s+|:", part.strip())[-1].strip()
                    if re.fullmatch(r"[A-Za-z_$][\w$]*", name):
                        names.add(name)
    return names


def preserve_exports_rule(ctx: AnalysisContext) -> list[SuccessCriterion]:
    if not is_refactor_intent(ctx.text):
        return []
    criteria = []
    for target in ctx.existing_targets():
        expected = exported_symbols(ctx.before[target].before_content)
        if not expected:
            continue

        def check(snapshots: Snapshots, target=target, expected=expected) -> tuple[bool, str]:
            missing = sorted(expected - exported_symbols(_after(snapshots, target)))
            if missing:
                return False, f"`{target}` no longer exports {', '.join(missing)}"
            return True, "exports preserved"

        criteria.append(SuccessCriterion(
            name=f"exports:{target}",
            description=f"`{target}` exports the same public symbols",
            predicate=check,
            suggestion=f"Keep exporting {', '.join(sorted(expected))} from `{target}`",
        ))
    return criteria


REMOVE_TASK_RE = re.compile(r"\b(?:remove|delete|strip|eliminate|get\s+rid\s+of|clean\s+up)\b", re.IGNORECASE)
KNOWN_REMOVALS = [
    (re.compile(r"console\.log", re.IGNORECASE), "console.log", re.compile(r"\bconsole\.log\s*\(")),
    (re.compile(r"\bprint(?:\s+statements?|\(\))", re.IGNORECASE), "print", re.compile(r"^\s*print\s*\(", re.MULTILINE)),
    (re.compile(r"\bdebugger\b", re.IGNORECASE), "debugger", re.compile(r"^\s*debugger\s*;?", re.MULTILINE)),
    (re.compile(r"\bTODO", re.IGNORECASE), "TODO", re.compile(r"\bTODO\b")),
]
_BACKTICK_TOKEN_RE = re.compile(r"`([^`\n]{2,60})`")


def removal_targets(text: str) -> list[tuple[str, re.Pattern]]:
    """(label, pattern) pairs the instruction asks to remove."""
    m = REMOVE_TASK_RE.search(text)
    if not m:
        return []
    tail = text[m.start():]
    found = [(label, pattern) for trigger, label, pattern in KNOWN_REMOVALS if trigger.search(tail)]
    if not found:
        for token in _BACKTICK_TOKEN_RE.findall(tail):
            # A path names the file to edit, not what to remove
            if "/" in token or re.search(r"\.\w{1,5}$", token):
                continue
            found.append((token, re.compile(re.escape(token))))
            break
    return found


def remove_pattern_rule(ctx: AnalysisContext) -> list[SuccessCriterion]:
    criteria = []
    targets = ctx.targets
    for label, pattern in removal_targets(ctx.text):
        def check(snapshots: Snapshots, label=label, pattern=pattern) -> tuple[bool, str]:
            remaining = [t for t in targets if pattern.search(_after(snapshots, t))]
            if remaining:
                return False, f"`{label}` still present in {', '.join(f'`{t}`' for t in remaining)}"
            return True, f"`{label}` removed"

        criteria.append(SuccessCriterion(
            name=f"removed:{label}",
            description=f"No `{label}` remains",
            predicate=check,
            suggestion=f"Remove every occurrence of `{label}`",
        ))
    return criteria


DEFINE_TASK_RE = re.compile(
    r"\b(?:add|create|implement|define|write|introduce)\s+(?:an?\s+|the\s+|new\s+)*"
    r"(?:(?:async\s+)?(?:function|method|class|helper|handler|interface)\s+)"
    r"`?([A-Za-z_$][\w$]*)`?",
    re.IGNORECASE,
)
_DEFINE_BACKTICK_RE = re.compile(
    r"\b(?:add|create|implement|define|write|introduce)\b[^`\n]{0,40}`([A-Za-z_$][\w$]*)\(\)`",
    re.IGNORECASE,
)


def defined_names(text: str) -> list[str]:
    names = []
    for pattern in (DEFINE_TASK_RE, _DEFINE_BACKTICK_RE):
        for m in pattern.finditer(text):
            if m.group(1) not in names and m.group(1).lower() not in ("that", "which", "to", "for"):
                names.append(m.group(1))
    return names


def definition_regex(name: str) -> re.Pattern:
    n = re.escape(name)
    return re.compile(
        rf"\b(?:function\*?|def|class|fn|func|fun|interface|struct|type|const|let|var)\s+{n}\b"
        rf"|^\s*(?:(?:public|private|protected|static|async)\s+)*{n}\s*\([^)]*\)\s*(?::\s*[^{{;=\n]+)?\{{"
        rf"|\b{n}\s*[:=]\s*(?:async\s*)?(?:function\b|\()",
        re.MULTILINE,
    )


def defines_symbol_rule(ctx: AnalysisContext) -> list[SuccessCriterion]:
    criteria = []
    targets = ctx.targets
    for name in defined_names(ctx.text):
        pattern = definition_regex(name)

        def check(snapshots: Snapshots, name=name, pattern=pattern) -> tuple[bool, str]:
            if any(pattern.search(_after(snapshots, t)) for t in targets):
                return True, f"`{name}` is defined"
            return False, f"no definition of `{name}` found"

        criteria.append(SuccessCriterion(
            name=f"defines:{name}",
            description=f"Defines `{name}`",
            predicate=check,
            suggestion=f"Define `{name}` in the target file",
        ))
    return criteria


ERROR_TASK_RE = re.compile(
    r"error[\s-]handling|handle\s+(?:the\s+)?(?:errors?|exceptions?|failures?)|try[\s/-]*catch|exception",
    re.IGNORECASE,
)
ERROR_HANDLING_RE = re.compile(
    r"\btry\s*[{:]|\bcatch\s*[({]|\.catch\s*\(|\bexcept\b|\brescue\b|if\s*\(?\s*err(?:or)?\b"
    r"|\bif\s+err\s*!=\s*nil|\bResult<|\?\s*;"
)


def error_handling_rule(ctx: AnalysisContext) -> list[SuccessCriterion]:
    if not ERROR_TASK_RE.search(ctx.text):
        return []
    targets = ctx.targets

    def check(snapshots: Snapshots) -> tuple[bool, str]:
        if any(ERROR_HANDLING_RE.search(_after(snapshots, t)) for t in targets):
            return True, "error handling present"
        return False, "no error handling construct found"

    return [SuccessCriterion(
        name="error_handling",
        description="Handles errors",
        predicate=check,
        suggestion="Wrap the failing operations in try/catch (or the language equivalent)",
    )]


DEFAULT_RULES: list[CriterionRule] = [
    targets_present_rule,
    targets_changed_rule,
    callback_to_async_rule,
    preserve_exports_rule,
    remove_pattern_rule,
    defines_symbol_rule,
    error_handling_rule,
    balanced_braces_rule,
]


class TaskAnalyzer:
    """Turns an instruction into criteria and scores snapshots against them."""

    def __init__(self, rules: Optional[list[CriterionRule]] = None):
        self.rules = list(rules if rules is not None else DEFAULT_RULES)

    def derive_criteria(
        self,
        instruction: str,
        steps: list[PlanStep],
        before: dict[str, FileSnapshot],
    ) -> list[SuccessCriterion]:
        ctx = AnalysisContext(instruction=instruction, steps=steps, before=before)
        criteria: list[SuccessCriterion] = []
        seen: set[str] = set()
        for rule in self.rules:
            for criterion in rule(ctx):
                if criterion.name not in seen:
                    seen.add(criterion.name)
                    criteria.append(criterion)
        logger.debug(f"Derived criteria: {[c.name for c in criteria]}")
        return criteria

    def evaluate(
        self,
        criteria: list[SuccessCriterion],
        snapshots: Snapshots,
        attempt: int,
    ) -> VerificationResult:
        results = [c.check(snapshots) for c in criteria]
        by_name = {c.name: c for c in criteria}
        suggestions = [
            by_name[r.name].suggestion
            for r in results
            if not r.passed and by_name[r.name].suggestion
        ]
        return VerificationResult(
            attempt=attempt,
            passed=all(r.passed for r in results),
            criteria_results=results,
            suggestions=suggestions,
        )
