from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Mapping


class LoopState(Enum):
    ANALYZING = "analyzing"
    EXECUTING = "executing"
    VERIFYING = "verifying"
    REGENERATING = "regenerating"
    DONE = "done"
    GAVE_UP = "gave_up"


@dataclass
class FileSnapshot:
    """One target file around one attempt. Absent files read as empty strings."""
    target: str
    before_content: str = ""
    after_content: str = ""
    existed_before: bool = False
    exists_after: bool = False

    @property
    def changed(self) -> bool:
        return self.before_content != self.after_content or self.existed_before != self.exists_after


Snapshots = Mapping[str, FileSnapshot]


@dataclass
class CriterionResult:
    name: str
    passed: bool
    explanation: str = ""


@dataclass
class SuccessCriterion:
    """A named predicate over the after-state of the target files.

    `predicate` returns (passed, explanation). `suggestion` is fed back into
    regeneration when the criterion fails.
    """
    name: str
    description: str
    predicate: Callable[[Snapshots], tuple[bool, str]]
    suggestion: str = ""
    task_specific: bool = True

    def check(self, snapshots: Snapshots) -> CriterionResult:
        passed, explanation = self.predicate(snapshots)
        return CriterionResult(name=self.name, passed=passed, explanation=explanation)


@dataclass
class VerificationResult:
    attempt: int
    passed: bool
    criteria_results: list[CriterionResult] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)

    @property
    def failing(self) -> list[str]:
        return [r.name for r in self.criteria_results if not r.passed]

    @property
    def failing_results(self) -> list[CriterionResult]:
        return [r for r in self.criteria_results if not r.passed]
