from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class StepType(Enum):
    CREATE_FILE = "create_file"
    EDIT_FILE = "edit_file"
    INSERT_CODE = "insert_code"
    RUN_COMMAND = "run_command"
    ANALYZE = "analyze"


class PlanFormat(Enum):
    """Which extraction pattern recognised a plan; diagnostics only."""
    TEDDY_SPEC = "teddy_spec"
    NUMBERED_STEPS = "numbered_steps"
    SIMPLE = "simple"
    NONE = "none"


@dataclass(frozen=True)
class PlanStep:
    """One executable unit of a plan.

    `target` is a workspace-relative path, except for run_command where it is
    the literal shell command. Steps are never mutated once built; a
    verification retry synthesizes fresh ones.
    """
    id: int
    type: StepType
    target: Optional[str] = None
    description: str = ""
    code_block: Optional[str] = None

    def __post_init__(self):
        if self.type is not StepType.ANALYZE and not self.target:
            logger.warning(f"Step {self.id} ({self.type.value}) has no target")

    @property
    def file_target(self) -> Optional[str]:
        """The file this step writes, or None for commands and analysis."""
        if self.type in (StepType.RUN_COMMAND, StepType.ANALYZE):
            return None
        return self.target or None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "target": self.target,
            "description": self.description,
            "code_block": self.code_block,
        }


@dataclass
class PlanDetection:
    is_plan_document: bool
    steps: list[PlanStep] = field(default_factory=list)
    format: PlanFormat = PlanFormat.NONE


def renumber(steps: list[PlanStep]) -> list[PlanStep]:
    """Return steps with ids 1..n in their current order."""
    return [
        PlanStep(
            id=i,
            type=step.type,
            target=step.target,
            description=step.description,
            code_block=step.code_block,
        )
        for i, step in enumerate(steps, start=1)
    ]
