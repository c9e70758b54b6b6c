"""Verification loop: criteria derivation, scoring, and corrective retries."""

from teddy.verification.criteria import (
    DEFAULT_RULES,
    AnalysisContext,
    CriterionRule,
    TaskAnalyzer,
)
from teddy.verification.engine import VerificationEngine, made_progress
from teddy.verification.models import (
    CriterionResult,
    FileSnapshot,
    LoopState,
    SuccessCriterion,
    VerificationResult,
)
from teddy.verification.review import LLMReviewer

__all__ = [
    "AnalysisContext",
    "CriterionResult",
    "CriterionRule",
    "DEFAULT_RULES",
    "FileSnapshot",
    "LLMReviewer",
    "LoopState",
    "SuccessCriterion",
    "TaskAnalyzer",
    "VerificationEngine",
    "VerificationResult",
    "made_progress",
]
