"""Optional model-based review, used when keyword rules found nothing task-specific."""

from __future__ import annotations

import logging
import re
from typing import Optional

from teddy.cancellation import CancelToken
from teddy.config.defaults import REGENERATE_CONTENT_CHAR_CAP
from teddy.execution.prompts import truncate_content
from teddy.llm.base import LLMError, StreamingLLM, collect_stream
from teddy.verification.models import CriterionResult, Snapshots

logger = logging.getLogger(__name__)

REVIEW_CRITERION = "llm_review"
_VERDICT_RE = re.compile(r"^\W*(PASS|FAIL)\W*(.*)$", re.IGNORECASE | re.MULTILINE)


class LLMReviewer:
    """Asks the model whether the changed files satisfy the instruction.

    The reply must start with PASS or FAIL. Anything else, or a failed call,
    counts as inconclusive and passes, so a flaky reviewer never blocks a run
    on its own.
    """

    def __init__(self, llm: StreamingLLM, cancel: Optional[CancelToken] = None,
                 char_budget: int = REGENERATE_CONTENT_CHAR_CAP):
        self.llm = llm
        self.cancel = cancel
        self.char_budget = char_budget

    def build_prompt(self, instruction: str, snapshots: Snapshots) -> str:
        per_file = max(self.char_budget // max(len(snapshots), 1), 500)
        parts = [
            "Review whether these files now satisfy the task.",
            f"Task: {instruction}",
            "",
        ]
        for target, snap in snapshots.items():
            body = snap.after_content if snap.exists_after else "(file does not exist)"
            parts += [f"--- {target} ---", truncate_content(body, per_file), ""]
        parts.append("Answer with PASS or FAIL on the first line, followed by a one-sentence reason.")
        return "\n".join(parts)

    async def review(self, instruction: str, snapshots: Snapshots) -> CriterionResult:
        try:
            reply = await collect_stream(self.llm, self.build_prompt(instruction, snapshots), self.cancel)
        except LLMError as e:
            logger.warning(f"Review call failed: {e}")
            return CriterionResult(REVIEW_CRITERION, True, "review unavailable")

        m = _VERDICT_RE.search(reply.strip())
        if not m:
            logger.debug(f"Inconclusive review reply: {reply[:200]!r}")
            return CriterionResult(REVIEW_CRITERION, True, "review inconclusive")

        reason = m.group(2).strip() or reply.strip().splitlines()[-1]
        return CriterionResult(REVIEW_CRITERION, m.group(1).upper() == "PASS", reason)
