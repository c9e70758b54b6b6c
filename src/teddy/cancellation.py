"""Cooperative cancellation for a running pipeline.

The driving loop owns a CancelToken and calls cancel(); the pipeline checks it
before each step's LLM call and between stream fragments.
"""

from __future__ import annotations


class PipelineCancelled(Exception):
    """Raised when a pipeline observes a cancelled token."""


class CancelToken:
    """Flag shared between the driving loop and the pipeline."""

    def __init__(self) -> None:
        self._cancelled = False
        self.reason: str = ""

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "cancelled by user") -> None:
        """Request cancellation."""
        self._cancelled = True
        self.reason = reason

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise PipelineCancelled(self.reason)
