"""Keyword rules that decide how a code block is applied.

A title with a modification verb rewrites the file (edit_file); otherwise the
block is spliced in (insert_code). The verb sets are configuration, see
TeddyConfig.routing().
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from teddy.config.defaults import ACTION_VERBS, CREATION_VERBS, MODIFICATION_VERBS
from teddy.plan.models import StepType

_WORD_RE = re.compile(r"[A-Za-z]+")


def _inflections(word: str) -> set[str]:
    """The word plus its likely base forms (updates, updated, updating -> update)."""
    forms = {word}
    if word.endswith("ing") and len(word) > 5:
        forms.update({word[:-3], word[:-3] + "e"})
    if word.endswith("ed") and len(word) > 4:
        forms.update({word[:-1], word[:-2]})
    if word.endswith("es") and len(word) > 4:
        forms.add(word[:-2])
    if word.endswith("s") and len(word) > 3:
        forms.add(word[:-1])
    return forms


@dataclass(frozen=True)
class StepRouting:
    modification_verbs: frozenset = MODIFICATION_VERBS
    creation_verbs: frozenset = CREATION_VERBS
    action_verbs: frozenset = ACTION_VERBS

    def _words(self, text: str) -> set[str]:
        words: set[str] = set()
        for w in _WORD_RE.findall(text or ""):
            words |= _inflections(w.lower())
        return words

    def is_modification(self, text: str) -> bool:
        """True when text contains a modification verb that is not a pure creation verb."""
        verbs = self.modification_verbs - self.creation_verbs
        return bool(self._words(text) & verbs)

    def has_action_verb(self, text: str) -> bool:
        return bool(self._words(text) & self.action_verbs)

    def code_step_type(self, text: str) -> StepType:
        return StepType.EDIT_FILE if self.is_modification(text) else StepType.INSERT_CODE


DEFAULT_ROUTING = StepRouting()
