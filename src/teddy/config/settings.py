"""
Runtime configuration - settings loaded from .teddy/config.yaml and the environment.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from teddy.config.defaults import (
    ACTION_VERBS,
    CREATION_VERBS,
    EDIT_CONTEXT_CHAR_CAP,
    LLM_DEFAULT_PROVIDER,
    MIN_REWRITE_LENGTH,
    MODIFICATION_VERBS,
    SPEC_CONTEXT_CHAR_BUDGET,
    VERIFY_MAX_ATTEMPTS,
    VERIFY_STUCK_WINDOW,
)
from teddy.config.paths import config_path

logger = logging.getLogger(__name__)


@dataclass
class TeddyConfig:
    """Configuration for one Teddy session."""

    # Provider settings
    provider: str = LLM_DEFAULT_PROVIDER
    model: Optional[str] = None

    # Verification loop
    max_attempts: int = VERIFY_MAX_ATTEMPTS
    stuck_window: int = VERIFY_STUCK_WINDOW
    llm_review: bool = False

    # Execution budgets
    spec_context_chars: int = SPEC_CONTEXT_CHAR_BUDGET
    edit_context_chars: int = EDIT_CONTEXT_CHAR_CAP
    min_rewrite_length: int = MIN_REWRITE_LENGTH

    # Step routing keywords
    modification_verbs: list[str] = field(default_factory=lambda: sorted(MODIFICATION_VERBS))
    creation_verbs: list[str] = field(default_factory=lambda: sorted(CREATION_VERBS))
    action_verbs: list[str] = field(default_factory=lambda: sorted(ACTION_VERBS))

    @classmethod
    def from_dict(cls, data: dict) -> "TeddyConfig":
        """Create config from dict, ignoring unknown keys."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})

    def to_dict(self) -> dict:
        """Convert config to dict."""
        return {
            "provider": self.provider,
            "model": self.model,
            "max_attempts": self.max_attempts,
            "stuck_window": self.stuck_window,
            "llm_review": self.llm_review,
            "spec_context_chars": self.spec_context_chars,
            "edit_context_chars": self.edit_context_chars,
            "min_rewrite_length": self.min_rewrite_length,
            "modification_verbs": list(self.modification_verbs),
            "creation_verbs": list(self.creation_verbs),
            "action_verbs": list(self.action_verbs),
        }

    def routing(self):
        """Build the parser's step-routing rules from the configured verb sets."""
        from teddy.plan.routing import StepRouting

        return StepRouting(
            modification_verbs=frozenset(v.lower() for v in self.modification_verbs),
            creation_verbs=frozenset(v.lower() for v in self.creation_verbs),
            action_verbs=frozenset(v.lower() for v in self.action_verbs),
        )


def _apply_env(config: TeddyConfig) -> TeddyConfig:
    provider = os.environ.get("TEDDY_PROVIDER")
    if provider:
        config.provider = provider
    model = os.environ.get("TEDDY_MODEL")
    if model:
        config.model = model
    attempts = os.environ.get("TEDDY_MAX_ATTEMPTS")
    if attempts:
        try:
            config.max_attempts = int(attempts)
        except ValueError:
            logger.warning(f"Ignoring non-integer TEDDY_MAX_ATTEMPTS={attempts!r}")
    return config


def load_config(root: Optional[Path] = None) -> TeddyConfig:
    """Load config from <root>/.teddy/config.yaml, then apply environment overrides."""
    config = TeddyConfig()

    if root is not None:
        path = config_path(root)
        if path.exists():
            try:
                with open(path, encoding="utf-8") as f:
                    data = yaml.safe_load(f)
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Could not read {path}: {e}")
                data = None
            if isinstance(data, dict):
                config = TeddyConfig.from_dict(data)
            elif data is not None:
                logger.warning(f"Ignoring {path}: expected a mapping, got {type(data).__name__}")

    return _apply_env(config)


def save_config(root: Path, config: TeddyConfig) -> Path:
    """Save config to <root>/.teddy/config.yaml."""
    path = config_path(root)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(config.to_dict(), f, default_flow_style=False)
    return path
