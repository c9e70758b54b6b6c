"""Default configuration values for Teddy.

This module centralizes all hard-coded magic numbers (length gates, character
budgets, retry ceilings, keyword sets) into a single location. All modules
should import these constants instead of hard-coding values.

Usage:
    from teddy.config.defaults import (
        PLAN_MIN_LENGTH,
        VERIFY_MAX_ATTEMPTS,
        MODIFICATION_VERBS,
    )
"""

from __future__ import annotations

# =============================================================================
# Plan Detection Defaults
# =============================================================================

# Texts shorter than this are never treated as plan documents
PLAN_MIN_LENGTH = 100

# Number of distinct structured markers needed for a teddy-spec plan
PLAN_MIN_MARKERS = 2

# Fence languages treated as shell scripts
SHELL_LANGUAGES = frozenset({
    "bash", "sh", "shell", "zsh", "console", "terminal", "cmd", "powershell", "ps1",
})


# =============================================================================
# Step Routing Keywords
# =============================================================================

# Title verbs that route a code block to edit_file (full rewrite)
MODIFICATION_VERBS = frozenset({
    "modify", "update", "change", "edit", "implement", "fix", "remove", "delete",
    "replace", "refactor", "rename", "move", "convert", "transform", "rewrite",
})

# Pure creation verbs; these route a code block to insert_code
CREATION_VERBS = frozenset({"add", "insert", "create"})

# Verbs that make a numbered item without a code block actionable
ACTION_VERBS = frozenset({
    "add", "insert", "create", "modify", "update", "change", "edit", "implement",
    "fix", "remove", "delete", "replace", "refactor",
})


# =============================================================================
# Execution Defaults
# =============================================================================

# Targets longer than this are treated as description bleeding into the path
MAX_TARGET_LENGTH = 200

# Character budget for the specification passed along with create_file prompts
SPEC_CONTEXT_CHAR_BUDGET = 4000

# Character window of existing content supplied for non-refactor edits
EDIT_CONTEXT_CHAR_CAP = 8000

# Rewrites shorter than this keep the original file
MIN_REWRITE_LENGTH = 50


# =============================================================================
# Verification Defaults
# =============================================================================

VERIFY_MAX_ATTEMPTS = 10

# Number of consecutive results compared for "stuck" detection
VERIFY_STUCK_WINDOW = 2

# Character cap per file when feeding current content back for regeneration
REGENERATE_CONTENT_CHAR_CAP = 12000


# =============================================================================
# Retry Defaults
# =============================================================================

RETRY_BASE_DELAY_MS = 1000.0
RETRY_MAX_DELAY_MS = 30000.0
RETRY_MAX_RETRIES = 3
RETRY_JITTER_FACTOR = 0.1


# =============================================================================
# LLM Defaults
# =============================================================================

LLM_DEFAULT_PROVIDER = "anthropic"
LLM_DEFAULT_MAX_TOKENS = 8192
LLM_DEFAULT_TEMPERATURE = 0.0
LLM_REQUEST_TIMEOUT_SECONDS = 120.0
