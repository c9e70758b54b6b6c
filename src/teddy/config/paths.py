"""Path resolution for Teddy artifacts – single source of truth for the .teddy layout."""

from __future__ import annotations

import os
from pathlib import Path

ARTIFACT_DIR_NAME = ".teddy"


def get_artifact_dir(root: str | os.PathLike) -> Path:
    """Return the artifact directory under a workspace root.

    Checks environment variable TEDDY_ARTIFACT_DIR first; the value is resolved
    against the workspace root.
    """
    override = os.environ.get("TEDDY_ARTIFACT_DIR")
    if override:
        return Path(root) / override
    return Path(root) / ARTIFACT_DIR_NAME


def spec_path(root: str | os.PathLike) -> Path:
    return get_artifact_dir(root) / "spec.md"


def plan_path(root: str | os.PathLike) -> Path:
    return get_artifact_dir(root) / "plan.md"


def tasks_path(root: str | os.PathLike) -> Path:
    return get_artifact_dir(root) / "tasks.md"


def config_path(root: str | os.PathLike) -> Path:
    return get_artifact_dir(root) / "config.yaml"


def resolve_target(root: str | os.PathLike, target: str) -> Path:
    """Resolve a workspace-relative target against the root."""
    path = Path(target)
    if path.is_absolute():
        return path
    return Path(root) / path
