"""
Parse command - show how a file would be read as a plan.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from teddy.cli.formatting.output import ConsoleOutput
from teddy.config.settings import load_config
from teddy.plan.detector import detect_plan_document, find_markers


def run(file: str, json_output: bool = False, workspace_dir: Optional[str] = None) -> int:
    """Run the parse command."""
    console = ConsoleOutput()
    path = Path(file)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        console.print_error(f"Could not read {file}: {e}")
        return 1

    config = load_config(Path(workspace_dir) if workspace_dir else Path.cwd())
    detection = detect_plan_document(text, config.routing())

    if json_output:
        console.print_json(json.dumps({
            "is_plan_document": detection.is_plan_document,
            "format": detection.format.value,
            "markers": find_markers(text),
            "steps": [step.to_dict() for step in detection.steps],
        }))
    else:
        console.print_detection(detection, source=path.name)

    return 0 if detection.steps else 1
