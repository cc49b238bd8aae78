from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from .steps import Step

logger = logging.getLogger(__name__)

README_NAME = "README.txt"


def render_intake_readme(steps: Sequence[Step], extensions: Sequence[str]) -> str:
    exts = ", ".join(extensions)
    lines = [
        "hid-repair driver intake",
        "========================",
        "",
        "Place one installer per driver category in this folder.",
        f"Accepted file types: {exts}",
        "The file name must contain the category name (case does not matter).",
        "If several files match a category, the most recently modified one is used.",
        "",
        "Installed in this order, with a reboot after each:",
        "",
    ]
    for s in steps:
        lines.append(f"  {s.index + 1}. {s.label}    e.g. {s.label}_Driver_Setup.exe")
    lines.append("")
    return "\n".join(lines)


def write_intake_readme(intake_dir: Path, steps: Sequence[Step], extensions: Sequence[str]) -> Path:
    intake_dir.mkdir(parents=True, exist_ok=True)
    p = intake_dir / README_NAME
    p.write_text(render_intake_readme(steps, extensions), encoding="utf-8")
    logger.info("Wrote %s", p)
    return p
