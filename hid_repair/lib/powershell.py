from __future__ import annotations

import logging

from .command import run_cmd

logger = logging.getLogger(__name__)

POWERSHELL = ["powershell", "-NoProfile", "-NonInteractive", "-ExecutionPolicy", "Bypass", "-Command"]


def run_ps(script: str, *, check: bool = True) -> str:
    """Run a PowerShell snippet and return its trimmed stdout."""
    r = run_cmd([*POWERSHELL, script], check=check)
    if r.returncode != 0 and r.stderr:
        logger.warning("PowerShell error: %s", r.stderr.strip())
    return r.stdout.strip()
