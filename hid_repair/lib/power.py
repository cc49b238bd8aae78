from __future__ import annotations

import logging
import os
from typing import Optional

from .command import run_cmd

logger = logging.getLogger(__name__)


def reboot_argv(delay_s: int = 10, *, windows: Optional[bool] = None) -> list[str]:
    if windows is None:
        windows = os.name == "nt"
    if windows:
        return ["shutdown", "/r", "/t", str(max(0, int(delay_s))), "/c", "hid-repair: continuing after reboot"]
    return ["reboot"]


def trigger_reboot(delay_s: int = 10) -> None:
    """Ask the OS to reboot. The caller must not rely on anything running afterwards."""
    logger.info("Requesting reboot in %ss", delay_s)
    run_cmd(reboot_argv(delay_s))
