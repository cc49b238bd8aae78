from __future__ import annotations

import logging
import sys
from typing import Sequence

from .command import fmt_argv, run_cmd

logger = logging.getLogger(__name__)

DEFAULT_TASK_NAME = "hid-repair-resume"


def resume_command(extra_args: Sequence[str] = ()) -> str:
    """Command line the scheduled task runs at logon."""
    return fmt_argv([sys.executable, "-m", "hid_repair.main", *extra_args])


def install_resume_task(task_name: str = DEFAULT_TASK_NAME, extra_args: Sequence[str] = ()) -> None:
    # /f overwrites an existing task, so re-registering is harmless.
    run_cmd(
        [
            "schtasks",
            "/create",
            "/tn",
            task_name,
            "/tr",
            resume_command(extra_args),
            "/sc",
            "onlogon",
            "/rl",
            "highest",
            "/f",
        ]
    )
    logger.info("Resume task registered: %s", task_name)


def remove_resume_task(task_name: str = DEFAULT_TASK_NAME) -> bool:
    r = run_cmd(["schtasks", "/delete", "/tn", task_name, "/f"], check=False)
    if r.returncode != 0:
        logger.info("Resume task %s not present", task_name)
        return False
    logger.info("Resume task removed: %s", task_name)
    return True
