from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from .lib.env import PATHS

DEFAULT_LOG_PATH = PATHS.log_default
FALLBACK_LOG_NAME = "hid-repair.log"

_FILE_HANDLER_NAME = "hid-repair-file"
_CONSOLE_HANDLER_NAME = "hid-repair-console"


def _formatter() -> logging.Formatter:
    return logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )


def _open_log(log_path: str) -> logging.FileHandler:
    """Append to log_path, or to the working directory when that is not writable.

    The default location (ProgramData) needs administrator rights, which a
    --status run from a normal prompt does not have.
    """

    try:
        Path(os.path.dirname(log_path) or ".").mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(log_path, encoding="utf-8")
    except OSError:
        return logging.FileHandler(str(Path.cwd() / FALLBACK_LOG_NAME), encoding="utf-8")


def _find(root: logging.Logger, name: str) -> Optional[logging.Handler]:
    for h in root.handlers:
        if h.get_name() == name:
            return h
    return None


def current_log_path() -> Optional[str]:
    h = _find(logging.getLogger(), _FILE_HANDLER_NAME)
    return getattr(h, "baseFilename", None) if h else None


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    verbose: bool = False,
    also_console: bool = True,
    argv: Optional[Sequence[str]] = None,
) -> str:
    """Configure logging for one invocation.

    The same file collects every invocation across the reboots between steps,
    so each run opens with a banner carrying the pid and arguments. Calling
    this again only adjusts the level. Returns the file actually written to.
    """

    root = logging.getLogger()
    level = logging.DEBUG if verbose else logging.INFO
    root.setLevel(level)

    existing = _find(root, _FILE_HANDLER_NAME)
    if existing is not None:
        return str(getattr(existing, "baseFilename", log_path))

    file_handler = _open_log(log_path)
    file_handler.set_name(_FILE_HANDLER_NAME)
    file_handler.setFormatter(_formatter())
    root.addHandler(file_handler)

    if also_console and _find(root, _CONSOLE_HANDLER_NAME) is None:
        console = logging.StreamHandler()
        console.set_name(_CONSOLE_HANDLER_NAME)
        console.setFormatter(_formatter())
        root.addHandler(console)

    chosen_path = file_handler.baseFilename
    log = logging.getLogger(__name__)
    log.info("=== hid-repair pid=%d argv=%s ===", os.getpid(), list(sys.argv[1:] if argv is None else argv))
    if os.path.abspath(log_path) != chosen_path:
        log.warning("Log path %s not writable; logging to %s", log_path, chosen_path)
    return chosen_path
