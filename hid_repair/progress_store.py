from __future__ import annotations

import logging
import os
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

NO_PROGRESS = -1

_INDEX_RE = re.compile(r"-?[0-9]+")


class CorruptMarkerError(ValueError):
    def __init__(self, path: Path, raw: str) -> None:
        self.path = path
        self.raw = raw
        super().__init__(f"Progress marker {path} is not a step index: {raw!r}")


@dataclass(frozen=True)
class ProgressStore:
    """Durable "last completed step index", one integer per file.

    Files are only ever replaced whole (temp file + fsync + os.replace), so a
    reader sees either the previous marker or the new one.

    Once the whole sequence is done the marker is swapped for a completion
    record next to it, so later runs know not to start again from step 0.
    """

    path: Path

    @property
    def done_path(self) -> Path:
        return self.path.with_name(self.path.name + ".done")

    def read(self) -> int:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return NO_PROGRESS

        text = raw.strip()
        if not _INDEX_RE.fullmatch(text):
            raise CorruptMarkerError(self.path, raw)
        value = int(text)
        if value < NO_PROGRESS:
            raise CorruptMarkerError(self.path, raw)
        return value

    def write(self, index: int) -> None:
        if index < 0:
            raise ValueError(f"Refusing to record negative step index {index}")
        _replace(self.path, f"{int(index)}\n")
        logger.info("Progress marker set to %d (%s)", index, self.path)

    def is_complete(self) -> bool:
        return self.done_path.exists()

    def mark_complete(self, step_count: int) -> None:
        # Record first, then drop the marker: a crash in between leaves both,
        # and is_complete() wins.
        _replace(self.done_path, f"{int(step_count)}\n")
        _remove(self.path)
        logger.info("All %d steps recorded complete (%s)", step_count, self.done_path)

    def clear(self) -> None:
        removed = _remove(self.path) | _remove(self.done_path)
        if removed:
            logger.info("Progress cleared (%s)", self.path)


def _replace(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        try:
            os.remove(tmp)
        except FileNotFoundError:
            pass
        raise
    _fsync_dir(path.parent)


def _remove(path: Path) -> bool:
    try:
        os.remove(path)
    except FileNotFoundError:
        return False
    _fsync_dir(path.parent)
    return True


def _fsync_dir(path: Path) -> None:
    # Directory fsync makes the rename itself durable; Windows cannot open directories.
    if os.name == "nt":
        return
    fd = os.open(str(path), os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)
