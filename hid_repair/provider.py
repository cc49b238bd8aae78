from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_INSTALLER_EXTENSIONS = (".exe", ".msi")


@dataclass(frozen=True)
class CandidateAction:
    path: Path

    @property
    def is_msi(self) -> bool:
        return self.path.suffix.lower() == ".msi"


class IntakeProvider:
    """Finds the installer for a step in the intake directory.

    Matching is a case-insensitive substring test of the step label against the
    file name. Among matches the newest modification time wins; identical
    timestamps fall back to the lexicographically smallest name.
    """

    def __init__(self, extensions: Iterable[str] = DEFAULT_INSTALLER_EXTENSIONS) -> None:
        self.extensions = tuple(_norm_ext(e) for e in extensions)

    def candidates(self, step_label: str, intake_dir: Path) -> List[Path]:
        if not intake_dir.is_dir():
            logger.warning("Intake directory %s does not exist", intake_dir)
            return []

        needle = step_label.casefold()
        found: List[Tuple[float, str, str, Path]] = []
        for p in intake_dir.iterdir():
            if not p.is_file():
                continue
            if p.suffix.lower() not in self.extensions:
                continue
            if needle not in p.name.casefold():
                continue
            found.append((-p.stat().st_mtime, p.name.casefold(), p.name, p))
        found.sort(key=lambda t: t[:3])
        return [t[3] for t in found]

    def resolve(self, step_label: str, intake_dir: Path) -> Optional[CandidateAction]:
        matches = self.candidates(step_label, intake_dir)
        if not matches:
            logger.info("No installer for %s in %s", step_label, intake_dir)
            return None
        if len(matches) > 1:
            logger.info("%d installers match %s; using newest: %s", len(matches), step_label, matches[0].name)
        return CandidateAction(path=matches[0])


def _norm_ext(ext: str) -> str:
    ext = ext.strip().lower()
    return ext if ext.startswith(".") else f".{ext}"
