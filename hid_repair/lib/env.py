from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Paths:
    intake_dir: str = r"C:\Drivers\hid-repair"
    marker_default: str = r"C:\ProgramData\hid-repair\progress.txt"
    log_default: str = r"C:\ProgramData\hid-repair\hid-repair.log"


PATHS = Paths()
