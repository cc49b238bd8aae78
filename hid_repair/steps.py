from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Sequence

# Install order matters: the HID event filter binds to the Serial IO controllers,
# which in turn need the chipset INF.
DEFAULT_STEP_LABELS = ("Chipset", "Serial-IO", "HID-Event-Filter", "Bluetooth")


@dataclass(frozen=True)
class Step:
    index: int
    label: str


def build_steps(labels: Iterable[str] = DEFAULT_STEP_LABELS) -> List[Step]:
    steps: List[Step] = []
    seen: set[str] = set()
    for i, label in enumerate(labels):
        label = str(label).strip()
        if not label:
            raise ValueError(f"Step {i} has an empty label")
        if label.casefold() in seen:
            raise ValueError(f"Duplicate step label: {label}")
        seen.add(label.casefold())
        steps.append(Step(index=i, label=label))
    if not steps:
        raise ValueError("At least one step is required")
    return steps


def last_index(steps: Sequence[Step]) -> int:
    return len(steps) - 1
