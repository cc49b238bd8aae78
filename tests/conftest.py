from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

import pytest

from hid_repair.diagnostics import DeviceIssue, HealthReport
from hid_repair.executor import ExecResult
from hid_repair.progress_store import ProgressStore
from hid_repair.provider import CandidateAction, IntakeProvider
from hid_repair.runner import ResumableRunner
from hid_repair.steps import build_steps

LABELS = ["Chipset", "Serial-IO", "HID-Event-Filter", "Bluetooth"]


def touch(path: Path, mtime: Optional[float] = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"MZ")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


class FakeExecutor:
    def __init__(self, ok: bool = True, cause: str = "exit code 1") -> None:
        self.ok = ok
        self.cause = cause
        self.calls: List[CandidateAction] = []

    def execute(self, action: CandidateAction) -> ExecResult:
        self.calls.append(action)
        if self.ok:
            return ExecResult(ok=True, argv=[str(action.path)], returncode=0)
        return ExecResult(ok=False, argv=[str(action.path)], returncode=1, cause=self.cause, attempts=2)


class FakeDiagnostics:
    def __init__(self, *reports: HealthReport) -> None:
        self.reports = list(reports) or [HealthReport(all_ok=True)]
        self.calls = 0

    def check_health(self) -> HealthReport:
        r = self.reports[min(self.calls, len(self.reports) - 1)]
        self.calls += 1
        return r


UNHEALTHY = HealthReport(
    all_ok=False,
    problems=[DeviceIssue(instance_id="HID\\VID_06CB&PID_CE26\\1", name="I2C HID Device", device_class="HIDClass", status="Error")],
)


class Reboots:
    def __init__(self) -> None:
        self.count = 0

    def __call__(self) -> None:
        self.count += 1


@pytest.fixture
def intake(tmp_path: Path) -> Path:
    d = tmp_path / "intake"
    d.mkdir()
    return d


@pytest.fixture
def store(tmp_path: Path) -> ProgressStore:
    return ProgressStore(tmp_path / "state" / "progress.txt")


@pytest.fixture
def make_runner(intake: Path, store: ProgressStore):
    def _make(
        executor: Optional[FakeExecutor] = None,
        diagnostics: Optional[FakeDiagnostics] = None,
        reboot: Optional[Reboots] = None,
    ) -> ResumableRunner:
        return ResumableRunner(
            steps=build_steps(LABELS),
            intake_dir=intake,
            store=store,
            provider=IntakeProvider(),
            executor=executor or FakeExecutor(),
            diagnostics=diagnostics or FakeDiagnostics(),
            reboot=reboot,
        )

    return _make
