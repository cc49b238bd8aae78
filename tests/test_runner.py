from __future__ import annotations

from pathlib import Path

import pytest
from conftest import UNHEALTHY, FakeDiagnostics, FakeExecutor, Reboots, touch

from hid_repair.diagnostics import HealthReport
from hid_repair.progress_store import NO_PROGRESS, ProgressStore
from hid_repair.runner import (
    EXIT_DONE,
    EXIT_MISSING_INPUT,
    EXIT_REBOOT_REQUIRED,
    EXIT_STEP_FAILED,
    AllDone,
    HaltForMissingInput,
    HaltForReboot,
    StepFailed,
)


def _all_installers(intake: Path) -> None:
    for name in ["Chipset.exe", "Serial-IO.exe", "HID-Event-Filter.exe", "Bluetooth.exe"]:
        touch(intake / name)


def test_fresh_run_executes_only_first_step(make_runner, intake: Path, store: ProgressStore) -> None:
    _all_installers(intake)
    executor = FakeExecutor()
    reboots = Reboots()

    outcome = make_runner(executor=executor, reboot=reboots).run()

    assert outcome == HaltForReboot(completed_index=0, step_label="Chipset")
    assert outcome.exit_code == EXIT_REBOOT_REQUIRED
    assert [a.path.name for a in executor.calls] == ["Chipset.exe"]
    assert store.read() == 0
    assert reboots.count == 1


@pytest.mark.parametrize("done", [-1, 0, 1, 2])
def test_resumes_at_next_step_only(make_runner, intake: Path, store: ProgressStore, done: int) -> None:
    _all_installers(intake)
    if done >= 0:
        store.write(done)
    executor = FakeExecutor()

    outcome = make_runner(executor=executor).run()

    assert isinstance(outcome, HaltForReboot)
    assert outcome.completed_index == done + 1
    assert len(executor.calls) == 1
    assert store.read() == done + 1


def test_completion_recorded_when_last_step_done_and_healthy(make_runner, intake: Path, store: ProgressStore) -> None:
    _all_installers(intake)
    store.write(3)
    executor = FakeExecutor()
    reboots = Reboots()
    diagnostics = FakeDiagnostics()

    outcome = make_runner(executor=executor, diagnostics=diagnostics, reboot=reboots).run()

    assert isinstance(outcome, AllDone)
    assert outcome.finalized
    assert outcome.exit_code == EXIT_DONE
    assert diagnostics.calls == 1
    assert executor.calls == []
    assert reboots.count == 0
    assert not store.path.exists()
    assert store.is_complete()


def test_noop_after_completion(make_runner, intake: Path, store: ProgressStore) -> None:
    _all_installers(intake)
    store.write(3)
    make_runner().run()
    executor = FakeExecutor()

    outcome = make_runner(executor=executor).run()

    assert isinstance(outcome, AllDone)
    assert not outcome.finalized
    assert executor.calls == []


def test_complete_but_unhealthy_finalizes(make_runner, store: ProgressStore) -> None:
    store.write(3)
    after = HealthReport(all_ok=True)
    diagnostics = FakeDiagnostics(UNHEALTHY, after)
    executor = FakeExecutor()

    outcome = make_runner(executor=executor, diagnostics=diagnostics).run()

    assert isinstance(outcome, AllDone)
    assert outcome.finalized
    assert outcome.health is after
    assert diagnostics.calls == 2
    assert executor.calls == []
    assert store.read() == NO_PROGRESS
    assert store.is_complete()


def test_still_unhealthy_after_completion_never_restarts(make_runner, intake: Path, store: ProgressStore) -> None:
    _all_installers(intake)
    store.write(3)
    executor = FakeExecutor()
    reboots = Reboots()

    outcomes = [
        make_runner(executor=executor, diagnostics=FakeDiagnostics(UNHEALTHY), reboot=reboots).run() for _ in range(3)
    ]

    assert all(isinstance(o, AllDone) for o in outcomes)
    assert [o.finalized for o in outcomes] == [True, False, False]
    assert all(not o.health.all_ok for o in outcomes)
    assert executor.calls == []
    assert reboots.count == 0


def test_reset_after_completion_starts_over(make_runner, intake: Path, store: ProgressStore) -> None:
    _all_installers(intake)
    store.write(3)
    make_runner().run()
    store.clear()

    outcome = make_runner().run()

    assert outcome == HaltForReboot(completed_index=0, step_label="Chipset")


def test_unhealthy_devices_do_not_block_steps(make_runner, intake: Path, store: ProgressStore) -> None:
    _all_installers(intake)
    outcome = make_runner(diagnostics=FakeDiagnostics(UNHEALTHY)).run()
    assert isinstance(outcome, HaltForReboot)


def test_missing_input_halts_without_touching_marker(make_runner, intake: Path, store: ProgressStore) -> None:
    touch(intake / "Chipset.exe")
    store.write(0)
    executor = FakeExecutor()
    reboots = Reboots()

    outcome = make_runner(executor=executor, reboot=reboots).run()

    assert outcome == HaltForMissingInput(step_index=1, step_label="Serial-IO")
    assert outcome.exit_code == EXIT_MISSING_INPUT
    assert executor.calls == []
    assert reboots.count == 0
    assert store.read() == 0


def test_failure_does_not_advance_and_retries_same_step(make_runner, intake: Path, store: ProgressStore) -> None:
    _all_installers(intake)
    store.write(1)
    reboots = Reboots()

    outcome = make_runner(executor=FakeExecutor(ok=False, cause="exit code 1603"), reboot=reboots).run()

    assert outcome == StepFailed(step_index=2, step_label="HID-Event-Filter", error="exit code 1603")
    assert outcome.exit_code == EXIT_STEP_FAILED
    assert store.read() == 1
    assert reboots.count == 0

    executor = FakeExecutor()
    again = make_runner(executor=executor).run()
    assert again == HaltForReboot(completed_index=2, step_label="HID-Event-Filter")
    assert [a.path.name for a in executor.calls] == ["HID-Event-Filter.exe"]


def test_corrupt_marker_starts_fresh(make_runner, intake: Path, store: ProgressStore, caplog) -> None:
    _all_installers(intake)
    store.path.parent.mkdir(parents=True, exist_ok=True)
    store.path.write_text("garbage", encoding="utf-8")

    with caplog.at_level("WARNING"):
        outcome = make_runner().run()

    assert outcome == HaltForReboot(completed_index=0, step_label="Chipset")
    assert "starting from the first step" in caplog.text


def test_marker_write_failure_is_step_failure(make_runner, intake: Path, store: ProgressStore, monkeypatch) -> None:
    _all_installers(intake)
    reboots = Reboots()

    def refuse(self, index: int) -> None:
        raise PermissionError("read-only volume")

    monkeypatch.setattr(ProgressStore, "write", refuse)
    outcome = make_runner(reboot=reboots).run()

    assert isinstance(outcome, StepFailed)
    assert "progress could not be recorded" in outcome.error
    assert reboots.count == 0


def test_reboot_failure_keeps_recorded_progress(make_runner, intake: Path, store: ProgressStore) -> None:
    _all_installers(intake)

    def broken_reboot() -> None:
        raise OSError("shutdown.exe missing")

    outcome = make_runner(reboot=broken_reboot).run()

    assert outcome == HaltForReboot(completed_index=0, step_label="Chipset")
    assert store.read() == 0


def test_end_to_end_two_invocations(make_runner, intake: Path, store: ProgressStore) -> None:
    touch(intake / "Chipset_10.1.exe")
    touch(intake / "Bluetooth_22.40.exe")
    executor = FakeExecutor()

    first = make_runner(executor=executor).run()
    assert first == HaltForReboot(completed_index=0, step_label="Chipset")
    assert store.read() == 0

    second = make_runner(executor=executor).run()
    assert second == HaltForMissingInput(step_index=1, step_label="Serial-IO")
    assert store.read() == 0
    assert [a.path.name for a in executor.calls] == ["Chipset_10.1.exe"]


def test_full_sequence_then_done(make_runner, intake: Path, store: ProgressStore) -> None:
    _all_installers(intake)
    executor = FakeExecutor()
    outcomes = [make_runner(executor=executor).run() for _ in range(6)]

    assert [o.completed_index for o in outcomes[:4]] == [0, 1, 2, 3]
    assert isinstance(outcomes[4], AllDone) and outcomes[4].finalized
    assert isinstance(outcomes[5], AllDone) and not outcomes[5].finalized
    assert not store.path.exists()
    assert len(executor.calls) == 4


def test_unreadable_intake_is_step_failure(make_runner, intake: Path, store: ProgressStore, monkeypatch) -> None:
    store.write(0)

    def denied(self):
        raise PermissionError("Access is denied")

    monkeypatch.setattr(Path, "iterdir", denied)
    outcome = make_runner().run()

    assert isinstance(outcome, StepFailed)
    assert outcome.step_label == "Serial-IO"
    assert "Access is denied" in outcome.error
    assert outcome.exit_code == EXIT_STEP_FAILED
    monkeypatch.undo()
    assert store.read() == 0


def test_marker_is_durable_before_reboot(make_runner, intake: Path, store: ProgressStore) -> None:
    _all_installers(intake)
    store.write(1)
    seen = []

    def reboot() -> None:
        seen.append(ProgressStore(store.path).read())

    outcome = make_runner(reboot=reboot).run()

    assert outcome == HaltForReboot(completed_index=2, step_label="HID-Event-Filter")
    assert seen == [2]
