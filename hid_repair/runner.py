from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol, Sequence, Union

from .diagnostics import HealthReport
from .executor import ExecResult
from .progress_store import NO_PROGRESS, CorruptMarkerError
from .provider import CandidateAction
from .steps import Step, last_index

logger = logging.getLogger(__name__)

EXIT_DONE = 0
EXIT_STEP_FAILED = 1
EXIT_MISSING_INPUT = 2
EXIT_REBOOT_REQUIRED = 3010


class ProgressStoreLike(Protocol):
    def read(self) -> int:
        ...

    def write(self, index: int) -> None:
        ...

    def clear(self) -> None:
        ...

    def is_complete(self) -> bool:
        ...

    def mark_complete(self, step_count: int) -> None:
        ...


class ProviderLike(Protocol):
    def resolve(self, step_label: str, intake_dir: Path) -> Optional[CandidateAction]:
        ...


class ExecutorLike(Protocol):
    def execute(self, action: CandidateAction) -> ExecResult:
        ...


class DiagnosticsLike(Protocol):
    def check_health(self) -> HealthReport:
        ...


@dataclass(frozen=True)
class AllDone:
    health: HealthReport
    finalized: bool = False
    exit_code = EXIT_DONE

    def describe(self) -> str:
        verb = "completed" if self.finalized else "already complete"
        return f"All steps {verb}; {self.health.summary()}"


@dataclass(frozen=True)
class HaltForReboot:
    completed_index: int
    step_label: str
    exit_code = EXIT_REBOOT_REQUIRED

    def describe(self) -> str:
        return f"Step {self.completed_index} ({self.step_label}) installed; reboot required to continue"


@dataclass(frozen=True)
class HaltForMissingInput:
    step_index: int
    step_label: str
    exit_code = EXIT_MISSING_INPUT

    def describe(self) -> str:
        return f"No installer found for step {self.step_index} ({self.step_label}); add one to the intake directory"


@dataclass(frozen=True)
class StepFailed:
    step_index: int
    step_label: str
    error: str
    exit_code = EXIT_STEP_FAILED

    def describe(self) -> str:
        return f"Step {self.step_index} ({self.step_label}) failed: {self.error}"


RunOutcome = Union[AllDone, HaltForReboot, HaltForMissingInput, StepFailed]


class ResumableRunner:
    """Runs at most one step per invocation and remembers where it got to.

    The progress marker is written before the reboot is requested. A crash
    between a successful install and that write re-runs the same installer on
    the next invocation, so installers must tolerate being run twice.
    """

    def __init__(
        self,
        *,
        steps: Sequence[Step],
        intake_dir: Path,
        store: ProgressStoreLike,
        provider: ProviderLike,
        executor: ExecutorLike,
        diagnostics: DiagnosticsLike,
        reboot: Optional[Callable[[], None]] = None,
    ) -> None:
        if not steps:
            raise ValueError("ResumableRunner needs at least one step")
        self.steps = list(steps)
        self.intake_dir = intake_dir
        self.store = store
        self.provider = provider
        self.executor = executor
        self.diagnostics = diagnostics
        self.reboot = reboot

    def read_progress(self) -> int:
        try:
            return self.store.read()
        except CorruptMarkerError as e:
            logger.warning("%s; starting from the first step", e)
            return NO_PROGRESS
        except OSError as e:
            logger.warning("Progress marker unreadable (%s); starting from the first step", e)
            return NO_PROGRESS

    def run(self) -> RunOutcome:
        health = self.diagnostics.check_health()
        if self.store.is_complete():
            logger.info("All steps were completed by an earlier run; nothing to do")
            return self._report(AllDone(health=health))

        done = self.read_progress()
        final = last_index(self.steps)
        logger.info("Progress: %d of %d steps completed", done + 1, len(self.steps))

        if done >= final:
            return self._report(self._finalize(health))

        step = self.steps[done + 1]
        return self._report(self._run_step(step))

    def _run_step(self, step: Step) -> RunOutcome:
        logger.info("Resolving step %d (%s) in %s", step.index, step.label, self.intake_dir)
        try:
            action = self.provider.resolve(step.label, self.intake_dir)
        except OSError as e:
            return StepFailed(step_index=step.index, step_label=step.label, error=f"cannot read intake directory: {e}")
        if action is None:
            return HaltForMissingInput(step_index=step.index, step_label=step.label)

        logger.info("Executing step %d (%s): %s", step.index, step.label, action.path)
        try:
            result = self.executor.execute(action)
        except OSError as e:
            return StepFailed(step_index=step.index, step_label=step.label, error=str(e))
        if not result.ok:
            return StepFailed(step_index=step.index, step_label=step.label, error=result.cause or "unknown failure")

        try:
            self.store.write(step.index)
        except OSError as e:
            return StepFailed(
                step_index=step.index,
                step_label=step.label,
                error=f"installed but progress could not be recorded: {e}",
            )

        outcome = HaltForReboot(completed_index=step.index, step_label=step.label)
        self._request_reboot()
        return outcome

    def _finalize(self, health: HealthReport) -> AllDone:
        logger.info("All steps completed; recording completion")
        try:
            self.store.mark_complete(len(self.steps))
        except OSError as e:
            logger.warning("Could not record completion: %s", e)
        if not health.all_ok:
            health = self.diagnostics.check_health()
        return AllDone(health=health, finalized=True)

    def _request_reboot(self) -> None:
        if self.reboot is None:
            logger.info("Reboot disabled; reboot manually to continue")
            return
        try:
            self.reboot()
        except Exception as e:
            # Progress is already recorded; a manual reboot continues the run.
            logger.error("Reboot request failed: %s; reboot manually to continue", e)

    def _report(self, outcome: RunOutcome) -> RunOutcome:
        if isinstance(outcome, (AllDone, HaltForReboot)):
            logger.info("Outcome: %s", outcome.describe())
        else:
            logger.error("Outcome: %s", outcome.describe())
        return outcome
