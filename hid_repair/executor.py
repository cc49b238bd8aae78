from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence

from .lib.command import CmdResult, run_cmd
from .provider import CandidateAction

logger = logging.getLogger(__name__)

DEFAULT_SILENT_ARGS = ("/quiet", "/norestart")
DEFAULT_MSI_SILENT_ARGS = ("/qn", "/norestart")
# ERROR_SUCCESS_REBOOT_INITIATED and ERROR_SUCCESS_REBOOT_REQUIRED are successes.
DEFAULT_SUCCESS_CODES = (0, 1641, 3010)

CommandRunner = Callable[..., CmdResult]


@dataclass(frozen=True)
class ExecResult:
    ok: bool
    argv: List[str]
    returncode: Optional[int] = None
    cause: Optional[str] = None
    attempts: int = 1


class StepExecutor:
    """Runs one installer, silently first and then once interactively.

    The interactive fallback exists for installers that reject the silent flags.
    Blocks until the child exits; there is no timeout.
    """

    def __init__(
        self,
        *,
        silent_args: Sequence[str] = DEFAULT_SILENT_ARGS,
        msi_silent_args: Sequence[str] = DEFAULT_MSI_SILENT_ARGS,
        success_codes: Iterable[int] = DEFAULT_SUCCESS_CODES,
        run: CommandRunner = run_cmd,
    ) -> None:
        self.silent_args = list(silent_args)
        self.msi_silent_args = list(msi_silent_args)
        self.success_codes = frozenset(int(c) for c in success_codes)
        self._run = run

    def argv_for(self, action: CandidateAction, *, silent: bool) -> List[str]:
        if action.is_msi:
            argv = ["msiexec", "/i", str(action.path)]
            return argv + (self.msi_silent_args if silent else [])
        return [str(action.path)] + (self.silent_args if silent else [])

    def execute(self, action: CandidateAction) -> ExecResult:
        first = self._attempt(action, silent=True, attempt=1)
        if first.ok:
            return first

        logger.warning("Silent install of %s failed (%s); retrying without silent flags", action.path.name, first.cause)
        second = self._attempt(action, silent=False, attempt=2)
        if not second.ok:
            logger.error("Install of %s failed: %s", action.path.name, second.cause)
        return second

    def _attempt(self, action: CandidateAction, *, silent: bool, attempt: int) -> ExecResult:
        argv = self.argv_for(action, silent=silent)
        try:
            r = self._run(argv, check=False, cwd=str(action.path.parent))
        except OSError as e:
            return ExecResult(ok=False, argv=argv, cause=f"launch failed: {e}", attempts=attempt)

        if r.returncode in self.success_codes:
            logger.info("Installer %s exited with %d", action.path.name, r.returncode)
            return ExecResult(ok=True, argv=argv, returncode=r.returncode, attempts=attempt)
        return ExecResult(
            ok=False,
            argv=argv,
            returncode=r.returncode,
            cause=f"exit code {r.returncode}",
            attempts=attempt,
        )
