from __future__ import annotations

import argparse
import json
import logging
import sys
from functools import partial
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import ConfigError, RepairConfig, load_config
from .diagnostics import DeviceDiagnostics, health_as_dict
from .executor import StepExecutor
from .lib.command import CommandError
from .lib.power import trigger_reboot
from .lib.privileges import is_admin
from .lib.schedule import install_resume_task, remove_resume_task
from .logging_utils import configure_logging, current_log_path
from .progress_store import NO_PROGRESS, CorruptMarkerError, ProgressStore
from .provider import IntakeProvider
from .readme import write_intake_readme
from .runner import AllDone, ResumableRunner, RunOutcome

logger = logging.getLogger(__name__)

EXIT_USAGE = 4


def build_diagnostics(cfg: RepairConfig) -> DeviceDiagnostics:
    return DeviceDiagnostics(watched_classes=cfg.watched_classes, excluded_patterns=cfg.excluded_device_patterns)


def build_runner(cfg: RepairConfig, *, diagnostics: Optional[DeviceDiagnostics] = None) -> ResumableRunner:
    return ResumableRunner(
        steps=cfg.steps,
        intake_dir=cfg.intake_dir,
        store=ProgressStore(cfg.marker_path),
        provider=IntakeProvider(cfg.installer_extensions),
        executor=StepExecutor(
            silent_args=cfg.silent_args,
            msi_silent_args=cfg.msi_silent_args,
            success_codes=cfg.success_codes,
        ),
        diagnostics=diagnostics or build_diagnostics(cfg),
        reboot=partial(trigger_reboot, cfg.reboot_delay_s) if cfg.reboot_enabled else None,
    )


def run(cfg: RepairConfig) -> RunOutcome:
    """One invocation: clean up stale devices, then advance by at most one step."""

    diagnostics = build_diagnostics(cfg)
    diagnostics.remove_stale_devices()
    outcome = build_runner(cfg, diagnostics=diagnostics).run()
    if isinstance(outcome, AllDone):
        # Nothing left to resume; stop the logon task re-launching us.
        try:
            remove_resume_task(cfg.resume_task_name)
        except OSError as e:
            logger.warning("Could not remove resume task %s: %s", cfg.resume_task_name, e)
    return outcome


def status(cfg: RepairConfig) -> Dict[str, Any]:
    """Read-only view of progress, intake contents and device health."""

    store = ProgressStore(cfg.marker_path)
    marker_error = None
    try:
        done = store.read()
    except CorruptMarkerError as e:
        marker_error = str(e)
        done = NO_PROGRESS

    provider = IntakeProvider(cfg.installer_extensions)
    steps = cfg.steps
    rows: List[Dict[str, Any]] = []
    complete = store.is_complete()
    for s in steps:
        row: Dict[str, Any] = {"index": s.index, "label": s.label, "done": complete or s.index <= done, "installer": None}
        try:
            action = provider.resolve(s.label, cfg.intake_dir)
        except OSError as e:
            row["error"] = str(e)
        else:
            row["installer"] = str(action.path) if action else None
        rows.append(row)

    next_step = steps[done + 1].label if not complete and done + 1 < len(steps) else None
    return {
        "marker_path": str(cfg.marker_path),
        "last_completed_index": done,
        "marker_error": marker_error,
        "complete": complete,
        "next_step": next_step,
        "intake_dir": str(cfg.intake_dir),
        "log_path": current_log_path() or cfg.log_path,
        "steps": rows,
        "health": health_as_dict(build_diagnostics(cfg).check_health()),
    }


def _task_args(args: argparse.Namespace) -> List[str]:
    out: List[str] = []
    for flag, value in (
        ("--config", args.config),
        ("--intake", args.intake),
        ("--marker", args.marker),
        ("--log", args.log),
    ):
        if value:
            # The task starts in System32, so relative paths would point elsewhere.
            out += [flag, str(Path(value).resolve())]
    if args.no_reboot:
        out.append("--no-reboot")
    if args.reboot_delay is not None:
        out += ["--reboot-delay", str(args.reboot_delay)]
    if args.verbose:
        out.append("--verbose")
    return out


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="hid-repair",
        description="Reinstall HID/USB input drivers one per boot, resuming after each reboot.",
        epilog="Exit status: 0 done, 3010 reboot pending, 2 installer missing, 1 step failed, 4 usage/config error.",
    )
    p.add_argument("--config", default=None, help="Path to YAML config")
    p.add_argument("--intake", default=None, help="Directory holding the driver installers")
    p.add_argument("--marker", default=None, help="Path to the progress marker file")
    p.add_argument("--log", default=None, help="Path to the log file")
    p.add_argument("--no-reboot", action="store_true", help="Record progress but do not reboot")
    p.add_argument("--reboot-delay", type=int, default=None, help="Seconds before the reboot starts")
    p.add_argument("--skip-admin-check", action="store_true", help="Run without administrator rights")
    p.add_argument("-v", "--verbose", action="store_true", help="Log installer output and commands at DEBUG level")

    actions = p.add_mutually_exclusive_group()
    actions.add_argument("--status", action="store_true", help="Show progress and device health, then exit")
    actions.add_argument("--reset", action="store_true", help="Forget progress and start from the first step")
    actions.add_argument("--write-readme", action="store_true", help="Write README.txt into the intake directory")
    actions.add_argument("--install-task", action="store_true", help="Register a logon task that resumes the run")
    actions.add_argument("--remove-task", action="store_true", help="Remove the logon task")
    return p


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        cfg = load_config(args.config).with_overrides(
            {
                "paths": {"intake_dir": args.intake, "marker": args.marker, "log": args.log},
                "reboot": {"enabled": False if args.no_reboot else None, "delay_s": args.reboot_delay},
            }
        )
        cfg.validate()
    except (ConfigError, FileNotFoundError) as e:
        print(f"hid-repair: configuration error: {e}", file=sys.stderr)
        return EXIT_USAGE

    configure_logging(log_path=cfg.log_path, verbose=args.verbose, argv=argv)

    if args.status:
        print(json.dumps(status(cfg), indent=2))
        return 0
    if args.write_readme:
        write_intake_readme(cfg.intake_dir, cfg.steps, cfg.installer_extensions)
        return 0

    if not args.skip_admin_check and not is_admin():
        logger.error("Administrator rights are required (use --skip-admin-check to override)")
        return EXIT_USAGE

    try:
        if args.reset:
            ProgressStore(cfg.marker_path).clear()
            return 0
        if args.install_task:
            install_resume_task(cfg.resume_task_name, _task_args(args))
            return 0
        if args.remove_task:
            remove_resume_task(cfg.resume_task_name)
            return 0
    except (CommandError, OSError) as e:
        logger.error("%s", e)
        return 1

    outcome = run(cfg)
    print(outcome.describe())
    return outcome.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
