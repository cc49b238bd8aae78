from __future__ import annotations

import fnmatch
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from .lib.command import CmdResult, CommandError, run_cmd
from .lib.powershell import run_ps

logger = logging.getLogger(__name__)

DEFAULT_WATCHED_CLASSES = ("HIDClass", "Keyboard", "Mouse", "USB", "Bluetooth")
DEFAULT_EXCLUDED_DEVICE_PATTERNS = ("*Remote Desktop*", "*Virtual*")

# Every present device that PnP does not report as OK.
_PROBLEM_DEVICES_PS = (
    "Get-PnpDevice -PresentOnly -ErrorAction SilentlyContinue | "
    "Where-Object { $_.Status -ne 'OK' } | "
    "Select-Object InstanceId, FriendlyName, Class, Status | "
    "ConvertTo-Json -Compress"
)


@dataclass(frozen=True)
class DeviceIssue:
    instance_id: str
    name: str
    device_class: str
    status: str

    def describe(self) -> str:
        return f"{self.name or self.instance_id} [{self.device_class or '?'}] status={self.status or '?'}"


@dataclass(frozen=True)
class HealthReport:
    all_ok: bool
    problems: List[DeviceIssue] = field(default_factory=list)
    error: Optional[str] = None

    def summary(self) -> str:
        if self.error:
            return f"diagnostics unavailable: {self.error}"
        if self.all_ok:
            return "all input devices OK"
        return f"{len(self.problems)} device(s) need attention: " + "; ".join(p.describe() for p in self.problems)


def parse_pnp_json(text: str) -> List[DeviceIssue]:
    """Parse ConvertTo-Json output, which is empty, one object, or a list."""

    text = (text or "").strip()
    if not text:
        return []
    data: Any = json.loads(text)
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise ValueError(f"Unexpected device listing: {type(data).__name__}")

    issues: List[DeviceIssue] = []
    for item in data:
        if not isinstance(item, dict):
            continue
        issues.append(
            DeviceIssue(
                instance_id=str(item.get("InstanceId") or ""),
                name=str(item.get("FriendlyName") or ""),
                device_class=str(item.get("Class") or ""),
                status=str(item.get("Status") or ""),
            )
        )
    return issues


class DeviceDiagnostics:
    """Observes PnP device health and cleans up stale device instances.

    Excluded patterns are shell-style globs matched case-insensitively against
    the device name and the instance id.
    """

    def __init__(
        self,
        *,
        watched_classes: Iterable[str] = DEFAULT_WATCHED_CLASSES,
        excluded_patterns: Iterable[str] = DEFAULT_EXCLUDED_DEVICE_PATTERNS,
        ps: Callable[[str], str] = run_ps,
        run: Callable[..., CmdResult] = run_cmd,
    ) -> None:
        self.watched_classes = frozenset(c.casefold() for c in watched_classes)
        self.excluded_patterns = [p.casefold() for p in excluded_patterns]
        self._ps = ps
        self._run = run

    def is_excluded(self, issue: DeviceIssue) -> bool:
        keys = [issue.name.casefold(), issue.instance_id.casefold()]
        return any(fnmatch.fnmatchcase(k, pat) for pat in self.excluded_patterns for k in keys if k)

    def problem_devices(self) -> List[DeviceIssue]:
        return [d for d in parse_pnp_json(self._ps(_PROBLEM_DEVICES_PS)) if not self.is_excluded(d)]

    def check_health(self) -> HealthReport:
        try:
            problems = [d for d in self.problem_devices() if d.device_class.casefold() in self.watched_classes]
        except (OSError, CommandError, ValueError) as e:
            logger.warning("Device health check failed: %s", e)
            return HealthReport(all_ok=False, error=str(e))

        report = HealthReport(all_ok=not problems, problems=problems)
        if report.all_ok:
            logger.info("Health: %s", report.summary())
        else:
            logger.warning("Health: %s", report.summary())
        return report

    def remove_stale_devices(self) -> List[str]:
        """Disable and remove every non-OK, non-excluded device. Safe to repeat."""

        try:
            stale = self.problem_devices()
        except (OSError, CommandError, ValueError) as e:
            logger.warning("Skipping stale device cleanup: %s", e)
            return []

        removed: List[str] = []
        for d in stale:
            if not d.instance_id:
                continue
            logger.info("Removing stale device %s", d.describe())
            try:
                self._run(["pnputil", "/disable-device", d.instance_id], check=False)
                r = self._run(["pnputil", "/remove-device", d.instance_id], check=False)
            except OSError as e:
                logger.warning("pnputil unavailable: %s", e)
                break
            if r.returncode == 0:
                removed.append(d.instance_id)
            else:
                logger.warning("Could not remove %s (exit %d)", d.instance_id, r.returncode)

        logger.info("Stale device cleanup: %d removed, %d candidates", len(removed), len(stale))
        return removed


def health_as_dict(report: HealthReport) -> Dict[str, Any]:
    return {
        "all_ok": report.all_ok,
        "error": report.error,
        "problems": [
            {"instance_id": p.instance_id, "name": p.name, "class": p.device_class, "status": p.status}
            for p in report.problems
        ],
    }
