from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .diagnostics import DEFAULT_EXCLUDED_DEVICE_PATTERNS, DEFAULT_WATCHED_CLASSES
from .executor import DEFAULT_MSI_SILENT_ARGS, DEFAULT_SILENT_ARGS, DEFAULT_SUCCESS_CODES
from .lib.env import PATHS
from .lib.schedule import DEFAULT_TASK_NAME
from .provider import DEFAULT_INSTALLER_EXTENSIONS
from .steps import DEFAULT_STEP_LABELS, Step, build_steps


class ConfigError(ValueError):
    pass


def _str_list(value: Any, default: Any, key: str) -> List[str]:
    if value is None:
        return [str(v) for v in default]
    if isinstance(value, str):
        return [value]
    if not isinstance(value, (list, tuple)):
        raise ConfigError(f"{key} must be a list")
    return [str(v) for v in value]


@dataclass(frozen=True)
class RepairConfig:
    raw: Dict[str, Any] = field(default_factory=dict)

    def _section(self, name: str) -> Dict[str, Any]:
        sec = self.raw.get(name) or {}
        if not isinstance(sec, dict):
            raise ConfigError(f"{name} must be a mapping")
        return sec

    @property
    def intake_dir(self) -> Path:
        return Path(str(self._section("paths").get("intake_dir") or PATHS.intake_dir))

    @property
    def marker_path(self) -> Path:
        return Path(str(self._section("paths").get("marker") or PATHS.marker_default))

    @property
    def log_path(self) -> str:
        return str(self._section("paths").get("log") or PATHS.log_default)

    @property
    def steps(self) -> List[Step]:
        labels = _str_list(self.raw.get("steps"), DEFAULT_STEP_LABELS, "steps")
        try:
            return build_steps(labels)
        except ValueError as e:
            raise ConfigError(str(e)) from e

    @property
    def installer_extensions(self) -> List[str]:
        return _str_list(self._section("installer").get("extensions"), DEFAULT_INSTALLER_EXTENSIONS, "installer.extensions")

    @property
    def silent_args(self) -> List[str]:
        return _str_list(self._section("installer").get("silent_args"), DEFAULT_SILENT_ARGS, "installer.silent_args")

    @property
    def msi_silent_args(self) -> List[str]:
        return _str_list(
            self._section("installer").get("msi_silent_args"), DEFAULT_MSI_SILENT_ARGS, "installer.msi_silent_args"
        )

    @property
    def success_codes(self) -> List[int]:
        codes = self._section("installer").get("success_codes")
        if codes is None:
            return list(DEFAULT_SUCCESS_CODES)
        try:
            return [int(c) for c in codes]
        except (TypeError, ValueError) as e:
            raise ConfigError("installer.success_codes must be a list of integers") from e

    @property
    def watched_classes(self) -> List[str]:
        return _str_list(self._section("devices").get("watched_classes"), DEFAULT_WATCHED_CLASSES, "devices.watched_classes")

    @property
    def excluded_device_patterns(self) -> List[str]:
        return _str_list(
            self._section("devices").get("excluded_patterns"), DEFAULT_EXCLUDED_DEVICE_PATTERNS, "devices.excluded_patterns"
        )

    @property
    def reboot_enabled(self) -> bool:
        value = self._section("reboot").get("enabled", True)
        if not isinstance(value, bool):
            raise ConfigError(f"reboot.enabled must be true or false, got {value!r}")
        return value

    @property
    def reboot_delay_s(self) -> int:
        try:
            return int(self._section("reboot").get("delay_s", 10))
        except (TypeError, ValueError) as e:
            raise ConfigError("reboot.delay_s must be an integer") from e

    @property
    def resume_task_name(self) -> str:
        return str(self._section("resume_task").get("name") or DEFAULT_TASK_NAME)

    def with_overrides(self, overrides: Mapping[str, Mapping[str, Any]]) -> "RepairConfig":
        """Return a copy with section values replaced; None values are ignored."""

        raw = {k: (dict(v) if isinstance(v, dict) else v) for k, v in self.raw.items()}
        for section, values in overrides.items():
            current = raw.get(section)
            merged = dict(current) if isinstance(current, dict) else {}
            merged.update({k: v for k, v in values.items() if v is not None})
            raw[section] = merged
        return RepairConfig(raw=raw)

    def validate(self) -> "RepairConfig":
        # Touch every property so bad values surface before anything runs.
        self.intake_dir
        self.marker_path
        self.log_path
        self.steps
        self.installer_extensions
        self.silent_args
        self.msi_silent_args
        self.success_codes
        self.watched_classes
        self.excluded_device_patterns
        self.reboot_enabled
        self.reboot_delay_s
        self.resume_task_name
        return self


def load_config(path: Optional[str]) -> RepairConfig:
    if path is None:
        return RepairConfig().validate()

    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(path)

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ConfigError("config must be YAML")

    try:
        import yaml  # type: ignore
    except Exception as e:
        raise RuntimeError("PyYAML is required to read the config file") from e

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"{p}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"{p} must contain a mapping/object")

    return RepairConfig(raw=raw).validate()
