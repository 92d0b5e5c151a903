"""Configuration loader for java-updater.

Values are layered, later sources winning:

1. Built-in defaults.
2. ``java-updater.yml`` (or the path given by ``--config`` or
   ``JAVA_UPDATER_CONFIG_FILE``).
3. Environment variables prefixed with ``JAVA_UPDATER_``.
4. Explicit overrides supplied programmatically (CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export JAVA_UPDATER_SETTINGS__THREADS=4
    export JAVA_UPDATER_SETTINGS__HTTP_TIMEOUT=10

Values are coerced via PyYAML's ``safe_load`` so numbers and booleans parse
naturally. A configuration file looks like::

    aliases:                      # free-form; a home for YAML anchors
      dir: &dir java/${JU_VENDOR}/${JU_VERSION}
    settings:
      threads: 4
      logs_dir: logs
    installations:
      - vendor: azul
        directory: *dir
        type: jdk
        version: 17
        on-update:
          - path: notify-send
            args: ["updated", "${env.JU_NEW_VERSION}"]
"""
from __future__ import annotations

import copy
import os
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from pathlib import Path

import yaml

from .host import host_arch
from .http import DEFAULT_RETRIES, DEFAULT_TIMEOUT

__all__ = [
    "AppConfig",
    "ConfigError",
    "DEFAULT_CONFIG_FILE",
    "InstallationConfig",
    "NotifyCommandConfig",
    "SettingsConfig",
    "load_config",
]

ENV_PREFIX = "JAVA_UPDATER_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}
DEFAULT_CONFIG_FILE = "java-updater.yml"

_NOTIFY_KEYS = {"path", "args", "directory"}
_NOTIFY_EVENTS = ("on-failure", "on-success", "on-update")
_INSTALLATION_KEYS = {
    "vendor",
    "architecture",
    "directory",
    "enabled",
    "type",
    "version",
    *_NOTIFY_EVENTS,
}
_SETTINGS_KEYS = {"threads", "http_timeout", "http_retries", "logs_dir"}


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class NotifyCommandConfig:
    """A command to run when an installation event fires."""

    path: str
    args: tuple[str, ...] = ()
    directory: str | None = None

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"path": self.path, "args": list(self.args), "directory": self.directory}


@dataclass(frozen=True)
class InstallationConfig:
    """One managed installation as written in the configuration file."""

    vendor: str
    directory: str
    version: str
    architecture: str
    package_type: str = "jdk"
    enabled: bool = True
    on_failure: tuple[NotifyCommandConfig, ...] = ()
    on_success: tuple[NotifyCommandConfig, ...] = ()
    on_update: tuple[NotifyCommandConfig, ...] = ()

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "vendor": self.vendor,
            "architecture": self.architecture,
            "directory": self.directory,
            "enabled": self.enabled,
            "type": self.package_type,
            "version": self.version,
            "on-failure": [command.to_dict() for command in self.on_failure],
            "on-success": [command.to_dict() for command in self.on_success],
            "on-update": [command.to_dict() for command in self.on_update],
        }


@dataclass(frozen=True)
class SettingsConfig:
    """Run-wide tuning knobs."""

    threads: int | None = None
    http_timeout: float = DEFAULT_TIMEOUT
    http_retries: int = DEFAULT_RETRIES
    logs_dir: Path | None = None

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "threads": self.threads,
            "http_timeout": self.http_timeout,
            "http_retries": self.http_retries,
            "logs_dir": str(self.logs_dir) if self.logs_dir is not None else None,
        }


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for java-updater."""

    config_file: Path
    settings: SettingsConfig
    installations: tuple[InstallationConfig, ...]

    @property
    def basedir(self) -> Path:
        """Directory relative installation paths are resolved against."""
        return self.config_file.parent

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "settings": self.settings.to_dict(),
            "installations": [item.to_dict() for item in self.installations],
        }


DEFAULTS: dict[str, object] = {
    "settings": {
        "threads": None,
        "http_timeout": DEFAULT_TIMEOUT,
        "http_retries": DEFAULT_RETRIES,
        "logs_dir": None,
    },
    "installations": [],
    "aliases": None,
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = copy.deepcopy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_path = _determine_config_path(config_file, resolved_env)
    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    unknown_keys = set(merged.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    config_path = Path(os.path.abspath(config_path))
    settings = _build_settings(_as_dict(merged.get("settings"), "settings"), config_path.parent)
    installations = tuple(
        _build_installation(_as_dict(entry, f"installations[{index}]"), f"installations[{index}]")
        for index, entry in enumerate(_as_sequence(merged.get("installations") or [], "installations"))
    )
    return AppConfig(config_file=config_path, settings=settings, installations=installations)


def _determine_config_path(
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override).expanduser()
    if env.get(CONFIG_ENV_VAR):
        return Path(env[CONFIG_ENV_VAR]).expanduser()
    return Path(DEFAULT_CONFIG_FILE)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.is_file():
        raise ConfigError(f"Config file {path} does not exist.")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _build_settings(raw: Mapping[str, object], basedir: Path) -> SettingsConfig:
    unknown = set(raw.keys()) - _SETTINGS_KEYS
    if unknown:
        joined = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown settings keys: {joined}.")

    threads_raw = raw.get("threads")
    threads = None
    if threads_raw is not None:
        threads = _expect_int(threads_raw, "settings.threads")
        if threads < 1:
            raise ConfigError("settings.threads must be at least 1.")

    retries = _expect_int(raw.get("http_retries", DEFAULT_RETRIES), "settings.http_retries")
    if retries < 0:
        raise ConfigError("settings.http_retries must be non-negative.")

    logs_raw = raw.get("logs_dir")
    logs_dir = None
    if logs_raw is not None:
        logs_dir = Path(_expect_str(logs_raw, "settings.logs_dir")).expanduser()
        if not logs_dir.is_absolute():
            logs_dir = basedir / logs_dir

    return SettingsConfig(
        threads=threads,
        http_timeout=_expect_positive_float(
            raw.get("http_timeout", DEFAULT_TIMEOUT), "settings.http_timeout"
        ),
        http_retries=retries,
        logs_dir=logs_dir,
    )


def _build_installation(raw: Mapping[str, object], label: str) -> InstallationConfig:
    unknown = set(raw.keys()) - _INSTALLATION_KEYS
    if unknown:
        joined = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys for {label}: {joined}.")
    for required in ("vendor", "directory", "version"):
        if raw.get(required) is None:
            raise ConfigError(f"{label}.{required} must be specified.")

    enabled = raw.get("enabled", True)
    if not isinstance(enabled, bool):
        raise ConfigError(f"{label}.enabled must be a boolean.")

    architecture = raw.get("architecture")
    commands = {
        event: tuple(
            _build_notify(_as_dict(entry, f"{label}.{event}[{index}]"), f"{label}.{event}[{index}]")
            for index, entry in enumerate(_as_sequence(raw.get(event) or [], f"{label}.{event}"))
        )
        for event in _NOTIFY_EVENTS
    }
    return InstallationConfig(
        vendor=_expect_str(raw["vendor"], f"{label}.vendor"),
        directory=_expect_str(raw["directory"], f"{label}.directory"),
        version=_expect_version(raw["version"], f"{label}.version"),
        architecture=(
            host_arch() if architecture is None else _expect_str(architecture, f"{label}.architecture")
        ),
        package_type=_expect_str(raw.get("type", "jdk"), f"{label}.type"),
        enabled=enabled,
        on_failure=commands["on-failure"],
        on_success=commands["on-success"],
        on_update=commands["on-update"],
    )


def _build_notify(raw: Mapping[str, object], label: str) -> NotifyCommandConfig:
    unknown = set(raw.keys()) - _NOTIFY_KEYS
    if unknown:
        joined = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys for {label}: {joined}.")
    if raw.get("path") is None:
        raise ConfigError(f"{label}.path must be specified.")
    args = tuple(
        _expect_str(arg, f"{label}.args[{index}]")
        for index, arg in enumerate(_as_sequence(raw.get("args") or [], f"{label}.args"))
    )
    directory = raw.get("directory")
    return NotifyCommandConfig(
        path=_expect_str(raw["path"], f"{label}.path"),
        args=args,
        directory=None if directory is None else _expect_str(directory, f"{label}.directory"),
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    # JAVA_UPDATER_SETTINGS__THREADS=4 -> {"settings": {"threads": 4}}
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS or not key.startswith(ENV_PREFIX):
            continue
        path = [segment.lower() for segment in key[len(ENV_PREFIX) :].split("__") if segment]
        if not path:
            continue
        node = overrides
        for segment in path[:-1]:
            child = node.setdefault(segment, {})
            if not isinstance(child, dict):
                raise ConfigError(f"Environment variable {key} conflicts with another override.")
            node = child
        node[path[-1]] = _coerce_value(value)
    return overrides


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, value)
        else:
            target[key] = value


def _coerce_value(raw: str) -> object:
    try:
        return yaml.safe_load(raw.strip())
    except yaml.YAMLError:
        return raw.strip()


def _as_sequence(value: object, label: str) -> Sequence[object]:
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    return value


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    return {str(key): item for key, item in value.items()}


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to be a string. Got {value!r}.")


def _expect_version(value: object, key: str) -> str:
    # YAML reads `version: 17` as an int and `version: "17"` as a str.
    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return str(value)
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to be an integer or string. Got {value!r}.")


def _expect_int(value: object, label: str) -> int:
    # Values come from YAML (file or env), so numbers are already typed.
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    raise ConfigError(f"Expected {label} to be an integer. Got {value!r}.")


def _expect_positive_float(value: object, label: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"Expected {label} to be a number. Got {value!r}.")
    if value <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {value}.")
    return float(value)
