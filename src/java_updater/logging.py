"""Logging setup and the structured operations log.

Two layers live here:

* :func:`configure_logging` wires the standard :mod:`logging` tree to a Rich
  handler on stderr, with the level chosen by ``-v`` repetitions.
* :class:`StructuredLogger` appends one JSON document per operation (one per
  installation run) to ``<logs_dir>/operations.jsonl``. It never raises: if
  the directory cannot be created or a write fails, it disables itself and
  the run carries on.
"""
from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

__all__ = [
    "OperationScope",
    "StructuredLogger",
    "configure_logging",
    "level_for_verbosity",
]

LOGGER = logging.getLogger(__name__)

OPERATIONS_LOG_NAME = "operations.jsonl"
_LEVELS = (logging.ERROR, logging.WARNING, logging.INFO, logging.DEBUG)


def level_for_verbosity(verbosity: int) -> int:
    """Map the number of ``-v`` flags to a logging level."""
    return _LEVELS[max(0, min(verbosity, len(_LEVELS) - 1))]


def configure_logging(verbosity: int, *, console: Console | None = None) -> None:
    """Route ``java_updater`` log records to a Rich handler."""
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=verbosity >= 3,
        rich_tracebacks=verbosity >= 3,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    root = logging.getLogger("java_updater")
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level_for_verbosity(verbosity))
    root.propagate = False


@dataclass(slots=True)
class OperationScope:
    """Collects steps and the final result of one operation."""

    name: str
    args: Mapping[str, object]
    target: Mapping[str, object] | None
    started: float = field(default_factory=time.perf_counter)
    steps: list[dict[str, object]] = field(default_factory=list)
    result: dict[str, object] | None = None

    def add_step(self, name: str, *, status: str = "ok", detail: object | None = None) -> None:
        """Record an intermediate step."""
        step: dict[str, object] = {"name": name, "status": status}
        if detail is not None:
            step["detail"] = _sanitise(detail)
        self.steps.append(step)

    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        self.result = {
            "status": "success",
            "message": message,
            "changed": changed,
            "context": _sanitise(dict(context or {})),
        }

    def error(
        self,
        message: str,
        *,
        errors: Sequence[str] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        self.result = {
            "status": "error",
            "message": message,
            "errors": list(errors) if errors else [message],
            "context": _sanitise(dict(context or {})),
        }

    def to_record(self) -> dict[str, object]:
        """Return the JSON document written for this operation."""
        return {
            "timestamp": datetime.now(tz=UTC).isoformat(timespec="seconds").replace(
                "+00:00", "Z"
            ),
            "operation": self.name,
            "args": _sanitise(dict(self.args)),
            "target": _sanitise(dict(self.target)) if self.target is not None else None,
            "steps": self.steps,
            "duration_ms": int((time.perf_counter() - self.started) * 1000),
            "result": self.result or {"status": "unknown"},
        }


class StructuredLogger:
    """Append-only JSONL log of operations, safe to share between threads."""

    def __init__(self, logs_dir: Path | None) -> None:
        self._lock = threading.Lock()
        self._operations_log_path: Path | None = None
        self._enabled = False
        if logs_dir is None:
            return
        self._operations_log_path = logs_dir / OPERATIONS_LOG_NAME
        try:
            logs_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            LOGGER.warning("Structured log disabled; cannot create %s: %s", logs_dir, exc)
            return
        self._enabled = True

    @contextmanager
    def operation(
        self,
        name: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Yield a scope; its record is written when the block exits."""
        scope = OperationScope(name=name, args=dict(args or {}), target=target)
        try:
            yield scope
        except Exception as exc:
            if scope.result is None:
                scope.error(str(exc), errors=[repr(exc)])
            raise
        finally:
            self._write(scope.to_record())

    def _write(self, record: Mapping[str, object]) -> None:
        if not self._enabled or self._operations_log_path is None:
            return
        line = json.dumps(record, sort_keys=True)
        with self._lock:
            try:
                with self._operations_log_path.open("a", encoding="utf-8") as handle:
                    handle.write(line + "\n")
            except OSError as exc:
                self._enabled = False
                LOGGER.warning(
                    "Structured log disabled; write to %s failed: %s",
                    self._operations_log_path,
                    exc,
                )


def _sanitise(value: object) -> object:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Mapping):
        return {str(key): _sanitise(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitise(item) for item in value]
    return str(value)
