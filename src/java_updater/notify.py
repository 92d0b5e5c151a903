"""User-configured commands launched after an installation run.

Commands are started detached (no stdio, own session on POSIX) and never
awaited. Every string (path, arguments, working directory, environment
values) is expanded strictly against the event variables and the process
environment, so a typo in a template is reported instead of silently passed
through. Launch failures are logged and otherwise ignored.
"""
from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from enum import StrEnum

from .config import NotifyCommandConfig
from .host import is_windows
from .vars import EnvironmentResolver, PrefixedResolver, StaticResolver, VarExpander, VarNotPresentError

__all__ = ["NotifyCommand", "NotifyKind", "Notifier", "PreparedCommand"]

LOGGER = logging.getLogger(__name__)


class NotifyKind(StrEnum):
    """Event that triggered a notification."""

    FAILURE = "on-failure"
    SUCCESS = "on-success"
    UPDATE = "on-update"


@dataclass(frozen=True, slots=True)
class PreparedCommand:
    """A fully expanded command ready to launch."""

    argv: tuple[str, ...]
    cwd: str | None
    env: dict[str, str]


@dataclass(frozen=True, slots=True)
class NotifyCommand:
    """Command template plus the event variables it is launched with."""

    path: str
    args: tuple[str, ...] = ()
    directory: str | None = None
    kind: NotifyKind = NotifyKind.SUCCESS
    env: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: NotifyCommandConfig, kind: NotifyKind) -> NotifyCommand:
        return cls(
            path=config.path,
            args=tuple(config.args),
            directory=config.directory,
            kind=kind,
        )

    def with_env(self, env: Mapping[str, str]) -> NotifyCommand:
        """Return a copy carrying *env* as extra environment variables."""
        return replace(self, env={**self.env, **env})

    def prepare(self, base_env: Mapping[str, str] | None = None) -> PreparedCommand:
        """Expand every template; raises :class:`VarNotPresentError` on unknown names."""
        process_env = dict(os.environ if base_env is None else base_env)
        expander = VarExpander.strict(
            StaticResolver({f"env.{key}": value for key, value in self.env.items()}),
            PrefixedResolver("env.", EnvironmentResolver(process_env)),
        )
        argv = (expander.expand(self.path), *(expander.expand(arg) for arg in self.args))
        cwd = expander.expand(self.directory) if self.directory else None
        for key, value in self.env.items():
            process_env[key] = expander.expand(value)
        return PreparedCommand(argv=argv, cwd=cwd, env=process_env)


class Notifier:
    """Launch notification commands without waiting for them."""

    def __init__(self, *, base_env: Mapping[str, str] | None = None) -> None:
        self.base_env = base_env

    def notify(self, commands: Sequence[NotifyCommand], env: Mapping[str, str]) -> int:
        """Launch *commands* with *env*; return how many were started."""
        started = 0
        for command in commands:
            try:
                prepared = command.with_env(env).prepare(self.base_env)
                self._spawn(prepared)
            except (OSError, VarNotPresentError) as exc:
                LOGGER.error("Failed to execute %s command %r: %s", command.kind, command.path, exc)
                continue
            LOGGER.debug("Started %s command %s", command.kind, prepared.argv)
            started += 1
        return started

    def _spawn(self, prepared: PreparedCommand) -> None:
        """Start the process detached (isolated for testing)."""
        options: dict[str, object] = {}
        if is_windows():
            options["creationflags"] = (
                subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP
            )
        else:
            options["start_new_session"] = True
        subprocess.Popen(  # noqa: S603
            list(prepared.argv),
            cwd=prepared.cwd,
            env=prepared.env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            **options,
        )
