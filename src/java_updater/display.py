"""Human-facing progress and result lines."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from packaging.version import Version
from rich.console import Console
from rich.text import Text

__all__ = ["DisplayConfig", "Reporter", "format_version"]

NOT_AVAILABLE = "n/a"


@dataclass(frozen=True, slots=True)
class DisplayConfig:
    """Styles applied to report lines and whether chatter is suppressed."""

    attention: str = "bold red"
    info: str = "cyan"
    path: str = "bright_blue"
    quiet: bool = False


def format_version(version: Version | None) -> str:
    return NOT_AVAILABLE if version is None else str(version)


class Reporter:
    """Print per-installation lines to stdout and failures to stderr."""

    def __init__(
        self,
        console: Console,
        err_console: Console,
        display: DisplayConfig | None = None,
    ) -> None:
        self.console = console
        self.err_console = err_console
        self.display = display or DisplayConfig()

    def processing(self, path: Path, old: Version | None) -> None:
        self._out(
            Text.assemble(
                "Processing installation at ",
                self._path(path),
                " ",
                self._versions(old, old),
            )
        )

    def processed(self, path: Path, old: Version | None, new: Version | None) -> None:
        self._out(
            Text.assemble(
                "Processed installation at ",
                self._path(path),
                " ",
                self._versions(old, new),
            )
        )

    def dry_run(self, path: Path, old: Version | None, new: Version | None) -> None:
        self._out(
            Text.assemble(
                "dry-run: ",
                ("NOT", self.display.attention),
                " processing installation at ",
                self._path(path),
                " ",
                self._versions(old, new),
            )
        )

    def skipped(self, path: Path, reason: str) -> None:
        self._out(
            Text.assemble(
                ("NOT", self.display.attention),
                " processing installation at ",
                self._path(path),
                f" -> {reason}",
            )
        )

    def failed(self, path: Path, error: BaseException | str) -> None:
        # Failures are shown even in quiet mode.
        self.err_console.print(
            Text.assemble(
                "Failed to process installation at ",
                self._path(path),
                "!\n\t",
                (f"err = {error}", self.display.attention),
            ),
            soft_wrap=True,
        )

    def progress(self, done: int, total: int) -> None:
        self.console.set_window_title(f"{done}/{total} installs")

    def summary(self, elapsed: float, finished_at: datetime) -> None:
        self._out(Text(f"Total time: {elapsed:.2f}s"))
        self._out(Text(f"Finished at: {finished_at.isoformat(sep=' ', timespec='seconds')}"))

    def _out(self, text: Text) -> None:
        if not self.display.quiet:
            self.console.print(text, soft_wrap=True)

    def _path(self, path: Path) -> Text:
        return Text(str(path), style=self.display.path)

    def _versions(self, old: Version | None, new: Version | None) -> Text:
        text = Text("[")
        text.append(format_version(old), style=self.display.info)
        if new is not None and new != old:
            text.append(" -> ")
            text.append(format_version(new), style=self.display.info)
        text.append("]")
        return text
