"""Safe extraction of vendor archives (``.tar.gz`` and ``.zip``).

Vendor archives wrap the runtime in a single top-level directory
(``zulu17.44.53-ca-jdk17.0.8.1-linux_x64/bin/java``). Extraction strips that
first component so the runtime lands directly in the destination. Entries are
skipped, with a warning, when they:

* are absolute, drive-qualified, or contain ``..`` components;
* have fewer than two path components (the wrapper itself, or stray files
  next to it);
* are links that would point outside the destination.
"""
from __future__ import annotations

import logging
import os
import shutil
import stat
import tarfile
import zipfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath, PureWindowsPath

__all__ = ["ArchiveError", "ExtractionReport", "entry_destination", "extract_archive"]

LOGGER = logging.getLogger(__name__)


class ArchiveError(RuntimeError):
    """Raised when an archive cannot be read."""


@dataclass(slots=True)
class ExtractionReport:
    """Counts of what happened during extraction."""

    extracted: int = 0
    skipped: list[str] = field(default_factory=list)


def entry_destination(name: str) -> tuple[str, ...] | None:
    """Return the path components *name* is written to, or ``None`` to skip.

    ``None`` is returned both for unsafe names and for names too shallow to
    survive stripping the wrapper directory.
    """
    normalised = name.replace("\\", "/")
    if normalised.startswith("/") or PureWindowsPath(name).drive:
        return None
    parts = PurePosixPath(normalised).parts
    if ".." in parts or len(parts) < 2:
        return None
    return parts[1:]


def extract_archive(archive: Path, destination: Path) -> ExtractionReport:
    """Extract *archive* into *destination*, stripping the wrapper directory."""
    destination.mkdir(parents=True, exist_ok=True)
    name = archive.name.lower()
    try:
        if name.endswith(".zip"):
            with zipfile.ZipFile(archive) as handle:
                report = _extract_zip(handle, destination)
        else:
            with tarfile.open(archive, "r:*") as handle:
                report = _extract_tar(handle, destination)
    except (tarfile.TarError, zipfile.BadZipFile) as exc:
        raise ArchiveError(f"Failed to read archive {archive}: {exc}") from exc
    LOGGER.info(
        "Extracted %d entries from %s (%d skipped)",
        report.extracted,
        archive.name,
        len(report.skipped),
    )
    return report


def _skip(report: ExtractionReport, name: str, is_dir: bool) -> None:
    normalised = name.replace("\\", "/")
    parts = PurePosixPath(normalised).parts
    unsafe = (
        normalised.startswith("/")
        or bool(PureWindowsPath(name).drive)
        or ".." in parts
    )
    if unsafe:
        LOGGER.warning("Skipping unsafe archive entry %r", name)
        report.skipped.append(name)
    elif not is_dir:
        # Wrapper directories are expected at depth one; anything else is odd.
        LOGGER.warning("Skipping top-level archive entry %r", name)
        report.skipped.append(name)


def _extract_tar(handle: tarfile.TarFile, destination: Path) -> ExtractionReport:
    report = ExtractionReport()
    for member in handle:
        parts = entry_destination(member.name)
        if parts is None:
            _skip(report, member.name, member.isdir())
            continue
        changes: dict[str, str] = {"name": "/".join(parts)}
        if member.islnk():
            link_parts = entry_destination(member.linkname)
            if link_parts is None:
                LOGGER.warning("Skipping hard link %r -> %r", member.name, member.linkname)
                report.skipped.append(member.name)
                continue
            changes["linkname"] = "/".join(link_parts)
        try:
            handle.extract(member.replace(**changes, deep=False), destination, filter="data")
        except tarfile.FilterError as exc:
            LOGGER.warning("Skipping archive entry %r: %s", member.name, exc)
            report.skipped.append(member.name)
            continue
        report.extracted += 1
    return report


def _extract_zip(handle: zipfile.ZipFile, destination: Path) -> ExtractionReport:
    report = ExtractionReport()
    root = destination.resolve()
    for info in handle.infolist():
        parts = entry_destination(info.filename)
        if parts is None:
            _skip(report, info.filename, info.is_dir())
            continue
        target = root.joinpath(*parts)
        try:
            target.resolve().relative_to(root)
        except ValueError:
            LOGGER.warning("Skipping archive entry escaping destination %r", info.filename)
            report.skipped.append(info.filename)
            continue
        if info.is_dir():
            target.mkdir(parents=True, exist_ok=True)
            report.extracted += 1
            continue
        target.parent.mkdir(parents=True, exist_ok=True)
        with handle.open(info) as source, target.open("wb") as sink:
            shutil.copyfileobj(source, sink)
        mode = stat.S_IMODE(info.external_attr >> 16)
        if mode and os.name != "nt":
            os.chmod(target, mode)
        report.extracted += 1
    return report
