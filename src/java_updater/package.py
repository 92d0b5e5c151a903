"""Download, verify and install a vendor package into a target directory.

The provisioner works entirely inside the target: the archive is cached as
``.java-updater/<checksum>.<ext>``, unpacked into ``.java-updater/<checksum>/``
and only then swapped into place. A failure before the swap leaves the
existing installation untouched.
"""
from __future__ import annotations

import logging
import os
import shutil
import stat
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from .archive import ArchiveError, ExtractionReport, extract_archive
from .checksum import ChecksumWriter, checksums_match, compute_checksum
from .host import archive_extension, is_windows, java_executable
from .http import HttpClient, NetworkError
from .metadata import META_DIR_NAME, metadata_dir
from .providers.base import RemotePackage

__all__ = [
    "ChecksumMismatchError",
    "InstallationBusyError",
    "IntegrityError",
    "ProvisionError",
    "ProvisionResult",
    "Provisioner",
]

LOGGER = logging.getLogger(__name__)


class ProvisionError(RuntimeError):
    """Raised when a package cannot be installed."""


class ChecksumMismatchError(ProvisionError):
    """Raised when the downloaded bytes do not match the advertised checksum."""


class InstallationBusyError(ProvisionError):
    """Raised when files of the current installation are held open."""


class IntegrityError(ProvisionError):
    """Raised when the unpacked package lacks the Java launcher."""


@dataclass(frozen=True, slots=True)
class ProvisionResult:
    """Summary of a completed :meth:`Provisioner.provide` call."""

    archive: Path
    downloaded: bool
    extraction: ExtractionReport


class Provisioner:
    """Install :class:`RemotePackage` artifacts into target directories."""

    def __init__(
        self,
        http: HttpClient,
        *,
        extension: str | None = None,
        java_marker: str | None = None,
    ) -> None:
        self.http = http
        self.extension = extension or archive_extension()
        self.java_marker = java_marker or java_executable()

    def provide(self, package: RemotePackage, target_dir: Path) -> ProvisionResult:
        """Make *target_dir* contain exactly the contents of *package*."""
        checksum = package.checksum.strip().lower()
        archive, downloaded = self.download(package, target_dir)
        self.probe_busy(target_dir, checksum)
        staging, report = self.stage(archive, target_dir, checksum)
        self.swap(staging, target_dir)
        return ProvisionResult(archive=archive, downloaded=downloaded, extraction=report)

    def download(self, package: RemotePackage, target_dir: Path) -> tuple[Path, bool]:
        """Fetch the archive unless a verified copy is already cached.

        Returns the archive path and whether the network was used.
        """
        checksum = package.checksum.strip().lower()
        meta_dir = metadata_dir(target_dir)
        dest = meta_dir / f"{checksum}.{self.extension}"

        if dest.is_file() and checksums_match(compute_checksum(dest), checksum):
            LOGGER.info("Reusing cached package %s", dest)
            return dest, False

        meta_dir.mkdir(parents=True, exist_ok=True)
        LOGGER.info("Downloading %s to %s", package.url, dest)
        try:
            with dest.open("wb") as handle:
                writer = ChecksumWriter(handle)
                self.http.download(package.url, writer)
        except NetworkError:
            dest.unlink(missing_ok=True)
            raise
        except OSError as exc:
            dest.unlink(missing_ok=True)
            raise ProvisionError(f"Failed to write {dest}: {exc}") from exc

        calculated = writer.hexdigest()
        if not checksums_match(calculated, checksum):
            dest.unlink(missing_ok=True)
            raise ChecksumMismatchError(
                f"hashes differ for {package.url}: expected {checksum}, got {calculated}"
            )
        return dest, True

    def probe_busy(self, target_dir: Path, checksum: str) -> None:
        """Rename ``lib`` away and back to detect a running installation."""
        lib = target_dir / "lib"
        if not lib.exists():
            return
        probe = target_dir / f"lib.{checksum}"
        try:
            self._rename(lib, probe)
        except OSError as exc:
            raise InstallationBusyError("installation is still in use") from exc
        try:
            self._rename(probe, lib)
        except OSError as exc:
            raise ProvisionError(f"Failed to restore {lib} from {probe}: {exc}") from exc

    def stage(
        self,
        archive: Path,
        target_dir: Path,
        checksum: str,
    ) -> tuple[Path, ExtractionReport]:
        """Unpack *archive* into a fresh staging directory and verify it."""
        staging = metadata_dir(target_dir) / checksum
        if staging.exists():
            shutil.rmtree(staging, onexc=_clear_readonly)
        try:
            report = extract_archive(archive, staging)
        except ArchiveError as exc:
            raise ProvisionError(str(exc)) from exc
        except OSError as exc:
            raise ProvisionError(f"Failed to unpack {archive}: {exc}") from exc

        if not (staging / self.java_marker).is_file():
            # Staging is kept for inspection.
            raise IntegrityError(
                f"failed to verify installation: {self.java_marker} missing in {staging}"
            )
        return staging, report

    def swap(self, staging: Path, target_dir: Path) -> None:
        """Replace everything in *target_dir* (but the metadata dir) with *staging*."""
        try:
            for entry in sorted(target_dir.iterdir()):
                if entry.name == META_DIR_NAME:
                    continue
                _remove_entry(entry)
            for entry in sorted(staging.iterdir()):
                os.replace(entry, target_dir / entry.name)
        except OSError as exc:
            raise ProvisionError(f"Failed to replace installation at {target_dir}: {exc}") from exc

        try:
            shutil.rmtree(staging, onexc=_clear_readonly)
        except OSError as exc:
            LOGGER.warning("Failed to delete staging directory %s: %s", staging, exc)

    def _rename(self, source: Path, destination: Path) -> None:
        """Rename wrapper (isolated for testing)."""
        os.rename(source, destination)


def _remove_entry(entry: Path) -> None:
    if entry.is_dir() and not entry.is_symlink():
        shutil.rmtree(entry, onexc=_clear_readonly)
        return
    if is_windows():
        _make_writable(entry)
    entry.unlink()


def _make_writable(path: Path) -> None:
    mode = path.lstat().st_mode
    if not mode & stat.S_IWRITE:
        os.chmod(path, mode | stat.S_IWRITE)


def _clear_readonly(func: Callable[[str], object], path: str, exc: BaseException) -> None:
    # Windows refuses to delete read-only files; POSIX failures are real.
    if not is_windows():
        raise exc
    os.chmod(path, stat.S_IWRITE)
    func(path)
