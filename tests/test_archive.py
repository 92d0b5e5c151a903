"""Tests for safe archive extraction."""
from __future__ import annotations

import io
import logging
import os
import tarfile
import zipfile
from collections.abc import Callable
from pathlib import Path

import pytest

from java_updater.archive import ArchiveError, entry_destination, extract_archive


def _add_file(handle: tarfile.TarFile, name: str, payload: bytes = b"x", mode: int = 0o644) -> None:
    info = tarfile.TarInfo(name)
    info.size = len(payload)
    info.mode = mode
    handle.addfile(info, io.BytesIO(payload))


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("jdk/bin/java", ("bin", "java")),
        ("./jdk/lib/modules", ("lib", "modules")),
        ("jdk\\bin\\java.exe", ("bin", "java.exe")),
        ("jdk", None),
        ("jdk/", None),
        ("/etc/passwd", None),
        ("C:/Windows/evil", None),
        ("jdk/../../evil", None),
        ("../jdk/evil", None),
    ],
)
def test_entry_destination(name: str, expected: tuple[str, ...] | None) -> None:
    """Unsafe or shallow names are rejected; others lose their first component."""
    assert entry_destination(name) == expected


def test_tar_strips_wrapper_and_keeps_exec_bit(
    tmp_path: Path,
    make_tarball: Callable[..., Path],
) -> None:
    archive = make_tarball()
    destination = tmp_path / "out"

    report = extract_archive(archive, destination)

    assert (destination / "bin" / "java").read_bytes().startswith(b"#!/bin/sh")
    assert (destination / "lib" / "modules").read_bytes() == b"modules"
    assert not any(entry.name.startswith("zulu") for entry in destination.iterdir())
    assert report.extracted == 3
    assert report.skipped == []
    if os.name != "nt":
        assert os.access(destination / "bin" / "java", os.X_OK)


def test_tar_skips_unsafe_and_top_level_entries(
    tmp_path: Path,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Traversal entries and stray top-level files never reach the disk."""
    archive = tmp_path / "evil.tar.gz"
    with tarfile.open(archive, "w:gz") as handle:
        _add_file(handle, "jdk/bin/java")
        _add_file(handle, "jdk/../../escaped.txt")
        _add_file(handle, "/abs.txt")
        _add_file(handle, "README")

    destination = tmp_path / "root" / "out"
    caplog.set_level(logging.WARNING, logger="java_updater")
    report = extract_archive(archive, destination)

    assert (destination / "bin" / "java").exists()
    assert not (tmp_path / "escaped.txt").exists()
    assert not (tmp_path / "root" / "escaped.txt").exists()
    assert not (destination / "README").exists()
    assert sorted(report.skipped) == sorted(["jdk/../../escaped.txt", "/abs.txt", "README"])
    assert "unsafe" in caplog.text


def test_tar_wrapper_directory_is_skipped_silently(
    tmp_path: Path,
    make_tarball: Callable[..., Path],
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.WARNING, logger="java_updater")
    extract_archive(make_tarball(), tmp_path / "out")
    assert "Skipping" not in caplog.text


def test_tar_symlink_escaping_destination_is_skipped(tmp_path: Path) -> None:
    archive = tmp_path / "links.tar.gz"
    with tarfile.open(archive, "w:gz") as handle:
        _add_file(handle, "jdk/bin/java")
        link = tarfile.TarInfo("jdk/lib/evil")
        link.type = tarfile.SYMTYPE
        link.linkname = "../../../../etc/passwd"
        handle.addfile(link)

    destination = tmp_path / "out"
    report = extract_archive(archive, destination)

    assert not (destination / "lib" / "evil").is_symlink()
    assert report.skipped == ["jdk/lib/evil"]


def test_zip_strips_wrapper_and_applies_mode(tmp_path: Path) -> None:
    archive = tmp_path / "package.zip"
    with zipfile.ZipFile(archive, "w") as handle:
        handle.writestr("jdk-17/", "")
        info = zipfile.ZipInfo("jdk-17/bin/java.exe")
        info.external_attr = 0o755 << 16
        handle.writestr(info, b"MZ")
        handle.writestr("jdk-17/conf/security/java.policy", b"grant {};")
        handle.writestr("../evil.txt", b"nope")

    destination = tmp_path / "out"
    report = extract_archive(archive, destination)

    assert (destination / "bin" / "java.exe").read_bytes() == b"MZ"
    assert (destination / "conf" / "security" / "java.policy").exists()
    assert not (tmp_path / "evil.txt").exists()
    assert report.skipped == ["../evil.txt"]
    if os.name != "nt":
        assert os.access(destination / "bin" / "java.exe", os.X_OK)


def test_corrupt_archive_raises(tmp_path: Path) -> None:
    archive = tmp_path / "broken.tar.gz"
    archive.write_bytes(b"definitely not gzip")
    with pytest.raises(ArchiveError):
        extract_archive(archive, tmp_path / "out")
