"""Facts about the machine java-updater is running on."""
from __future__ import annotations

import os
import platform
import sys

__all__ = [
    "archive_extension",
    "host_arch",
    "host_family",
    "host_os",
    "is_windows",
    "java_executable",
]

# platform.machine() spellings normalised to the names vendor feeds expect.
_ARCH_ALIASES = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
    "armv8l": "aarch64",
    "i386": "x86",
    "i686": "x86",
    "armv7l": "arm",
}


def is_windows() -> bool:
    """Return ``True`` when running on Windows."""
    return os.name == "nt"


def host_arch() -> str:
    """Return the normalised CPU architecture (``x86_64``, ``aarch64``...)."""
    machine = platform.machine().strip().lower()
    return _ARCH_ALIASES.get(machine, machine) or "unknown"


def host_os() -> str:
    """Return the operating system name (``linux``, ``macos``, ``windows``...)."""
    if sys.platform.startswith("linux"):
        return "linux"
    if sys.platform == "darwin":
        return "macos"
    if sys.platform in {"win32", "cygwin"}:
        return "windows"
    return sys.platform


def host_family() -> str:
    """Return ``windows`` or ``unix``."""
    return "windows" if is_windows() else "unix"


def archive_extension() -> str:
    """Archive flavour downloaded for this host."""
    return "zip" if is_windows() else "tar.gz"


def java_executable() -> str:
    """Relative path of the launcher that marks a usable installation."""
    return "bin/java.exe" if is_windows() else "bin/java"
