"""Shared types for vendor metadata providers."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from packaging.version import Version

from ..host import host_arch, host_os

__all__ = [
    "DEFAULT_PACKAGE_TYPE",
    "DEFAULT_VERSION",
    "MetadataQueryError",
    "MetadataRequest",
    "PackageProvider",
    "RemotePackage",
    "Vendor",
    "expect_version_part",
]

DEFAULT_PACKAGE_TYPE = "jdk"
DEFAULT_VERSION = "17"
PACKAGE_TYPES = frozenset({"jdk", "jre"})


class MetadataQueryError(RuntimeError):
    """Raised when a vendor feed answers with something unexpected."""


class Vendor(Enum):
    """Supported vendors as ``(id, display name)``."""

    AZUL = ("azul", "Azul")
    ECLIPSE = ("eclipse", "Eclipse")

    def __init__(self, vendor_id: str, display_name: str) -> None:
        self.vendor_id = vendor_id
        self.display_name = display_name

    @classmethod
    def parse(cls, value: str) -> Vendor | None:
        """Return the vendor for *value* (case-insensitive) or ``None``."""
        wanted = value.strip().lower()
        for vendor in cls:
            if vendor.vendor_id == wanted:
                return vendor
        return None

    def __str__(self) -> str:
        return self.display_name


@dataclass(frozen=True, slots=True)
class RemotePackage:
    """Latest package advertised by a vendor feed."""

    version: Version
    url: str
    checksum: str


@dataclass(frozen=True, slots=True)
class MetadataRequest:
    """Query parameters; blank values fall back to host defaults."""

    arch: str = ""
    os: str = ""
    package_type: str = ""
    version: str = ""

    def resolved_arch(self) -> str:
        return self.arch.strip().lower() or host_arch()

    def resolved_os(self) -> str:
        return self.os.strip().lower() or host_os()

    def resolved_package_type(self) -> str:
        package_type = self.package_type.strip().lower()
        return package_type if package_type in PACKAGE_TYPES else DEFAULT_PACKAGE_TYPE

    def resolved_version(self) -> str:
        return self.version.strip().lower() or DEFAULT_VERSION


class PackageProvider(Protocol):
    """Something that can look up the latest package for a request."""

    vendor: Vendor

    def query(self, request: MetadataRequest) -> RemotePackage: ...


def expect_version_part(value: object, label: str) -> int:
    """Return *value* as a non-negative int or raise :class:`MetadataQueryError`."""
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise MetadataQueryError(f"{label} part not present in version")
    return value
