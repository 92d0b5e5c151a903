"""Per-installation metadata stored next to the Java runtime.

Every managed installation carries ``.java-updater/meta``, a small YAML
document recording what was installed::

    checksum: 0f3a...
    vendor: azul
    version: 17.0.9

``props`` (free-form string pairs) is written only when non-empty. The schema
is closed: unknown or missing fields are rejected rather than ignored.
"""
from __future__ import annotations

import os
import re
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from packaging.version import InvalidVersion, Version

__all__ = [
    "META_DIR_NAME",
    "META_FILE_NAME",
    "Metadata",
    "MetadataNotFoundError",
    "MetadataParseError",
    "VendorMismatchError",
    "check_vendor",
    "load_metadata",
    "metadata_dir",
    "metadata_path",
    "save_metadata",
]

META_DIR_NAME = ".java-updater"
META_FILE_NAME = "meta"

_REQUIRED_FIELDS = {"checksum", "vendor", "version"}
_ALLOWED_FIELDS = _REQUIRED_FIELDS | {"props"}
_CHECKSUM_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")


class MetadataNotFoundError(RuntimeError):
    """Raised when an installation has no metadata file yet."""


class MetadataParseError(RuntimeError):
    """Raised when the metadata file exists but is malformed."""


class VendorMismatchError(RuntimeError):
    """Raised when metadata belongs to a different vendor than configured."""


@dataclass(frozen=True, slots=True)
class Metadata:
    """What is currently installed in a target directory."""

    vendor: str
    version: Version
    checksum: str
    props: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not _CHECKSUM_PATTERN.match(self.checksum):
            raise MetadataParseError(f"checksum {self.checksum!r} is not a SHA-256 hex digest")
        object.__setattr__(self, "checksum", self.checksum.lower())

    def to_dict(self) -> dict[str, object]:
        """Return the on-disk representation."""
        data: dict[str, object] = {
            "checksum": self.checksum,
            "vendor": self.vendor,
            "version": str(self.version),
        }
        if self.props:
            data["props"] = dict(sorted(self.props.items()))
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, object], *, source: str = "metadata") -> Metadata:
        """Validate *data* and build a :class:`Metadata`."""
        unknown = set(data.keys()) - _ALLOWED_FIELDS
        if unknown:
            joined = ", ".join(sorted(str(key) for key in unknown))
            raise MetadataParseError(f"{source}: unknown fields: {joined}")
        missing = _REQUIRED_FIELDS - set(data.keys())
        if missing:
            joined = ", ".join(sorted(missing))
            raise MetadataParseError(f"{source}: missing fields: {joined}")

        vendor = _expect_str(data["vendor"], "vendor", source)
        checksum = _expect_str(data["checksum"], "checksum", source)
        raw_version = _expect_str(data["version"], "version", source)
        try:
            version = Version(raw_version)
        except InvalidVersion as exc:
            raise MetadataParseError(f"{source}: invalid version {raw_version!r}") from exc

        props_raw = data.get("props")
        props: dict[str, str] = {}
        if props_raw is not None:
            if not isinstance(props_raw, Mapping):
                raise MetadataParseError(f"{source}: props must be a mapping")
            for key, value in props_raw.items():
                if not isinstance(key, str) or not isinstance(value, str):
                    raise MetadataParseError(f"{source}: props must map strings to strings")
                props[key] = value

        try:
            return cls(vendor=vendor, version=version, checksum=checksum, props=props)
        except MetadataParseError as exc:
            raise MetadataParseError(f"{source}: {exc}") from exc


def metadata_dir(target_dir: Path) -> Path:
    """Return the private directory java-updater keeps inside *target_dir*."""
    return target_dir / META_DIR_NAME


def metadata_path(target_dir: Path) -> Path:
    """Return the metadata file location for *target_dir*."""
    return metadata_dir(target_dir) / META_FILE_NAME


def load_metadata(path: Path) -> Metadata:
    """Read and validate the metadata file at *path*."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise MetadataNotFoundError(f"No metadata at {path}") from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise MetadataParseError(f"Failed to parse metadata {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise MetadataParseError(f"Metadata {path} must contain a mapping at the top level.")
    return Metadata.from_dict(data, source=str(path))


def save_metadata(metadata: Metadata, path: Path) -> None:
    """Atomically write *metadata* to *path*, creating the parent directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = yaml.safe_dump(metadata.to_dict(), sort_keys=True)

    tmp_fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
        os.replace(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)


def check_vendor(metadata: Metadata, vendor_id: str) -> None:
    """Raise :class:`VendorMismatchError` unless *metadata* belongs to *vendor_id*."""
    if metadata.vendor != vendor_id:
        raise VendorMismatchError(
            f"installation belongs to vendor '{metadata.vendor}', expected '{vendor_id}'"
        )


def _expect_str(value: object, key: str, source: str) -> str:
    if isinstance(value, str):
        return value
    raise MetadataParseError(f"{source}: {key} must be a string, got {type(value).__name__}")
