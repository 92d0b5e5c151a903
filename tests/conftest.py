"""Shared fixtures: fake transports, fake vendors and real test archives."""

from __future__ import annotations

import hashlib
import io
import logging
import tarfile
from collections.abc import Callable, Iterator, Mapping
from pathlib import Path
from typing import Any

import pytest
from packaging.version import Version
from rich.console import Console

from java_updater.display import DisplayConfig, Reporter
from java_updater.notify import Notifier, PreparedCommand
from java_updater.providers import MetadataRequest, RemotePackage, Vendor

DEFAULT_FILES: dict[str, bytes] = {
    "bin/java": b"#!/bin/sh\necho java\n",
    "lib/modules": b"modules",
    "release": b'JAVA_VERSION="17.0.9"\n',
}


@pytest.fixture(autouse=True)
def _reset_package_logger() -> Iterator[None]:
    """Undo handlers/levels installed by ``configure_logging`` in CLI tests."""
    yield
    logger = logging.getLogger("java_updater")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


def sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


@pytest.fixture
def make_tarball(tmp_path: Path) -> Callable[..., Path]:
    """Return a factory building ``.tar.gz`` archives with a wrapper directory."""

    def _make(
        name: str = "package.tar.gz",
        files: Mapping[str, bytes] | None = None,
        *,
        wrapper: str = "zulu17.46.19-ca-jdk17.0.9-linux_x64",
    ) -> Path:
        path = tmp_path / "archives" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        with tarfile.open(path, "w:gz") as handle:
            top = tarfile.TarInfo(wrapper)
            top.type = tarfile.DIRTYPE
            top.mode = 0o755
            handle.addfile(top)
            for member, payload in (DEFAULT_FILES if files is None else files).items():
                info = tarfile.TarInfo(f"{wrapper}/{member}")
                info.size = len(payload)
                info.mode = 0o755 if member.startswith("bin/") else 0o644
                handle.addfile(info, io.BytesIO(payload))
        return path

    return _make


class FakeHttp:
    """Serve downloads from memory and count them."""

    def __init__(self) -> None:
        self.payloads: dict[str, bytes] = {}
        self.downloads: list[str] = []

    def serve(self, url: str, path: Path) -> str:
        self.payloads[url] = path.read_bytes()
        return sha256(self.payloads[url])

    def download(self, url: str, sink: Any) -> int:
        self.downloads.append(url)
        payload = self.payloads[url]
        sink.write(payload)
        return len(payload)

    def get_json(self, url: str, params: Mapping[str, str] | None = None) -> Any:
        raise AssertionError(f"unexpected JSON request to {url}")


class FakeProvider:
    """Vendor feed returning a fixed package."""

    def __init__(self, vendor: Vendor, package: RemotePackage | None = None) -> None:
        self.vendor = vendor
        self.package = package
        self.requests: list[MetadataRequest] = []

    def query(self, request: MetadataRequest) -> RemotePackage:
        self.requests.append(request)
        if self.package is None:
            raise RuntimeError("feed unavailable")
        return self.package


class RecordingNotifier(Notifier):
    """Notifier that records instead of spawning."""

    def __init__(self) -> None:
        super().__init__(base_env={})
        self.launched: list[PreparedCommand] = []

    def _spawn(self, prepared: PreparedCommand) -> None:
        self.launched.append(prepared)


@pytest.fixture
def fake_http() -> FakeHttp:
    return FakeHttp()


@pytest.fixture
def fake_provider_factory() -> Callable[..., FakeProvider]:
    def _make(vendor: Vendor = Vendor.AZUL, *, version: str = "17.0.9", url: str = "", checksum: str = "") -> FakeProvider:
        package = RemotePackage(version=Version(version), url=url, checksum=checksum) if url else None
        return FakeProvider(vendor, package)

    return _make


@pytest.fixture
def recording_notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def reporter() -> Reporter:
    """Reporter writing to in-memory consoles (``.out`` / ``.err`` buffers)."""
    out = io.StringIO()
    err = io.StringIO()
    instance = Reporter(
        Console(file=out, width=240, no_color=True),
        Console(file=err, width=240, no_color=True),
        DisplayConfig(),
    )
    instance.out = out  # type: ignore[attr-defined]
    instance.err = err  # type: ignore[attr-defined]
    return instance
