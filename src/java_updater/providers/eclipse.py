"""Eclipse Adoptium (Temurin) API client."""
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from packaging.version import Version

from ..http import HttpClient
from .base import MetadataQueryError, MetadataRequest, RemotePackage, Vendor, expect_version_part

__all__ = ["API_URL", "EclipseProvider"]

LOGGER = logging.getLogger(__name__)

API_URL = "https://api.adoptium.net/v3/assets/latest/"

# Adoptium spells some host names differently.
_ARCH_NAMES = {"x86_64": "x64", "amd64": "x64", "x86": "x32", "i686": "x32"}
_OS_NAMES = {"macos": "mac"}


class EclipseProvider:
    """Resolve the latest Temurin HotSpot build for a request."""

    vendor = Vendor.ECLIPSE

    def __init__(self, http: HttpClient) -> None:
        self.http = http

    def query(self, request: MetadataRequest) -> RemotePackage:
        arch = request.resolved_arch()
        os_name = request.resolved_os()
        params = {
            "architecture": _ARCH_NAMES.get(arch, arch),
            "image_type": request.resolved_package_type(),
            "os": _OS_NAMES.get(os_name, os_name),
            "vendor": "eclipse",
        }
        url = f"{API_URL}{request.resolved_version()}/hotspot/"
        response = self._request_json(url, params)
        if not isinstance(response, list):
            raise MetadataQueryError("response has not the expected structure")
        if len(response) != 1:
            raise MetadataQueryError(f"response is ambiguous {len(response)}")
        entry = response[0]
        if not isinstance(entry, Mapping):
            raise MetadataQueryError("response has not the expected structure")

        package = _lookup(entry, "binary", "package")
        link = package.get("link")
        if not isinstance(link, str):
            raise MetadataQueryError("field 'link' not present in response")
        checksum = package.get("checksum")
        if not isinstance(checksum, str):
            raise MetadataQueryError("field 'checksum' not present in response")

        version = entry.get("version")
        if not isinstance(version, Mapping):
            raise MetadataQueryError("field 'version' not present in response")
        major = expect_version_part(version.get("major"), "major")
        minor = expect_version_part(version.get("minor"), "minor")
        security = expect_version_part(version.get("security"), "security")

        LOGGER.debug("Eclipse package resolved to %s", link)
        return RemotePackage(
            version=Version(f"{major}.{minor}.{security}"),
            url=link,
            checksum=checksum,
        )

    def _request_json(self, url: str, params: Mapping[str, str] | None = None) -> Any:
        """Fetch JSON (isolated for testing)."""
        return self.http.get_json(url, params)


def _lookup(entry: Mapping[str, Any], *keys: str) -> Mapping[str, Any]:
    current: Any = entry
    for key in keys:
        current = current.get(key) if isinstance(current, Mapping) else None
        if not isinstance(current, Mapping):
            raise MetadataQueryError(f"field '{key}' not present in response")
    return current
