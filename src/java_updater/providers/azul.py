"""Azul Zulu metadata API client."""
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from packaging.version import Version

from ..host import archive_extension
from ..http import HttpClient
from .base import MetadataQueryError, MetadataRequest, RemotePackage, Vendor, expect_version_part

__all__ = ["API_URL", "AzulProvider"]

LOGGER = logging.getLogger(__name__)

API_URL = "https://api.azul.com/metadata/v1/zulu/packages/"


class AzulProvider:
    """Resolve the latest GA Zulu build for a request."""

    vendor = Vendor.AZUL

    def __init__(self, http: HttpClient, *, archive_type: str | None = None) -> None:
        self.http = http
        self.archive_type = archive_type or archive_extension()

    def query(self, request: MetadataRequest) -> RemotePackage:
        """Look up the package, then its SHA-256 via the package detail endpoint."""
        params = {
            "arch": request.resolved_arch(),
            "archive_type": self.archive_type,
            "java_version": request.resolved_version(),
            "java_package_type": request.resolved_package_type(),
            "os": request.resolved_os(),
            "javafx_bundled": "true",
            "latest": "true",
            "release_status": "ga",
        }
        response = self._request_json(API_URL, params)
        if not isinstance(response, list):
            raise MetadataQueryError("response has not the expected structure")
        # The feed may list a second, equivalent build; the first one wins.
        if len(response) not in (1, 2):
            raise MetadataQueryError(f"response is ambiguous {len(response)}")
        entry = response[0]
        if not isinstance(entry, Mapping):
            raise MetadataQueryError("response has not the expected structure")

        url = entry.get("download_url")
        if not isinstance(url, str):
            raise MetadataQueryError("field 'download_url' not present in response")
        parts = entry.get("java_version")
        if not isinstance(parts, list) or len(parts) < 3:
            raise MetadataQueryError("field 'java_version' not present in response")
        major = expect_version_part(parts[0], "major")
        minor = expect_version_part(parts[1], "minor")
        patch = expect_version_part(parts[2], "patch")
        uuid = entry.get("package_uuid")
        if not isinstance(uuid, str) or not uuid:
            raise MetadataQueryError("field 'package_uuid' not present in response")

        details = self._request_json(API_URL + uuid)
        checksum = details.get("sha256_hash") if isinstance(details, Mapping) else None
        if not isinstance(checksum, str):
            raise MetadataQueryError("field 'sha256_hash' not present in response")

        LOGGER.debug("Azul package %s resolved to %s", uuid, url)
        return RemotePackage(
            version=Version(f"{major}.{minor}.{patch}"),
            url=url,
            checksum=checksum,
        )

    def _request_json(self, url: str, params: Mapping[str, str] | None = None) -> Any:
        """Fetch JSON (isolated for testing)."""
        return self.http.get_json(url, params)
