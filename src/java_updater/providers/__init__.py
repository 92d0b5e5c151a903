"""Vendor metadata providers."""
from __future__ import annotations

from ..http import HttpClient
from .azul import AzulProvider
from .base import (
    MetadataQueryError,
    MetadataRequest,
    PackageProvider,
    RemotePackage,
    Vendor,
)
from .eclipse import EclipseProvider

__all__ = [
    "AzulProvider",
    "EclipseProvider",
    "MetadataQueryError",
    "MetadataRequest",
    "PackageProvider",
    "RemotePackage",
    "Vendor",
    "create_provider",
]


def create_provider(vendor: Vendor, http: HttpClient) -> PackageProvider:
    """Return the provider implementation for *vendor*."""
    if vendor is Vendor.AZUL:
        return AzulProvider(http)
    return EclipseProvider(http)
