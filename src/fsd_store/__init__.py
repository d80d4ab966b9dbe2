"""fsd-store: a derived-index document store on top of a cloud file backend."""

from __future__ import annotations

from fsd_store.exceptions import (
    AmbiguousNameError,
    DocumentNotFound,
    MalformedDocument,
    MalformedManifest,
    RateLimited,
    StoreError,
    StoreUnavailable,
)
from fsd_store.models import FileRef, ManifestEntry, ManifestIndex

__all__ = [
    "AmbiguousNameError",
    "DocumentNotFound",
    "FileRef",
    "MalformedDocument",
    "MalformedManifest",
    "ManifestEntry",
    "ManifestIndex",
    "RateLimited",
    "StoreError",
    "StoreUnavailable",
]
