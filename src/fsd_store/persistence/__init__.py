"""Pluggable document adapters for the remote file backend."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fsd_store.persistence.file_backend import FileDocumentAdapter
from fsd_store.persistence.memory_backend import MemoryDocumentAdapter
from fsd_store.persistence.protocols import IDocumentAdapter

if TYPE_CHECKING:
    from fsd_store.core.config import AppSettings
    from fsd_store.core.types import TokenProvider

__all__ = [
    "IDocumentAdapter",
    "FileDocumentAdapter",
    "MemoryDocumentAdapter",
    "create_adapter",
]


def create_adapter(settings: AppSettings, token_provider: TokenProvider | None = None) -> IDocumentAdapter:
    """Create the document adapter selected by ``settings.backend.kind``."""
    kind = settings.backend.kind
    if kind == "memory":
        return MemoryDocumentAdapter(duplicate_policy=settings.layout.duplicate_policy)
    elif kind == "file":
        return FileDocumentAdapter(settings.backend.store_path)
    elif kind == "drive":
        from fsd_store.persistence.drive_backend import DriveDocumentAdapter

        return DriveDocumentAdapter(
            access_token=settings.drive.access_token,
            token_provider=token_provider,
            api_base_url=settings.drive.api_base_url,
            upload_base_url=settings.drive.upload_base_url,
            timeout=settings.drive.timeout_seconds,
            duplicate_policy=settings.layout.duplicate_policy,
        )
    else:
        raise ValueError(f"Unknown document backend: {kind!r}")
