"""Document adapter protocol: the primitives every backend offers."""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from fsd_store.models import FileRef


@runtime_checkable
class IDocumentAdapter(Protocol):
    """Protocol for remote file backends (Drive, local directory, memory).

    Every operation may raise ``RateLimited`` or ``StoreUnavailable``.
    Nothing is retried at this level.
    """

    async def find_folder(self, name: str, parent: Optional[str] = None) -> FileRef | None:
        """Find a folder named *name* under *parent* (account root when None)."""
        ...

    async def create_folder(self, name: str, parent: Optional[str] = None) -> FileRef:
        """Create a folder named *name* under *parent*."""
        ...

    async def find_by_name(self, folder: str, name: str) -> FileRef | None:
        """Find a file named *name* directly inside *folder*."""
        ...

    async def list_by_prefix(self, folder: str, prefix: str) -> list[FileRef]:
        """List every file in *folder* whose name starts with *prefix*."""
        ...

    async def read_content(self, ref_id: str) -> bytes:
        """Read raw bytes. Raises ``DocumentNotFound`` if *ref_id* is gone."""
        ...

    async def create(self, folder: str, name: str, content: bytes) -> FileRef:
        """Create a new file in *folder* and return its reference."""
        ...

    async def update(self, ref_id: str, content: bytes) -> FileRef:
        """Replace file content. Raises ``DocumentNotFound`` if *ref_id* is gone."""
        ...

    async def aclose(self) -> None:
        """Release transport resources."""
        ...
