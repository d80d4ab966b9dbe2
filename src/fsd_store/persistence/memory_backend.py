"""In-memory document adapter: a dict-backed stand-in for the file backend.

Behaves like Drive where it matters to the layers above: names are not
unique, every call suspends, and a deleted reference reports not-found.
"""

from __future__ import annotations

import asyncio
import dataclasses
import itertools
import logging
from collections import Counter
from typing import Optional

from fsd_store.exceptions import DocumentNotFound
from fsd_store.models import FOLDER_MIME_TYPE, JSON_MIME_TYPE, FileRef
from fsd_store.persistence.matching import DuplicatePolicy, select_match

log = logging.getLogger(__name__)

ROOT = "root"


@dataclasses.dataclass
class _StoredFile:
    ref: FileRef
    content: bytes = b""


class MemoryDocumentAdapter:
    """Stores files in a plain dict, nothing leaves the process.

    ``calls`` counts invocations per operation so tests can assert how many
    remote round-trips a code path would have cost.
    """

    def __init__(self, duplicate_policy: DuplicatePolicy = "first", latency: float = 0.0) -> None:
        self._files: dict[str, _StoredFile] = {}
        self._ids = itertools.count(1)
        self._policy = duplicate_policy
        self._latency = latency
        self.calls: Counter[str] = Counter()

    async def _tick(self, op: str) -> None:
        self.calls[op] += 1
        await asyncio.sleep(self._latency)

    def _new_id(self, prefix: str) -> str:
        return f"{prefix}{next(self._ids):06d}"

    def _children(self, parent: str, *, folders: bool) -> list[FileRef]:
        return [
            f.ref
            for f in self._files.values()
            if parent in f.ref.parents and f.ref.is_folder == folders
        ]

    # ── Folders ──────────────────────────────────────────────────────

    async def find_folder(self, name: str, parent: Optional[str] = None) -> FileRef | None:
        await self._tick("find_folder")
        matches = [r for r in self._children(parent or ROOT, folders=True) if r.name == name]
        return select_match(matches, name, self._policy)

    async def create_folder(self, name: str, parent: Optional[str] = None) -> FileRef:
        await self._tick("create_folder")
        ref = FileRef(
            id=self._new_id("fld"),
            name=name,
            mime_type=FOLDER_MIME_TYPE,
            parents=[parent or ROOT],
        )
        self._files[ref.id] = _StoredFile(ref=ref)
        return ref

    # ── Files ────────────────────────────────────────────────────────

    async def find_by_name(self, folder: str, name: str) -> FileRef | None:
        await self._tick("find_by_name")
        matches = [r for r in self._children(folder, folders=False) if r.name == name]
        return select_match(matches, name, self._policy)

    async def list_by_prefix(self, folder: str, prefix: str) -> list[FileRef]:
        await self._tick("list_by_prefix")
        return [r for r in self._children(folder, folders=False) if r.name.startswith(prefix)]

    async def read_content(self, ref_id: str) -> bytes:
        await self._tick("read_content")
        stored = self._files.get(ref_id)
        if stored is None or stored.ref.is_folder:
            raise DocumentNotFound(ref_id)
        return stored.content

    async def create(self, folder: str, name: str, content: bytes) -> FileRef:
        await self._tick("create")
        ref = FileRef(id=self._new_id("doc"), name=name, mime_type=JSON_MIME_TYPE, parents=[folder])
        self._files[ref.id] = _StoredFile(ref=ref, content=content)
        log.debug("Created %s/%s as %s", folder, name, ref.id)
        return ref

    async def update(self, ref_id: str, content: bytes) -> FileRef:
        await self._tick("update")
        stored = self._files.get(ref_id)
        if stored is None or stored.ref.is_folder:
            raise DocumentNotFound(ref_id)
        stored.content = content
        return stored.ref

    async def aclose(self) -> None:
        return None

    # ── Test / dry-run helpers ───────────────────────────────────────

    def delete(self, ref_id: str) -> None:
        """Remove a file behind the store's back (no-op if not found)."""
        self._files.pop(ref_id, None)

    def reset_calls(self) -> None:
        self.calls.clear()

    def files_in(self, folder: str) -> list[FileRef]:
        return self._children(folder, folders=False)
