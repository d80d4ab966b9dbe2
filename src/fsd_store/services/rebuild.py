"""Rebuild engine: reconstruct a folder's manifest from its entity files."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fsd_store.exceptions import DocumentNotFound, MalformedDocument
from fsd_store.models import FileRef, ManifestEntry, ManifestIndex
from fsd_store.persistence.protocols import IDocumentAdapter
from fsd_store.services.entity_store import EntityStore, decode_document
from fsd_store.services.manifest import ManifestCache, build_entry

log = logging.getLogger(__name__)


class RebuildEngine:
    """Full scan of the primary files: O(n) reads, expected to run rarely.

    Reads fan out through a semaphore of ``max_concurrent`` slots so a large
    folder does not burst past the backend's rate limit.
    """

    def __init__(
        self,
        adapter: IDocumentAdapter,
        entity_store: EntityStore,
        cache: ManifestCache,
        *,
        manifest_file: str = "manifest.json",
        summary_fields: Optional[list[str]] = None,
        max_concurrent: int = 8,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._adapter = adapter
        self._entity_store = entity_store
        self._cache = cache
        self._manifest_file = manifest_file
        self._summary_fields = list(summary_fields or [])
        self._max_concurrent = max_concurrent

    async def rebuild(self, folder: str) -> ManifestIndex:
        """Scan *folder*, persist a fresh manifest, cache it and return it."""
        index, _ = await self.rebuild_with_ref(folder)
        return index

    async def rebuild_with_ref(
        self,
        folder: str,
        ref_id: Optional[str] = None,
    ) -> tuple[ManifestIndex, FileRef]:
        """Like ``rebuild``, also returning the ref the manifest was written to.

        *ref_id* is the manifest's known reference, if any; it is updated in
        place instead of searched for.
        """
        refs = await self._adapter.list_by_prefix(folder, self._entity_store.entity_prefix)
        log.info("Rebuilding manifest for %s from %d entity files", folder, len(refs))

        sem = asyncio.Semaphore(self._max_concurrent)

        async def _bounded(ref: FileRef) -> ManifestEntry | None:
            async with sem:
                return await self._read_entry(ref)

        results = await asyncio.gather(*[_bounded(ref) for ref in refs])
        entries = sorted((e for e in results if e is not None), key=lambda e: e.id)

        index = ManifestIndex().with_entries(entries)
        manifest_ref = await self._entity_store.save_document(
            folder, self._manifest_file, index.to_document(), ref_id=ref_id
        )
        self._cache.put(folder, index)

        dropped = len(refs) - len(entries)
        log.info(
            "Rebuilt manifest for %s: %d entries (%d files skipped)",
            folder,
            len(index.entries),
            dropped,
        )
        return index, manifest_ref

    async def _read_entry(self, ref: FileRef) -> ManifestEntry | None:
        """Read and summarize one file; None if it vanished or does not parse."""
        try:
            raw = await self._adapter.read_content(ref.id)
        except DocumentNotFound:
            log.info("Entity file %s (%s) vanished during rebuild", ref.name, ref.id)
            return None

        try:
            data = decode_document(raw, ref.name)
        except MalformedDocument as e:
            log.warning("Skipping %s during rebuild: %s", ref.name, e)
            return None
        if not isinstance(data, dict):
            log.warning("Skipping %s during rebuild: not a JSON object", ref.name)
            return None

        entity_id = data.get("id") or self._entity_store.entity_id_from_file_name(ref.name)
        if not entity_id:
            log.warning("Skipping %s during rebuild: no entity id", ref.name)
            return None
        return build_entry(str(entity_id), data, ref.id, self._summary_fields)
