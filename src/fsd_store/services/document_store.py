"""Document store: composes resolver, entity store, manifests and rebuild.

Collaborators (ingestion, scheduling, chat) hold one ``DocumentStore`` and
go through ``save``/``load`` and the per-folder manifests; they never talk
to the adapter directly.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fsd_store.core.config import AppSettings
from fsd_store.core.startup_checks import validate_settings
from fsd_store.core.types import JsonDict, TokenProvider
from fsd_store.models import FileRef, ManifestEntry, ManifestIndex
from fsd_store.persistence import create_adapter
from fsd_store.persistence.protocols import IDocumentAdapter
from fsd_store.services.entity_store import EntityStore
from fsd_store.services.manifest import ManifestCache, ManifestStore
from fsd_store.services.namespace import ROOT_SUBFOLDERS, NamespaceResolver
from fsd_store.services.rebuild import RebuildEngine
from fsd_store.services.sync_queue import SyncQueue

log = logging.getLogger(__name__)


class DocumentStore:
    """Owns one adapter, one manifest cache and one manifest store per folder.

    Every entity save schedules an upsert into the manifest of the folder it
    was saved in; the save returns before that upsert is written.
    """

    def __init__(
        self,
        adapter: IDocumentAdapter,
        settings: Optional[AppSettings] = None,
        *,
        cache: Optional[ManifestCache] = None,
    ) -> None:
        self._settings = settings or AppSettings()
        layout = self._settings.layout
        summary_fields = self._settings.manifest.summary_fields

        self.adapter = adapter
        self.resolver = NamespaceResolver(adapter)
        self.entities = EntityStore(adapter, entity_prefix=layout.entity_prefix, listener=self._on_entity_saved)
        self.cache = cache or ManifestCache(ttl_seconds=self._settings.manifest.ttl_seconds)
        self.rebuilder = RebuildEngine(
            adapter,
            self.entities,
            self.cache,
            manifest_file=layout.manifest_file,
            summary_fields=summary_fields,
            max_concurrent=self._settings.rebuild.max_concurrent,
        )
        self._manifests: dict[str, ManifestStore] = {}
        self._sync_queue: Optional[SyncQueue] = None

    @property
    def settings(self) -> AppSettings:
        return self._settings

    @property
    def sync_queue(self) -> SyncQueue:
        """Background save queue for this store, created on first use."""
        if self._sync_queue is None:
            self._sync_queue = SyncQueue.from_settings(self)
        return self._sync_queue

    async def __aenter__(self) -> DocumentStore:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ── Namespaces ───────────────────────────────────────────────────

    async def resolve(self, name: str, parent: Optional[str] = None) -> str:
        return await self.resolver.resolve(name, parent)

    async def root_folder(self) -> str:
        return await self.resolver.resolve(self._settings.layout.root_folder)

    async def ensure_layout(self) -> dict[str, str]:
        """Resolve (creating as needed) the application folder tree."""
        root = await self.root_folder()
        folders = {self._settings.layout.root_folder: root}
        for name in ROOT_SUBFOLDERS:
            folders[name] = await self.resolver.resolve(name, root)
        knowledge = self._settings.layout.knowledge_folder
        folders[knowledge] = await self.resolver.resolve(knowledge)
        return folders

    # ── Entities ─────────────────────────────────────────────────────

    async def save(self, folder: str, entity_id: str, data: JsonDict, ref_id: Optional[str] = None) -> FileRef:
        return await self.entities.save(folder, entity_id, data, ref_id=ref_id)

    async def load(self, folder: str, entity_id: str) -> Any | None:
        return await self.entities.load(folder, entity_id)

    # ── Manifests ────────────────────────────────────────────────────

    def manifest(self, folder: str) -> ManifestStore:
        store = self._manifests.get(folder)
        if store is None:
            store = ManifestStore(
                self.entities,
                folder,
                self.cache,
                manifest_file=self._settings.layout.manifest_file,
                summary_fields=self._settings.manifest.summary_fields,
                rebuilder=self.rebuilder.rebuild_with_ref,
            )
            self._manifests[folder] = store
        return store

    async def list_entries(self, folder: str, force_refresh: bool = False) -> list[ManifestEntry]:
        index = await self.manifest(folder).get(force_refresh=force_refresh)
        return list(index.entries) if index is not None else []

    async def rebuild(self, folder: str) -> ManifestIndex:
        """Rebuild *folder*'s manifest, joining a rebuild already in flight."""
        return await self.manifest(folder).rebuild()

    async def flush(self) -> None:
        """Wait for every scheduled manifest upsert to be written."""
        for store in list(self._manifests.values()):
            await store.flush()

    async def aclose(self) -> None:
        if self._sync_queue is not None:
            await self._sync_queue.close()
            self._sync_queue = None
        for store in list(self._manifests.values()):
            await store.close()
        self._manifests.clear()
        self.cache.close()
        await self.adapter.aclose()

    def _on_entity_saved(self, folder: str, entity_id: str, data: JsonDict, ref: FileRef) -> None:
        manifest = self.manifest(folder)
        manifest.schedule_upsert(manifest.entry_for(entity_id, data, ref))


def create_document_store(
    settings: Optional[AppSettings] = None,
    token_provider: Optional[TokenProvider] = None,
) -> DocumentStore:
    """Validate *settings* and build a store on the configured backend."""
    settings = settings or AppSettings()
    validate_settings(settings, has_token_provider=token_provider is not None)
    adapter = create_adapter(settings, token_provider)
    log.debug("Document store on %s backend", settings.backend.kind)
    return DocumentStore(adapter, settings)
