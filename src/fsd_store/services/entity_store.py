"""Entity store: one JSON document per entity id inside a resolved folder."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Optional

from fsd_store.core.types import JsonDict
from fsd_store.exceptions import DocumentNotFound, MalformedDocument
from fsd_store.models import FileRef, StoredDocument
from fsd_store.persistence.protocols import IDocumentAdapter

log = logging.getLogger(__name__)

# Called after every successful entity save: (folder, entity_id, data, ref)
SaveListener = Callable[[str, str, JsonDict, FileRef], None]


def encode_document(data: Any) -> bytes:
    return json.dumps(data, indent=2, ensure_ascii=False).encode("utf-8")


def decode_document(raw: bytes, name: str = "") -> Any:
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedDocument(f"{name or 'document'} is not valid JSON: {e}", raw=raw) from e


class EntityStore:
    """Save and load JSON documents, preferring a remembered file reference.

    A save with a cached ``ref_id`` costs one update; a stale reference is
    an expected condition that falls back to search-then-update/create.
    Loads always search, nothing is cached here.
    """

    def __init__(
        self,
        adapter: IDocumentAdapter,
        entity_prefix: str = "job_",
        listener: Optional[SaveListener] = None,
    ) -> None:
        self._adapter = adapter
        self._prefix = entity_prefix
        self._listener = listener

    @property
    def entity_prefix(self) -> str:
        return self._prefix

    def set_listener(self, listener: Optional[SaveListener]) -> None:
        self._listener = listener

    def entity_file_name(self, entity_id: str) -> str:
        return f"{self._prefix}{entity_id}.json"

    def entity_id_from_file_name(self, name: str) -> str | None:
        if not name.startswith(self._prefix) or not name.endswith(".json"):
            return None
        return name[len(self._prefix) : -len(".json")] or None

    # ── Entities ─────────────────────────────────────────────────────

    async def save(
        self,
        folder: str,
        entity_id: str,
        data: JsonDict,
        ref_id: Optional[str] = None,
    ) -> FileRef:
        """Persist *data* as entity *entity_id*, returning the ref to cache.

        The listener is notified after the write; it must not block on the
        index update.
        """
        if not entity_id:
            raise ValueError("Entity id must be non-empty")
        ref = await self.save_document(folder, self.entity_file_name(entity_id), data, ref_id=ref_id)
        if self._listener is not None:
            self._listener(folder, entity_id, data, ref)
        return ref

    async def load(self, folder: str, entity_id: str) -> Any | None:
        return await self.load_document(folder, self.entity_file_name(entity_id))

    # ── Named documents ──────────────────────────────────────────────

    async def save_document(
        self,
        folder: str,
        file_name: str,
        data: Any,
        ref_id: Optional[str] = None,
    ) -> FileRef:
        """Write a document by file name without notifying the listener."""
        content = encode_document(data)

        if ref_id:
            try:
                ref = await self._adapter.update(ref_id, content)
                log.debug("Updated %s via cached ref %s", file_name, ref_id)
                return ref
            except DocumentNotFound:
                log.info("Cached ref %s for %s is stale, searching by name", ref_id, file_name)

        existing = await self._adapter.find_by_name(folder, file_name)
        if existing is not None:
            try:
                ref = await self._adapter.update(existing.id, content)
                log.debug("Updated %s (%s) after search", file_name, existing.id)
                return ref
            except DocumentNotFound:
                # Deleted between search and update
                log.info("%s (%s) vanished before update, creating", file_name, existing.id)

        ref = await self._adapter.create(folder, file_name, content)
        log.debug("Created %s as %s", file_name, ref.id)
        return ref

    async def fetch_document(self, folder: str, file_name: str) -> StoredDocument | None:
        """Search for *file_name* and decode it, or None if it does not exist."""
        ref = await self._adapter.find_by_name(folder, file_name)
        if ref is None:
            return None
        try:
            raw = await self._adapter.read_content(ref.id)
        except DocumentNotFound:
            log.info("%s (%s) vanished before read", file_name, ref.id)
            return None
        return StoredDocument(ref=ref, data=decode_document(raw, file_name))

    async def load_document(self, folder: str, file_name: str) -> Any | None:
        stored = await self.fetch_document(folder, file_name)
        return stored.data if stored is not None else None
