"""Manifest index: a cached, persisted summary list of the entities in a folder.

The manifest is a derived view. It is never authoritative for existence,
only an accelerator for listing; when it is missing or unreadable it is
rebuilt from the entity files themselves.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError

from fsd_store.core.types import JsonDict
from fsd_store.exceptions import MalformedDocument, MalformedManifest
from fsd_store.models import FileRef, ManifestEntry, ManifestIndex
from fsd_store.services.entity_store import EntityStore

log = logging.getLogger(__name__)

# (folder, known manifest ref) -> (index, ref of the persisted manifest)
RebuildFn = Callable[[str, Optional[str]], Awaitable[tuple[ManifestIndex, FileRef]]]


def build_entry(
    entity_id: str,
    data: JsonDict,
    ref_id: Optional[str],
    summary_fields: list[str],
) -> ManifestEntry:
    """Summarize one entity into a manifest entry."""
    summary = {field: data[field] for field in summary_fields if field in data}
    return ManifestEntry(id=entity_id, ref_id=ref_id, summary=summary)


def parse_manifest(payload: Any) -> ManifestIndex:
    """Validate a decoded manifest document. Raises ``MalformedManifest``."""
    if not isinstance(payload, dict):
        raise MalformedManifest(f"Manifest must be an object, got {type(payload).__name__}")
    entries = payload.get("entries")
    if not isinstance(entries, list):
        raise MalformedManifest(f"Manifest entries must be a list, got {type(entries).__name__}")
    try:
        return ManifestIndex.model_validate(payload)
    except ValidationError as e:
        raise MalformedManifest(f"Manifest entries are malformed: {e.error_count()} errors") from e


# ── In-process cache ─────────────────────────────────────────────────


@dataclasses.dataclass
class _CachedManifest:
    index: ManifestIndex
    stored_at: float


class ManifestCache:
    """Per-folder manifest copies with a freshness window.

    One instance is shared by every manifest store and the rebuild engine
    of a document store. Not locked: all access happens on one event loop.
    """

    def __init__(self, ttl_seconds: float = 300.0, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _CachedManifest] = {}
        self._closed = False

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, folder: str, *, allow_stale: bool = False) -> ManifestIndex | None:
        """Return the cached index if fresh (or at all, with *allow_stale*)."""
        cached = self._entries.get(folder)
        if cached is None:
            return None
        if allow_stale:
            return cached.index
        if self._clock() - cached.stored_at >= self._ttl:
            del self._entries[folder]
            return None
        return cached.index

    def put(self, folder: str, index: ManifestIndex) -> None:
        if self._closed:
            return
        self._entries[folder] = _CachedManifest(index=index, stored_at=self._clock())

    def invalidate(self, folder: Optional[str] = None) -> None:
        """Evict one folder's copy, or every copy when *folder* is None."""
        if folder is None:
            self._entries.clear()
        else:
            self._entries.pop(folder, None)

    def close(self) -> None:
        self._entries.clear()
        self._closed = True


# ── Manifest store ───────────────────────────────────────────────────


@dataclasses.dataclass
class _PendingUpsert:
    entry: ManifestEntry
    done: Optional[asyncio.Future] = None


class ManifestStore:
    """Read and maintain the manifest of one folder.

    All upserts go through a single writer task, so concurrent upserts in
    this process apply in order and none is lost. Entries that queue up while
    a write is in flight are merged into the next read-modify-write.
    """

    def __init__(
        self,
        entity_store: EntityStore,
        folder: str,
        cache: ManifestCache,
        *,
        manifest_file: str = "manifest.json",
        summary_fields: Optional[list[str]] = None,
        rebuilder: Optional[RebuildFn] = None,
    ) -> None:
        self._entity_store = entity_store
        self._folder = folder
        self._cache = cache
        self._manifest_file = manifest_file
        self._summary_fields = list(summary_fields or [])
        self._rebuilder = rebuilder
        self._ref_id: Optional[str] = None
        self._queue: Optional[asyncio.Queue[_PendingUpsert]] = None
        self._writer: Optional[asyncio.Task] = None
        self._rebuild_task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def folder(self) -> str:
        return self._folder

    def entry_for(self, entity_id: str, data: JsonDict, ref: Optional[FileRef] = None) -> ManifestEntry:
        return build_entry(entity_id, data, ref.id if ref else None, self._summary_fields)

    # ── Reads ────────────────────────────────────────────────────────

    async def get(self, force_refresh: bool = False) -> ManifestIndex | None:
        """Return the manifest, from cache while fresh unless *force_refresh*.

        An absent or malformed manifest is rebuilt when a rebuilder is
        attached; otherwise None is returned.
        """
        if not force_refresh:
            cached = self._cache.get(self._folder)
            if cached is not None:
                log.debug("Manifest cache hit for %s", self._folder)
                return cached

        index = await self._fetch()
        if index is None:
            return await self._recover()
        self._cache.put(self._folder, index)
        return index

    async def _fetch(self) -> ManifestIndex | None:
        try:
            stored = await self._entity_store.fetch_document(self._folder, self._manifest_file)
        except MalformedDocument as e:
            log.warning("Manifest in %s is unreadable, treating as absent: %s", self._folder, e)
            return None
        if stored is None:
            return None

        self._ref_id = stored.ref.id
        try:
            return parse_manifest(stored.data)
        except MalformedManifest as e:
            log.warning("Manifest in %s failed validation, treating as absent: %s", self._folder, e)
            return None

    async def rebuild(self) -> ManifestIndex:
        """Rebuild from the entity files, joining a rebuild already in flight.

        At most one rebuild per folder runs at a time, whether it was asked
        for by a reader, the writer task or a caller.
        """
        if self._rebuilder is None:
            raise RuntimeError(f"Manifest store for {self._folder} has no rebuilder")
        if self._rebuild_task is None or self._rebuild_task.done():
            self._rebuild_task = asyncio.ensure_future(self._run_rebuild())
        return await asyncio.shield(self._rebuild_task)

    async def _run_rebuild(self) -> ManifestIndex:
        assert self._rebuilder is not None
        index, ref = await self._rebuilder(self._folder, self._ref_id)
        self._ref_id = ref.id
        return index

    async def _recover(self) -> ManifestIndex | None:
        if self._rebuilder is None:
            return None
        if self._rebuild_task is None or self._rebuild_task.done():
            # A rebuild that finished while we were fetching already cached its result
            cached = self._cache.get(self._folder)
            if cached is not None:
                return cached
            log.info("No usable manifest in %s, rebuilding from entity files", self._folder)
        return await self.rebuild()

    # ── Writes ───────────────────────────────────────────────────────

    async def upsert(self, entry: ManifestEntry) -> ManifestIndex:
        """Replace-or-append *entry* and wait until the manifest is written."""
        done = asyncio.get_running_loop().create_future()
        self._enqueue(_PendingUpsert(entry=entry, done=done))
        return await done

    def schedule_upsert(self, entry: ManifestEntry) -> None:
        """Queue *entry* without waiting. Failures are logged, never raised."""
        self._enqueue(_PendingUpsert(entry=entry))

    async def flush(self) -> None:
        """Wait until every queued upsert has been written (or has failed)."""
        if self._queue is not None:
            await self._queue.join()

    async def close(self) -> None:
        """Flush pending upserts and stop the writer task."""
        await self.flush()
        self._closed = True
        if self._rebuild_task is not None and not self._rebuild_task.done():
            await asyncio.wait([self._rebuild_task])
        if self._writer is not None:
            self._writer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._writer
            self._writer = None

    def _enqueue(self, pending: _PendingUpsert) -> None:
        if self._closed:
            raise RuntimeError(f"Manifest store for {self._folder} is closed")
        if self._queue is None:
            self._queue = asyncio.Queue()
        self._queue.put_nowait(pending)
        if self._writer is None or self._writer.done():
            self._writer = asyncio.create_task(self._run_writer(), name=f"manifest-writer:{self._folder}")

    async def _run_writer(self) -> None:
        assert self._queue is not None
        queue = self._queue
        while True:
            batch = [await queue.get()]
            while not queue.empty():
                batch.append(queue.get_nowait())
            try:
                index = await self._apply([p.entry for p in batch])
            except Exception as e:
                waiting = [p.done for p in batch if p.done is not None and not p.done.done()]
                for fut in waiting:
                    fut.set_exception(e)
                if len(waiting) < len(batch):
                    log.warning(
                        "Background manifest upsert in %s failed for %s: %s",
                        self._folder,
                        [p.entry.id for p in batch if p.done is None],
                        e,
                    )
            else:
                for p in batch:
                    if p.done is not None and not p.done.done():
                        p.done.set_result(index)
            finally:
                for _ in batch:
                    queue.task_done()

    async def _apply(self, entries: list[ManifestEntry]) -> ManifestIndex:
        # A cached copy is used regardless of age: this process is the only
        # writer it knows of, so its own last write is the best base.
        current = self._cache.get(self._folder, allow_stale=True)
        if current is None:
            current = await self._fetch()
        if current is None:
            current = await self._recover()
        if current is None:
            current = ManifestIndex()

        index = current.with_entries(entries)
        ref = await self._entity_store.save_document(
            self._folder,
            self._manifest_file,
            index.to_document(),
            ref_id=self._ref_id,
        )
        self._ref_id = ref.id
        self._cache.put(self._folder, index)
        log.debug("Manifest in %s now has %d entries", self._folder, len(index.entries))
        return index
