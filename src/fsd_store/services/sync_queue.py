"""Background save queue for edits made while the user keeps working.

Saves run one at a time in FIFO order. A pending save for an entity that is
enqueued again is replaced by the newer data instead of queued twice. The
file reference returned by each save is remembered so the next save of the
same entity takes the direct-update path.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from fsd_store.core.types import JsonDict
from fsd_store.exceptions import RateLimited, StoreError, StoreUnavailable

if TYPE_CHECKING:
    from fsd_store.services.document_store import DocumentStore

log = logging.getLogger(__name__)

QueueListener = Callable[[int], None]


@dataclasses.dataclass
class _QueueItem:
    folder: str
    entity_id: str
    data: JsonDict
    attempts: int = 0

    @property
    def key(self) -> tuple[str, str]:
        return (self.folder, self.entity_id)


class SyncQueue:
    """Coalescing single-worker save queue with bounded retries."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        max_retries: int = 3,
        retry_delay_seconds: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._max_retries = max_retries
        self._retry_delay = retry_delay_seconds
        self._sleep = sleep
        self._items: list[_QueueItem] = []
        self._in_flight: Optional[_QueueItem] = None
        self._refs: dict[tuple[str, str], str] = {}
        self._listener: Optional[QueueListener] = None
        self._worker: Optional[asyncio.Task] = None
        self._idle = asyncio.Event()
        self._idle.set()
        self.dropped: list[tuple[str, str]] = []

    @classmethod
    def from_settings(cls, store: DocumentStore) -> SyncQueue:
        sync = store.settings.sync
        return cls(store, max_retries=sync.max_retries, retry_delay_seconds=sync.retry_delay_seconds)

    @property
    def pending(self) -> int:
        return len(self._items) + (1 if self._in_flight is not None else 0)

    def set_listener(self, listener: Optional[QueueListener]) -> None:
        """Register a callback receiving the pending count on every change."""
        self._listener = listener

    def ref_for(self, folder: str, entity_id: str) -> str | None:
        return self._refs.get((folder, entity_id))

    def enqueue(self, folder: str, entity_id: str, data: JsonDict, ref_id: Optional[str] = None) -> None:
        """Queue a save; *ref_id* seeds the cached reference for this entity."""
        key = (folder, entity_id)
        if ref_id and key not in self._refs:
            self._refs[key] = ref_id

        for item in self._items:
            if item.key == key:
                item.data = data
                item.attempts = 0
                log.debug("Replaced pending save for %s", entity_id)
                break
        else:
            self._items.append(_QueueItem(folder=folder, entity_id=entity_id, data=data))
            log.debug("Queued save for %s", entity_id)

        self._notify()
        if self._worker is None or self._worker.done():
            self._idle.clear()
            self._worker = asyncio.create_task(self._run(), name="sync-queue")

    async def join(self) -> None:
        """Wait until the queue has drained."""
        await self._idle.wait()

    async def close(self) -> None:
        await self.join()
        self._listener = None

    def _notify(self) -> None:
        if self._listener is not None:
            self._listener(self.pending)

    async def _run(self) -> None:
        try:
            while self._items:
                self._in_flight = self._items.pop(0)
                try:
                    await self._process(self._in_flight)
                finally:
                    self._in_flight = None
                    self._notify()
        finally:
            self._idle.set()

    async def _process(self, item: _QueueItem) -> None:
        while True:
            try:
                ref = await self._store.save(
                    item.folder,
                    item.entity_id,
                    item.data,
                    ref_id=self._refs.get(item.key),
                )
            except (RateLimited, StoreUnavailable) as e:
                item.attempts += 1
                if item.attempts >= self._max_retries:
                    log.error("Dropping save of %s after %d attempts: %s", item.entity_id, item.attempts, e)
                    self.dropped.append(item.key)
                    return
                delay = self._retry_delay * item.attempts
                if isinstance(e, RateLimited) and e.retry_after:
                    delay = max(delay, e.retry_after)
                log.warning(
                    "Save of %s failed (attempt %d/%d), retrying in %.1fs: %s",
                    item.entity_id, item.attempts, self._max_retries, delay, e,
                )
                await self._sleep(delay)
            except StoreError as e:
                log.error("Dropping save of %s: %s", item.entity_id, e)
                self.dropped.append(item.key)
                return
            else:
                self._refs[item.key] = ref.id
                log.debug("Synced %s as %s", item.entity_id, ref.id)
                return
