"""Document adapter doubles built on the in-memory backend."""

from __future__ import annotations

import asyncio
from collections import defaultdict

from fsd_store.models import FileRef
from fsd_store.persistence.memory_backend import MemoryDocumentAdapter


class FlakyAdapter(MemoryDocumentAdapter):
    """Raises a queued exception on the next N calls of an operation.

    Usage::

        adapter = FlakyAdapter()
        adapter.fail("update", RateLimited("slow down"), times=2)
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._failures: dict[str, list[Exception]] = defaultdict(list)

    def fail(self, op: str, exc: Exception, times: int = 1) -> None:
        self._failures[op].extend([exc] * times)

    async def _tick(self, op: str) -> None:
        await super()._tick(op)
        if self._failures[op]:
            raise self._failures[op].pop(0)


class ConcurrencyProbeAdapter(MemoryDocumentAdapter):
    """Tracks the peak number of overlapping ``read_content`` calls."""

    def __init__(self, read_delay: float = 0.01, **kwargs) -> None:
        super().__init__(**kwargs)
        self._read_delay = read_delay
        self._active = 0
        self.peak_reads = 0

    async def read_content(self, ref_id: str) -> bytes:
        self._active += 1
        self.peak_reads = max(self.peak_reads, self._active)
        try:
            await asyncio.sleep(self._read_delay)
            return await super().read_content(ref_id)
        finally:
            self._active -= 1


async def seed_entities(
    adapter: MemoryDocumentAdapter,
    folder: str,
    payloads: dict[str, bytes],
) -> dict[str, FileRef]:
    """Create raw files directly on the backend, bypassing the store."""
    refs = {}
    for name, content in payloads.items():
        refs[name] = await adapter.create(folder, name, content)
    adapter.reset_calls()
    return refs
