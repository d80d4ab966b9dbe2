"""Tests for the manifest: TTL cache, persisted index, serialized upserts."""

from __future__ import annotations

import asyncio

import pytest

from fsd_store.exceptions import MalformedManifest, StoreUnavailable
from fsd_store.models import FileRef, ManifestEntry, ManifestIndex
from fsd_store.persistence.memory_backend import MemoryDocumentAdapter
from fsd_store.services.entity_store import EntityStore
from fsd_store.services.manifest import ManifestCache, ManifestStore, build_entry, parse_manifest
from tests.fakes.fake_adapter import FlakyAdapter
from tests.fakes.fake_clock import FakeClock


async def _make_store(
    adapter: MemoryDocumentAdapter,
    clock: FakeClock,
    rebuilder=None,
) -> tuple[ManifestStore, str]:
    folder = (await adapter.create_folder("FSD_PRO_DATA")).id
    store = ManifestStore(
        EntityStore(adapter),
        folder,
        ManifestCache(ttl_seconds=300.0, clock=clock),
        summary_fields=["customerName", "status"],
        rebuilder=rebuilder,
    )
    adapter.reset_calls()
    return store, folder


def _entry(entity_id: str, **summary) -> ManifestEntry:
    return ManifestEntry(id=entity_id, ref_id=f"ref-{entity_id}", summary=summary)


class TestBuildEntry:
    def test_keeps_only_summary_fields(self) -> None:
        entry = build_entry(
            "SA-1",
            {"id": "SA-1", "customerName": "Apex", "engineerNotes": "long text"},
            "doc000001",
            ["customerName", "status"],
        )
        assert entry.summary == {"customerName": "Apex"}
        assert entry.ref_id == "doc000001"


class TestParseManifest:
    def test_accepts_camel_case_document(self) -> None:
        index = parse_manifest(
            {"entries": [{"id": "A", "refId": "r1", "summary": {}}], "lastUpdated": "2025-01-01T00:00:00Z"}
        )
        assert index.ids == ["A"]
        assert index.entries[0].ref_id == "r1"

    @pytest.mark.parametrize("payload", [[], {"entries": "nope"}, {"entries": [{"summary": {}}]}])
    def test_rejects_malformed(self, payload) -> None:
        with pytest.raises(MalformedManifest):
            parse_manifest(payload)


class TestManifestCache:
    """Fresh copies come back as the same object until the TTL elapses."""

    def test_fresh_then_expired(self, clock: FakeClock) -> None:
        cache = ManifestCache(ttl_seconds=10.0, clock=clock)
        index = ManifestIndex()
        cache.put("f", index)

        clock.advance(9.9)
        assert cache.get("f") is index
        clock.advance(0.1)
        assert cache.get("f") is None

    def test_allow_stale_ignores_age(self, clock: FakeClock) -> None:
        cache = ManifestCache(ttl_seconds=1.0, clock=clock)
        index = ManifestIndex()
        cache.put("f", index)
        clock.advance(60)
        assert cache.get("f", allow_stale=True) is index

    def test_invalidate_all(self) -> None:
        cache = ManifestCache()
        cache.put("a", ManifestIndex())
        cache.put("b", ManifestIndex())
        cache.invalidate()
        assert cache.get("a") is None and cache.get("b") is None

    def test_put_after_close_is_ignored(self) -> None:
        cache = ManifestCache()
        cache.close()
        cache.put("a", ManifestIndex())
        assert cache.get("a") is None


class TestGet:
    async def test_absent_without_rebuilder_is_none(self, adapter: MemoryDocumentAdapter, clock: FakeClock) -> None:
        store, _ = await _make_store(adapter, clock)
        assert await store.get() is None

    async def test_cached_within_ttl(self, adapter: MemoryDocumentAdapter, clock: FakeClock) -> None:
        store, _ = await _make_store(adapter, clock)
        await store.upsert(_entry("A"))
        store._cache.invalidate()
        adapter.reset_calls()

        first = await store.get()
        clock.advance(299)
        second = await store.get()

        assert first is second
        assert adapter.calls["read_content"] == 1

    async def test_refetched_after_ttl(self, adapter: MemoryDocumentAdapter, clock: FakeClock) -> None:
        store, _ = await _make_store(adapter, clock)
        await store.upsert(_entry("A"))
        adapter.reset_calls()

        clock.advance(300)
        index = await store.get()

        assert index is not None and index.ids == ["A"]
        assert adapter.calls["read_content"] == 1

    async def test_force_refresh_bypasses_cache(self, adapter: MemoryDocumentAdapter, clock: FakeClock) -> None:
        store, _ = await _make_store(adapter, clock)
        await store.upsert(_entry("A"))
        adapter.reset_calls()

        await store.get(force_refresh=True)

        assert adapter.calls["read_content"] == 1

    async def test_malformed_manifest_triggers_rebuild(
        self, adapter: MemoryDocumentAdapter, clock: FakeClock
    ) -> None:
        rebuilt = ManifestIndex(entries=[_entry("X")])
        calls: list[tuple[str, str | None]] = []

        async def rebuilder(folder: str, ref_id: str | None) -> tuple[ManifestIndex, FileRef]:
            calls.append((folder, ref_id))
            return rebuilt, FileRef(id=ref_id or "m1", name="manifest.json")

        store, folder = await _make_store(adapter, clock, rebuilder=rebuilder)
        broken = await adapter.create(folder, "manifest.json", b'{"entries": 42}')

        assert await store.get() is rebuilt
        # The known manifest is handed over to be overwritten in place
        assert calls == [(folder, broken.id)]

    async def test_concurrent_misses_share_one_rebuild(self, adapter: MemoryDocumentAdapter, clock: FakeClock) -> None:
        calls: list[str] = []

        async def rebuilder(folder: str, ref_id: str | None) -> tuple[ManifestIndex, FileRef]:
            calls.append(folder)
            await asyncio.sleep(0.01)
            return ManifestIndex(entries=[_entry("OLD")]), FileRef(id="m1", name="manifest.json")

        store, _ = await _make_store(adapter, clock, rebuilder=rebuilder)

        first, second, upserted = await asyncio.gather(store.get(), store.get(), store.upsert(_entry("NEW")))

        assert len(calls) == 1
        assert first is second
        assert upserted.ids == ["OLD", "NEW"]

    async def test_rebuild_without_rebuilder(self, adapter: MemoryDocumentAdapter, clock: FakeClock) -> None:
        store, _ = await _make_store(adapter, clock)
        with pytest.raises(RuntimeError):
            await store.rebuild()

    async def test_undecodable_manifest_without_rebuilder(
        self, adapter: MemoryDocumentAdapter, clock: FakeClock
    ) -> None:
        store, folder = await _make_store(adapter, clock)
        await adapter.create(folder, "manifest.json", b"<html>")

        assert await store.get() is None


class TestUpsert:
    """Upserts replace by id, append new ids and never lose one another."""

    async def test_replace_or_append(self, adapter: MemoryDocumentAdapter, clock: FakeClock) -> None:
        store, _ = await _make_store(adapter, clock)

        await store.upsert(_entry("A", status="pending"))
        await store.upsert(_entry("B"))
        index = await store.upsert(_entry("A", status="completed"))

        assert index.ids == ["A", "B"]
        assert index.get("A").summary == {"status": "completed"}

    async def test_upsert_is_persisted(self, adapter: MemoryDocumentAdapter, clock: FakeClock) -> None:
        store, _ = await _make_store(adapter, clock)
        await store.upsert(_entry("A"))
        store._cache.invalidate()

        index = await store.get()

        assert index is not None and index.ids == ["A"]

    async def test_concurrent_upserts_lose_nothing(self, clock: FakeClock) -> None:
        adapter = MemoryDocumentAdapter(latency=0.001)
        store, _ = await _make_store(adapter, clock)
        ids = [f"SA-{i:03d}" for i in range(25)]

        await asyncio.gather(*[store.upsert(_entry(i)) for i in ids])
        store._cache.invalidate()
        index = await store.get()

        assert index is not None
        assert sorted(index.ids) == ids

    async def test_writes_are_coalesced(self, clock: FakeClock) -> None:
        adapter = MemoryDocumentAdapter(latency=0.001)
        store, _ = await _make_store(adapter, clock)

        for i in range(10):
            store.schedule_upsert(_entry(f"E{i}"))
        await store.flush()

        assert adapter.calls["create"] + adapter.calls["update"] < 10

    async def test_schedule_upsert_lands_after_flush(
        self, adapter: MemoryDocumentAdapter, clock: FakeClock
    ) -> None:
        store, _ = await _make_store(adapter, clock)

        store.schedule_upsert(_entry("A"))
        await store.flush()

        assert (await store.get()).ids == ["A"]

    async def test_awaited_upsert_raises_backend_error(self, clock: FakeClock) -> None:
        adapter = FlakyAdapter()
        store, _ = await _make_store(adapter, clock)
        adapter.fail("create", StoreUnavailable("offline"))

        with pytest.raises(StoreUnavailable):
            await store.upsert(_entry("A"))

    async def test_background_failure_does_not_raise(self, clock: FakeClock) -> None:
        adapter = FlakyAdapter()
        store, _ = await _make_store(adapter, clock)
        adapter.fail("create", StoreUnavailable("offline"))

        store.schedule_upsert(_entry("A"))
        await store.flush()

        assert await store.get() is None
        # The writer keeps serving later upserts
        index = await store.upsert(_entry("B"))
        assert index.ids == ["B"]

    async def test_upsert_on_absent_manifest_rebuilds_first(
        self, adapter: MemoryDocumentAdapter, clock: FakeClock
    ) -> None:
        async def rebuilder(folder: str, ref_id: str | None) -> tuple[ManifestIndex, FileRef]:
            return ManifestIndex(entries=[_entry("OLD")]), FileRef(id="gone", name="manifest.json")

        store, _ = await _make_store(adapter, clock, rebuilder=rebuilder)

        index = await store.upsert(_entry("NEW"))

        assert index.ids == ["OLD", "NEW"]

    async def test_closed_store_rejects_upserts(self, adapter: MemoryDocumentAdapter, clock: FakeClock) -> None:
        store, _ = await _make_store(adapter, clock)
        await store.upsert(_entry("A"))
        await store.close()

        with pytest.raises(RuntimeError):
            store.schedule_upsert(_entry("B"))
