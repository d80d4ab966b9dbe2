"""Shared fixtures for fsd-store tests."""

from __future__ import annotations

import pytest

from fsd_store.core.config import (
    AppSettings,
    BackendConfig,
    LayoutConfig,
    ManifestConfig,
    RebuildConfig,
    SyncConfig,
)
from fsd_store.persistence.memory_backend import MemoryDocumentAdapter
from fsd_store.services.document_store import DocumentStore
from fsd_store.services.manifest import ManifestCache
from tests.fakes.fake_clock import FakeClock


@pytest.fixture
def settings() -> AppSettings:
    """Memory backend, default layout, 5 minute manifest TTL."""
    return AppSettings(
        backend=BackendConfig(kind="memory"),
        layout=LayoutConfig(),
        manifest=ManifestConfig(ttl_seconds=300.0, summary_fields=["customerName", "status"]),
        rebuild=RebuildConfig(max_concurrent=4),
        sync=SyncConfig(max_retries=3, retry_delay_seconds=0.0),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def adapter() -> MemoryDocumentAdapter:
    return MemoryDocumentAdapter()


@pytest.fixture
async def store(adapter: MemoryDocumentAdapter, settings: AppSettings, clock: FakeClock):
    """DocumentStore on the memory adapter with a controllable cache clock."""
    cache = ManifestCache(ttl_seconds=settings.manifest.ttl_seconds, clock=clock)
    doc_store = DocumentStore(adapter, settings, cache=cache)
    yield doc_store
    await doc_store.aclose()


@pytest.fixture
def sample_jobs() -> list[dict]:
    """Three jobs as the ingestion pipeline would hand them over."""
    return [
        {
            "id": "SA-1001",
            "customerName": "Apex Industries",
            "address": "128 Tech Park, Sector 4",
            "timeSlot": "08:00 - 10:00",
            "status": "in-progress",
            "priority": "high",
        },
        {
            "id": "SA-1002",
            "customerName": "Starlight Cafe",
            "address": "45 Neon Ave, Downtown",
            "timeSlot": "10:30 - 12:00",
            "status": "pending",
            "priority": "normal",
        },
        {
            "id": "SA-1003",
            "customerName": "Quantum Labs",
            "address": "88 Science Way",
            "timeSlot": "13:00 - 15:00",
            "status": "pending",
            "priority": "normal",
            "modelNumber": "H7-WASH-200",
            "serialNumber": "SN-998877",
        },
    ]
