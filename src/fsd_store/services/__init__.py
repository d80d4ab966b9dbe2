"""Store services: namespaces, entities, manifests, rebuild and collaborators."""

from __future__ import annotations

from fsd_store.services.document_store import DocumentStore, create_document_store
from fsd_store.services.entity_store import EntityStore
from fsd_store.services.manifest import ManifestCache, ManifestStore
from fsd_store.services.namespace import NamespaceResolver
from fsd_store.services.rebuild import RebuildEngine
from fsd_store.services.schedules import ScheduleStore
from fsd_store.services.sync_queue import SyncQueue

__all__ = [
    "DocumentStore",
    "EntityStore",
    "ManifestCache",
    "ManifestStore",
    "NamespaceResolver",
    "RebuildEngine",
    "ScheduleStore",
    "SyncQueue",
    "create_document_store",
]
