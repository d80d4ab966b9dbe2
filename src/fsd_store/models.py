"""Pydantic data models for fsd-store.

Stored JSON uses the camelCase keys used by the field-service app
(``refId``, ``lastUpdated``, ``customerName``); Python attributes are
snake_case and both spellings are accepted on input.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
JSON_MIME_TYPE = "application/json"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Backend references ───────────────────────────────────────────────


class FileRef(BaseModel):
    """A physical file or folder as reported by the backend."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    name: str = ""
    mime_type: str = Field(default=JSON_MIME_TYPE, alias="mimeType")
    parents: list[str] = Field(default_factory=list)

    @property
    def is_folder(self) -> bool:
        return self.mime_type == FOLDER_MIME_TYPE


class StoredDocument(BaseModel):
    """A decoded document together with the reference it was read from."""

    ref: FileRef
    data: Any


# ── Manifest ─────────────────────────────────────────────────────────


class ManifestEntry(BaseModel):
    """Denormalized listing summary of one entity."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    ref_id: Optional[str] = Field(default=None, alias="refId")
    summary: dict[str, Any] = Field(default_factory=dict)


class ManifestIndex(BaseModel):
    """Cached summary list standing in for a query index."""

    model_config = ConfigDict(populate_by_name=True)

    entries: list[ManifestEntry] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=utcnow, alias="lastUpdated")

    def get(self, entity_id: str) -> ManifestEntry | None:
        for entry in self.entries:
            if entry.id == entity_id:
                return entry
        return None

    @property
    def ids(self) -> list[str]:
        return [entry.id for entry in self.entries]

    def with_entries(self, updates: list[ManifestEntry]) -> ManifestIndex:
        """Return a new index with *updates* replacing same-id entries or appended.

        Later updates for the same id win. The receiver is left untouched so
        readers holding a cached copy never observe a half-applied upsert.
        """
        entries = list(self.entries)
        positions = {entry.id: i for i, entry in enumerate(entries)}
        for update in updates:
            if update.id in positions:
                entries[positions[update.id]] = update
            else:
                positions[update.id] = len(entries)
                entries.append(update)
        return ManifestIndex(entries=entries, last_updated=utcnow())

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ── Application entities ─────────────────────────────────────────────


class Job(BaseModel):
    """A field-service job as captured from a schedule screenshot."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    customer_name: str = Field(default="", alias="customerName")
    address: str = ""
    time_slot: str = Field(default="", alias="timeSlot")
    status: Literal["pending", "in-progress", "completed", "issue"] = "pending"
    priority: Literal["normal", "high"] = "normal"
    travel_time: Optional[str] = Field(default=None, alias="travelTime")
    model_number: Optional[str] = Field(default=None, alias="modelNumber")
    serial_number: Optional[str] = Field(default=None, alias="serialNumber")
    engineer_notes: Optional[str] = Field(default=None, alias="engineerNotes")
    detected_product: Optional[str] = Field(default=None, alias="detectedProduct")
    parts_used: list[str] = Field(default_factory=list, alias="partsUsed")
    ai_summary: Optional[str] = Field(default=None, alias="aiSummary")
    drive_file_id: Optional[str] = Field(default=None, alias="driveFileId")

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class DailySchedule(BaseModel):
    """Simplified job list for one day (``schedule.json``)."""

    date: str
    total_jobs: int = 0
    jobs: list[Job] = Field(default_factory=list)


class JobDetails(BaseModel):
    """Detailed job payload for one day (``day_details.json``)."""

    service_appointments: list[Job] = Field(default_factory=list)


class CalendarIndex(BaseModel):
    """Master calendar: job count per scheduled date (``calendar.json``)."""

    model_config = ConfigDict(populate_by_name=True)

    dates: dict[str, int] = Field(default_factory=dict)
    last_updated: datetime = Field(default_factory=utcnow, alias="lastUpdated")

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
