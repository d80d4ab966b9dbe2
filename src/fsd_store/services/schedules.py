"""Daily schedules: dated folders, the master calendar and per-job entities.

Layout under the application root::

    FSD_PRO_DATA/
    ├── calendar.json          # job count per scheduled date
    ├── manifest.json          # listing index of the job entities
    ├── job_<id>.json          # one file per job
    └── YYYY-MM-DD/
        ├── schedule.json      # simplified job list for the day
        └── day_details.json   # full job payloads for the day
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Optional

from pydantic import ValidationError

from fsd_store.core.config import LayoutConfig
from fsd_store.exceptions import MalformedDocument
from fsd_store.models import CalendarIndex, DailySchedule, Job, JobDetails, utcnow
from fsd_store.services.document_store import DocumentStore

log = logging.getLogger(__name__)


def validate_schedule_date(value: str) -> str:
    """Return *value* if it is an ISO ``YYYY-MM-DD`` date, else raise ValueError."""
    try:
        parsed = date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValueError(f"Schedule date must be YYYY-MM-DD, got {value!r}") from None
    if parsed.isoformat() != value:
        raise ValueError(f"Schedule date must be YYYY-MM-DD, got {value!r}")
    return value


class ScheduleStore:
    """Save and read daily schedules through a ``DocumentStore``."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._calendar_lock = asyncio.Lock()
        self._calendar_ref: Optional[str] = None
        self._job_refs: dict[str, str] = {}

    @property
    def _layout(self) -> LayoutConfig:
        return self._store.settings.layout

    @property
    def _calendar_file(self) -> str:
        return self._layout.calendar_file

    async def save_daily_schedule(self, schedule_date: str, jobs: list[Job]) -> DailySchedule:
        """Write the day's files, update the calendar and save every job."""
        validate_schedule_date(schedule_date)
        root = await self._store.root_folder()
        day_folder = await self._store.resolve(schedule_date, root)

        schedule = DailySchedule(date=schedule_date, total_jobs=len(jobs), jobs=jobs)
        details = JobDetails(service_appointments=jobs)
        await self._store.entities.save_document(
            day_folder,
            self._layout.schedule_file,
            schedule.model_dump(mode="json", by_alias=True, exclude_none=True),
        )
        await self._store.entities.save_document(
            day_folder,
            self._layout.day_details_file,
            details.model_dump(mode="json", by_alias=True, exclude_none=True),
        )
        await self._record_in_calendar(root, schedule_date, len(jobs))

        for job in jobs:
            cached = self._job_refs.get(job.id) or job.drive_file_id
            ref = await self._store.save(root, job.id, job.to_document(), ref_id=cached)
            self._job_refs[job.id] = ref.id

        log.info("Saved schedule for %s with %d jobs", schedule_date, len(jobs))
        return schedule

    async def load_schedule(self, schedule_date: str) -> DailySchedule | None:
        """Read one day's ``schedule.json`` without creating any folder."""
        validate_schedule_date(schedule_date)
        root = await self._store.root_folder()
        day_folder = await self._store.resolver.lookup(schedule_date, root)
        if day_folder is None:
            return None
        data = await self._store.entities.load_document(day_folder, self._layout.schedule_file)
        if data is None:
            return None
        return DailySchedule.model_validate(data)

    async def get_calendar(self) -> CalendarIndex:
        """Return the master calendar; an absent or unreadable one is empty."""
        root = await self._store.root_folder()
        return await self._load_calendar(root)

    async def _load_calendar(self, root: str) -> CalendarIndex:
        try:
            stored = await self._store.entities.fetch_document(root, self._calendar_file)
        except MalformedDocument as e:
            log.warning("Calendar is unreadable, starting a new one: %s", e)
            return CalendarIndex()
        if stored is None:
            return CalendarIndex()
        self._calendar_ref = stored.ref.id
        try:
            return CalendarIndex.model_validate(stored.data)
        except ValidationError as e:
            log.warning("Calendar failed validation, starting a new one: %s", e)
            return CalendarIndex()

    async def _record_in_calendar(self, root: str, schedule_date: str, job_count: int) -> None:
        async with self._calendar_lock:
            calendar = await self._load_calendar(root)
            calendar.dates[schedule_date] = job_count
            calendar.last_updated = utcnow()
            ref = await self._store.entities.save_document(
                root, self._calendar_file, calendar.to_document(), ref_id=self._calendar_ref
            )
            self._calendar_ref = ref.id
