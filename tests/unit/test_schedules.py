"""Tests for daily schedules and the master calendar."""

from __future__ import annotations

import pytest

from fsd_store.models import Job
from fsd_store.persistence.memory_backend import MemoryDocumentAdapter
from fsd_store.services.document_store import DocumentStore
from fsd_store.services.schedules import ScheduleStore, validate_schedule_date


@pytest.fixture
def jobs(sample_jobs: list[dict]) -> list[Job]:
    return [Job.model_validate(j) for j in sample_jobs]


class TestValidateScheduleDate:
    def test_accepts_iso_date(self) -> None:
        assert validate_schedule_date("2025-03-14") == "2025-03-14"

    @pytest.mark.parametrize("value", ["14/03/2025", "2025-3-14", "2025-02-30", ""])
    def test_rejects_other_formats(self, value: str) -> None:
        with pytest.raises(ValueError):
            validate_schedule_date(value)


class TestSaveDailySchedule:
    """Saving a day writes its folder files, the calendar and every job."""

    async def test_writes_day_folder(self, store: DocumentStore, adapter: MemoryDocumentAdapter, jobs) -> None:
        await ScheduleStore(store).save_daily_schedule("2025-03-14", jobs)

        root = await store.root_folder()
        day = await store.resolver.lookup("2025-03-14", root)
        assert day is not None
        layout = store.settings.layout
        names = sorted(r.name for r in adapter.files_in(day))
        assert names == sorted([layout.schedule_file, layout.day_details_file])

        details = await store.entities.load_document(day, layout.day_details_file)
        assert [j["id"] for j in details["service_appointments"]] == ["SA-1001", "SA-1002", "SA-1003"]

    async def test_round_trips_schedule(self, store: DocumentStore, jobs) -> None:
        schedules = ScheduleStore(store)
        await schedules.save_daily_schedule("2025-03-14", jobs)

        loaded = await schedules.load_schedule("2025-03-14")

        assert loaded is not None
        assert loaded.total_jobs == 3
        assert loaded.jobs[2].serial_number == "SN-998877"

    async def test_jobs_are_saved_as_entities(self, store: DocumentStore, jobs) -> None:
        await ScheduleStore(store).save_daily_schedule("2025-03-14", jobs)
        await store.flush()

        root = await store.root_folder()
        assert (await store.load(root, "SA-1001"))["customerName"] == "Apex Industries"
        entries = await store.list_entries(root)
        assert sorted(e.id for e in entries) == ["SA-1001", "SA-1002", "SA-1003"]

    async def test_resave_updates_in_place(
        self, store: DocumentStore, adapter: MemoryDocumentAdapter, jobs
    ) -> None:
        schedules = ScheduleStore(store)
        await schedules.save_daily_schedule("2025-03-14", jobs)
        root = await store.root_folder()
        await store.flush()
        before = len(adapter.files_in(root))

        jobs[0].status = "completed"
        await schedules.save_daily_schedule("2025-03-14", jobs)
        await store.flush()

        assert len(adapter.files_in(root)) == before
        assert (await store.load(root, "SA-1001"))["status"] == "completed"

    async def test_day_folder_holds_no_entities(self, store: DocumentStore, jobs) -> None:
        await ScheduleStore(store).save_daily_schedule("2025-03-14", jobs)
        root = await store.root_folder()
        day = await store.resolver.lookup("2025-03-14", root)

        assert await store.list_entries(day) == []
        assert (await store.rebuild(day)).entries == []

    async def test_missing_day_is_none(self, store: DocumentStore, adapter: MemoryDocumentAdapter) -> None:
        assert await ScheduleStore(store).load_schedule("2030-01-01") is None
        root = await store.root_folder()
        assert await store.resolver.lookup("2030-01-01", root) is None


class TestCalendar:
    async def test_empty_calendar(self, store: DocumentStore) -> None:
        calendar = await ScheduleStore(store).get_calendar()
        assert calendar.dates == {}

    async def test_records_job_counts(self, store: DocumentStore, jobs) -> None:
        schedules = ScheduleStore(store)
        await schedules.save_daily_schedule("2025-03-14", jobs)
        await schedules.save_daily_schedule("2025-03-15", jobs[:1])

        calendar = await ScheduleStore(store).get_calendar()

        assert calendar.dates == {"2025-03-14": 3, "2025-03-15": 1}

    async def test_malformed_calendar_starts_fresh(
        self, store: DocumentStore, adapter: MemoryDocumentAdapter, jobs
    ) -> None:
        root = await store.root_folder()
        await adapter.create(root, "calendar.json", b"not json")

        schedules = ScheduleStore(store)
        assert (await schedules.get_calendar()).dates == {}

        await schedules.save_daily_schedule("2025-03-14", jobs)
        assert (await schedules.get_calendar()).dates == {"2025-03-14": 3}

    async def test_calendar_is_not_listed_as_entity(self, store: DocumentStore, jobs) -> None:
        await ScheduleStore(store).save_daily_schedule("2025-03-14", jobs)
        root = await store.root_folder()

        index = await store.rebuild(root)

        assert "calendar" not in " ".join(index.ids)
        assert len(index.entries) == 3
