"""Tests for job storage backends (in-memory and SQLite)."""

import threading
from datetime import timedelta

import pytest

from servicehub.jobs.models import (
    ActorRole,
    Attachment,
    JobMessage,
    JobStatus,
    MessageKind,
    StatusHistoryEntry,
)
from servicehub.jobs.sqlite_storage import SQLiteJobStorage
from servicehub.jobs.storage import InMemoryJobStorage
from servicehub.types import VersionConflictError


@pytest.fixture(params=["memory", "sqlite"])
def backend(request, tmp_path):
    if request.param == "memory":
        return InMemoryJobStorage()
    return SQLiteJobStorage(tmp_path / "jobs.db")


def message(clock, body="Hello", sender="customer-1", kind=MessageKind.MESSAGE):
    return JobMessage(sender_id=sender, body=body, kind=kind, timestamp=clock())


class TestSaveAndGet:
    def test_round_trip(self, backend, make_job, clock):
        job = make_job(messages=[message(clock, "Need a logo")])
        job.scheduling.preferred_date = clock() + timedelta(days=3)
        backend.save_job(job)

        loaded = backend.get_job("job-1")
        assert loaded.id == "job-1"
        assert loaded.status == JobStatus.PENDING
        assert loaded.pricing.amount == 150.0
        assert loaded.scheduling.preferred_date == clock() + timedelta(days=3)
        assert loaded.deliverables == ["Logo files", "Brand guide"]
        assert [m.body for m in loaded.messages] == ["Need a logo"]
        assert loaded.tracking.viewed_by_customer is True
        assert loaded.tracking.viewed_by_vendor is False
        assert loaded.version == 1
        assert loaded.created_at == clock()

    def test_missing_job(self, backend):
        assert backend.get_job("nope") is None

    def test_loaded_copy_is_private(self, backend, make_job):
        backend.save_job(make_job())
        loaded = backend.get_job("job-1")
        loaded.deliverables.append("Extra")
        assert backend.get_job("job-1").deliverables == ["Logo files", "Brand guide"]

    def test_sqlite_persists_across_instances(self, tmp_path, make_job):
        SQLiteJobStorage(tmp_path / "jobs.db").save_job(make_job())
        assert SQLiteJobStorage(tmp_path / "jobs.db").get_job("job-1") is not None

    def test_sqlite_defaults_to_settings_path(self, isolated_data_dir):
        storage = SQLiteJobStorage()
        assert storage.db_path == isolated_data_dir / "jobs.db"
        assert storage.db_path.exists()


class TestListJobs:
    def test_filters_and_order(self, backend, make_job, clock):
        backend.save_job(make_job("job-a"))
        clock.advance(minutes=1)
        backend.save_job(make_job("job-b", status=JobStatus.ACCEPTED))
        clock.advance(minutes=1)
        backend.save_job(make_job("job-c", customer_id="customer-2"))

        assert [j.id for j in backend.list_jobs()] == ["job-c", "job-b", "job-a"]
        assert [j.id for j in backend.list_jobs(customer_id="customer-1")] == ["job-b", "job-a"]
        pending = backend.list_jobs(vendor_id="vendor-1", statuses=[JobStatus.PENDING])
        assert [j.id for j in pending] == ["job-c", "job-a"]
        assert backend.list_jobs(vendor_id="vendor-2") == []

    def test_pagination(self, backend, make_job, clock):
        for i in range(5):
            backend.save_job(make_job(f"job-{i}"))
            clock.advance(minutes=1)
        page = backend.list_jobs(limit=2, offset=1)
        assert [j.id for j in page] == ["job-3", "job-2"]

    def test_empty_status_filter(self, backend, make_job):
        backend.save_job(make_job())
        assert backend.list_jobs(statuses=[]) == []


class TestUpdateJob:
    def test_compare_and_swap(self, backend, make_job, clock):
        backend.save_job(make_job())
        job = backend.get_job("job-1")
        job.status = JobStatus.ACCEPTED
        job.status_history.append(
            StatusHistoryEntry(status=JobStatus.ACCEPTED, timestamp=clock(), changed_by="vendor-1")
        )
        summary = message(clock, "Job status changed", "vendor-1", MessageKind.STATUS_UPDATE)

        new_version = backend.update_job(job, expected_version=1, appended_messages=[summary])

        assert new_version == 2
        assert job.version == 2
        saved = backend.get_job("job-1")
        assert saved.status == JobStatus.ACCEPTED
        assert saved.version == 2
        assert len(saved.status_history) == 1
        assert saved.messages[-1].kind == MessageKind.STATUS_UPDATE

    def test_stale_version_conflicts(self, backend, make_job):
        backend.save_job(make_job())
        first = backend.get_job("job-1")
        second = backend.get_job("job-1")
        first.status = JobStatus.ACCEPTED
        backend.update_job(first, expected_version=1)

        second.status = JobStatus.REJECTED
        with pytest.raises(VersionConflictError) as exc:
            backend.update_job(second, expected_version=1)
        assert exc.value.expected_version == 1
        assert exc.value.actual_version == 2
        assert backend.get_job("job-1").status == JobStatus.ACCEPTED

    def test_missing_job_conflicts(self, backend, make_job):
        with pytest.raises(VersionConflictError) as exc:
            backend.update_job(make_job("ghost"), expected_version=1)
        assert exc.value.actual_version == -1

    def test_keeps_concurrent_appends(self, backend, make_job, clock):
        backend.save_job(make_job())
        job = backend.get_job("job-1")
        backend.append_message("job-1", message(clock, "Posted meanwhile"))
        backend.update_view_tracking("job-1", ActorRole.VENDOR, clock())

        job.status = JobStatus.REVIEWING
        backend.update_job(job, expected_version=1)

        saved = backend.get_job("job-1")
        assert [m.body for m in saved.messages] == ["Posted meanwhile"]
        assert saved.tracking.viewed_by_vendor is True


class TestFieldAppends:
    def test_append_message(self, backend, make_job, clock):
        backend.save_job(make_job())
        assert backend.append_message("job-1", message(clock, "One"))
        assert backend.append_message("job-1", message(clock, "Two"))
        saved = backend.get_job("job-1")
        assert [m.body for m in saved.messages] == ["One", "Two"]
        assert saved.version == 1

    def test_append_to_missing_job(self, backend, clock):
        assert backend.append_message("nope", message(clock)) is False
        assert backend.update_view_tracking("nope", ActorRole.VENDOR, clock()) is False

    def test_append_attachment(self, backend, make_job, clock):
        backend.save_job(make_job())
        attachment = Attachment(
            name="sketch.png",
            locator="s3://bucket/sketch.png",
            uploader_id="customer-1",
            uploaded_at=clock(),
            content_type="image/png",
            size_bytes=2048,
        )
        assert backend.append_attachment("job-1", attachment)
        assert backend.append_attachment("nope", attachment) is False
        saved = backend.get_job("job-1")
        assert [a.name for a in saved.attachments] == ["sketch.png"]
        assert saved.attachments[0].size_bytes == 2048
        assert saved.version == 1

    def test_view_tracking(self, backend, make_job, clock):
        backend.save_job(make_job())
        seen_at = clock.advance(hours=1)
        assert backend.update_view_tracking("job-1", ActorRole.VENDOR, seen_at)
        assert backend.update_view_tracking("job-1", ActorRole.VENDOR, seen_at)
        tracking = backend.get_job("job-1").tracking
        assert tracking.viewed_by_vendor is True
        assert tracking.last_viewed_by_vendor == seen_at
        assert backend.get_job("job-1").version == 1

    def test_concurrent_appends_not_lost(self, backend, make_job, clock):
        backend.save_job(make_job())
        barrier = threading.Barrier(4)

        def post(n):
            barrier.wait()
            for i in range(10):
                backend.append_message("job-1", message(clock, f"t{n}-{i}"))

        threads = [threading.Thread(target=post, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        saved = backend.get_job("job-1")
        assert len(saved.messages) == 40
        for n in range(4):
            own = [m.body for m in saved.messages if m.body.startswith(f"t{n}-")]
            assert own == [f"t{n}-{i}" for i in range(10)]

    def test_duplicate_save_rejected(self, make_job):
        storage = InMemoryJobStorage()
        storage.save_job(make_job())
        with pytest.raises(ValueError, match="already exists"):
            storage.save_job(make_job())
