import threading
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from harvest_api.errors import InvalidTransition, JobNotFound, ValidationError
from harvest_api.jobs import registry as registry_module
from harvest_api.jobs.models import CrawlJobParams, JobStatus


def test_create_starts_pending(registry, search_params):
    job = registry.create(search_params)

    assert job.status == JobStatus.PENDING
    assert job.progress == 0
    assert job.tweet_count == 0
    assert job.keywords == "#test"
    assert job.completed_at is None
    assert job.error is None
    assert registry.get(job.id) == job


def test_create_uses_thread_url_as_label(registry):
    job = registry.create(CrawlJobParams(threadUrl="https://x.com/a/status/1"))
    assert job.keywords == "https://x.com/a/status/1"


def test_create_without_criteria_is_rejected(registry):
    with pytest.raises(ValidationError, match="Keywords or thread URL is required"):
        registry.create(CrawlJobParams(accessToken="x", targetCount=10))
    assert registry.list() == []


def test_get_unknown_job_raises(registry):
    with pytest.raises(JobNotFound):
        registry.get("nope")


def test_ids_are_not_reused_after_delete(registry, search_params, monkeypatch):
    first = uuid.UUID(int=1)
    second = uuid.UUID(int=2)
    ids = iter([first, first, second])
    monkeypatch.setattr(registry_module.uuid, "uuid4", lambda: next(ids))

    a = registry.create(search_params)
    assert registry.delete(a.id) is True
    b = registry.create(search_params)

    assert a.id == str(first)
    assert b.id == str(second)


def test_list_is_newest_first_with_insertion_order_on_ties(registry, search_params, monkeypatch):
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    stamps = iter([base, base + timedelta(seconds=5), base + timedelta(seconds=5), base + timedelta(seconds=1)])
    monkeypatch.setattr(registry_module, "utc_now", lambda: next(stamps))

    oldest = registry.create(search_params)
    tie_first = registry.create(search_params)
    tie_second = registry.create(search_params)
    middle = registry.create(search_params)

    assert [j.id for j in registry.list()] == [tie_first.id, tie_second.id, middle.id, oldest.id]


def test_update_notifies_listeners_with_full_record(registry, search_params):
    seen = []
    registry.add_listener(seen.append)
    job = registry.create(search_params)

    updated = registry.update(job.id, status=JobStatus.RUNNING)

    assert seen == [updated]
    assert seen[0].keywords == "#test"
    assert seen[0].status == JobStatus.RUNNING


def test_update_unknown_job_raises(registry):
    with pytest.raises(JobNotFound):
        registry.update("missing", progress=10)


def test_update_rejects_unknown_fields(registry, search_params):
    job = registry.create(search_params)
    with pytest.raises(ValueError):
        registry.update(job.id, id="other")


def test_terminal_transition_stamps_completed_at(registry, search_params):
    job = registry.create(search_params)
    registry.update(job.id, status=JobStatus.RUNNING)

    done = registry.update(job.id, status=JobStatus.COMPLETED, progress=100)

    assert done.completed_at is not None
    assert done.error is None
    assert done.progress == 100


def test_error_transition_records_message(registry, search_params):
    job = registry.create(search_params)
    registry.update(job.id, status=JobStatus.RUNNING)

    failed = registry.update(job.id, status=JobStatus.ERROR, error="boom")

    assert failed.status == JobStatus.ERROR
    assert failed.error == "boom"
    assert failed.completed_at is not None


def test_cannot_skip_running(registry, search_params):
    job = registry.create(search_params)
    with pytest.raises(InvalidTransition):
        registry.update(job.id, status=JobStatus.COMPLETED)
    assert registry.get(job.id).status == JobStatus.PENDING


def test_terminal_status_is_final(registry, search_params):
    job = registry.create(search_params)
    registry.update(job.id, status=JobStatus.RUNNING)
    done = registry.update(job.id, status=JobStatus.COMPLETED)

    with pytest.raises(InvalidTransition):
        registry.update(job.id, status=JobStatus.ERROR, error="late")
    with pytest.raises(InvalidTransition):
        registry.update(job.id, status=JobStatus.RUNNING)

    again = registry.update(job.id, status=JobStatus.COMPLETED, completed_at=datetime(2000, 1, 1))
    assert again.status == JobStatus.COMPLETED
    assert again.completed_at == done.completed_at
    assert again.error is None


def test_error_only_accepted_on_terminal_transition(registry, search_params):
    job = registry.create(search_params)
    registry.update(job.id, status=JobStatus.RUNNING)
    with pytest.raises(InvalidTransition):
        registry.update(job.id, error="too early")


def test_progress_never_decreases_while_running(registry, search_params):
    job = registry.create(search_params)
    registry.update(job.id, status=JobStatus.RUNNING)

    registry.update(job.id, progress=60, tweet_count=6)
    job = registry.update(job.id, progress=30, tweet_count=3)

    assert job.progress == 60
    assert job.tweet_count == 6
    assert registry.update(job.id, progress=250).progress == 100


def test_delete_reports_whether_job_existed(registry, search_params):
    job = registry.create(search_params)
    assert registry.delete(job.id) is True
    assert registry.delete(job.id) is False
    with pytest.raises(JobNotFound):
        registry.get(job.id)


def test_readers_never_see_half_applied_terminal_update(registry, search_params):
    jobs = [registry.create(search_params) for _ in range(50)]
    for job in jobs:
        registry.update(job.id, status=JobStatus.RUNNING)

    violations = []
    stop = threading.Event()

    def reader():
        while not stop.is_set():
            for job in registry.list():
                if job.status.is_terminal != (job.completed_at is not None):
                    violations.append(job)

    t = threading.Thread(target=reader)
    t.start()
    try:
        for job in jobs:
            registry.update(job.id, status=JobStatus.COMPLETED, progress=100)
    finally:
        stop.set()
        t.join()

    assert violations == []
    assert all(j.status == JobStatus.COMPLETED for j in registry.list())


def test_finished_job_ignores_progress_updates(registry, search_params):
    job = registry.create(search_params)
    registry.update(job.id, status=JobStatus.RUNNING)
    registry.update(job.id, progress=40, tweet_count=4)
    registry.update(job.id, status=JobStatus.ERROR, error="boom")

    after = registry.update(job.id, progress=60, tweet_count=6, output_file="partial.csv")

    assert (after.progress, after.tweet_count) == (40, 4)
    assert after.output_file == "partial.csv"
    assert after.status == JobStatus.ERROR
