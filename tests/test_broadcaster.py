import asyncio
import threading

from harvest_api.jobs.broadcaster import EventBroadcaster, QueueSink
from harvest_api.jobs.models import CrawlJob, JobStatus


def _job(job_id="job-1", **kwargs):
    return CrawlJob(id=job_id, keywords="#test", **kwargs)


def test_publish_reaches_every_subscriber_in_order():
    broadcaster = EventBroadcaster()
    received = []
    for name in ("a", "b", "c"):
        broadcaster.subscribe("job-1", lambda job, name=name: received.append((name, job)))

    job = _job(status=JobStatus.RUNNING)
    broadcaster.publish(job)

    assert [name for name, _ in received] == ["a", "b", "c"]
    assert all(payload is job for _, payload in received)


def test_publish_only_targets_matching_job():
    broadcaster = EventBroadcaster()
    received = []
    broadcaster.subscribe("other", received.append)

    broadcaster.publish(_job())

    assert received == []


def test_unsubscribed_sink_receives_nothing():
    broadcaster = EventBroadcaster()
    received = []
    handle = broadcaster.subscribe("job-1", received.append)

    assert broadcaster.unsubscribe(handle) is True
    broadcaster.publish(_job())

    assert received == []
    assert broadcaster.subscriber_count("job-1") == 0


def test_unsubscribe_is_idempotent():
    broadcaster = EventBroadcaster()
    handle = broadcaster.subscribe("job-1", lambda job: None)

    assert broadcaster.unsubscribe(handle) is True
    assert broadcaster.unsubscribe(handle) is False


def test_failing_sink_is_dropped_and_others_still_receive():
    broadcaster = EventBroadcaster()
    received = []

    def broken(job):
        raise ConnectionResetError("client went away")

    handle = broadcaster.subscribe("job-1", broken)
    broadcaster.subscribe("job-1", received.append)

    broadcaster.publish(_job())
    broadcaster.publish(_job())

    assert len(received) == 2
    assert broadcaster.subscriber_count("job-1") == 1
    # Already detached by the failed delivery
    assert broadcaster.unsubscribe(handle) is False


def test_late_subscriber_gets_no_replay():
    broadcaster = EventBroadcaster()
    broadcaster.publish(_job(status=JobStatus.RUNNING))

    received = []
    broadcaster.subscribe("job-1", received.append)
    assert received == []

    broadcaster.publish(_job(status=JobStatus.COMPLETED, progress=100))
    assert [j.status for j in received] == [JobStatus.COMPLETED]


def test_subscriber_count_totals_all_jobs():
    broadcaster = EventBroadcaster()
    broadcaster.subscribe("a", lambda job: None)
    broadcaster.subscribe("a", lambda job: None)
    broadcaster.subscribe("b", lambda job: None)

    assert broadcaster.subscriber_count("a") == 2
    assert broadcaster.subscriber_count() == 3


def test_queue_sink_accepts_updates_from_other_threads():
    async def scenario():
        broadcaster = EventBroadcaster()
        sink = QueueSink()
        broadcaster.subscribe("job-1", sink)

        t = threading.Thread(target=broadcaster.publish, args=(_job(progress=40),))
        t.start()
        t.join()

        job = await sink.get(timeout=2)
        assert job is not None and job.progress == 40
        assert await sink.get(timeout=0.01) is None

    asyncio.run(scenario())


def test_queue_sink_on_closed_loop_detaches():
    loop = asyncio.new_event_loop()
    sink = QueueSink(loop=loop)
    loop.close()

    broadcaster = EventBroadcaster()
    broadcaster.subscribe("job-1", sink)
    broadcaster.publish(_job())

    assert broadcaster.subscriber_count("job-1") == 0
