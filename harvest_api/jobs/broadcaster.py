"""Fan-out of job updates to live subscribers.

There is no buffering or replay: a subscriber only sees updates published
after it subscribed. Clients that need the current state on connect read it
from the registry first.
"""

import asyncio
import itertools
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from harvest_api.jobs.models import CrawlJob

logger = logging.getLogger("harvest.jobs.broadcaster")

Sink = Callable[[CrawlJob], None]


@dataclass(frozen=True)
class Subscription:
    """Handle returned by subscribe(); pass it back to unsubscribe()."""
    id: int
    job_id: str


class EventBroadcaster:
    """Per-job subscriber sets, safe to touch from the event loop and worker threads."""

    def __init__(self):
        self._subs: Dict[str, "OrderedDict[int, Sink]"] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def subscribe(self, job_id: str, sink: Sink) -> Subscription:
        with self._lock:
            handle = Subscription(id=next(self._ids), job_id=job_id)
            self._subs.setdefault(job_id, OrderedDict())[handle.id] = sink
        logger.debug(
            "Subscribed to job %s", job_id,
            extra={"event": "stream.subscribed", "job_id": job_id, "subscription_id": handle.id},
        )
        return handle

    def unsubscribe(self, handle: Subscription) -> bool:
        """Remove a subscription. Safe to call more than once."""
        with self._lock:
            sinks = self._subs.get(handle.job_id)
            if sinks is None or sinks.pop(handle.id, None) is None:
                return False
            if not sinks:
                del self._subs[handle.job_id]
        logger.debug(
            "Unsubscribed from job %s", handle.job_id,
            extra={"event": "stream.unsubscribed", "job_id": handle.job_id, "subscription_id": handle.id},
        )
        return True

    def publish(self, job: CrawlJob) -> None:
        """Deliver a job snapshot to its subscribers in subscription order.

        A sink that raises is dropped; the remaining sinks still get the update.
        """
        with self._lock:
            targets = list(self._subs.get(job.id, {}).items())

        for sub_id, sink in targets:
            try:
                sink(job)
            except Exception as exc:
                logger.debug(
                    "Dropping subscriber %s for job %s: %s", sub_id, job.id, exc,
                    extra={"event": "stream.dropped", "job_id": job.id, "subscription_id": sub_id},
                )
                self.unsubscribe(Subscription(id=sub_id, job_id=job.id))

    def subscriber_count(self, job_id: Optional[str] = None) -> int:
        with self._lock:
            if job_id is not None:
                return len(self._subs.get(job_id, ()))
            return sum(len(s) for s in self._subs.values())


class QueueSink:
    """Sink that hands updates to an asyncio.Queue owned by an event loop.

    publish() may run on a worker thread, so delivery goes through
    call_soon_threadsafe. Once the loop is closed the sink raises and the
    broadcaster detaches it.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.loop = loop or asyncio.get_running_loop()
        self.queue: "asyncio.Queue[CrawlJob]" = asyncio.Queue()

    def __call__(self, job: CrawlJob) -> None:
        if self.loop.is_closed():
            raise RuntimeError("event loop is closed")
        self.loop.call_soon_threadsafe(self.queue.put_nowait, job)

    async def get(self, timeout: Optional[float] = None) -> Optional[CrawlJob]:
        """Next update, or None if nothing arrives within timeout."""
        try:
            return await asyncio.wait_for(self.queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None
