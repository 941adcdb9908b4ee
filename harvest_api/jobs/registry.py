"""In-memory job registry: the single source of truth for crawl status."""

import logging
import threading
import uuid
from typing import Any, Callable, Dict, List, Set

from harvest_api.errors import InvalidTransition, JobNotFound, ValidationError
from harvest_api.jobs.models import (
    NEXT_STATUSES,
    CrawlJob,
    CrawlJobParams,
    JobStatus,
    utc_now,
)

logger = logging.getLogger("harvest.jobs.registry")

JobListener = Callable[[CrawlJob], None]

_UPDATABLE = {"status", "progress", "tweet_count", "completed_at", "error", "output_file"}


class JobRegistry:
    """Owns every job record for the lifetime of the process.

    - Records are frozen snapshots, replaced wholesale under a lock
    - Every successful update is pushed to the registered listeners
    - Nothing is persisted and nothing expires; records leave only via delete()
    """

    def __init__(self):
        self._jobs: Dict[str, CrawlJob] = {}
        self._issued: Set[str] = set()
        self._seq: Dict[str, int] = {}
        self._counter = 0
        self._lock = threading.RLock()
        self._listeners: List[JobListener] = []

    def add_listener(self, listener: JobListener) -> None:
        self._listeners.append(listener)

    def create(self, params: CrawlJobParams) -> CrawlJob:
        """Register a new pending job for a submission."""
        if not params.keywords and not params.thread_url:
            raise ValidationError("Keywords or thread URL is required")

        with self._lock:
            job_id = self._new_id()
            job = CrawlJob(id=job_id, keywords=params.label, created_at=utc_now())
            self._jobs[job_id] = job
            self._counter += 1
            self._seq[job_id] = self._counter

        logger.info(
            "Job created",
            extra={"event": "job.created", "job_id": job.id, "status": job.status.value},
        )
        return job

    def get(self, job_id: str) -> CrawlJob:
        with self._lock:
            job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return job

    def list(self) -> List[CrawlJob]:
        """All jobs, newest first; jobs created in the same instant keep creation order."""
        with self._lock:
            jobs = list(self._jobs.values())
            seq = dict(self._seq)
        return sorted(jobs, key=lambda j: (-j.created_at.timestamp(), seq[j.id]))

    def update(self, job_id: str, **fields: Any) -> CrawlJob:
        """Merge fields into a job and notify listeners with the new record.

        Raises JobNotFound for unknown ids and InvalidTransition for status
        moves outside pending -> running -> completed|error.
        """
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update job fields: {sorted(unknown)}")

        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                raise JobNotFound(job_id)
            changes = self._resolve(current, fields)
            updated = current.model_copy(update=changes)
            self._jobs[job_id] = updated
            # Notify while holding the lock so listeners see commits in order
            self._notify(updated)

        if updated.status != current.status:
            logger.info(
                "Job %s -> %s", job_id, updated.status.value,
                extra={"event": "job.status", "job_id": job_id, "status": updated.status.value},
            )
        return updated

    def delete(self, job_id: str) -> bool:
        with self._lock:
            existed = self._jobs.pop(job_id, None) is not None
            self._seq.pop(job_id, None)
        if existed:
            logger.info("Job deleted", extra={"event": "job.deleted", "job_id": job_id})
        return existed

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def _new_id(self) -> str:
        while True:
            job_id = str(uuid.uuid4())
            if job_id not in self._issued:
                self._issued.add(job_id)
                return job_id

    def _resolve(self, current: CrawlJob, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Validate an update against the current record and return the changes to apply."""
        changes = dict(fields)
        status = JobStatus(changes.pop("status", current.status))

        if status != current.status and status not in NEXT_STATUSES[current.status]:
            raise InvalidTransition(
                f"Job {current.id} cannot move from {current.status.value} to {status.value}"
            )
        changes["status"] = status

        if current.status.is_terminal:
            # Finished jobs are frozen apart from output_file
            for key in ("completed_at", "error", "progress", "tweet_count"):
                changes.pop(key, None)
        elif status.is_terminal:
            changes.setdefault("completed_at", utc_now())
            if status != JobStatus.ERROR:
                changes.pop("error", None)
        else:
            if changes.get("completed_at") is not None or changes.get("error") is not None:
                raise InvalidTransition(
                    f"Job {current.id} can only record completed_at/error on a terminal transition"
                )
            changes.pop("completed_at", None)
            changes.pop("error", None)

        if "progress" in changes:
            progress = max(0, min(100, int(changes["progress"])))
            if current.status != JobStatus.PENDING:
                progress = max(progress, current.progress)
            changes["progress"] = progress
        if "tweet_count" in changes:
            changes["tweet_count"] = max(int(changes["tweet_count"]), current.tweet_count, 0)

        return changes

    def _notify(self, job: CrawlJob) -> None:
        for listener in self._listeners:
            try:
                listener(job)
            except Exception:
                logger.exception(
                    "Job listener failed",
                    extra={"event": "job.listener_failed", "job_id": job.id},
                )
