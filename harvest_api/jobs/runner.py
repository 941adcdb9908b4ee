"""Runs crawl operations in the background and records their outcome.

Each submission becomes its own asyncio task. There is no admission control
and no per-job cancellation: a crawl that never returns leaves its job
running until the process exits.
"""

import asyncio
import functools
import inspect
import logging
import re
from typing import Callable, Dict, List, Optional

from harvest_api.errors import JobNotFound, ValidationError
from harvest_api.jobs.models import (
    CrawlJob,
    CrawlJobParams,
    CrawlOptions,
    ExportFormat,
    JobStatus,
    SearchTab,
)
from harvest_api.jobs.registry import JobRegistry

logger = logging.getLogger("harvest.jobs.runner")


def _is_async(fn: Callable) -> bool:
    return inspect.iscoroutinefunction(fn) or inspect.iscoroutinefunction(
        getattr(fn, "__call__", None)
    )


def output_filename(job: CrawlJob, export_format: ExportFormat) -> str:
    """Artifact name proposed to the crawler: <label slug>_<job id prefix>.<ext>"""
    slug = re.sub(r"[^A-Za-z0-9]+", "_", job.keywords).strip("_")[:40] or "tweets"
    return f"{slug}_{job.id[:8]}.{export_format.value}"


class JobRunner:
    """Bridges an opaque crawl operation into registry transitions."""

    def __init__(
        self,
        registry: JobRegistry,
        operation: Callable,
        output_dir: str,
        default_target_count: int = 10,
        default_delay_each_tweet: int = 3,
        default_delay_every_100: int = 10,
    ):
        """
        operation: callable(options: CrawlOptions, on_progress) -> Optional[str]
            Coroutine functions are awaited on the loop; plain functions run
            in the default thread executor.
        """
        self._registry = registry
        self._operation = operation
        self._output_dir = output_dir
        self._default_target_count = default_target_count
        self._default_delay_each_tweet = default_delay_each_tweet
        self._default_delay_every_100 = default_delay_every_100
        self._tasks: Dict[str, asyncio.Task] = {}

    async def submit(self, params: CrawlJobParams) -> CrawlJob:
        """Validate, register and start a crawl. Returns the running job."""
        if not params.access_token:
            raise ValidationError("Access token is required")

        job = self._registry.create(params)
        job = self._registry.update(job.id, status=JobStatus.RUNNING)

        options = self.build_options(job, params)
        task = asyncio.create_task(self._execute(job.id, options), name=f"crawl-{job.id}")
        self._tasks[job.id] = task
        task.add_done_callback(lambda _t, job_id=job.id: self._tasks.pop(job_id, None))
        return job

    def build_options(self, job: CrawlJob, params: CrawlJobParams) -> CrawlOptions:
        """Translate a submission into the crawler's parameter set.

        Missing or zero counts and delays fall back to the configured defaults.
        """
        export_format = params.export_format or ExportFormat.CSV
        searching = bool(params.keywords)
        return CrawlOptions(
            access_token=params.access_token or "",
            keywords=params.keywords if searching else None,
            thread_url=None if searching else params.thread_url,
            from_date=params.from_date if searching else None,
            to_date=params.to_date if searching else None,
            target_count=params.target_count or self._default_target_count,
            delay_each_tweet=params.delay_each_tweet or self._default_delay_each_tweet,
            delay_every_100=params.delay_every_100 or self._default_delay_every_100,
            search_tab=params.search_tab or SearchTab.TOP,
            export_format=export_format,
            output_dir=self._output_dir,
            output_filename=output_filename(job, export_format),
        )

    async def wait(self, job_id: str) -> CrawlJob:
        """Wait until a job's crawl has finished and return its final record."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)
        return self._registry.get(job_id)

    def active_jobs(self) -> List[str]:
        return [job_id for job_id, task in self._tasks.items() if not task.done()]

    async def shutdown(self) -> None:
        """Cancel outstanding crawl tasks at process exit."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Cancelled %d running crawl(s) on shutdown", len(tasks))

    async def _execute(self, job_id: str, options: CrawlOptions) -> None:
        on_progress = functools.partial(self._report_progress, job_id, options.target_count)
        try:
            if _is_async(self._operation):
                output = await self._operation(options, on_progress)
            else:
                loop = asyncio.get_running_loop()
                output = await loop.run_in_executor(
                    None, self._operation, options, on_progress
                )
        except Exception as exc:
            # Anything the crawler wrote before failing stays on disk
            message = str(exc) or "Unknown error"
            logger.error(
                "Crawl failed for job %s: %s", job_id, message,
                exc_info=True,
                extra={"event": "job.failed", "job_id": job_id},
            )
            self._finish(job_id, status=JobStatus.ERROR, error=message)
        else:
            fields = {"status": JobStatus.COMPLETED, "progress": 100}
            if output:
                fields["output_file"] = output
            self._finish(job_id, **fields)

    def _finish(self, job_id: str, **fields) -> None:
        try:
            self._registry.update(job_id, **fields)
        except JobNotFound:
            logger.warning(
                "Job %s was deleted before its crawl finished", job_id,
                extra={"event": "job.orphaned", "job_id": job_id},
            )

    def _report_progress(self, job_id: str, target_count: int, tweet_count: int) -> None:
        progress = min(99, tweet_count * 100 // max(target_count, 1))
        try:
            self._registry.update(job_id, progress=progress, tweet_count=tweet_count)
        except JobNotFound:
            logger.debug("Progress for deleted job %s ignored", job_id)
