"""Crawl operation backed by the tweet-harvest command-line tool.

The CLI drives a headless browser and writes its export into a
``tweets-data/`` folder under its working directory. When the configured
artifact directory has that name the CLI runs from its parent; otherwise it
runs in a scratch directory and its output is moved over afterwards.
"""

import asyncio
import logging
import os
import re
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional

from harvest_api.errors import ExternalFailure
from harvest_api.jobs.models import CrawlOptions
from harvest_api.jobs.operation import CrawlOperation, ProgressCallback

logger = logging.getLogger("harvest.scraper")

# Lines of CLI output kept for the error message of a failed run
_TAIL_LINES = 20

# Folder the CLI always writes its export into, relative to its working directory
CLI_OUTPUT_DIR = "tweets-data"


class TweetHarvestCommand(CrawlOperation):
    """Runs ``npx -y tweet-harvest@<version>`` for one crawl."""

    def __init__(
        self,
        command: str = "npx",
        package: str = "tweet-harvest@2.6.1",
        progress_pattern: str = r"(?:Total tweets saved|tweets saved)\D*(\d+)",
    ):
        self._command = command
        self._package = package
        self._progress_re = re.compile(progress_pattern, re.IGNORECASE)

    def build_command(self, options: CrawlOptions) -> List[str]:
        cmd = [self._command, "-y", self._package, "--token", options.access_token]
        if options.keywords:
            cmd += ["-s", options.keywords, "--tab", options.search_tab.value]
            if options.from_date:
                cmd += ["--from", options.from_date]
            if options.to_date:
                cmd += ["--to", options.to_date]
        elif options.thread_url:
            cmd += ["--thread", options.thread_url]
        cmd += ["-l", str(options.target_count)]
        if options.output_filename:
            cmd += ["-o", options.output_filename]
        return cmd

    def build_env(self, options: CrawlOptions) -> dict:
        env = dict(os.environ)
        env.update(
            {
                "DELAY_EACH_TWEET_SECONDS": str(options.delay_each_tweet),
                "DELAY_EVERY_100_TWEETS_SECONDS": str(options.delay_every_100),
                "EXPORT_FORMAT": options.export_format.value,
            }
        )
        return env

    def parse_progress(self, line: str) -> Optional[int]:
        match = self._progress_re.search(line)
        return int(match.group(1)) if match else None

    async def __call__(
        self,
        options: CrawlOptions,
        on_progress: ProgressCallback,
    ) -> Optional[str]:
        output_dir = Path(options.output_dir).resolve()
        output_dir.mkdir(parents=True, exist_ok=True)

        if output_dir.name == CLI_OUTPUT_DIR:
            await self._run(options, on_progress, cwd=output_dir.parent)
        else:
            # The CLI's folder name is fixed; run it in a scratch directory and
            # move whatever it wrote (even on failure) into the artifact directory
            with tempfile.TemporaryDirectory(prefix="harvest-") as workdir:
                try:
                    await self._run(options, on_progress, cwd=Path(workdir))
                finally:
                    collect_outputs(Path(workdir) / CLI_OUTPUT_DIR, output_dir)

        if options.output_filename and (output_dir / options.output_filename).is_file():
            return options.output_filename
        return None

    async def _run(self, options: CrawlOptions, on_progress: ProgressCallback, cwd: Path) -> None:
        cmd = self.build_command(options)
        logger.info(
            "Starting crawler: %s %s (limit=%d)",
            self._command, self._package, options.target_count,
            extra={"event": "crawler.start"},
        )
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(cwd),
                env=self.build_env(options),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            raise ExternalFailure(f"Could not start crawler '{self._command}': {exc}") from exc

        tail: List[str] = []
        async for raw in process.stdout:
            line = raw.decode("utf-8", errors="replace").rstrip()
            if not line:
                continue
            tail = (tail + [line])[-_TAIL_LINES:]
            count = self.parse_progress(line)
            if count is not None:
                on_progress(count)
        returncode = await process.wait()

        if returncode != 0:
            logger.warning(
                "Crawler exited with %d", returncode,
                extra={"event": "crawler.exit", "returncode": returncode},
            )
            detail = tail[-1] if tail else "no output"
            raise ExternalFailure(f"Crawler exited with code {returncode}: {detail}")


def collect_outputs(source: Path, target: Path) -> List[str]:
    """Move files the CLI wrote under source into target; returns the moved names."""
    if not source.is_dir():
        return []
    moved = []
    for entry in source.iterdir():
        if entry.is_file():
            shutil.move(str(entry), str(target / entry.name))
            moved.append(entry.name)
    return moved
