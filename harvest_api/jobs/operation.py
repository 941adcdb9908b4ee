"""Interface for the external crawl operation driven by the runner."""

from abc import ABC, abstractmethod
from typing import Callable, Optional

from harvest_api.jobs.models import CrawlOptions

# fn(tweets_saved_so_far); may be called from any thread
ProgressCallback = Callable[[int], None]


class CrawlOperation(ABC):
    """A long-running crawl with side effects (it writes the artifact).

    Implementations return the artifact filename, or None if they do not know
    it, and raise on failure. Anything written before a failure is left in
    place.
    """

    @abstractmethod
    async def __call__(
        self,
        options: CrawlOptions,
        on_progress: ProgressCallback,
    ) -> Optional[str]:
        ...
