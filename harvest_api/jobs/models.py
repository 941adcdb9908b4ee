"""Crawl job records and submission parameters."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.ERROR)


# Allowed forward moves; staying on the same status is always allowed
NEXT_STATUSES = {
    JobStatus.PENDING: {JobStatus.RUNNING},
    JobStatus.RUNNING: {JobStatus.COMPLETED, JobStatus.ERROR},
    JobStatus.COMPLETED: set(),
    JobStatus.ERROR: set(),
}


class SearchTab(str, Enum):
    LATEST = "LATEST"
    TOP = "TOP"


class ExportFormat(str, Enum):
    CSV = "csv"
    XLSX = "xlsx"


class CrawlJob(BaseModel):
    """Tracks the lifecycle of one crawl.

    Records are treated as immutable snapshots: the registry swaps in a new
    copy on every update, so a reference handed out never changes under the
    holder.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    status: JobStatus = JobStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    tweet_count: int = Field(default=0, ge=0, alias="tweetCount")
    keywords: str = ""
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")
    completed_at: Optional[datetime] = Field(default=None, alias="completedAt")
    error: Optional[str] = None
    output_file: Optional[str] = Field(default=None, alias="outputFile")

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready dict using the camelCase names clients expect."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class CrawlJobParams(BaseModel):
    """Body of a crawl submission.

    Every field is optional at the schema level so that missing credentials or
    search criteria are reported with the service's own messages.
    """
    model_config = ConfigDict(populate_by_name=True)

    access_token: Optional[str] = Field(default=None, alias="accessToken")
    keywords: Optional[str] = None
    thread_url: Optional[str] = Field(default=None, alias="threadUrl")
    from_date: Optional[str] = Field(default=None, alias="fromDate")  # DD-MM-YYYY
    to_date: Optional[str] = Field(default=None, alias="toDate")
    target_count: Optional[int] = Field(default=None, ge=0, alias="targetCount")
    delay_each_tweet: Optional[int] = Field(default=None, ge=0, alias="delayEachTweet")
    delay_every_100: Optional[int] = Field(default=None, ge=0, alias="delayEvery100")
    search_tab: Optional[SearchTab] = Field(default=None, alias="searchTab")
    export_format: Optional[ExportFormat] = Field(default=None, alias="exportFormat")

    @field_validator("search_tab", mode="before")
    @classmethod
    def _upper_tab(cls, value):
        return value.upper() if isinstance(value, str) else value

    @field_validator("export_format", mode="before")
    @classmethod
    def _lower_format(cls, value):
        return value.lower() if isinstance(value, str) else value

    @property
    def label(self) -> str:
        return self.keywords or self.thread_url or ""


@dataclass
class CrawlOptions:
    """Parameter set handed to the external crawl operation."""
    access_token: str
    target_count: int
    delay_each_tweet: int
    delay_every_100: int
    search_tab: SearchTab
    export_format: ExportFormat
    output_dir: str
    keywords: Optional[str] = None
    thread_url: Optional[str] = None
    from_date: Optional[str] = None
    to_date: Optional[str] = None
    output_filename: Optional[str] = None
