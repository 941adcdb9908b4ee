"""Views over persisted crawl artifacts: file metadata and decoded rows."""

from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


class DataFile(BaseModel):
    """File-system metadata for one artifact, read at query time."""
    model_config = ConfigDict(populate_by_name=True)

    filename: str
    size: int
    created_at: datetime = Field(alias="createdAt")
    modified_at: datetime = Field(alias="modifiedAt")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


@dataclass
class TweetRecord:
    """One artifact row.

    The tweet columns the crawler is known to write get their own attributes;
    every other column lands in ``extra``. Values are passed through as
    decoded, and as_row() rebuilds the row in its original column order.
    """
    id_str: Optional[Any] = None
    full_text: Optional[Any] = None
    username: Optional[Any] = None
    created_at: Optional[Any] = None
    retweet_count: Optional[Any] = None
    favorite_count: Optional[Any] = None
    reply_count: Optional[Any] = None
    tweet_url: Optional[Any] = None
    extra: Dict[str, Any] = field(default_factory=dict)
    columns: List[str] = field(default_factory=list, repr=False)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "TweetRecord":
        known = {}
        extra = {}
        for key, value in row.items():
            if key in KNOWN_FIELDS:
                known[key] = value
            else:
                extra[key] = value
        return cls(**known, extra=extra, columns=list(row.keys()))

    def as_row(self) -> Dict[str, Any]:
        row = {}
        for key in self.columns:
            row[key] = getattr(self, key) if key in KNOWN_FIELDS else self.extra.get(key)
        return row


KNOWN_FIELDS = frozenset(
    f.name for f in fields(TweetRecord) if f.name not in ("extra", "columns")
)
