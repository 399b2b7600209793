"""Rows read from the HiveSQL Comments table."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional


HIVE_POST_URL = "https://hive.blog/@{author}/{permlink}"


@dataclass(frozen=True)
class RawPost:
    """
    A top-level Hive post as returned by the sync query.

    json_metadata is the untyped metadata blob exactly as stored on chain;
    it may be missing or malformed.
    """

    author: str
    timestamp: datetime
    title: str
    permlink: str
    json_metadata: Optional[str]
    post_url: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "RawPost":
        author = row["author"]
        permlink = row["permlink"]
        return cls(
            author=author,
            timestamp=row["timestamp"],
            title=row.get("title") or "",
            permlink=permlink,
            json_metadata=row.get("json_metadata"),
            post_url=row.get("postUrl")
            or HIVE_POST_URL.format(author=author, permlink=permlink),
        )

    @property
    def key(self) -> str:
        return f"@{self.author}/{self.permlink}"
