"""Records produced by the sync pipeline and written to the image store."""

import json
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Iterable

from hivelens.source.models import RawPost


def to_iso8601(value: datetime) -> str:
    """Format a timestamp as UTC ISO-8601 with milliseconds and a Z suffix.

    HiveSQL returns naive datetimes in UTC, so naive values are taken as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (
        value.astimezone(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def serialize_tags(tags: Iterable[str]) -> str:
    return json.dumps(sorted(tags), ensure_ascii=False)


@dataclass(frozen=True)
class CandidateImageRecord:
    """
    One image URL ready to be persisted.

    image_url is the unique key in the store. All other fields are copied
    from the parent post; tags are a JSON list.
    """

    image_url: str
    author: str
    permlink: str
    post_url: str
    title: str
    timestamp: str
    tags: str

    @classmethod
    def from_post(
        cls, post: RawPost, image_url: str, tags: Iterable[str]
    ) -> "CandidateImageRecord":
        return cls(
            image_url=image_url,
            author=post.author,
            permlink=post.permlink,
            post_url=post.post_url,
            title=post.title or f"Image from {post.author}",
            timestamp=to_iso8601(post.timestamp),
            tags=serialize_tags(tags),
        )

    def to_row(self) -> dict[str, str]:
        """Column values for the indexed_images table."""
        return {
            "image_url": self.image_url,
            "hive_author": self.author,
            "hive_permlink": self.permlink,
            "hive_post_url": self.post_url,
            "hive_title": self.title,
            "hive_timestamp": self.timestamp,
            "hive_tags": self.tags,
        }

    def to_dict(self) -> dict:
        data = asdict(self)
        data["tags"] = json.loads(self.tags)
        return data
