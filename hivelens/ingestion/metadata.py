"""
Metadata extraction for Hive posts.

A post's json_metadata is free-form JSON written by whichever front end
published it. Images usually sit under "image" (a list, sometimes a single
string) and occasionally under "images"; tags under "tags". Anything that
does not have the expected shape is ignored rather than raised.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Union


IMAGE_KEYS = ("image", "images")
TAGS_KEY = "tags"


@dataclass(frozen=True)
class ExtractedMetadata:
    """Candidate image URLs and tags of one post."""

    urls: frozenset[str] = field(default_factory=frozenset)
    tags: frozenset[str] = field(default_factory=frozenset)


class _Unparseable:
    """Marker returned by parse_metadata for blobs that are not a JSON object."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "UNPARSEABLE"

    def __bool__(self):
        return False


UNPARSEABLE = _Unparseable()

EMPTY_METADATA = ExtractedMetadata()


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        return [value]
    return []


def _is_candidate_url(value: Any) -> bool:
    return isinstance(value, str) and value.startswith("http")


def parse_metadata(blob: Any) -> Union[ExtractedMetadata, _Unparseable]:
    """
    Parse a json_metadata blob.

    Args:
        blob: Raw metadata, normally a JSON string (bytes are decoded as UTF-8)

    Returns:
        ExtractedMetadata, or UNPARSEABLE if the blob is empty, not valid JSON
        or not a JSON object
    """
    if isinstance(blob, (bytes, bytearray)):
        try:
            blob = blob.decode("utf-8")
        except UnicodeDecodeError:
            return UNPARSEABLE

    if not isinstance(blob, str) or not blob.strip():
        return UNPARSEABLE

    try:
        parsed = json.loads(blob)
    except (ValueError, RecursionError):
        return UNPARSEABLE

    if not isinstance(parsed, dict):
        return UNPARSEABLE

    urls = frozenset(
        value
        for key in IMAGE_KEYS
        for value in _as_list(parsed.get(key))
        if _is_candidate_url(value)
    )
    tags = frozenset(
        tag for tag in _as_list(parsed.get(TAGS_KEY)) if isinstance(tag, str) and tag
    )
    return ExtractedMetadata(urls=urls, tags=tags)


def extract_metadata(blob: Any) -> ExtractedMetadata:
    """Like parse_metadata, but unparseable blobs yield empty sets. Never raises."""
    result = parse_metadata(blob)
    if result is UNPARSEABLE:
        return EMPTY_METADATA
    return result
