"""
Ingestion package: turning raw Hive posts into image records.

Modules:
    metadata: Candidate image URLs and tags from a post's json_metadata
    validator: Concurrent HEAD probes for image liveness
    records: CandidateImageRecord, the unit written to the image store
"""

from .metadata import (
    ExtractedMetadata,
    UNPARSEABLE,
    extract_metadata,
    parse_metadata,
)
from .records import CandidateImageRecord, to_iso8601
from .validator import UrlValidator

__all__ = [
    "ExtractedMetadata",
    "UNPARSEABLE",
    "extract_metadata",
    "parse_metadata",
    "CandidateImageRecord",
    "to_iso8601",
    "UrlValidator",
]
