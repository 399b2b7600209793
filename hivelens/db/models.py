"""
SQLAlchemy ORM models for the HiveLens image index.

Models:
    IndexedImage: One image URL discovered in a Hive post, with the post's
        metadata and placeholder AI-analysis columns

Enums:
    AnalysisStatus: State of the (external) AI analysis for an image
"""

from enum import Enum as PyEnum
from sqlalchemy import (
    Column,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class AnalysisStatus(str, PyEnum):
    """
    AI analysis state of an indexed image.

    The sync pipeline only ever writes PENDING; the other values are set by
    the analysis flow that runs outside this package.
    """

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class IndexedImage(Base):
    """
    An image URL indexed from a top-level Hive post.

    image_url is the natural key: inserting an already indexed URL is a
    no-op. Tags are stored as a JSON list so they can be searched with
    SQLite's json_each.

    Attributes:
        id: Surrogate primary key
        image_url: Absolute http(s) URL of the image (unique)
        hive_author: Author handle of the parent post
        hive_permlink: Permanent link identifier of the parent post
        hive_post_url: Canonical URL of the parent post
        hive_title: Title of the parent post
        hive_timestamp: Creation time of the parent post (ISO-8601, UTC)
        hive_tags: JSON list of the parent post's tags
        ai_analysis_status: AnalysisStatus value, "pending" on insert
        ai_content_type: Content type from AI analysis (not computed here)
        ai_features: JSON list of features from AI analysis (not computed here)
        indexed_at: When the row was inserted
        last_ai_attempt_at: When AI analysis was last attempted
    """

    __tablename__ = "indexed_images"

    id = Column(Integer, primary_key=True, autoincrement=True)
    image_url = Column(Text, unique=True, nullable=False)

    # Parent post
    hive_author = Column(Text)
    hive_permlink = Column(Text)
    hive_post_url = Column(Text)
    hive_title = Column(Text)
    hive_timestamp = Column(Text)
    hive_tags = Column(Text)

    # AI analysis placeholders
    ai_analysis_status = Column(
        String,
        default=AnalysisStatus.PENDING.value,
        server_default=AnalysisStatus.PENDING.value,
    )
    ai_content_type = Column(Text)
    ai_features = Column(Text)

    indexed_at = Column(Text, server_default=func.current_timestamp())
    last_ai_attempt_at = Column(Text)

    __table_args__ = (
        Index("idx_hive_author", "hive_author"),
        Index("idx_hive_title", func.lower(hive_title)),
        Index("idx_hive_tags", func.lower(hive_tags)),
        Index("idx_ai_status", "ai_analysis_status"),
    )

    def __repr__(self):
        return (
            f"<IndexedImage(id={self.id}, image_url='{self.image_url}', "
            f"author='{self.hive_author}', timestamp='{self.hive_timestamp}')>"
        )
