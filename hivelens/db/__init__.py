"""
Database package for the HiveLens image index.

Structure:
- models.py: SQLAlchemy ORM model (IndexedImage) and AnalysisStatus enum
- database.py: Engine creation, session management and ImageStore

Database Patterns:
- SQLite uses session-per-operation with ImageStore.session() context manager
- Batches are written with INSERT ... ON CONFLICT(image_url) DO NOTHING
"""

from .models import Base, IndexedImage, AnalysisStatus
from .database import (
    ImageStore,
    create_db_engine,
    validate_database_url,
    get_default_store,
)

__all__ = [
    # Models
    "Base",
    "IndexedImage",
    "AnalysisStatus",
    # Database utilities
    "ImageStore",
    "create_db_engine",
    "validate_database_url",
    "get_default_store",
]
