"""
HiveLens: index images from Hive blockchain posts into a local SQLite store.

Packages:
    source: HiveSQL content source (RawPost, HiveSQLSource)
    ingestion: Metadata extraction, URL validation and image records
    db: SQLAlchemy model and ImageStore
    sync: Lock registry, sync orchestrator and CLI
    logger: Logging setup and decorators
"""

__version__ = "0.1.0"
