"""
SQLite database engine, session management and image store for HiveLens.

This module provides SQLite-specific database connectivity with:
- Session-per-operation pattern for the sync pipeline
- NullPool connection pooling to avoid SQLite locking issues
- Comprehensive error handling and file-based logging
- SQLite optimization settings (WAL mode, timeouts)

ImageStore is the single entry point used by the sync orchestrator: schema
creation, insert-or-ignore batches keyed on image_url, store size and the
read helpers used to report what has already been synced.
"""

import os
from contextlib import contextmanager
from datetime import date, timedelta
from pathlib import Path
from typing import Generator, Optional, Sequence

from sqlalchemy import create_engine, event, func, select, text
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError, OperationalError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import NullPool

from hivelens.config import get_database_url
from hivelens.ingestion.records import CandidateImageRecord
from hivelens.logger import setup_logging, log_function
from .models import Base, IndexedImage, AnalysisStatus


db_logger = setup_logging(logger_name="database", log_file="database.log")


@log_function(logger_name="database", log_args=True, log_result=True)
def validate_database_url(url: Optional[str]) -> tuple[bool, str]:
    """Validate the database URL format and path."""
    if not url:
        return False, "DATABASE_URL is not set"
    try:
        parsed = make_url(url)
    except ArgumentError as e:
        return False, f"Invalid database URL format: {e}"

    if parsed.get_backend_name() != "sqlite":
        return False, f"Only SQLite databases are supported, got: {parsed.drivername}"

    db_path = parsed.database
    if not db_path:
        return False, "Database file path is empty"
    if db_path == ":memory:":
        return False, "In-memory databases are not supported"

    # Check if parent directory exists (but don't create it)
    parent_dir = Path(db_path).parent
    if not parent_dir.exists():
        return False, f"Database directory does not exist: {parent_dir}"

    return True, db_path


def optimize_sqlite_connection(dbapi_connection, connection_record):
    """Apply SQLite-specific optimizations when connection is created."""
    cursor = dbapi_connection.cursor()

    # WAL lets the search path read while a sync is writing
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA temp_store=MEMORY")

    cursor.close()


def create_db_engine(database_url: str) -> tuple[Engine, str]:
    """
    Create the SQLAlchemy engine for a SQLite database URL.

    Returns:
        Tuple of (engine, database file path)

    Raises:
        ValueError: If the URL is not a usable SQLite file URL
    """
    is_valid, db_info = validate_database_url(database_url)
    if not is_valid:
        db_logger.error(f"Database configuration error: {db_info}")
        raise ValueError(f"Database configuration error: {db_info}")

    engine = create_engine(
        database_url,
        poolclass=NullPool,
        echo=False,
        connect_args={
            "check_same_thread": False,
            "timeout": 30,
        },
    )
    event.listen(engine, "connect", optimize_sqlite_connection)

    db_logger.info(f"Database engine created for {db_info}")
    return engine, db_info


class ImageStore:
    """Persistent store of indexed images backed by SQLite."""

    def __init__(self, database_url: str):
        self.database_url = database_url
        self.engine, self.db_path = create_db_engine(database_url)
        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, bind=self.engine
        )

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """
        Context manager for database sessions (session-per-operation pattern).

        Usage:
            with store.session() as session:
                session.execute(...)
                session.commit()
        """
        session = self.SessionLocal()
        try:
            db_logger.debug("Database session created")
            yield session

        except OperationalError as e:
            db_logger.error(f"Database operational error: {e}")
            session.rollback()

            error_msg = str(e.orig) if hasattr(e, "orig") else str(e)
            if "database is locked" in error_msg.lower():
                raise OperationalError(
                    "Database is locked. This may be due to another process accessing the database. "
                    "Please try again or check for long-running database operations.",
                    None,
                    e.orig,
                ) from e
            elif "no such table" in error_msg.lower():
                raise OperationalError(
                    "Database table does not exist. Please initialize the schema first.",
                    None,
                    e.orig,
                ) from e
            else:
                raise

        except SQLAlchemyError as e:
            db_logger.error(f"Database error: {e}")
            session.rollback()
            raise

        except Exception as e:
            db_logger.error(f"Unexpected database error: {e}")
            session.rollback()
            raise

        finally:
            session.close()
            db_logger.debug("Database session closed")

    @log_function(logger_name="database")
    def ensure_schema(self) -> None:
        """Create the indexed_images table and its indexes if missing."""
        Base.metadata.create_all(bind=self.engine)
        db_logger.info('Table "indexed_images" and its indexes are ready')

    @log_function(logger_name="database")
    def insert_batch(self, records: Sequence[CandidateImageRecord]) -> int:
        """
        Insert a batch of records, silently skipping URLs already indexed.

        Runs a single multi-row INSERT ... ON CONFLICT(image_url) DO NOTHING.

        Args:
            records: Records to persist (may be empty)

        Returns:
            int: Number of rows actually added. Skipped duplicates are
            len(records) minus this value.

        Raises:
            SQLAlchemyError: If the insert fails; nothing from the batch is
            committed in that case.
        """
        if not records:
            return 0

        rows = [
            {**record.to_row(), "ai_analysis_status": AnalysisStatus.PENDING.value}
            for record in records
        ]
        statement = (
            sqlite_insert(IndexedImage.__table__)
            .values(rows)
            .on_conflict_do_nothing(index_elements=["image_url"])
        )

        with self.session() as session:
            result = session.execute(statement)
            session.commit()
            added = max(result.rowcount or 0, 0)

        db_logger.info(
            f"Inserted batch of {len(records)}: {added} new, {len(records) - added} already indexed"
        )
        return added

    def current_size_bytes(self) -> Optional[int]:
        """
        Size of the database on disk in bytes.

        Includes the write-ahead log, which holds pages not yet checkpointed
        into the main file.

        Returns:
            The total size, or None if the database file does not exist.
        """
        if not os.path.exists(self.db_path):
            db_logger.warning(f"Database file not found when reading size: {self.db_path}")
            return None

        size = os.path.getsize(self.db_path)
        wal_path = f"{self.db_path}-wal"
        if os.path.exists(wal_path):
            size += os.path.getsize(wal_path)
        return size

    def count_images(self) -> int:
        with self.session() as session:
            return session.scalar(select(func.count()).select_from(IndexedImage)) or 0

    @log_function(logger_name="database")
    def count_images_in_date_range(
        self, date_from: Optional[date], date_to: Optional[date]
    ) -> int:
        """
        Count indexed images whose post was created within [date_from, date_to].

        Both bounds are whole days and inclusive; either may be None.
        """
        query = select(func.count()).select_from(IndexedImage)
        if date_from:
            query = query.where(IndexedImage.hive_timestamp >= date_from.isoformat())
        if date_to:
            next_day = date_to + timedelta(days=1)
            query = query.where(IndexedImage.hive_timestamp < next_day.isoformat())

        with self.session() as session:
            return session.scalar(query) or 0

    @log_function(logger_name="database")
    def get_distinct_synced_dates(self) -> list[str]:
        """Distinct post dates (YYYY-MM-DD) present in the index, newest first."""
        sync_date = func.substr(IndexedImage.hive_timestamp, 1, 10).label("sync_date")
        query = (
            select(sync_date)
            .where(IndexedImage.hive_timestamp.is_not(None))
            .distinct()
            .order_by(sync_date.desc())
        )
        with self.session() as session:
            return [row.sync_date for row in session.execute(query)]

    @log_function(logger_name="database")
    def get_unique_tags(self) -> list[str]:
        """All distinct tags across indexed images, sorted alphabetically."""
        query = text(
            """
            SELECT DISTINCT value
            FROM indexed_images, json_each(
                CASE WHEN json_valid(indexed_images.hive_tags)
                THEN indexed_images.hive_tags ELSE '[]' END
            )
            ORDER BY value ASC
            """
        )
        with self.session() as session:
            return [row.value for row in session.execute(query)]

    @log_function(logger_name="database")
    def check_connection(self) -> bool:
        """
        Check if database connection is working.

        Returns:
            bool: True if connection is successful, False otherwise
        """
        try:
            with self.session() as session:
                session.execute(text("SELECT 1"))
            db_logger.info("Database connection test successful")
            return True
        except SQLAlchemyError as e:
            db_logger.error(f"Database connection test failed: {e}")
            return False

    def get_database_info(self) -> dict:
        """
        Get information about the database.

        Returns:
            dict: Database information including file size, path, etc.
        """
        info = {
            "database_url": self.database_url,
            "database_path": self.db_path,
            "engine_pool_class": self.engine.pool.__class__.__name__,
        }

        size = self.current_size_bytes()
        if size is not None:
            info.update(
                {
                    "file_exists": True,
                    "file_size_bytes": size,
                    "file_size_mb": round(size / (1024 * 1024), 2),
                }
            )
        else:
            info["file_exists"] = False

        return info


_default_store: Optional[ImageStore] = None


def get_default_store() -> ImageStore:
    """Get or create the ImageStore configured by DATABASE_URL."""
    global _default_store
    if _default_store is None:
        _default_store = ImageStore(get_database_url())
        db_logger.info(
            f"Database module loaded. Configuration: {_default_store.get_database_info()}"
        )
    return _default_store
