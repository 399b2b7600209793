"""
HiveSQL content source.

HiveSQL is a public Microsoft SQL Server mirror of the Hive blockchain. This
module owns the connection pool and the single query a sync run issues.
"""

import time
from datetime import date, datetime
from typing import Any, Optional, Union

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, URL
from sqlalchemy.exc import SQLAlchemyError

from hivelens.config import HiveSQLConfig
from hivelens.logger import setup_logging, log_function
from .models import RawPost


logger = setup_logging(logger_name="hivesql", log_file="hivesql.log")


# Top-level posts (depth = 0) whose metadata mentions images, newest first
SYNC_POSTS_QUERY = """
    SELECT
        author,
        created AS timestamp,
        title,
        permlink,
        json_metadata,
        CONCAT('https://hive.blog/@', author, '/', permlink) AS postUrl
    FROM Comments
    WHERE
        depth = 0
        AND created >= :start_date
        AND created < :end_date
        AND (json_metadata LIKE '%"image":%' OR json_metadata LIKE '%"images":%')
    ORDER BY created DESC
"""

TEST_CONNECTION_QUERY = "SELECT TOP 1 name, created FROM Accounts"


class HiveSQLError(RuntimeError):
    """Raised when a query against HiveSQL fails."""


def create_hivesql_engine(config: HiveSQLConfig) -> Engine:
    """Create a pooled SQLAlchemy engine for HiveSQL (pymssql driver)."""
    url = URL.create(
        "mssql+pymssql",
        username=config.user,
        password=config.password,
        host=config.host,
        port=config.port,
        database=config.database,
    )
    return create_engine(
        url,
        pool_size=config.pool_size,
        max_overflow=0,
        pool_recycle=config.pool_recycle,
        pool_pre_ping=True,
        connect_args={
            "timeout": config.query_timeout,
            "login_timeout": config.login_timeout,
        },
    )


def _as_datetime(value: Union[date, datetime]) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime(value.year, value.month, value.day)


class HiveSQLSource:
    """Read-only access to HiveSQL posts."""

    def __init__(
        self,
        config: Optional[HiveSQLConfig] = None,
        engine: Optional[Engine] = None,
    ):
        self._config = config
        self._engine = engine

    @property
    def engine(self) -> Engine:
        # Created lazily so importing and constructing never needs credentials
        if self._engine is None:
            config = self._config or HiveSQLConfig.from_env()
            self._engine = create_hivesql_engine(config)
            logger.info(f"HiveSQL engine created for {config.host}/{config.database}")
        return self._engine

    def execute_query(
        self, query: str, params: Optional[dict[str, Any]] = None
    ) -> tuple[list[dict[str, Any]], float]:
        """
        Execute a SQL query and return its rows with the execution time.

        Args:
            query: SQL text, with :name placeholders for params
            params: Bound parameters

        Returns:
            Tuple of (rows as dicts, execution time in milliseconds)

        Raises:
            HiveSQLError: If the query fails for any driver or connection reason
        """
        start = time.perf_counter()
        try:
            with self.engine.connect() as connection:
                result = connection.execute(text(query), params or {})
                rows = [dict(row) for row in result.mappings()]
        except SQLAlchemyError as e:
            logger.error(f"Error executing HiveSQL query: {e}")
            raise HiveSQLError(f"Failed to execute HiveSQL query. {e}") from e

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(f"Executed query in {elapsed_ms:.2f} ms. Rows: {len(rows)}")
        return rows, elapsed_ms

    @log_function(logger_name="hivesql", log_args=True)
    def fetch_posts(
        self, start_date: Union[date, datetime], end_date: Union[date, datetime]
    ) -> list[RawPost]:
        """
        Fetch top-level posts with image metadata created in [start_date, end_date).

        Returns:
            Posts ordered by creation time, newest first
        """
        rows, elapsed_ms = self.execute_query(
            SYNC_POSTS_QUERY,
            {
                "start_date": _as_datetime(start_date),
                "end_date": _as_datetime(end_date),
            },
        )
        posts = [RawPost.from_row(row) for row in rows]
        logger.info(f"Fetched {len(posts)} raw posts from HiveSQL in {elapsed_ms:.0f}ms")
        return posts

    def test_connection(self) -> Optional[dict[str, Any]]:
        """
        Test the connection by fetching the top 1 account.

        Returns:
            Dict with "results" and "time_ms", or None on error (already logged)
        """
        try:
            rows, elapsed_ms = self.execute_query(TEST_CONNECTION_QUERY)
        except (HiveSQLError, EnvironmentError) as e:
            logger.error(f"HiveSQL connection test failed: {e}")
            return None
        return {"results": rows, "time_ms": elapsed_ms}
