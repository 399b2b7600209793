"""
Content source package: Hive posts read from HiveSQL.

Modules:
    models: RawPost rows returned by the sync query
    hivesql: Connection pool, query execution and post fetching
"""

from .models import RawPost
from .hivesql import HiveSQLSource, HiveSQLError, SYNC_POSTS_QUERY

__all__ = ["RawPost", "HiveSQLSource", "HiveSQLError", "SYNC_POSTS_QUERY"]
