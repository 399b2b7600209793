"""
Configuration settings for the HiveLens sync pipeline.

Values come from the environment (a local .env file is loaded first), with
defaults matching the production setup. Tests build the dataclasses directly.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


GIB = 1024 * 1024 * 1024


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got: {value!r}") from e


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got: {value!r}") from e


@dataclass
class SyncConfig:
    """Tuning for a sync run"""

    # Flush threshold for the batch upserter
    batch_size: int = 100

    # Cost estimate shown before a sync is confirmed
    minutes_per_day: int = 32

    # Store quota (4 GiB)
    max_store_size_bytes: int = 4 * GIB

    # Liveness probe
    validation_timeout: float = 5.0
    max_concurrent_validations: int = 16

    # Records returned in a successful result
    sample_size: int = 20

    # Consecutive failed batches before the run is aborted
    max_consecutive_batch_failures: int = 3

    @classmethod
    def from_env(cls) -> "SyncConfig":
        load_dotenv()
        return cls(
            batch_size=_env_int("HIVELENS_BATCH_SIZE", cls.batch_size),
            minutes_per_day=_env_int("HIVELENS_MINUTES_PER_DAY", cls.minutes_per_day),
            max_store_size_bytes=_env_int(
                "HIVELENS_MAX_STORE_SIZE_BYTES", cls.max_store_size_bytes
            ),
            validation_timeout=_env_float(
                "HIVELENS_VALIDATION_TIMEOUT", cls.validation_timeout
            ),
            max_concurrent_validations=_env_int(
                "HIVELENS_MAX_CONCURRENT_VALIDATIONS", cls.max_concurrent_validations
            ),
            sample_size=_env_int("HIVELENS_SAMPLE_SIZE", cls.sample_size),
            max_consecutive_batch_failures=_env_int(
                "HIVELENS_MAX_CONSECUTIVE_BATCH_FAILURES",
                cls.max_consecutive_batch_failures,
            ),
        )

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.max_concurrent_validations < 1:
            raise ValueError("max_concurrent_validations must be at least 1")


@dataclass
class HiveSQLConfig:
    """Connection settings for the HiveSQL content source"""

    user: str
    password: str
    database: str
    host: str
    port: int = 1433

    # Connection pool
    pool_size: int = 10
    pool_recycle: int = 1800

    # Transport timeouts, in seconds
    query_timeout: int = 120
    login_timeout: int = 30

    REQUIRED_ENV_VARS = ("HIVE_USER", "HIVE_PASSWORD", "HIVE_DATABASE", "HIVE_HOST")

    @classmethod
    def from_env(cls) -> "HiveSQLConfig":
        """
        Build the HiveSQL config from HIVE_* environment variables.

        Raises:
            EnvironmentError: If any required variable is missing
        """
        load_dotenv()
        missing = [name for name in cls.REQUIRED_ENV_VARS if not os.getenv(name)]
        if missing:
            raise EnvironmentError(
                f"Missing required HiveSQL environment variables: {', '.join(missing)}. "
                "Please ensure they are set in your .env file."
            )
        return cls(
            user=os.environ["HIVE_USER"],
            password=os.environ["HIVE_PASSWORD"],
            database=os.environ["HIVE_DATABASE"],
            host=os.environ["HIVE_HOST"],
            port=_env_int("HIVE_PORT", 1433),
        )


def get_database_url() -> Optional[str]:
    """Return DATABASE_URL from the environment (after loading .env)."""
    load_dotenv()
    return os.getenv("DATABASE_URL")
