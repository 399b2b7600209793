"""
Centralized Logging Utilities and Decorators

Provides the logging setup and function decorators shared by every hivelens
component (source, store, validator, sync orchestrator).

Log files land in the directory named by HIVELENS_LOG_DIR (default: "logs").

Usage:
    from hivelens.logger import setup_logging, log_function

    # Setup logging for a component
    logger = setup_logging(logger_name="sync", log_file="sync.log", verbose=True)

    # Decorate functions for automatic logging
    @log_function(logger_name="sync", log_args=True)
    def fetch_posts(start, end):
        ...
"""

import functools
import logging
import os
import time
from pathlib import Path
from typing import Optional, Callable, Any


DEFAULT_LOG_DIR = "logs"


def resolve_log_path(log_file: str) -> Path:
    """
    Resolve a log file name against HIVELENS_LOG_DIR.

    Absolute paths and paths that already include a directory are kept as-is.
    """
    log_path = Path(log_file)
    if log_path.is_absolute() or log_path.parent != Path("."):
        return log_path
    return Path(os.getenv("HIVELENS_LOG_DIR", DEFAULT_LOG_DIR)) / log_path


def setup_logging(
    logger_name: str,
    log_file: str = "hivelens.log",
    verbose: bool = False,
    level: int = logging.INFO,
) -> logging.Logger:
    """
    Set up logging with file and optional console handlers.

    Args:
        logger_name: Name for the logger (e.g., "sync")
        log_file: Log file name, resolved against HIVELENS_LOG_DIR
        verbose: If True, add console handler with DEBUG level (default: False)
        level: Base logging level (default: logging.INFO)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    # A second call may only upgrade an existing logger to verbose
    if logger.handlers:
        if verbose and not _has_console_handler(logger):
            logger.setLevel(logging.DEBUG)
            logger.addHandler(_console_handler())
        return logger

    logger.setLevel(logging.DEBUG if verbose else level)

    log_path = resolve_log_path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    logger.addHandler(file_handler)

    if verbose:
        logger.addHandler(_console_handler())

    return logger


def _console_handler() -> logging.Handler:
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    return console_handler


def _has_console_handler(logger: logging.Logger) -> bool:
    return any(
        type(handler) is logging.StreamHandler for handler in logger.handlers
    )


def log_function(
    logger_name: Optional[str] = None,
    log_file: Optional[str] = None,
    level: int = logging.INFO,
    log_args: bool = False,
    log_result: bool = False,
    log_execution_time: bool = True,
) -> Callable:
    """
    Decorator to automatically log function entry, exit, execution time, and exceptions.

    Args:
        logger_name: Custom logger name (if None, uses the decorated function's module name)
        log_file: Optional custom log file (if None, uses existing logger config)
        level: Log level for entry/exit messages (default: logging.INFO)
        log_args: If True, log function arguments (default: False)
        log_result: If True, log return value (default: False)
        log_execution_time: If True, log execution duration (default: True)

    Returns:
        Decorated function with logging

    Example:
        @log_function(logger_name="store", log_args=True, log_execution_time=True)
        def insert_batch(records):
            ...
    """

    def decorator(func: Callable) -> Callable:
        name = logger_name or func.__module__

        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            if log_file:
                logger = setup_logging(
                    logger_name=f"{name}.{func.__name__}",
                    log_file=log_file,
                    level=level,
                )
            else:
                logger = logging.getLogger(name)
                if not logger.handlers:
                    logger = setup_logging(name, level=level)

            func_name = func.__qualname__
            log_msg = f"Calling {func_name}"

            if log_args and (args or kwargs):
                args_repr = [repr(a) for a in args]
                kwargs_repr = [f"{k}={v!r}" for k, v in kwargs.items()]
                log_msg += f" with args: {', '.join(args_repr + kwargs_repr)}"

            logger.log(level, log_msg)

            start_time = time.time()

            try:
                result = func(*args, **kwargs)

                execution_time = time.time() - start_time
                completion_msg = f"Completed {func_name}"
                if log_execution_time:
                    completion_msg += f" in {execution_time:.2f}s"
                if log_result:
                    completion_msg += f" with result: {result!r}"

                logger.log(level, completion_msg)

                return result

            except Exception as e:
                execution_time = time.time() - start_time
                logger.error(
                    f"Exception in {func_name} after {execution_time:.2f}s: {type(e).__name__}: {e}",
                    exc_info=True,
                )
                raise

        return wrapper

    return decorator
