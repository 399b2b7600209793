"""
Image URL liveness checks.

Each candidate URL gets a HEAD request with a short timeout. Dead links are
an everyday outcome on Hive (expired CDNs, deleted uploads), so a failed
probe is logged at debug level and reported as False, never raised.

Probes run on one shared thread pool whose size is the global cap on
in-flight requests across the whole sync run.
"""

from concurrent.futures import ThreadPoolExecutor, wait
from typing import Iterable, Optional

import requests

from hivelens.logger import setup_logging


logger = setup_logging(logger_name="validator", log_file="validator.log")

DEFAULT_TIMEOUT = 5.0
DEFAULT_MAX_WORKERS = 16

HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; HiveLens/0.1; +https://hive.blog)",
    "Accept": "image/*, */*",
}


class UrlValidator:
    """Checks whether image URLs are reachable."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        self.timeout = timeout
        self.max_workers = max_workers
        self._executor: Optional[ThreadPoolExecutor] = None

    def is_reachable(self, url: str) -> bool:
        """
        Probe a URL with a HEAD request.

        Returns:
            True if the final response (after redirects) is a success status,
            False on any error, timeout or non-success status
        """
        try:
            response = requests.head(
                url, headers=HEADERS, allow_redirects=True, timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.debug(f"Unreachable image {url}: {type(e).__name__}: {e}")
            return False

        if not response.ok:
            logger.debug(f"Unreachable image {url}: HTTP {response.status_code}")
            return False
        return True

    def check_many(self, urls: Iterable[str]) -> tuple[list[str], list[str]]:
        """
        Probe URLs concurrently and wait for every probe to settle.

        Args:
            urls: URLs to check

        Returns:
            Tuple of (live, dead) URLs, each in input order. A probe that
            raised counts as dead.
        """
        urls = list(urls)
        if not urls:
            return [], []

        executor = self._get_executor()
        futures = [executor.submit(self.is_reachable, url) for url in urls]
        wait(futures)

        live, dead = [], []
        for url, future in zip(urls, futures):
            error = future.exception()
            if error is not None:
                logger.warning(f"Probe for {url} failed unexpectedly: {error}")
                dead.append(url)
            elif future.result():
                live.append(url)
            else:
                dead.append(url)

        logger.debug(f"Checked {len(urls)} URLs: {len(live)} live, {len(dead)} dead")
        return live, dead

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="url-validator"
            )
        return self._executor

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> "UrlValidator":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
