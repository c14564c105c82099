"""
Periodic trigger for the legal crawler.

A daemon thread runs the crawler once after a short initial delay, then every
interval. Runs never overlap because one thread runs them back to back. A
failing run is logged and the next one still happens.
"""

import logging
import threading
from typing import Optional

from .config import DEFAULT_INTERVAL_MINUTES
from .crawler import LegalCrawler

logger = logging.getLogger(__name__)

DEFAULT_INITIAL_DELAY_S = 10.0


def _valid_interval(interval_minutes) -> float:
    try:
        value = float(interval_minutes)
    except (TypeError, ValueError):
        return DEFAULT_INTERVAL_MINUTES
    if value != value or value <= 0:  # NaN or non-positive
        return DEFAULT_INTERVAL_MINUTES
    return value


class CrawlerScheduler:
    """
    Runs LegalCrawler.run_once() on a fixed interval.

    Usage:
        scheduler = CrawlerScheduler(crawler, interval_minutes=180)
        scheduler.start()
        ...
        scheduler.stop()
    """

    def __init__(
        self,
        crawler: LegalCrawler,
        interval_minutes: Optional[float] = None,
        initial_delay_s: float = DEFAULT_INITIAL_DELAY_S,
    ):
        self.crawler = crawler
        if interval_minutes is None:
            interval_minutes = crawler.config.interval_minutes
        self.interval_minutes = _valid_interval(interval_minutes)
        self.initial_delay_s = initial_delay_s
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        """Start the background loop; False (and no thread) when the crawler is disabled."""
        if not self.crawler.config.crawler_enabled:
            logger.info("Legal crawler scheduler not started: LEGAL_CRAWLER_ENABLED is not true")
            return False

        with self._lock:
            if self.is_running:
                return True
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._loop, name="legal-crawler-scheduler", daemon=True
            )
            self._thread.start()

        logger.info(f"Legal crawler scheduler started (every {self.interval_minutes:g} min)")
        return True

    def stop(self, timeout: float = 5.0) -> None:
        """Signal the loop to exit and wait briefly for it."""
        with self._lock:
            thread = self._thread
            self._stop_event.set()
        if thread and thread.is_alive():
            thread.join(timeout=timeout)
        logger.info("Legal crawler scheduler stopped")

    def run_now(self):
        """Run the crawler once in the caller's thread."""
        return self.crawler.run_once()

    def _loop(self) -> None:
        delay = self.initial_delay_s
        while not self._stop_event.wait(delay):
            try:
                result = self.crawler.run_once()
                if result.error:
                    logger.warning(f"Scheduled crawl run {result.run_id} ended with error: {result.error}")
            except Exception:
                logger.exception("Scheduled crawl run failed")
            delay = self.interval_minutes * 60
