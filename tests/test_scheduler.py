"""
Tests for execution/legal_corpus/scheduler.py

Covers: interval validation, start/stop lifecycle, the disabled-crawler
        guard and failure tolerance of the background loop.
"""

import threading
from unittest.mock import MagicMock

import pytest

from execution.legal_corpus.models import CrawlResult


def _crawler(enabled=True, interval=180):
    from execution.legal_corpus.config import LegalCorpusConfig
    crawler = MagicMock()
    crawler.config = LegalCorpusConfig(crawler_enabled=enabled, interval_minutes=interval)
    crawler.run_once.return_value = CrawlResult(run_id=1)
    return crawler


class TestIntervalValidation:
    """Tests for interval fallback."""

    @pytest.mark.parametrize("value,expected", [
        (30, 30.0),
        ("45", 45.0),
        (0, 180),
        (-5, 180),
        ("abc", 180),
        (None, 180),
        (float("nan"), 180),
    ])
    def test_valid_interval(self, value, expected):
        from execution.legal_corpus.scheduler import _valid_interval
        assert _valid_interval(value) == expected

    def test_interval_from_crawler_config(self):
        from execution.legal_corpus.scheduler import CrawlerScheduler
        assert CrawlerScheduler(_crawler(interval=60)).interval_minutes == 60


class TestLifecycle:
    """Tests for start/stop."""

    def test_disabled_crawler_not_started(self):
        from execution.legal_corpus.scheduler import CrawlerScheduler
        scheduler = CrawlerScheduler(_crawler(enabled=False))
        assert scheduler.start() is False
        assert scheduler.is_running is False

    def test_first_run_after_initial_delay(self):
        from execution.legal_corpus.scheduler import CrawlerScheduler
        ran = threading.Event()
        crawler = _crawler()

        def run_once():
            ran.set()
            return CrawlResult(run_id=1)

        crawler.run_once.side_effect = run_once
        scheduler = CrawlerScheduler(crawler, initial_delay_s=0.01)
        try:
            assert scheduler.start() is True
            assert scheduler.is_running is True
            assert ran.wait(timeout=5)
        finally:
            scheduler.stop()
        assert scheduler.is_running is False

    def test_start_is_idempotent(self):
        from execution.legal_corpus.scheduler import CrawlerScheduler
        scheduler = CrawlerScheduler(_crawler(), initial_delay_s=60)
        try:
            scheduler.start()
            thread = scheduler._thread
            assert scheduler.start() is True
            assert scheduler._thread is thread
        finally:
            scheduler.stop()

    def test_stop_before_first_run(self):
        from execution.legal_corpus.scheduler import CrawlerScheduler
        crawler = _crawler()
        scheduler = CrawlerScheduler(crawler, initial_delay_s=60)
        scheduler.start()
        scheduler.stop()
        assert scheduler.is_running is False
        crawler.run_once.assert_not_called()

    def test_stop_without_start(self):
        from execution.legal_corpus.scheduler import CrawlerScheduler
        CrawlerScheduler(_crawler()).stop()

    def test_failing_run_does_not_kill_loop(self):
        from execution.legal_corpus.scheduler import CrawlerScheduler
        calls = []
        second = threading.Event()

        def run_once():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("crawl exploded")
            second.set()
            return CrawlResult(run_id=2)

        crawler = _crawler(interval=0.0001)
        crawler.run_once.side_effect = run_once
        scheduler = CrawlerScheduler(crawler, initial_delay_s=0.01)
        try:
            scheduler.start()
            assert second.wait(timeout=5)
        finally:
            scheduler.stop()
        assert len(calls) >= 2

    def test_run_now(self):
        from execution.legal_corpus.scheduler import CrawlerScheduler
        crawler = _crawler()
        result = CrawlerScheduler(crawler).run_now()
        assert result.run_id == 1
        crawler.run_once.assert_called_once_with()
