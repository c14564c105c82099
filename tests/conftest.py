"""
Shared fixtures and test utilities for the legal corpus tests.

Provides a deterministic embedding service, a canned-response HTTP fetcher
and an in-memory store so that every test runs without API keys, databases
or network access.
"""

import sys
import hashlib
from pathlib import Path

import pytest
import requests

# ---------------------------------------------------------------------------
# Path setup - ensure the execution package is importable
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# ---------------------------------------------------------------------------
# Sample gazette page (labor law, a few articles)
# ---------------------------------------------------------------------------
LABOR_LAW_HTML = """
<html>
<head><title>نظام العمل</title><script>var tracking = 1;</script></head>
<body>
<div class="article">المادة الأولى:<br>يسمى هذا النظام نظام العمل، ويعمل به من تاريخ نفاذه.</div>
<div class="article">المادة الثانية:<br>يقصد بالألفاظ والعبارات الآتية أينما وردت في هذا النظام المعاني المبينة أمامها.</div>
<div class="article">المادة الثانية عشرة:<br>على صاحب العمل أن يضع لائحة لتنظيم العمل في منشأته وفقاً للنموذج المعد من الوزارة.</div>
<div class="article">المادة السابعة بعد المائة:<br>يجب على صاحب العمل أن يدفع للعامل عن ساعات العمل الإضافية أجراً إضافياً يوازي أجر الساعة مضافاً إليه خمسون في المائة.</div>
<div class="article">المادة الثامنة بعد المائة:<br>يجوز بقرار من الوزير في المنشآت التي تتطلب طبيعة العمل فيها أداء العمل بالتناوب.</div>
</body>
</html>
"""


def long_arabic_text(length):
    """Whitespace-free Arabic text of an exact length."""
    return "".join(chr(0x0627 + (i % 20)) for i in range(length))


# ---------------------------------------------------------------------------
# Mock embedding service
# ---------------------------------------------------------------------------

class MockEmbeddingService:
    """Deterministic mock embedding service -- never calls external APIs."""

    def __init__(self, dimensions=16):
        self._dimensions = dimensions
        self.batches = []
        self.query_calls = 0

    def embed_texts(self, texts):
        self.batches.append(list(texts))
        return [self._deterministic_embedding(t) for t in texts]

    def embed_text(self, text):
        self.query_calls += 1
        return self._deterministic_embedding(text)

    def _deterministic_embedding(self, text):
        h = hashlib.sha256(text.encode()).hexdigest()
        seed = int(h[:8], 16)
        return [((seed + i) % 1000) / 1000.0 for i in range(self._dimensions)]


@pytest.fixture
def mock_embedding_service():
    return MockEmbeddingService()


# ---------------------------------------------------------------------------
# Fake HTTP fetcher (no network)
# ---------------------------------------------------------------------------

def make_response(url, body="", status=200, content_type="text/html; charset=utf-8", reason="OK", headers=None):
    from execution.legal_corpus.http_client import FetchResponse
    all_headers = {"content-type": content_type}
    all_headers.update({k.lower(): v for k, v in (headers or {}).items()})
    return FetchResponse(url=url, status=status, text=body, reason=reason, headers=all_headers)


class FakeFetcher:
    """
    HttpFetcher stand-in serving canned responses by URL.

    A route may hold a FetchResponse, an exception instance (raised) or a
    list of either (served in order, the last one repeating). Unknown URLs
    raise requests.ConnectionError, like an unreachable host.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def add(self, url, body="", **kwargs):
        self.routes[url] = make_response(url, body, **kwargs)

    def _serve(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        route = self.routes.get(url)
        if route is None:
            raise requests.ConnectionError(f"no route to {url}")
        if isinstance(route, list):
            route = route.pop(0) if len(route) > 1 else route[0]
        if isinstance(route, Exception):
            raise route
        return route

    def get(self, url, headers=None, params=None, timeout=None):
        return self._serve("GET", url, params=params)

    def post(self, url, json=None, headers=None, timeout=None):
        return self._serve("POST", url, json=json, headers=headers)

    def urls(self, method="GET"):
        return [url for m, url, _ in self.calls if m == method]

    def close(self):
        pass


@pytest.fixture
def fetcher():
    return FakeFetcher()


# ---------------------------------------------------------------------------
# Store, config and crawler
# ---------------------------------------------------------------------------

@pytest.fixture
def store():
    from execution.legal_corpus.store import InMemoryLegalSourceStore
    return InMemoryLegalSourceStore()


@pytest.fixture
def config():
    """Enabled crawler config with no API keys or database."""
    from execution.legal_corpus.config import LegalCorpusConfig
    return LegalCorpusConfig(crawler_enabled=True, max_pages_per_run=20)


class RecordingSleep:
    """time.sleep replacement that only records the requested delays."""

    def __init__(self):
        self.delays = []

    def __call__(self, seconds):
        self.delays.append(seconds)


@pytest.fixture
def no_sleep():
    return RecordingSleep()


@pytest.fixture
def crawler(store, fetcher, config, no_sleep):
    from execution.legal_corpus.crawler import LegalCrawler
    return LegalCrawler(store, fetcher, None, config, sleep=no_sleep)


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test from empty process-wide metrics."""
    from execution.legal_corpus.metrics import get_metrics_collector
    get_metrics_collector().reset()
    yield
    get_metrics_collector().reset()
