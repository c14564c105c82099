"""
FastAPI Backend for the Legal Corpus

Exposes retrieval, on-demand crawling, health and metrics. When the crawler
is enabled, the periodic scheduler runs for the lifetime of the app.

Run with: uvicorn execution.legal_corpus.api:app --host 0.0.0.0 --port 8000
"""

import os
import time
import logging
import threading
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Depends, Header
from dotenv import load_dotenv

from . import __version__
from .api_models import (
    SearchRequest, SearchResponse, SnippetInfo, TierDecisionInfo,
    CrawlRequest, CrawlResponse,
    HealthResponse,
)
from .config import LegalCorpusConfig
from .metrics import get_metrics_collector

# Load environment variables
load_dotenv()
logger = logging.getLogger(__name__)

SEARCH_SCAN_LIMIT = 1000


# =============================================================================
# Service Container - builds the store, embeddings, crawler and retriever once
# =============================================================================

class ServiceContainer:
    """Lazily constructed, process-wide services."""

    def __init__(self, config: Optional[LegalCorpusConfig] = None):
        self._config = config
        self._lock = threading.Lock()
        self._store = None
        self._embeddings = None
        self._embeddings_loaded = False
        self._fetcher = None
        self._crawler = None
        self._retriever = None
        self._scheduler = None

    @property
    def config(self) -> LegalCorpusConfig:
        if self._config is None:
            self._config = LegalCorpusConfig.from_env()
        return self._config

    def get_store(self):
        with self._lock:
            if self._store is None:
                from .store import create_store
                self._store = create_store(self.config)
            return self._store

    def get_embeddings(self):
        with self._lock:
            if not self._embeddings_loaded:
                from .embeddings import get_embedding_service
                self._embeddings = get_embedding_service(self.config)
                self._embeddings_loaded = True
            return self._embeddings

    def get_fetcher(self):
        with self._lock:
            if self._fetcher is None:
                from .http_client import HttpFetcher
                self._fetcher = HttpFetcher(self.config)
            return self._fetcher

    def get_crawler(self):
        if self._crawler is None:
            from .crawler import LegalCrawler
            crawler = LegalCrawler(
                self.get_store(), self.get_fetcher(), self.get_embeddings(), self.config
            )
            with self._lock:
                if self._crawler is None:
                    self._crawler = crawler
        return self._crawler

    def get_retriever(self):
        if self._retriever is None:
            from .retriever import LegalRetriever
            retriever = LegalRetriever(
                self.get_store(), self.get_embeddings(), self.get_fetcher(), self.config
            )
            with self._lock:
                if self._retriever is None:
                    self._retriever = retriever
        return self._retriever

    def start_scheduler(self) -> bool:
        if not self.config.crawler_enabled:
            return False
        from .scheduler import CrawlerScheduler
        self._scheduler = CrawlerScheduler(self.get_crawler(), self.config.interval_minutes)
        return self._scheduler.start()

    def stop_scheduler(self) -> None:
        if self._scheduler is not None:
            self._scheduler.stop()
            self._scheduler = None

    @property
    def scheduler_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.is_running

    def close(self) -> None:
        self.stop_scheduler()
        if self._fetcher is not None:
            self._fetcher.close()
        if self._store is not None:
            self._store.close()


_container = ServiceContainer()


def get_container() -> ServiceContainer:
    return _container


@asynccontextmanager
async def lifespan(app: FastAPI):
    container = get_container()
    try:
        container.start_scheduler()
    except Exception as e:
        logger.error(f"Could not start legal crawler scheduler: {e}")
    yield
    container.close()


app = FastAPI(
    title="Legal Corpus API",
    description="Arabic legal source crawling and citation-aware retrieval",
    version=__version__,
    lifespan=lifespan,
)


# =============================================================================
# Admin authentication
# =============================================================================

async def require_admin_key(x_api_key: Optional[str] = Header(None)) -> None:
    """Check x-api-key against LEGAL_ADMIN_API_KEY when one is configured."""
    expected = os.getenv("LEGAL_ADMIN_API_KEY")
    if expected and x_api_key != expected:
        raise HTTPException(status_code=401, detail="Invalid API key")


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/api/v1/health", response_model=HealthResponse)
def health_check(container: ServiceContainer = Depends(get_container)):
    """Health check endpoint."""
    try:
        store_status = "connected" if container.get_store().ping() else "disconnected"
    except Exception as e:
        logger.warning(f"Health check: store unavailable: {e}")
        store_status = "disconnected"

    return HealthResponse(
        status="ok" if store_status == "connected" else "degraded",
        version=__version__,
        store=store_status,
        vector_retrieval=container.get_embeddings() is not None,
        crawler_enabled=container.config.crawler_enabled,
        scheduler_running=container.scheduler_running,
    )


@app.post("/api/v1/legal/search", response_model=SearchResponse)
def search(request: SearchRequest, container: ServiceContainer = Depends(get_container)):
    """Retrieve grounding snippets for an Arabic legal query."""
    start = time.time()
    snippets, decisions = container.get_retriever().retrieve_with_trace(
        request.query, top_k=request.top_k, scan_limit=SEARCH_SCAN_LIMIT
    )
    return SearchResponse(
        snippets=[SnippetInfo(**s.to_dict()) for s in snippets],
        tiers=[TierDecisionInfo(**d.to_dict()) for d in decisions],
        latency_ms=round((time.time() - start) * 1000, 2),
    )


@app.post(
    "/api/v1/legal/crawl",
    response_model=CrawlResponse,
    dependencies=[Depends(require_admin_key)],
)
def run_crawl(request: CrawlRequest, container: ServiceContainer = Depends(get_container)):
    """Run one crawl synchronously and report its counters."""
    seeds = [s.strip() for s in (request.seed_sitemaps or []) if s and s.strip()]
    result = container.get_crawler().run_once(seed_sitemaps=seeds or None, force=request.force)
    return CrawlResponse(**result.to_dict())


@app.get("/api/v1/metrics", dependencies=[Depends(require_admin_key)])
def metrics():
    return get_metrics_collector().get_metrics_dict()
