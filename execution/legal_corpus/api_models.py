"""
Pydantic models for the legal corpus FastAPI backend.
"""

from typing import Optional
from pydantic import BaseModel, Field


class SearchRequest(BaseModel):
    """Request body for the retrieval endpoint."""
    query: str = Field(..., max_length=2000)
    top_k: int = Field(default=5, ge=1, le=10)


class SnippetInfo(BaseModel):
    """One retrieved passage."""
    text: str
    score: float
    source: str
    url: str
    title: Optional[str] = None
    meta: Optional[dict] = None


class TierDecisionInfo(BaseModel):
    """What one retrieval tier did with the query."""
    tier: str
    outcome: str
    reason: Optional[str] = None
    top_score: Optional[float] = None
    result_count: int = 0


class SearchResponse(BaseModel):
    """Response body for the retrieval endpoint."""
    snippets: list[SnippetInfo]
    tiers: list[TierDecisionInfo] = []
    latency_ms: float


class CrawlRequest(BaseModel):
    """Request body for an on-demand crawl."""
    seed_sitemaps: Optional[list[str]] = None
    force: bool = True


class CrawlResponse(BaseModel):
    """Outcome of an on-demand crawl."""
    skipped: bool = False
    reason: Optional[str] = None
    run_id: Optional[int] = None
    pages_crawled: int = 0
    documents_updated: int = 0
    error: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    store: str
    vector_retrieval: bool
    crawler_enabled: bool
    scheduler_running: bool = False
