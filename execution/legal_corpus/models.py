"""
Data model for crawled legal sources.

A LegalSourceDocument is identified by its (source, url) pair and exclusively
owns its LegalSourceChunks. A CrawlerRun records one crawl invocation.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

DOCUMENT_STATUSES = ("ok", "error", "skipped")
RUN_STATUSES = ("running", "success", "error")


@dataclass
class LegalSourceDocument:
    """A fetched legal-source page."""
    source: str
    url: str
    id: Optional[int] = None
    title: Optional[str] = None
    content_text: Optional[str] = None  # None for non-indexable artifacts (sitemaps)
    content_hash: Optional[str] = None  # sha-256 hex of content_text
    http_status: Optional[int] = None
    etag: Optional[str] = None
    last_modified: Optional[str] = None
    fetched_at: Optional[datetime] = None
    status: str = "ok"
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source": self.source,
            "url": self.url,
            "title": self.title,
            "content_text": self.content_text,
            "content_hash": self.content_hash,
            "http_status": self.http_status,
            "etag": self.etag,
            "last_modified": self.last_modified,
            "fetched_at": self.fetched_at.isoformat() if self.fetched_at else None,
            "status": self.status,
            "error": self.error,
        }


@dataclass
class LegalSourceChunk:
    """A window of a document's normalized text."""
    document_id: int
    chunk_index: int
    text: str
    embedding: Optional[list[float]] = None
    meta: dict = field(default_factory=dict)


@dataclass
class ChunkRow:
    """A chunk joined with its document's identity, as listed by the store."""
    document_id: int
    chunk_index: int
    text: str
    source: str
    url: str
    title: Optional[str] = None
    embedding: Optional[list[float]] = None
    meta: Optional[dict] = None


@dataclass
class CrawlerRun:
    """Bookkeeping record for one crawl invocation."""
    id: int
    started_at: datetime
    status: str = "running"
    finished_at: Optional[datetime] = None
    pages_crawled: int = 0
    documents_updated: int = 0
    error: Optional[str] = None


@dataclass
class CrawlResult:
    """Outcome of LegalCrawler.run_once()."""
    skipped: bool = False
    reason: Optional[str] = None
    run_id: Optional[int] = None
    pages_crawled: int = 0
    documents_updated: int = 0
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "skipped": self.skipped,
            "reason": self.reason,
            "run_id": self.run_id,
            "pages_crawled": self.pages_crawled,
            "documents_updated": self.documents_updated,
            "error": self.error,
        }


@dataclass
class RetrievedSnippet:
    """A ranked passage returned by the retrieval engine."""
    text: str
    score: float
    source: str
    url: str
    title: Optional[str] = None
    meta: Optional[dict] = None

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "score": self.score,
            "source": self.source,
            "url": self.url,
            "title": self.title,
            "meta": self.meta,
        }
