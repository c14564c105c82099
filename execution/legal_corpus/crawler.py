"""
Legal Source Crawler

Discovers legal-source pages from seed sitemaps or pages, fetches them one at
a time, detects unchanged content by sha-256 and (re)builds the chunk set of
every page whose text changed.

Phases per run:
1. Discover: seeds -> sitemap <loc> entries (one level of sitemap-index
   recursion) or the seed page plus its same-host links
2. Fetch + classify: XML artifacts are stored without text; HTML is stripped
3. Change detection: unchanged hash -> status=skipped, chunks untouched
4. Index: chunk, optionally embed in batches, replace the chunk set atomically

Requests are strictly sequential with fixed politeness delays.
"""

import time
import hashlib
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional
from urllib.parse import urldefrag, urljoin, urlparse

import requests
from bs4 import BeautifulSoup

from .chunker import TextChunker
from .config import LegalCorpusConfig
from .http_client import HttpFetcher
from .metrics import get_metrics_collector
from .models import CrawlResult, LegalSourceChunk
from .store import LegalSourceStore
from .text_normalizer import extract_title, strip_html

logger = logging.getLogger(__name__)

# Checked in order; the first hostname fragment that matches wins
SOURCE_TAGS = (
    ("laws.moj.gov.sa", "MOJ_LAWS"),
    ("boe.gov.sa", "BOE"),
    ("cma.org.sa", "CMA"),
    ("cma.gov.sa", "CMA"),
    ("sama.gov.sa", "SAMA"),
    ("zatca.gov.sa", "ZATCA"),
    ("expro.gov.sa", "EXPRO"),
    ("nazaha.gov.sa", "NAZAHA"),
)

_SKIPPED_HREF_PREFIXES = ("#", "javascript:", "mailto:")


@dataclass
class CrawledPage:
    """Result of fetching one URL."""
    url: str
    status: Optional[int] = None
    title: Optional[str] = None
    text: str = ""
    raw_body: str = ""
    content_type: str = ""
    etag: Optional[str] = None
    last_modified: Optional[str] = None
    error: Optional[str] = None
    is_xml: bool = False


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def infer_source(url: str) -> str:
    """Short source tag for a URL, e.g. laws.boe.gov.sa -> "BOE"."""
    try:
        host = (urlparse(url).hostname or "").lower()
    except ValueError:
        return "UNKNOWN"
    if not host:
        return "UNKNOWN"
    for fragment, tag in SOURCE_TAGS:
        if fragment in host:
            return tag
    return host


def is_xml_artifact(content_type: str, body: str) -> bool:
    """True for sitemap-like XML responses that list <loc> entries."""
    raw = (body or "").strip()
    looks_xml = (
        "xml" in (content_type or "").lower()
        or raw.startswith("<?xml")
        or "<urlset" in raw
        or "<sitemapindex" in raw
    )
    return looks_xml and "<loc>" in raw


def parse_sitemap(xml: str) -> list[str]:
    """Return the <loc> URLs of a sitemap or sitemap index, in document order."""
    soup = BeautifulSoup(xml or "", "html.parser")
    locs = []
    for loc in soup.find_all("loc"):
        value = loc.get_text(strip=True)
        if value:
            locs.append(value)
    return locs


def extract_links(html: str, base_url: str, path_denylist=()) -> list[str]:
    """
    Same-host http(s) links of a page, de-duplicated in document order.

    Drops fragment-only, javascript: and mailto: hrefs, strips fragments and
    skips paths under the denylist.
    """
    base = urlparse(base_url)
    if not base.hostname:
        return []

    soup = BeautifulSoup(html or "", "html.parser")
    seen = set()
    links = []
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.lower().startswith(_SKIPPED_HREF_PREFIXES):
            continue
        try:
            absolute, _ = urldefrag(urljoin(base_url, href))
            parsed = urlparse(absolute)
        except ValueError:
            continue
        if parsed.scheme not in ("http", "https"):
            continue
        if parsed.hostname != base.hostname:
            continue
        if any(parsed.path.startswith(prefix) for prefix in path_denylist):
            continue
        if absolute not in seen:
            seen.add(absolute)
            links.append(absolute)
    return links


class LegalCrawler:
    """
    Sequential crawler writing documents, chunks and run records to a store.

    Usage:
        crawler = LegalCrawler(store, HttpFetcher(config), embeddings, config)
        result = crawler.run_once(force=True)
    """

    def __init__(
        self,
        store: LegalSourceStore,
        fetcher: Optional[HttpFetcher] = None,
        embeddings=None,
        config: Optional[LegalCorpusConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.config = config or LegalCorpusConfig()
        self.fetcher = fetcher or HttpFetcher(self.config)
        self.embeddings = embeddings
        self.chunker = TextChunker()
        self._sleep = sleep
        self._run_lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    def run_once(self, seed_sitemaps: Optional[list[str]] = None, force: bool = False) -> CrawlResult:
        """Execute one crawl run. Never leaves a run record in "running"."""
        if not self.config.crawler_enabled and not force:
            return CrawlResult(skipped=True, reason="LEGAL_CRAWLER_ENABLED is not true")

        if not self._run_lock.acquire(blocking=False):
            return CrawlResult(skipped=True, reason="crawl already in progress")

        try:
            return self._run(seed_sitemaps or self.config.effective_seeds)
        finally:
            self._run_lock.release()

    def _run(self, seeds: list[str]) -> CrawlResult:
        run_id = self.store.create_run()
        pages_crawled = 0
        documents_updated = 0
        start = time.time()
        logger.info(f"Crawl run {run_id} started with {len(seeds)} seed(s)")

        try:
            urls = self.discover(seeds)
            logger.info(f"Run {run_id}: discovered {len(urls)} URL(s)")

            for url in urls[: self.config.max_pages_per_run]:
                pages_crawled += 1
                if self.index_page(url):
                    documents_updated += 1
                self._sleep(self.config.page_delay_s)

            self.store.finish_run(run_id, "success", pages_crawled, documents_updated)
            logger.info(
                f"Crawl run {run_id} finished: {pages_crawled} pages, "
                f"{documents_updated} documents updated"
            )
            result = CrawlResult(
                run_id=run_id,
                pages_crawled=pages_crawled,
                documents_updated=documents_updated,
            )
        except Exception as e:
            logger.exception(f"Crawl run {run_id} failed")
            self.store.finish_run(run_id, "error", pages_crawled, documents_updated, str(e))
            result = CrawlResult(
                run_id=run_id,
                pages_crawled=pages_crawled,
                documents_updated=documents_updated,
                error=str(e),
            )

        get_metrics_collector().record_crawl_run(
            status="error" if result.error else "success",
            pages_crawled=pages_crawled,
            documents_updated=documents_updated,
            duration_s=time.time() - start,
        )
        return result

    # -------------------------------------------------------------------------
    # Discovery
    # -------------------------------------------------------------------------

    def discover(self, seeds: list[str]) -> list[str]:
        """Expand seeds into at most max_pages_per_run candidate page URLs."""
        limit = self.config.max_pages_per_run
        found: list[str] = []
        seen = set()

        def add(url: str) -> None:
            if len(found) < limit and url not in seen:
                seen.add(url)
                found.append(url)

        for seed in seeds:
            if len(found) >= limit:
                break
            page = self.fetch_page(seed)
            self._sleep(self.config.discovery_delay_s)
            if page.error or not page.raw_body:
                logger.warning(f"Seed {seed} unavailable: {page.error or 'empty body'}")
                continue

            raw = page.raw_body
            locs = parse_sitemap(raw) if "<loc>" in raw else []
            if not locs:
                add(seed)
                for link in extract_links(raw, seed, self.config.path_denylist):
                    add(link)
                continue

            if "<sitemapindex" not in raw:
                for loc in locs:
                    add(loc)
                continue

            for nested in locs[: self.config.max_nested_sitemaps]:
                if len(found) >= limit:
                    break
                nested_page = self.fetch_page(nested)
                self._sleep(self.config.discovery_delay_s)
                if nested_page.error:
                    logger.warning(f"Nested sitemap {nested} unavailable: {nested_page.error}")
                    continue
                for loc in parse_sitemap(nested_page.raw_body):
                    add(loc)

        return found

    # -------------------------------------------------------------------------
    # Fetch
    # -------------------------------------------------------------------------

    def fetch_page(self, url: str) -> CrawledPage:
        """GET one URL; transport and HTTP failures come back as page.error."""
        try:
            resp = self.fetcher.get(url)
        except requests.RequestException as e:
            logger.warning(f"Fetch failed for {url}: {e}")
            return CrawledPage(url=url, error=str(e) or e.__class__.__name__)

        page = CrawledPage(
            url=url,
            status=resp.status,
            raw_body=resp.text or "",
            content_type=resp.content_type,
            etag=resp.header("etag"),
            last_modified=resp.header("last-modified"),
        )
        if not resp.ok:
            page.error = f"HTTP {resp.status} {resp.reason}".strip()
            return page

        if is_xml_artifact(page.content_type, page.raw_body):
            page.is_xml = True
            return page

        page.title = extract_title(page.raw_body)
        page.text = strip_html(page.raw_body)
        return page

    # -------------------------------------------------------------------------
    # Index
    # -------------------------------------------------------------------------

    def index_page(self, url: str) -> bool:
        """
        Fetch, dedup and index one page.

        Returns:
            True when the page's chunk set was rebuilt from new content
        """
        page = self.fetch_page(url)
        source = infer_source(url)
        fetched_at = datetime.now(timezone.utc)
        fetch_meta = {
            "title": page.title,
            "http_status": page.status,
            "etag": page.etag,
            "last_modified": page.last_modified,
            "fetched_at": fetched_at,
        }

        if page.is_xml:
            doc_id = self.store.upsert_document(source, url, {
                **fetch_meta,
                "content_text": None,
                "content_hash": None,
                "status": "ok",
                "error": None,
            })
            self.store.replace_chunks(doc_id, [])
            logger.info(f"[ok] {url} (XML artifact, not indexed)")
            return False

        if page.error:
            doc_id = self.store.upsert_document(source, url, {
                **fetch_meta,
                "content_text": None,
                "content_hash": None,
                "status": "error",
                "error": page.error,
            })
            self.store.replace_chunks(doc_id, [])
            logger.info(f"[error] {url}: {page.error}")
            return False

        content_hash = sha256_hex(page.text) if page.text else None
        existing = self.store.get_document(source, url)
        if existing and existing.content_hash and existing.content_hash == content_hash:
            # content_text and content_hash are left as stored
            self.store.upsert_document(source, url, {**fetch_meta, "status": "skipped", "error": None})
            logger.info(f"[skipped] {url} (unchanged)")
            return False

        chunks = []
        if len(page.text) > self.config.min_indexable_chars:
            chunks = self._build_chunks(page, source)

        doc_id = self.store.upsert_document(source, url, {
            **fetch_meta,
            "content_text": page.text or None,
            # Hash is written only after the chunk set is replaced
            "content_hash": None,
            "status": "ok",
            "error": None,
        })
        for chunk in chunks:
            chunk.document_id = doc_id
        self.store.replace_chunks(doc_id, chunks)
        self.store.upsert_document(source, url, {"content_hash": content_hash})

        logger.info(f"[ok] {url} ({len(chunks)} chunks)")
        return bool(chunks)

    def _build_chunks(self, page: CrawledPage, source: str) -> list[LegalSourceChunk]:
        texts = self.chunker.chunk(page.text)
        vectors = self._embed(texts) if self.embeddings is not None else None
        meta = {"source": source, "url": page.url, "title": page.title}
        return [
            LegalSourceChunk(
                document_id=0,
                chunk_index=i,
                text=text,
                embedding=vectors[i] if vectors else None,
                meta=dict(meta),
            )
            for i, text in enumerate(texts)
        ]

    def _embed(self, texts: list[str]) -> Optional[list[list[float]]]:
        """Embed chunk texts in fixed-size batches; None if the provider fails."""
        size = self.config.embed_batch_size
        vectors: list[list[float]] = []
        try:
            for i in range(0, len(texts), size):
                vectors.extend(self.embeddings.embed_texts(texts[i:i + size]))
                self._sleep(self.config.embed_batch_delay_s)
        except Exception as e:
            # Chunks are still stored so the keyword tier can serve them
            logger.warning(f"Embedding failed, storing chunks without vectors: {e}")
            return None
        if len(vectors) != len(texts):
            logger.warning(f"Embedding count mismatch: {len(vectors)} vectors for {len(texts)} chunks")
            return None
        return vectors
