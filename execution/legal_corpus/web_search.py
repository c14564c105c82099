"""
Live-Web Fallback Strategies

Used only when a query asks for the wording of a specific numbered article
and the local corpus could not answer. Tried in this order:

    SerperSearchStrategy        -- paid search API (SERPER_API_KEY)
    BoeLaborLawStrategy         -- direct fetch of the gazette's labor-law page
    GoogleCustomSearchStrategy  -- Google Programmable Search (GOOGLE_API_KEY + GOOGLE_CSE_ID)
    DuckDuckGoHtmlStrategy      -- scrape of DuckDuckGo's HTML results page

Every candidate URL must be on an allow-listed government host. Each page is
stripped to text and the requested article is cut out from its heading up to
the next article heading.
"""

import re
import json
import logging
from typing import Optional
from urllib.parse import parse_qs, urlparse

import requests

from .config import BOE_LABOR_LAW_URL, LegalCorpusConfig
from .crawler import infer_source
from .http_client import HttpFetcher, host_matches
from .models import RetrievedSnippet
from .strategies import LABOR_LAW_TITLE, QueryAnalysis, RetrievalStrategy
from .text_normalizer import extract_article_span, extract_title, strip_html

logger = logging.getLogger(__name__)

SERPER_SEARCH_URL = "https://google.serper.dev/search"
GOOGLE_CSE_URL = "https://www.googleapis.com/customsearch/v1"
DUCKDUCKGO_HTML_URL = "https://html.duckduckgo.com/html/"

SEARCH_RESULT_SCORE = 0.9
BOE_DIRECT_SCORE = 0.95
MAX_RESULT_LINKS = 10

# result__a anchors, with class before or after href
_DDG_RESULT_PATTERNS = (
    re.compile(
        r"""<a[^>]+class=["']([^"']*\bresult__a\b[^"']*)["'][^>]+href=["']([^"']+)["']""",
        re.IGNORECASE,
    ),
    re.compile(
        r"""<a[^>]+href=["']([^"']+)["'][^>]+class=["']([^"']*\bresult__a\b[^"']*)["']""",
        re.IGNORECASE,
    ),
)


def extract_duckduckgo_links(html: str, limit: int = MAX_RESULT_LINKS) -> list[str]:
    """
    Result URLs from a DuckDuckGo HTML results page.

    Resolves protocol-relative and site-relative hrefs, and unwraps the
    /l/?uddg= redirector to the target URL.
    """
    raw = []
    class_first, href_first = _DDG_RESULT_PATTERNS
    raw.extend(m.group(2) for m in class_first.finditer(html or ""))
    raw.extend(m.group(1) for m in href_first.finditer(html or ""))

    links = []
    seen = set()
    for href in raw:
        href = href.strip().replace("&amp;", "&")
        if not href:
            continue
        if href.startswith("//"):
            href = f"https:{href}"
        elif href.startswith("/"):
            href = f"https://duckduckgo.com{href}"

        parsed = urlparse(href)
        if (parsed.hostname or "").endswith("duckduckgo.com") and parsed.path.startswith("/l/"):
            target = parse_qs(parsed.query).get("uddg")
            if target and target[0]:
                href = target[0]

        if href in seen:
            continue
        seen.add(href)
        links.append(href)
        if len(links) >= limit:
            break
    return links


class LiveWebStrategy(RetrievalStrategy):
    """Shared candidate filtering and article extraction for live-web tiers."""

    requires_article_request = True
    result_score = SEARCH_RESULT_SCORE

    def __init__(self, fetcher: HttpFetcher, config: Optional[LegalCorpusConfig] = None):
        self.fetcher = fetcher
        self.config = config or LegalCorpusConfig()

    def site_restriction(self) -> str:
        return "(" + " OR ".join(f"site:{host}" for host in self.config.trusted_hosts) + ")"

    def is_trusted(self, url: str) -> bool:
        try:
            parsed = urlparse(url)
        except ValueError:
            return False
        return parsed.scheme in ("http", "https") and host_matches(
            parsed.hostname or "", self.config.trusted_hosts
        )

    def search(self, analysis: QueryAnalysis) -> list[str]:
        """Candidate URLs for the requested article, best first."""
        raise NotImplementedError("Subclasses must implement search()")

    def try_retrieve(self, analysis, top_k, scan_limit):
        candidates = [u for u in self.search(analysis) if self.is_trusted(u)]
        candidates = candidates[: self.config.max_candidate_urls]
        logger.debug(f"{self.name}: {len(candidates)} trusted candidate URL(s)")

        for url in candidates:
            snippet = self.extract_from_url(url, analysis)
            if snippet:
                return [snippet]
        return []

    def extract_from_url(self, url: str, analysis: QueryAnalysis) -> Optional[RetrievedSnippet]:
        """Fetch one page and cut the requested article out of it."""
        try:
            resp = self.fetcher.get(url)
        except requests.RequestException as e:
            logger.debug(f"{self.name}: fetch failed for {url}: {e}")
            return None
        if not resp.ok:
            logger.debug(f"{self.name}: HTTP {resp.status} for {url}")
            return None

        span = extract_article_span(
            strip_html(resp.text),
            analysis.article_number,
            analysis.boe_label,
            min_chars=self.config.min_article_span_chars,
            max_chars=self.config.max_article_span_chars,
        )
        if not span:
            return None
        return RetrievedSnippet(
            text=span,
            score=self.result_score,
            source=infer_source(url),
            url=url,
            title=extract_title(resp.text),
            meta={"article": analysis.article_number, "provider": self.name},
        )

    def _json(self, resp) -> dict:
        if not resp.ok:
            logger.warning(f"{self.name}: search API returned HTTP {resp.status}")
            return {}
        try:
            return json.loads(resp.text or "{}")
        except ValueError as e:
            logger.warning(f"{self.name}: unparsable search response: {e}")
            return {}


class SerperSearchStrategy(LiveWebStrategy):
    """Google results through the Serper API, restricted to trusted hosts."""

    name = "serper"

    def skip_reason(self, analysis):
        if not self.config.serper_api_key:
            return "SERPER_API_KEY not configured"
        return None

    def search(self, analysis):
        resp = self.fetcher.post(
            SERPER_SEARCH_URL,
            json={
                "q": f"{analysis.web_search_phrase()} {self.site_restriction()}",
                "gl": "sa",
                "hl": "ar",
                "num": MAX_RESULT_LINKS,
            },
            headers={"X-API-KEY": self.config.serper_api_key, "Content-Type": "application/json"},
        )
        data = self._json(resp)
        return [item["link"] for item in data.get("organic", []) if item.get("link")]


class BoeLaborLawStrategy(LiveWebStrategy):
    """Fetch the gazette's labor-law page directly and cut out the article."""

    name = "boe_labor_law"
    result_score = BOE_DIRECT_SCORE

    def skip_reason(self, analysis):
        if not analysis.mentions_labor_law:
            return "query does not mention the labor law"
        return None

    def search(self, analysis):
        return [BOE_LABOR_LAW_URL]

    def extract_from_url(self, url, analysis):
        snippet = super().extract_from_url(url, analysis)
        if snippet:
            snippet.source = "BOE"
            snippet.title = LABOR_LAW_TITLE
            snippet.meta = {"law": "labor_law", "article": analysis.article_number}
        return snippet


class GoogleCustomSearchStrategy(LiveWebStrategy):
    """Google Programmable Search Engine results."""

    name = "google_cse"

    def skip_reason(self, analysis):
        if not (self.config.google_api_key and self.config.google_cse_id):
            return "GOOGLE_API_KEY/GOOGLE_CSE_ID not configured"
        return None

    def search(self, analysis):
        resp = self.fetcher.get(
            GOOGLE_CSE_URL,
            params={
                "key": self.config.google_api_key,
                "cx": self.config.google_cse_id,
                "q": f"{analysis.web_search_phrase()} {self.site_restriction()}",
                "num": MAX_RESULT_LINKS,
                "lr": "lang_ar",
            },
        )
        data = self._json(resp)
        return [item["link"] for item in data.get("items", []) if item.get("link")]


class DuckDuckGoHtmlStrategy(LiveWebStrategy):
    """Scrape DuckDuckGo's no-JS results page; needs no API key."""

    name = "duckduckgo"

    def search(self, analysis):
        resp = self.fetcher.get(
            DUCKDUCKGO_HTML_URL,
            params={"q": f"{analysis.web_search_phrase()} {self.site_restriction()}"},
        )
        if not resp.ok:
            logger.warning(f"{self.name}: results page returned HTTP {resp.status}")
            return []
        return extract_duckduckgo_links(resp.text)


def default_web_strategies(fetcher: HttpFetcher, config: LegalCorpusConfig) -> list[LiveWebStrategy]:
    """Live-web tiers in their fixed fallback order."""
    return [
        SerperSearchStrategy(fetcher, config),
        BoeLaborLawStrategy(fetcher, config),
        GoogleCustomSearchStrategy(fetcher, config),
        DuckDuckGoHtmlStrategy(fetcher, config),
    ]
