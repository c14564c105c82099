"""
Retrieval Strategies over the Local Corpus

Each tier of the retrieval cascade is a strategy object:

    VectorStrategy       -- cosine similarity over stored chunk embeddings
    KeywordStrategy      -- substring-containment count over store chunks
    StaticCacheStrategy  -- pre-verified labor-law articles, last resort

The live-web tiers live in web_search.py. LegalRetriever walks an ordered
list of strategies and stops at the first accepted result.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .config import BOE_LABOR_LAW_URL, LegalCorpusConfig
from .language_patterns import (
    ARTICLE_WORD,
    LABOR_LAW_PATTERN,
    LABOR_LAW_TERM,
    LABOR_OFFICE_PATTERN,
)
from .models import ChunkRow, RetrievedSnippet
from .store import LegalSourceStore
from .text_normalizer import (
    article_label_boe_style,
    extract_article_number,
    is_article_text_query,
    looks_like_requested_article_text,
    normalize_digits,
    tokenize_query,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Query Analysis
# =============================================================================


@dataclass(frozen=True)
class QueryAnalysis:
    """What a query asks for, computed once per retrieval call."""
    query: str
    normalized: str
    article_number: Optional[int] = None
    is_article_text_query: bool = False
    boe_label: Optional[str] = None
    names_labor_law: bool = False
    names_labor_office: bool = False

    @classmethod
    def from_query(cls, query: str) -> "QueryAnalysis":
        query = (query or "").strip()
        normalized = normalize_digits(query)
        number = extract_article_number(normalized)
        return cls(
            query=query,
            normalized=normalized,
            article_number=number,
            is_article_text_query=is_article_text_query(normalized),
            boe_label=article_label_boe_style(number) if number is not None else None,
            names_labor_law=bool(LABOR_LAW_PATTERN.search(query)),
            names_labor_office=bool(LABOR_OFFICE_PATTERN.search(query)),
        )

    @property
    def mentions_labor_law(self) -> bool:
        return self.names_labor_law or self.names_labor_office

    @property
    def requests_article_text(self) -> bool:
        """The query demands the wording of one specific, numbered article."""
        return self.is_article_text_query and self.article_number is not None

    def accepts(self, snippets: list[RetrievedSnippet]) -> bool:
        """Acceptance gate applied to every tier's ranked output."""
        if not snippets:
            return False
        if not self.requests_article_text:
            return True
        return looks_like_requested_article_text(
            snippets[0].text, self.article_number, self.boe_label
        )

    def web_search_phrase(self) -> str:
        """Search-engine phrase for the requested article, e.g. "نص المادة السابعة بعد المائة نظام العمل"."""
        article = self.boe_label or str(self.article_number)
        phrase = f"نص {ARTICLE_WORD} {article}"
        if self.mentions_labor_law:
            phrase = f"{phrase} {LABOR_LAW_TERM}"
        return phrase


# =============================================================================
# Strategy Base
# =============================================================================


class RetrievalStrategy:
    """
    One retrieval tier.

    Subclasses set `name`, optionally `requires_article_request` (tier only
    runs for specific article requests) and `min_score` (top result must
    reach it), and implement try_retrieve().
    """

    name = "base"
    requires_article_request = False
    min_score: Optional[float] = None

    def skip_reason(self, analysis: QueryAnalysis) -> Optional[str]:
        """Why this tier does not apply to the query, or None if it does."""
        return None

    def try_retrieve(
        self,
        analysis: QueryAnalysis,
        top_k: int,
        scan_limit: int,
    ) -> list[RetrievedSnippet]:
        raise NotImplementedError("Subclasses must implement try_retrieve()")


def _snippet_from_row(row: ChunkRow, score: float) -> RetrievedSnippet:
    return RetrievedSnippet(
        text=row.text or "",
        score=score,
        source=row.source or "",
        url=row.url or "",
        title=row.title,
        meta=row.meta,
    )


def _rank(snippets: list[RetrievedSnippet], top_k: int) -> list[RetrievedSnippet]:
    """Drop unusable rows, sort by descending score (stable), keep top_k."""
    usable = [s for s in snippets if s.text.strip() and s.url.strip()]
    return sorted(usable, key=lambda s: -s.score)[:top_k]


# =============================================================================
# Vector Tier
# =============================================================================


def cosine_similarity(a, b) -> float:
    """Cosine similarity; 0.0 for empty, zero-norm or mismatched vectors."""
    if a is None or b is None:
        return 0.0
    a_arr = np.asarray(a, dtype=float)
    b_arr = np.asarray(b, dtype=float)
    if a_arr.size == 0 or a_arr.shape != b_arr.shape:
        return 0.0
    norm_a = np.linalg.norm(a_arr)
    norm_b = np.linalg.norm(b_arr)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(a_arr, b_arr) / (norm_a * norm_b))


class VectorStrategy(RetrievalStrategy):
    """Embed the query and rank stored chunk embeddings by cosine similarity."""

    name = "vector"

    def __init__(self, store: LegalSourceStore, embeddings, config: Optional[LegalCorpusConfig] = None):
        self.store = store
        self.embeddings = embeddings
        self.config = config or LegalCorpusConfig()
        self.min_score = self.config.vector_min_score

    def skip_reason(self, analysis: QueryAnalysis) -> Optional[str]:
        if self.embeddings is None:
            return "no embedding provider configured"
        return None

    def try_retrieve(self, analysis, top_k, scan_limit):
        query_vector = self.embeddings.embed_text(analysis.query)
        if not query_vector:
            return []

        rows = self.store.list_chunks_with_embeddings(scan_limit)
        scored = [_snippet_from_row(row, cosine_similarity(query_vector, row.embedding)) for row in rows]
        return _rank(scored, top_k)


# =============================================================================
# Keyword Tier
# =============================================================================


def build_keyword_terms(analysis: QueryAnalysis) -> list[str]:
    """
    Term set for the keyword tier, de-duplicated in insertion order:
    article number forms, the labor-law name when only the labor office is
    mentioned, then informative query tokens.
    """
    terms = []
    n = analysis.article_number
    if n is not None:
        terms.append(str(n))
        terms.append(f"{ARTICLE_WORD} {n}")
        if analysis.boe_label:
            terms.append(f"{ARTICLE_WORD} {analysis.boe_label}")

    if analysis.names_labor_office and not analysis.names_labor_law:
        terms.append(LABOR_LAW_TERM)

    terms.extend(tokenize_query(analysis.normalized))
    return list(dict.fromkeys(terms))


def score_text_by_terms(text: str, terms: list[str]) -> int:
    """Number of terms contained in text (case-insensitive, unweighted)."""
    haystack = (text or "").lower()
    return sum(1 for term in terms if term and term.lower() in haystack)


class KeywordStrategy(RetrievalStrategy):
    """Rank chunks containing query terms by how many distinct terms they contain."""

    name = "keyword"

    def __init__(self, store: LegalSourceStore):
        self.store = store

    def skip_reason(self, analysis: QueryAnalysis) -> Optional[str]:
        if not build_keyword_terms(analysis):
            return "no keyword terms in query"
        return None

    def try_retrieve(self, analysis, top_k, scan_limit):
        terms = build_keyword_terms(analysis)
        rows = self.store.list_chunks_by_keyword(terms, max(scan_limit, top_k * 10))
        scored = [_snippet_from_row(row, float(score_text_by_terms(row.text, terms))) for row in rows]
        return _rank([s for s in scored if s.score > 0], top_k)


# =============================================================================
# Static Cache Tier
# =============================================================================

LABOR_LAW_TITLE = "نظام العمل"

# Pre-verified gazette wording, keyed by labor-law article number
STATIC_LABOR_LAW_ARTICLES = {
    1: "المادة الأولى:\nيسمى هذا النظام نظام العمل.",
    107: (
        "المادة السابعة بعد المائة:\n"
        "1- يجب على صاحب العمل أن يدفع للعامل عن ساعات العمل الإضافية أجراً إضافياً "
        "يوازي أجر الساعة مضافاً إليه (50%) من أجره الأساسي.\n"
        "2- إذا كانت المنشأة تأخذ بنظام الساعات المعيارية وفقاً للمادة (الثامنة بعد المائة) "
        "من هذا النظام، فتعد ساعات العمل الإضافية تلك التي تزيد على ساعات العمل المعيارية.\n"
        "3- تعد جميع ساعات العمل التي تؤدى في أيام العطل والأعياد ساعات إضافية."
    ),
}


class StaticCacheStrategy(RetrievalStrategy):
    """Serve the labor-law articles that are requested most often from memory."""

    name = "static_cache"
    score = 1.0

    def __init__(self, articles: Optional[dict] = None):
        self.articles = STATIC_LABOR_LAW_ARTICLES if articles is None else articles

    def skip_reason(self, analysis: QueryAnalysis) -> Optional[str]:
        if analysis.article_number is None:
            return "no article number in query"
        if not analysis.mentions_labor_law:
            return "query does not mention the labor law"
        return None

    def try_retrieve(self, analysis, top_k, scan_limit):
        text = self.articles.get(analysis.article_number)
        if not text:
            return []
        return [RetrievedSnippet(
            text=text,
            score=self.score,
            source="BOE",
            url=BOE_LABOR_LAW_URL,
            title=LABOR_LAW_TITLE,
            meta={"law": "labor_law", "article": analysis.article_number, "cached": True},
        )]
