"""
Cascading Retriever for Arabic Legal Queries

Walks an ordered list of retrieval strategies and returns the first result
that passes the acceptance gate:

1. Vector similarity over stored embeddings (when an embedding provider is set)
2. Keyword containment over stored chunks
3. Live web (only for queries asking for a specific article's wording):
   Serper -> gazette labor-law page -> Google CSE -> DuckDuckGo HTML
4. Static cache of pre-verified labor-law articles

Tiers are never blended. Every tier decision is recorded as a TierDecision
so a rejected high-scoring result is visible in logs and traces.
Retrieval never raises; the worst case is an empty list.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .config import LegalCorpusConfig
from .http_client import HttpFetcher
from .language_patterns import PROMPT_LABELS
from .metrics import get_metrics_collector
from .models import RetrievedSnippet
from .store import LegalSourceStore
from .strategies import (
    KeywordStrategy,
    QueryAnalysis,
    RetrievalStrategy,
    StaticCacheStrategy,
    VectorStrategy,
)
from .web_search import default_web_strategies

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 6
DEFAULT_SCAN_LIMIT = 400

TIER_OUTCOMES = ("accepted", "rejected", "empty", "skipped", "error")


@dataclass
class TierDecision:
    """What one tier did with one query."""
    tier: str
    outcome: str  # one of TIER_OUTCOMES
    reason: Optional[str] = None
    top_score: Optional[float] = None
    result_count: int = 0

    def to_dict(self) -> dict:
        return {
            "tier": self.tier,
            "outcome": self.outcome,
            "reason": self.reason,
            "top_score": self.top_score,
            "result_count": self.result_count,
        }


class LegalRetriever:
    """
    Retrieval engine over the legal source store plus live-web fallbacks.

    Holds no per-query state, so one instance serves concurrent callers.
    """

    def __init__(
        self,
        store: LegalSourceStore,
        embeddings=None,
        fetcher: Optional[HttpFetcher] = None,
        config: Optional[LegalCorpusConfig] = None,
        strategies: Optional[list[RetrievalStrategy]] = None,
    ):
        self.store = store
        self.embeddings = embeddings
        self.config = config or LegalCorpusConfig()
        self.fetcher = fetcher or HttpFetcher(self.config)
        self.strategies = strategies if strategies is not None else self._default_strategies()

    def _default_strategies(self) -> list[RetrievalStrategy]:
        strategies: list[RetrievalStrategy] = []
        if self.embeddings is not None:
            strategies.append(VectorStrategy(self.store, self.embeddings, self.config))
        strategies.append(KeywordStrategy(self.store))
        strategies.extend(default_web_strategies(self.fetcher, self.config))
        strategies.append(StaticCacheStrategy())
        return strategies

    def retrieve(
        self,
        query: str,
        top_k: int = DEFAULT_TOP_K,
        scan_limit: int = DEFAULT_SCAN_LIMIT,
    ) -> list[RetrievedSnippet]:
        """Ranked snippets for a query, or [] when nothing is found."""
        snippets, _ = self.retrieve_with_trace(query, top_k=top_k, scan_limit=scan_limit)
        return snippets

    def retrieve_with_trace(
        self,
        query: str,
        top_k: int = DEFAULT_TOP_K,
        scan_limit: int = DEFAULT_SCAN_LIMIT,
    ) -> tuple[list[RetrievedSnippet], list[TierDecision]]:
        """Like retrieve(), also returning the decision each tier made."""
        decisions: list[TierDecision] = []
        if not query or not query.strip() or top_k <= 0:
            return [], decisions

        try:
            return self._cascade(query, top_k, scan_limit, decisions), decisions
        except Exception:
            logger.exception("Retrieval failed; returning no snippets")
            return [], decisions

    def _cascade(
        self,
        query: str,
        top_k: int,
        scan_limit: int,
        decisions: list[TierDecision],
    ) -> list[RetrievedSnippet]:
        with get_metrics_collector().track_retrieval(query) as tracker:
            analysis = QueryAnalysis.from_query(query)
            logger.debug(
                f"Query analysis: article={analysis.article_number} "
                f"label={analysis.boe_label} article_text={analysis.requests_article_text}"
            )

            for strategy in self.strategies:
                decision, snippets = self._run_tier(strategy, analysis, top_k, scan_limit)
                decisions.append(decision)
                self._log_decision(decision)
                if decision.outcome == "accepted":
                    tracker.set_results(len(snippets), tier=strategy.name)
                    return snippets

            tracker.set_results(0)
            return []

    def _run_tier(
        self,
        strategy: RetrievalStrategy,
        analysis: QueryAnalysis,
        top_k: int,
        scan_limit: int,
    ) -> tuple[TierDecision, list[RetrievedSnippet]]:
        if strategy.requires_article_request and not analysis.requests_article_text:
            return TierDecision(strategy.name, "skipped", "query does not request article text"), []

        reason = strategy.skip_reason(analysis)
        if reason:
            return TierDecision(strategy.name, "skipped", reason), []

        try:
            snippets = strategy.try_retrieve(analysis, top_k, scan_limit) or []
        except Exception as e:
            logger.warning(f"Retrieval tier {strategy.name} failed: {e}")
            return TierDecision(strategy.name, "error", str(e)), []

        if not snippets:
            return TierDecision(strategy.name, "empty"), []

        top_score = snippets[0].score
        decision = TierDecision(strategy.name, "accepted", top_score=top_score, result_count=len(snippets))
        if strategy.min_score is not None and top_score < strategy.min_score:
            decision.outcome = "rejected"
            decision.reason = f"top score {top_score:.3f} below {strategy.min_score}"
            return decision, []
        if not analysis.accepts(snippets):
            decision.outcome = "rejected"
            decision.reason = "citation mismatch"
            return decision, []
        return decision, snippets

    def _log_decision(self, decision: TierDecision) -> None:
        level = logging.INFO if self.config.retrieval_debug else logging.DEBUG
        score = f" top_score={decision.top_score:.3f}" if decision.top_score is not None else ""
        reason = f" ({decision.reason})" if decision.reason else ""
        logger.log(level, f"[retrieval] tier={decision.tier} outcome={decision.outcome}{score}{reason}")


def format_snippets_for_prompt(snippets: list[RetrievedSnippet]) -> str:
    """
    Grounding block for the chat model: numbered snippets with source,
    title, link and text, under a header instructing verbatim citation.
    """
    if not snippets:
        return PROMPT_LABELS["empty"]

    lines = [PROMPT_LABELS["header"]]
    for idx, s in enumerate(snippets, start=1):
        title = f" | {s.title}" if s.title else ""
        lines.append(f"\n[{idx}] {PROMPT_LABELS['source']}: {s.source}{title}")
        lines.append(f"{PROMPT_LABELS['link']}: {s.url}")
        lines.append(f"{PROMPT_LABELS['excerpt']}:\n{s.text}")
    return "\n".join(lines)
