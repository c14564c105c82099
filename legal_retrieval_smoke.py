"""
Smoke test for legal retrieval against the live configuration.

Runs one query through the full cascade and prints the snippets plus the
decision of every tier. When nothing comes back, prints diagnostics for the
gazette's labor-law page and DuckDuckGo's HTML results so a blocked host or
changed markup is easy to spot.

Usage:
    python legal_retrieval_smoke.py
    python legal_retrieval_smoke.py "نص المادة 107 من نظام العمل" --top-k 3
"""

import os
import sys
import argparse
import logging
from pathlib import Path
from dotenv import load_dotenv

# Ensure project root is on path
PROJECT_ROOT = Path(__file__).resolve().parent
sys.path.insert(0, str(PROJECT_ROOT))
load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)

DEFAULT_QUERY = "نص المادة 1 من نظام العمل"
DIAGNOSTIC_DDG_QUERY = "نص المادة الأولى من نظام العمل تسري أحكام هذا النظام"


def print_diagnostics(fetcher):
    """Fetch the gazette page and query DuckDuckGo directly."""
    import requests
    from execution.legal_corpus.config import BOE_LABOR_LAW_URL
    from execution.legal_corpus.web_search import DUCKDUCKGO_HTML_URL, extract_duckduckgo_links

    print("\n[smoke] fetching BOE raw HTML...")
    try:
        boe = fetcher.get(BOE_LABOR_LAW_URL)
        print(f"[smoke] BOE status {boe.status} ok {boe.ok} len {len(boe.text)}")
        for needle in ("المادة الأولى", "المادة الاولى", "تسري أحكام هذا النظام"):
            print(f"[smoke] BOE has({needle}) {needle in boe.text}")
    except requests.RequestException as e:
        print(f"[smoke] BOE fetch failed: {e}")

    print("\n[smoke] fetching DuckDuckGo HTML...")
    try:
        ddg = fetcher.get(DUCKDUCKGO_HTML_URL, params={"q": DIAGNOSTIC_DDG_QUERY})
        print(f"[smoke] DDG status {ddg.status} ok {ddg.ok} len {len(ddg.text)}")
        urls = extract_duckduckgo_links(ddg.text)
        print(f"[smoke] DDG extracted urls {len(urls)}")
        for url in urls:
            print(f"[smoke] DDG url {url}")
        print("[smoke] DDG preview:\n", " ".join(ddg.text[:800].split()))
    except requests.RequestException as e:
        print(f"[smoke] DDG fetch failed: {e}")


def main():
    parser = argparse.ArgumentParser(description="Run one legal retrieval query")
    parser.add_argument("query", nargs="?", default=None, help="Arabic legal query")
    parser.add_argument("--top-k", type=int, default=6, help="Snippets to return (default: 6)")
    parser.add_argument("--scan-limit", type=int, default=500, help="Stored chunks to scan (default: 500)")
    args = parser.parse_args()

    query = (args.query or os.getenv("LEGAL_QUERY") or DEFAULT_QUERY).strip()

    from execution.legal_corpus.config import LegalCorpusConfig
    from execution.legal_corpus.embeddings import get_embedding_service
    from execution.legal_corpus.http_client import HttpFetcher
    from execution.legal_corpus.retriever import LegalRetriever
    from execution.legal_corpus.store import create_store

    config = LegalCorpusConfig.from_env()
    store = create_store(config)
    fetcher = HttpFetcher(config)
    retriever = LegalRetriever(store, get_embedding_service(config), fetcher, config)

    print(f"[smoke] query {query}")
    snippets, decisions = retriever.retrieve_with_trace(
        query, top_k=args.top_k, scan_limit=args.scan_limit
    )
    for d in decisions:
        print(f"[smoke] tier {d.tier}: {d.outcome}" + (f" ({d.reason})" if d.reason else ""))
    print(f"[smoke] snippets.length {len(snippets)}")

    for i, s in enumerate(snippets, start=1):
        print(f"\n--- snippet {i} ---")
        print("score:", s.score)
        print("source:", s.source)
        print("url:", s.url)
        print("text:\n", s.text)

    if not snippets:
        print_diagnostics(fetcher)

    fetcher.close()
    store.close()


if __name__ == "__main__":
    main()
