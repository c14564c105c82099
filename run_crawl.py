"""
Run the legal-source crawler once from the command line.

Crawls the configured seeds (or --seed URLs), writes documents, chunks and a
run record to the configured store (POSTGRES_URL, else in-memory) and prints
the run summary.

Usage:
    python run_crawl.py --force                       # crawl even if LEGAL_CRAWLER_ENABLED is unset
    python run_crawl.py --seed https://laws.boe.gov.sa/sitemap.xml --max-pages 50
"""

import sys
import json
import argparse
import logging
from dataclasses import replace
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


def main():
    parser = argparse.ArgumentParser(description="Run one legal-source crawl")
    parser.add_argument("--seed", action="append", default=[], help="Seed sitemap or page URL (repeatable)")
    parser.add_argument("--max-pages", type=int, default=None, help="Maximum pages to crawl this run")
    parser.add_argument("--force", action="store_true", help="Run even when LEGAL_CRAWLER_ENABLED is not true")
    args = parser.parse_args()

    from execution.legal_corpus.config import LegalCorpusConfig
    from execution.legal_corpus.crawler import LegalCrawler
    from execution.legal_corpus.embeddings import get_embedding_service
    from execution.legal_corpus.http_client import HttpFetcher
    from execution.legal_corpus.store import create_store

    config = LegalCorpusConfig.from_env()
    if args.max_pages is not None:
        config = replace(config, max_pages_per_run=max(args.max_pages, 0))

    store = create_store(config)
    fetcher = HttpFetcher(config)
    embeddings = get_embedding_service(config)
    logger.info(f"Embeddings: {'enabled' if embeddings else 'disabled'}")

    crawler = LegalCrawler(store, fetcher, embeddings, config)
    try:
        result = crawler.run_once(seed_sitemaps=args.seed or None, force=args.force)
    finally:
        fetcher.close()
        store.close()

    print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    if result.skipped:
        logger.warning(f"Crawl skipped: {result.reason}")
    sys.exit(1 if result.error else 0)


if __name__ == "__main__":
    main()
