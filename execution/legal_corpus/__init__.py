"""
Legal Corpus - Arabic Legal Source Crawling and Retrieval

This module provides:
- A polite, sequential crawler for government legal-source sites
- Change detection by content hash with atomic chunk replacement
- Optional chunk embeddings (OpenAI, Voyage AI or Cohere)
- Citation-aware retrieval that cascades vector -> keyword -> live web -> static cache

Layer 3 (Execution) of the assistant: the chat layer calls
LegalRetriever.retrieve() and format_snippets_for_prompt() for grounding.
"""

__version__ = "0.1.0"

from .config import LegalCorpusConfig
from .chunker import TextChunker, chunk_text
from .crawler import LegalCrawler
from .embeddings import get_embedding_service
from .store import InMemoryLegalSourceStore, LegalSourceStore, create_store
from .retriever import LegalRetriever, TierDecision, format_snippets_for_prompt
from .scheduler import CrawlerScheduler

__all__ = [
    "LegalCorpusConfig",
    "TextChunker",
    "chunk_text",
    "LegalCrawler",
    "get_embedding_service",
    "LegalSourceStore",
    "InMemoryLegalSourceStore",
    "create_store",
    "LegalRetriever",
    "TierDecision",
    "format_snippets_for_prompt",
    "CrawlerScheduler",
]
