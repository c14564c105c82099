"""
Configuration for the legal corpus crawler and retrieval engine.

Values come from environment variables (load a .env with python-dotenv
before calling LegalCorpusConfig.from_env()). Politeness delays, batch sizes
and score thresholds were tuned against the live gazette and are kept as
overridable fields.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

DEFAULT_SEED_URL = "https://laws.boe.gov.sa/BoeLaws/Laws/LawDetails/08381293-6388-48e2-8ad2-a9a700f2aa94/1"
# The gazette page carrying the full labor law, one article after another
BOE_LABOR_LAW_URL = DEFAULT_SEED_URL
DEFAULT_USER_AGENT = "mawazin-legal-assistant/1.0 (+contact: admin@localhost)"
DEFAULT_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
DEFAULT_INTERVAL_MINUTES = 180

# Hosts the live-web fallback may quote from
TRUSTED_LEGAL_HOSTS = (
    "laws.boe.gov.sa",
    "boe.gov.sa",
    "laws.moj.gov.sa",
    "hrsd.gov.sa",
    "ncar.gov.sa",
)

# Paths never crawled on any host
PATH_DENYLIST = ("/Identity/", "/admin/")

EMBEDDING_KEY_VARS = {
    "openai": "OPENAI_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "cohere": "COHERE_API_KEY",
}


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() == "true"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _env_list(name: str) -> list[str]:
    return [s.strip() for s in os.getenv(name, "").split(",") if s.strip()]


@dataclass
class LegalCorpusConfig:
    """Crawler, HTTP and retrieval settings."""
    # Crawler
    crawler_enabled: bool = False
    seed_urls: list[str] = field(default_factory=list)
    max_pages_per_run: int = 20
    interval_minutes: int = DEFAULT_INTERVAL_MINUTES
    user_agent: str = DEFAULT_USER_AGENT
    accept: str = DEFAULT_ACCEPT
    path_denylist: tuple = PATH_DENYLIST
    max_nested_sitemaps: int = 5
    min_indexable_chars: int = 100

    # Politeness (seconds)
    discovery_delay_s: float = 0.5
    page_delay_s: float = 0.8
    embed_batch_delay_s: float = 0.3
    embed_batch_size: int = 32

    # HTTP
    fetch_timeout_s: float = 12.0
    max_retries: int = 2
    insecure_tls_hosts: list[str] = field(default_factory=list)

    # Retrieval
    vector_min_score: float = 0.2
    trusted_hosts: tuple = TRUSTED_LEGAL_HOSTS
    max_candidate_urls: int = 8
    min_article_span_chars: int = 40
    max_article_span_chars: int = 1600
    retrieval_debug: bool = False

    # Providers
    serper_api_key: Optional[str] = None
    google_api_key: Optional[str] = None
    google_cse_id: Optional[str] = None
    embedding_provider: str = "openai"
    embedding_api_key: Optional[str] = None

    # Store
    database_url: Optional[str] = None

    @property
    def effective_seeds(self) -> list[str]:
        return list(self.seed_urls) if self.seed_urls else [DEFAULT_SEED_URL]

    @property
    def embeddings_enabled(self) -> bool:
        return bool(self.embedding_api_key and self.embedding_api_key.strip())

    @classmethod
    def from_env(cls) -> "LegalCorpusConfig":
        """Build a config from environment variables."""
        provider = os.getenv("EMBEDDING_PROVIDER", "openai").strip().lower() or "openai"
        if provider not in EMBEDDING_KEY_VARS:
            provider = "openai"

        insecure_hosts = _env_list("LEGAL_INSECURE_TLS_HOSTS")
        if _env_flag("LEGAL_RETRIEVAL_INSECURE_TLS"):
            insecure_hosts.extend(h for h in TRUSTED_LEGAL_HOSTS if h not in insecure_hosts)

        interval = _env_int("LEGAL_CRAWLER_INTERVAL_MINUTES", DEFAULT_INTERVAL_MINUTES)
        if interval <= 0:
            interval = DEFAULT_INTERVAL_MINUTES

        return cls(
            crawler_enabled=_env_flag("LEGAL_CRAWLER_ENABLED"),
            seed_urls=_env_list("LEGAL_CRAWLER_SEED_SITEMAPS"),
            max_pages_per_run=max(_env_int("LEGAL_CRAWLER_MAX_PAGES_PER_RUN", 20), 0),
            interval_minutes=interval,
            user_agent=os.getenv("LEGAL_CRAWLER_USER_AGENT") or DEFAULT_USER_AGENT,
            insecure_tls_hosts=insecure_hosts,
            retrieval_debug=_env_flag("LEGAL_RETRIEVAL_DEBUG"),
            serper_api_key=os.getenv("SERPER_API_KEY") or None,
            google_api_key=os.getenv("GOOGLE_API_KEY") or None,
            google_cse_id=os.getenv("GOOGLE_CSE_ID") or None,
            embedding_provider=provider,
            embedding_api_key=os.getenv(EMBEDDING_KEY_VARS[provider]) or None,
            database_url=os.getenv("POSTGRES_URL") or os.getenv("DATABASE_URL") or None,
        )
