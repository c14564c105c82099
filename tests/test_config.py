"""
Tests for execution/legal_corpus/config.py

Covers: defaults and LegalCorpusConfig.from_env() parsing.
"""

import pytest

ENV_VARS = (
    "LEGAL_CRAWLER_ENABLED",
    "LEGAL_CRAWLER_SEED_SITEMAPS",
    "LEGAL_CRAWLER_MAX_PAGES_PER_RUN",
    "LEGAL_CRAWLER_INTERVAL_MINUTES",
    "LEGAL_CRAWLER_USER_AGENT",
    "LEGAL_INSECURE_TLS_HOSTS",
    "LEGAL_RETRIEVAL_INSECURE_TLS",
    "LEGAL_RETRIEVAL_DEBUG",
    "SERPER_API_KEY",
    "GOOGLE_API_KEY",
    "GOOGLE_CSE_ID",
    "EMBEDDING_PROVIDER",
    "OPENAI_API_KEY",
    "VOYAGE_API_KEY",
    "COHERE_API_KEY",
    "POSTGRES_URL",
    "DATABASE_URL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)


class TestDefaults:
    """Tests for an empty environment."""

    def test_from_empty_env(self):
        from execution.legal_corpus.config import (
            DEFAULT_SEED_URL, DEFAULT_USER_AGENT, LegalCorpusConfig,
        )
        config = LegalCorpusConfig.from_env()
        assert config.crawler_enabled is False
        assert config.seed_urls == []
        assert config.effective_seeds == [DEFAULT_SEED_URL]
        assert config.max_pages_per_run == 20
        assert config.interval_minutes == 180
        assert config.user_agent == DEFAULT_USER_AGENT
        assert config.insecure_tls_hosts == []
        assert config.embeddings_enabled is False
        assert config.database_url is None

    def test_politeness_defaults(self):
        from execution.legal_corpus.config import LegalCorpusConfig
        config = LegalCorpusConfig()
        assert config.discovery_delay_s == 0.5
        assert config.page_delay_s == 0.8
        assert config.embed_batch_delay_s == 0.3
        assert config.embed_batch_size == 32
        assert config.max_nested_sitemaps == 5


class TestFromEnv:
    """Tests for environment parsing."""

    @pytest.mark.parametrize("value,expected", [("true", True), ("TRUE", True), (" true ", True),
                                                ("1", False), ("yes", False), ("", False)])
    def test_enabled_flag_requires_true(self, monkeypatch, value, expected):
        from execution.legal_corpus.config import LegalCorpusConfig
        monkeypatch.setenv("LEGAL_CRAWLER_ENABLED", value)
        assert LegalCorpusConfig.from_env().crawler_enabled is expected

    def test_seed_list(self, monkeypatch):
        from execution.legal_corpus.config import LegalCorpusConfig
        monkeypatch.setenv("LEGAL_CRAWLER_SEED_SITEMAPS", " https://a/sitemap.xml, ,https://b/sitemap.xml ")
        config = LegalCorpusConfig.from_env()
        assert config.seed_urls == ["https://a/sitemap.xml", "https://b/sitemap.xml"]
        assert config.effective_seeds == config.seed_urls

    @pytest.mark.parametrize("value,expected", [("60", 60), ("0", 180), ("-3", 180), ("soon", 180)])
    def test_interval(self, monkeypatch, value, expected):
        from execution.legal_corpus.config import LegalCorpusConfig
        monkeypatch.setenv("LEGAL_CRAWLER_INTERVAL_MINUTES", value)
        assert LegalCorpusConfig.from_env().interval_minutes == expected

    @pytest.mark.parametrize("value,expected", [("5", 5), ("-1", 0), ("many", 20)])
    def test_max_pages(self, monkeypatch, value, expected):
        from execution.legal_corpus.config import LegalCorpusConfig
        monkeypatch.setenv("LEGAL_CRAWLER_MAX_PAGES_PER_RUN", value)
        assert LegalCorpusConfig.from_env().max_pages_per_run == expected

    def test_insecure_tls_hosts(self, monkeypatch):
        from execution.legal_corpus.config import TRUSTED_LEGAL_HOSTS, LegalCorpusConfig
        monkeypatch.setenv("LEGAL_INSECURE_TLS_HOSTS", "example.gov.sa")
        monkeypatch.setenv("LEGAL_RETRIEVAL_INSECURE_TLS", "true")
        hosts = LegalCorpusConfig.from_env().insecure_tls_hosts
        assert hosts[0] == "example.gov.sa"
        assert set(TRUSTED_LEGAL_HOSTS) <= set(hosts)

    def test_embedding_provider_key(self, monkeypatch):
        from execution.legal_corpus.config import LegalCorpusConfig
        monkeypatch.setenv("EMBEDDING_PROVIDER", "Cohere")
        monkeypatch.setenv("COHERE_API_KEY", "c-key")
        monkeypatch.setenv("OPENAI_API_KEY", "o-key")
        config = LegalCorpusConfig.from_env()
        assert config.embedding_provider == "cohere"
        assert config.embedding_api_key == "c-key"
        assert config.embeddings_enabled is True

    def test_unknown_provider_defaults_to_openai(self, monkeypatch):
        from execution.legal_corpus.config import LegalCorpusConfig
        monkeypatch.setenv("EMBEDDING_PROVIDER", "other")
        monkeypatch.setenv("OPENAI_API_KEY", "o-key")
        config = LegalCorpusConfig.from_env()
        assert config.embedding_provider == "openai"
        assert config.embedding_api_key == "o-key"

    def test_database_url_fallback(self, monkeypatch):
        from execution.legal_corpus.config import LegalCorpusConfig
        monkeypatch.setenv("DATABASE_URL", "postgresql://db")
        assert LegalCorpusConfig.from_env().database_url == "postgresql://db"
        monkeypatch.setenv("POSTGRES_URL", "postgresql://primary")
        assert LegalCorpusConfig.from_env().database_url == "postgresql://primary"

    def test_search_keys(self, monkeypatch):
        from execution.legal_corpus.config import LegalCorpusConfig
        monkeypatch.setenv("SERPER_API_KEY", "s")
        monkeypatch.setenv("GOOGLE_API_KEY", "g")
        monkeypatch.setenv("GOOGLE_CSE_ID", "cx")
        monkeypatch.setenv("LEGAL_RETRIEVAL_DEBUG", "true")
        config = LegalCorpusConfig.from_env()
        assert (config.serper_api_key, config.google_api_key, config.google_cse_id) == ("s", "g", "cx")
        assert config.retrieval_debug is True
