"""
Embedding Client for Legal Corpus Retrieval

Turns chunk and query text into vectors via OpenAI, Voyage AI or Cohere.
Supports batching and caching; the factory returns None when no provider key
is configured, which switches the vector retrieval tier off.

Architecture:
    BaseEmbeddingService  -- shared caching, batching, embed_texts, embed_text
        OpenAIEmbeddingService    -- text-embedding-3-small (default)
        VoyageEmbeddingService    -- voyage-multilingual-2
        CohereEmbeddingService    -- embed-multilingual-v3.0
"""

import os
import json
import hashlib
import logging
import threading
from collections import OrderedDict
from typing import Optional
from dataclasses import dataclass
from pathlib import Path

from .config import EMBEDDING_KEY_VARS, LegalCorpusConfig

logger = logging.getLogger(__name__)


@dataclass
class EmbeddingConfig:
    """Configuration for embedding service."""
    provider: str = "openai"  # "openai", "voyage" or "cohere"
    model: str = "text-embedding-3-small"
    api_key: Optional[str] = None  # falls back to the provider's env var
    batch_size: int = 96
    max_chars_per_batch: int = 200000
    cache_dir: Optional[str] = None
    use_cache: bool = True
    max_cache_entries: int = 10000  # in-memory LRU bound


DEFAULT_MODELS = {
    "openai": "text-embedding-3-small",
    "voyage": "voyage-multilingual-2",
    "cohere": "embed-multilingual-v3.0",
}


class BaseEmbeddingService:
    """
    Base class for API-based embedding services.

    Provides shared functionality:
    - Batched embedding with progress logging
    - Memory and file-based caching
    - Document vs query input type distinction

    Subclasses implement:
    - _init_client(api_key): Initialize the provider-specific API client
    - _request(texts, input_type): One provider call returning vectors in order
    """

    _provider_name: str = "Base"
    _env_var_name: str = ""
    _doc_input_type: str = "document"
    _query_input_type: str = "query"

    def __init__(self, config: Optional[EmbeddingConfig] = None):
        self.config = config or EmbeddingConfig()
        self._client = None
        self._cache = OrderedDict()
        self._cache_lock = threading.Lock()

        if self.config.cache_dir:
            self._cache_path = Path(self.config.cache_dir)
            self._cache_path.mkdir(parents=True, exist_ok=True)
        else:
            self._cache_path = None

        api_key = self.config.api_key or os.getenv(self._env_var_name)
        if not api_key:
            logger.warning(f"{self._env_var_name} not found. {self._provider_name} embeddings disabled.")
            return
        self._init_client(api_key)

    def _init_client(self, api_key: str):
        raise NotImplementedError("Subclasses must implement _init_client()")

    def _request(self, texts: list[str], input_type: str) -> list[list[float]]:
        raise NotImplementedError("Subclasses must implement _request()")

    @property
    def available(self) -> bool:
        return self._client is not None

    def _require_client(self):
        if not self._client:
            raise RuntimeError(
                f"{self._provider_name} client not initialized. "
                f"Check {self._env_var_name}."
            )

    def _create_batches(self, texts: list[str]) -> list[list[str]]:
        """Split texts into batches respecting both item count and size limits."""
        batches = []
        current_batch = []
        current_chars = 0

        for text in texts:
            if current_batch and (
                len(current_batch) >= self.config.batch_size
                or current_chars + len(text) > self.config.max_chars_per_batch
            ):
                batches.append(current_batch)
                current_batch = []
                current_chars = 0
            current_batch.append(text)
            current_chars += len(text)

        if current_batch:
            batches.append(current_batch)

        return batches

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """
        Generate embeddings for chunk texts.

        Args:
            texts: List of text strings to embed

        Returns:
            List of embedding vectors, same order as texts
        """
        if not texts:
            return []
        self._require_client()

        batches = self._create_batches(texts)
        logger.info(
            f"Embedding {len(texts)} texts in {len(batches)} batches"
            f" with {self._provider_name}"
        )

        embeddings = []
        for batch in batches:
            embeddings.extend(self._embed_batch(batch, input_type=self._doc_input_type))
        return embeddings

    def embed_text(self, text: str) -> list[float]:
        """Generate the embedding for a single query string."""
        self._require_client()
        result = self._embed_batch([text], input_type=self._query_input_type)
        return result[0] if result else []

    def _embed_batch(self, texts: list[str], input_type: str) -> list[list[float]]:
        """Embed a batch of texts, serving cached vectors where possible."""
        results = []
        uncached_texts = []
        uncached_indices = []

        for i, text in enumerate(texts):
            cached = self._get_cached(self._get_cache_key(text, input_type))
            if cached is not None:
                results.append((i, cached))
            else:
                uncached_texts.append(text)
                uncached_indices.append(i)

        if uncached_texts:
            try:
                vectors = self._request(uncached_texts, input_type)
            except Exception as e:
                logger.error(f"{self._provider_name} embedding failed: {e}")
                raise

            for idx, embedding in zip(uncached_indices, vectors):
                embedding = [float(v) for v in embedding]
                self._set_cached(self._get_cache_key(texts[idx], input_type), embedding)
                results.append((idx, embedding))

        results.sort(key=lambda x: x[0])
        return [emb for _, emb in results]

    def _get_cache_key(self, text: str, input_type: str) -> str:
        content = f"{self.config.model}:{input_type}:{text}"
        return hashlib.sha256(content.encode()).hexdigest()[:32]

    def _get_cached(self, key: str) -> Optional[list[float]]:
        if not self.config.use_cache:
            return None

        with self._cache_lock:
            if key in self._cache:
                self._cache.move_to_end(key)
                return self._cache[key]

        if self._cache_path:
            cache_file = self._cache_path / f"{key}.json"
            if cache_file.exists():
                try:
                    with open(cache_file) as f:
                        embedding = json.load(f)
                    self._remember(key, embedding)
                    return embedding
                except (OSError, ValueError) as e:
                    logger.debug(f"Failed to read embedding cache file {cache_file}: {e}")

        return None

    def _set_cached(self, key: str, embedding: list[float]) -> None:
        if not self.config.use_cache:
            return

        self._remember(key, embedding)

        if self._cache_path:
            cache_file = self._cache_path / f"{key}.json"
            try:
                with open(cache_file, "w") as f:
                    json.dump(embedding, f)
            except OSError as e:
                logger.warning(f"Failed to cache embedding: {e}")

    def _remember(self, key: str, embedding: list[float]) -> None:
        with self._cache_lock:
            self._cache[key] = embedding
            self._cache.move_to_end(key)
            while len(self._cache) > self.config.max_cache_entries:
                self._cache.popitem(last=False)


class OpenAIEmbeddingService(BaseEmbeddingService):
    """Embeddings from OpenAI's text-embedding-3 family (multilingual, handles Arabic)."""

    _provider_name = "OpenAI"
    _env_var_name = "OPENAI_API_KEY"

    def _init_client(self, api_key: str):
        from openai import OpenAI
        self._client = OpenAI(api_key=api_key, timeout=30.0)
        logger.info(f"OpenAI embedding client initialized with model {self.config.model}")

    def _request(self, texts: list[str], input_type: str) -> list[list[float]]:
        response = self._client.embeddings.create(model=self.config.model, input=texts)
        data = sorted(response.data, key=lambda d: d.index)
        return [d.embedding for d in data]


class VoyageEmbeddingService(BaseEmbeddingService):
    """Embeddings from Voyage AI; voyage-multilingual-2 covers Arabic legal text."""

    _provider_name = "Voyage AI"
    _env_var_name = "VOYAGE_API_KEY"
    _doc_input_type = "document"
    _query_input_type = "query"

    def _init_client(self, api_key: str):
        import voyageai
        self._client = voyageai.Client(api_key=api_key)
        logger.info(f"Voyage AI client initialized with model {self.config.model}")

    def _request(self, texts: list[str], input_type: str) -> list[list[float]]:
        response = self._client.embed(texts=texts, model=self.config.model, input_type=input_type)
        return response.embeddings


class CohereEmbeddingService(BaseEmbeddingService):
    """Embeddings from Cohere's multilingual embed-v3 model."""

    _provider_name = "Cohere"
    _env_var_name = "COHERE_API_KEY"
    _doc_input_type = "search_document"
    _query_input_type = "search_query"

    def _init_client(self, api_key: str):
        import cohere
        self._client = cohere.Client(api_key)
        logger.info(f"Cohere client initialized with model {self.config.model}")

    def _request(self, texts: list[str], input_type: str) -> list[list[float]]:
        response = self._client.embed(texts=texts, model=self.config.model, input_type=input_type)
        return response.embeddings


PROVIDERS = {
    "openai": OpenAIEmbeddingService,
    "voyage": VoyageEmbeddingService,
    "cohere": CohereEmbeddingService,
}


def get_embedding_service(
    config: Optional[LegalCorpusConfig] = None,
    cache_dir: Optional[str] = None,
) -> Optional[BaseEmbeddingService]:
    """
    Factory returning the configured embedding service.

    Returns None when the selected provider has no API key, so callers can
    treat "no embeddings" as a normal configuration rather than an error.
    """
    config = config or LegalCorpusConfig.from_env()
    provider = config.embedding_provider if config.embedding_provider in PROVIDERS else "openai"
    api_key = config.embedding_api_key or os.getenv(EMBEDDING_KEY_VARS[provider])
    if not api_key:
        logger.info("No embedding provider configured; vector retrieval disabled")
        return None

    service = PROVIDERS[provider](EmbeddingConfig(
        provider=provider,
        model=DEFAULT_MODELS[provider],
        api_key=api_key,
        cache_dir=cache_dir,
    ))
    return service if service.available else None


# CLI for testing
if __name__ == "__main__":
    import sys
    from dotenv import load_dotenv

    load_dotenv()
    logging.basicConfig(level=logging.INFO)

    service = get_embedding_service()
    if service is None:
        print("No embedding provider configured")
        sys.exit(1)

    query = " ".join(sys.argv[1:]) or "ما هي مدة الإشعار عند إنهاء عقد العمل"
    print(f"Query: {query}")
    embedding = service.embed_text(query)
    print(f"Embedding dimensions: {len(embedding)}")
    print(f"First 10 values: {embedding[:10]}")
