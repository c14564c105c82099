"""
Legal Source Store

Repository for crawled documents, their chunks and crawl-run bookkeeping.
The crawler is the only writer; the retrieval engine only reads.

Two implementations share the LegalSourceStore interface:
- InMemoryLegalSourceStore: dict-backed, thread-safe; used by tests and when
  no database URL is configured.
- PostgresLegalSourceStore: psycopg2 connection pool. Embeddings are kept as
  JSONB because similarity is scored in-process over a bounded scan window.
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Optional

import psycopg2
import psycopg2.pool
from psycopg2.extras import RealDictCursor, execute_values

from .config import LegalCorpusConfig
from .models import (
    ChunkRow,
    CrawlerRun,
    LegalSourceChunk,
    LegalSourceDocument,
    RUN_STATUSES,
)

logger = logging.getLogger(__name__)

# Columns upsert_document() may set besides the (source, url) identity
DOCUMENT_FIELDS = (
    "title",
    "content_text",
    "content_hash",
    "http_status",
    "etag",
    "last_modified",
    "fetched_at",
    "status",
    "error",
)


def _check_fields(fields: dict) -> dict:
    unknown = set(fields) - set(DOCUMENT_FIELDS)
    if unknown:
        raise ValueError(f"Unknown document fields: {', '.join(sorted(unknown))}")
    return fields


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LegalSourceStore(ABC):
    """Persistence interface for documents, chunks and crawler runs."""

    @abstractmethod
    def upsert_document(self, source: str, url: str, fields: dict) -> int:
        """Insert or update the document keyed by (source, url); return its id."""

    @abstractmethod
    def get_document(self, source: str, url: str) -> Optional[LegalSourceDocument]:
        ...

    @abstractmethod
    def replace_chunks(self, document_id: int, chunks: list[LegalSourceChunk]) -> None:
        """Atomically swap a document's whole chunk set for `chunks`."""

    @abstractmethod
    def list_chunks_with_embeddings(self, limit: int) -> list[ChunkRow]:
        ...

    @abstractmethod
    def list_chunks_by_keyword(self, terms: list[str], limit: int) -> list[ChunkRow]:
        """Chunks whose text contains any of `terms` (case-insensitive)."""

    @abstractmethod
    def create_run(self) -> int:
        ...

    @abstractmethod
    def finish_run(
        self,
        run_id: int,
        status: str,
        pages_crawled: int,
        documents_updated: int,
        error: Optional[str] = None,
    ) -> None:
        ...

    @abstractmethod
    def get_chunks(self, document_id: int) -> list[LegalSourceChunk]:
        ...

    @abstractmethod
    def get_run(self, run_id: int) -> Optional[CrawlerRun]:
        ...

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        pass


# =============================================================================
# In-memory store
# =============================================================================


class InMemoryLegalSourceStore(LegalSourceStore):
    """
    Dict-backed store. Returned objects are copies, so callers cannot mutate
    stored state behind the lock.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._documents: dict[tuple[str, str], LegalSourceDocument] = {}
        self._documents_by_id: dict[int, LegalSourceDocument] = {}
        self._chunks: dict[int, list[LegalSourceChunk]] = {}
        self._runs: dict[int, CrawlerRun] = {}
        self._next_document_id = 1
        self._next_run_id = 1

    def upsert_document(self, source: str, url: str, fields: dict) -> int:
        _check_fields(fields)
        with self._lock:
            doc = self._documents.get((source, url))
            if doc is None:
                doc = LegalSourceDocument(source=source, url=url, id=self._next_document_id)
                self._next_document_id += 1
                self._documents[(source, url)] = doc
                self._documents_by_id[doc.id] = doc
            for name, value in fields.items():
                setattr(doc, name, value)
            return doc.id

    def get_document(self, source: str, url: str) -> Optional[LegalSourceDocument]:
        with self._lock:
            doc = self._documents.get((source, url))
            return replace(doc) if doc else None

    def replace_chunks(self, document_id: int, chunks: list[LegalSourceChunk]) -> None:
        with self._lock:
            if document_id not in self._documents_by_id:
                raise KeyError(f"Unknown document id {document_id}")
            self._chunks[document_id] = [
                replace(c, document_id=document_id, meta=dict(c.meta or {}))
                for c in chunks
            ]

    def _rows(self):
        for doc_id in sorted(self._chunks):
            doc = self._documents_by_id[doc_id]
            for chunk in self._chunks[doc_id]:
                yield doc, chunk

    def _to_row(self, doc: LegalSourceDocument, chunk: LegalSourceChunk) -> ChunkRow:
        return ChunkRow(
            document_id=doc.id,
            chunk_index=chunk.chunk_index,
            text=chunk.text,
            source=doc.source,
            url=doc.url,
            title=doc.title,
            embedding=list(chunk.embedding) if chunk.embedding else None,
            meta=dict(chunk.meta or {}),
        )

    def list_chunks_with_embeddings(self, limit: int) -> list[ChunkRow]:
        out = []
        with self._lock:
            for doc, chunk in self._rows():
                if len(out) >= limit:
                    break
                if chunk.embedding:
                    out.append(self._to_row(doc, chunk))
        return out

    def list_chunks_by_keyword(self, terms: list[str], limit: int) -> list[ChunkRow]:
        needles = [t.lower() for t in terms if t]
        out = []
        with self._lock:
            for doc, chunk in self._rows():
                if len(out) >= limit:
                    break
                text = chunk.text.lower()
                if not needles or any(n in text for n in needles):
                    out.append(self._to_row(doc, chunk))
        return out

    def create_run(self) -> int:
        with self._lock:
            run = CrawlerRun(id=self._next_run_id, started_at=_utcnow())
            self._next_run_id += 1
            self._runs[run.id] = run
            return run.id

    def finish_run(
        self,
        run_id: int,
        status: str,
        pages_crawled: int,
        documents_updated: int,
        error: Optional[str] = None,
    ) -> None:
        if status not in RUN_STATUSES:
            raise ValueError(f"Invalid run status: {status}")
        with self._lock:
            run = self._runs[run_id]
            run.status = status
            run.pages_crawled = pages_crawled
            run.documents_updated = documents_updated
            run.error = error
            run.finished_at = _utcnow()

    def get_chunks(self, document_id: int) -> list[LegalSourceChunk]:
        with self._lock:
            return [replace(c, meta=dict(c.meta or {})) for c in self._chunks.get(document_id, [])]

    def get_run(self, run_id: int) -> Optional[CrawlerRun]:
        with self._lock:
            run = self._runs.get(run_id)
            return replace(run) if run else None


# =============================================================================
# PostgreSQL store
# =============================================================================


@dataclass
class PostgresStoreConfig:
    """Configuration for the PostgreSQL store."""
    connection_string: Optional[str] = None
    pool_min_connections: int = 1
    pool_max_connections: int = 10


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS legal_source_documents (
    id SERIAL PRIMARY KEY,
    source TEXT NOT NULL,
    url TEXT NOT NULL,
    title TEXT,
    content_text TEXT,
    content_hash VARCHAR(64),
    http_status INT,
    etag TEXT,
    last_modified TEXT,
    fetched_at TIMESTAMPTZ,
    status VARCHAR(16) NOT NULL DEFAULT 'ok',
    error TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW(),
    UNIQUE (source, url)
);

CREATE TABLE IF NOT EXISTS legal_source_chunks (
    id SERIAL PRIMARY KEY,
    document_id INT NOT NULL REFERENCES legal_source_documents(id) ON DELETE CASCADE,
    chunk_index INT NOT NULL,
    text TEXT NOT NULL,
    embedding JSONB,
    meta JSONB DEFAULT '{}',
    created_at TIMESTAMPTZ DEFAULT NOW(),
    UNIQUE (document_id, chunk_index)
);

CREATE INDEX IF NOT EXISTS idx_legal_chunks_document
    ON legal_source_chunks(document_id, chunk_index);

CREATE TABLE IF NOT EXISTS legal_crawler_runs (
    id SERIAL PRIMARY KEY,
    started_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    finished_at TIMESTAMPTZ,
    status VARCHAR(16) NOT NULL DEFAULT 'running',
    pages_crawled INT NOT NULL DEFAULT 0,
    documents_updated INT NOT NULL DEFAULT 0,
    error TEXT
);
"""

_CHUNK_ROW_SELECT = """
SELECT c.document_id, c.chunk_index, c.text, c.embedding, c.meta,
       d.source, d.url, d.title
FROM legal_source_chunks c
JOIN legal_source_documents d ON d.id = c.document_id
"""


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class PostgresLegalSourceStore(LegalSourceStore):
    """
    PostgreSQL-backed store.

    Features:
    - Threaded connection pool
    - One reconnect-and-retry on stale connections
    - Chunk replacement as a single DELETE + batch INSERT transaction
    """

    def __init__(self, config: Optional[PostgresStoreConfig] = None):
        self.config = config or PostgresStoreConfig()
        if not self.config.connection_string:
            raise ValueError("PostgresLegalSourceStore requires a connection string")
        self._pool = None

    def connect(self) -> None:
        """Open the connection pool."""
        try:
            self._pool = psycopg2.pool.ThreadedConnectionPool(
                minconn=self.config.pool_min_connections,
                maxconn=self.config.pool_max_connections,
                dsn=self.config.connection_string,
            )
            logger.info(
                f"Connection pool initialized (min={self.config.pool_min_connections}, "
                f"max={self.config.pool_max_connections})"
            )
        except psycopg2.Error as e:
            logger.error(f"Database connection failed: {e}")
            raise

    def _get_connection(self):
        if not self._pool:
            self.connect()
        return self._pool.getconn()

    def _release_connection(self, conn, close: bool = False):
        if self._pool and conn:
            self._pool.putconn(conn, close=close)

    def _safe_rollback(self, conn) -> None:
        """Rollback a connection, ignoring errors if the connection is dead."""
        try:
            conn.rollback()
        except (psycopg2.InterfaceError, psycopg2.OperationalError):
            pass

    def _execute_with_retry(self, operation, label="db_operation"):
        """Execute a DB operation with one retry on stale connection.

        Args:
            operation: Callable(conn) that performs the DB work and returns a result.
            label: Human-readable name for logging.

        Returns:
            Whatever ``operation`` returns.
        """
        for attempt in range(2):
            conn = self._get_connection()
            try:
                result = operation(conn)
                self._release_connection(conn)
                return result
            except (psycopg2.OperationalError, psycopg2.InterfaceError) as e:
                self._safe_rollback(conn)
                self._release_connection(conn, close=True)
                if attempt == 0:
                    logger.warning(f"{label}: stale conn, retrying: {e}")
                    continue
                raise
            except Exception:
                self._safe_rollback(conn)
                self._release_connection(conn)
                raise

    def close(self) -> None:
        if self._pool:
            self._pool.closeall()
            self._pool = None
            logger.info("Connection pool closed")

    def initialize_schema(self) -> None:
        """Create tables and indexes if they don't exist."""

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(SCHEMA_SQL)
            conn.commit()

        self._execute_with_retry(_op, "initialize_schema")
        logger.info("Legal source schema initialized")

    def ping(self) -> bool:
        def _op(conn):
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                return cur.fetchone() is not None

        try:
            return self._execute_with_retry(_op, "ping")
        except psycopg2.Error as e:
            logger.warning(f"Store ping failed: {e}")
            return False

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    def upsert_document(self, source: str, url: str, fields: dict) -> int:
        _check_fields(fields)
        columns = list(fields)
        insert_cols = ", ".join(["source", "url"] + columns)
        placeholders = ", ".join(["%s"] * (len(columns) + 2))
        updates = ", ".join([f"{c} = EXCLUDED.{c}" for c in columns] + ["updated_at = NOW()"])
        sql = f"""
        INSERT INTO legal_source_documents ({insert_cols})
        VALUES ({placeholders})
        ON CONFLICT (source, url) DO UPDATE SET {updates}
        RETURNING id
        """
        params = [source, url] + [fields[c] for c in columns]

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, params)
                doc_id = cur.fetchone()[0]
            conn.commit()
            return doc_id

        return self._execute_with_retry(_op, "upsert_document")

    def get_document(self, source: str, url: str) -> Optional[LegalSourceDocument]:
        sql = f"""
        SELECT id, {", ".join(DOCUMENT_FIELDS)}
        FROM legal_source_documents
        WHERE source = %s AND url = %s
        """

        def _op(conn):
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(sql, (source, url))
                row = cur.fetchone()
            conn.commit()
            return row

        row = self._execute_with_retry(_op, "get_document")
        if not row:
            return None
        return LegalSourceDocument(source=source, url=url, **dict(row))

    # -------------------------------------------------------------------------
    # Chunks
    # -------------------------------------------------------------------------

    def replace_chunks(self, document_id: int, chunks: list[LegalSourceChunk]) -> None:
        values = [
            (
                document_id,
                c.chunk_index,
                c.text,
                json.dumps(c.embedding) if c.embedding is not None else None,
                json.dumps(c.meta or {}, ensure_ascii=False),
            )
            for c in chunks
        ]

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute("DELETE FROM legal_source_chunks WHERE document_id = %s", (document_id,))
                if values:
                    execute_values(
                        cur,
                        """
                        INSERT INTO legal_source_chunks (document_id, chunk_index, text, embedding, meta)
                        VALUES %s
                        """,
                        values,
                        template="(%s, %s, %s, %s::jsonb, %s::jsonb)",
                        page_size=500,
                    )
            conn.commit()

        self._execute_with_retry(_op, "replace_chunks")
        logger.debug(f"Replaced chunks for document {document_id} ({len(values)} rows)")

    def _fetch_rows(self, sql: str, params, label: str) -> list[ChunkRow]:
        def _op(conn):
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(sql, params)
                rows = cur.fetchall()
            conn.commit()
            return rows

        return [
            ChunkRow(
                document_id=row["document_id"],
                chunk_index=row["chunk_index"],
                text=row["text"],
                source=row["source"],
                url=row["url"],
                title=row["title"],
                embedding=row["embedding"],
                meta=row["meta"] or {},
            )
            for row in self._execute_with_retry(_op, label)
        ]

    def list_chunks_with_embeddings(self, limit: int) -> list[ChunkRow]:
        sql = _CHUNK_ROW_SELECT + """
        WHERE c.embedding IS NOT NULL AND jsonb_array_length(c.embedding) > 0
        ORDER BY c.document_id, c.chunk_index
        LIMIT %s
        """
        return self._fetch_rows(sql, (limit,), "list_chunks_with_embeddings")

    def list_chunks_by_keyword(self, terms: list[str], limit: int) -> list[ChunkRow]:
        patterns = [f"%{_escape_like(t)}%" for t in terms if t]
        if not patterns:
            sql = _CHUNK_ROW_SELECT + " ORDER BY c.document_id, c.chunk_index LIMIT %s"
            return self._fetch_rows(sql, (limit,), "list_chunks_by_keyword")

        sql = _CHUNK_ROW_SELECT + """
        WHERE c.text ILIKE ANY(%s)
        ORDER BY c.document_id, c.chunk_index
        LIMIT %s
        """
        return self._fetch_rows(sql, (patterns, limit), "list_chunks_by_keyword")

    def get_chunks(self, document_id: int) -> list[LegalSourceChunk]:
        sql = """
        SELECT document_id, chunk_index, text, embedding, meta
        FROM legal_source_chunks
        WHERE document_id = %s
        ORDER BY chunk_index
        """

        def _op(conn):
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(sql, (document_id,))
                rows = cur.fetchall()
            conn.commit()
            return rows

        return [
            LegalSourceChunk(
                document_id=row["document_id"],
                chunk_index=row["chunk_index"],
                text=row["text"],
                embedding=row["embedding"],
                meta=row["meta"] or {},
            )
            for row in self._execute_with_retry(_op, "get_chunks")
        ]

    # -------------------------------------------------------------------------
    # Runs
    # -------------------------------------------------------------------------

    def create_run(self) -> int:
        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO legal_crawler_runs (status) VALUES ('running') RETURNING id"
                )
                run_id = cur.fetchone()[0]
            conn.commit()
            return run_id

        return self._execute_with_retry(_op, "create_run")

    def finish_run(
        self,
        run_id: int,
        status: str,
        pages_crawled: int,
        documents_updated: int,
        error: Optional[str] = None,
    ) -> None:
        if status not in RUN_STATUSES:
            raise ValueError(f"Invalid run status: {status}")
        sql = """
        UPDATE legal_crawler_runs
        SET status = %s, pages_crawled = %s, documents_updated = %s,
            error = %s, finished_at = NOW()
        WHERE id = %s
        """

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, (status, pages_crawled, documents_updated, error, run_id))
            conn.commit()

        self._execute_with_retry(_op, "finish_run")

    def get_run(self, run_id: int) -> Optional[CrawlerRun]:
        sql = """
        SELECT id, started_at, finished_at, status, pages_crawled, documents_updated, error
        FROM legal_crawler_runs WHERE id = %s
        """

        def _op(conn):
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(sql, (run_id,))
                row = cur.fetchone()
            conn.commit()
            return row

        row = self._execute_with_retry(_op, "get_run")
        return CrawlerRun(**dict(row)) if row else None


def create_store(config: Optional[LegalCorpusConfig] = None) -> LegalSourceStore:
    """Postgres store when a database URL is configured, else in-memory."""
    config = config or LegalCorpusConfig.from_env()
    if not config.database_url:
        logger.info("No database URL configured; using in-memory legal source store")
        return InMemoryLegalSourceStore()

    store = PostgresLegalSourceStore(PostgresStoreConfig(connection_string=config.database_url))
    store.connect()
    store.initialize_schema()
    return store
