"""
Tests for execution/legal_corpus/store.py

Covers: InMemoryLegalSourceStore (documents, chunk replacement, listing,
        runs), PostgresLegalSourceStore retry handling with a mocked pool,
        and the create_store factory.
"""

from unittest.mock import MagicMock, patch

import pytest


def _chunk(index, text, embedding=None):
    from execution.legal_corpus.models import LegalSourceChunk
    return LegalSourceChunk(document_id=0, chunk_index=index, text=text, embedding=embedding)


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

class TestDocuments:
    """Tests for document upsert and lookup."""

    def test_upsert_dedups_on_source_and_url(self, store):
        a = store.upsert_document("BOE", "https://laws.boe.gov.sa/a", {"title": "أ"})
        b = store.upsert_document("BOE", "https://laws.boe.gov.sa/a", {"title": "ب"})
        assert a == b
        assert store.get_document("BOE", "https://laws.boe.gov.sa/a").title == "ب"

    def test_same_url_different_source(self, store):
        a = store.upsert_document("BOE", "https://example.gov.sa/x", {})
        b = store.upsert_document("MOJ_LAWS", "https://example.gov.sa/x", {})
        assert a != b

    def test_partial_update_keeps_other_fields(self, store):
        store.upsert_document("BOE", "u", {"content_text": "نص", "content_hash": "h1"})
        store.upsert_document("BOE", "u", {"status": "skipped"})
        doc = store.get_document("BOE", "u")
        assert doc.content_text == "نص"
        assert doc.content_hash == "h1"
        assert doc.status == "skipped"

    def test_unknown_field_rejected(self, store):
        with pytest.raises(ValueError, match="Unknown document fields"):
            store.upsert_document("BOE", "u", {"body": "x"})

    def test_get_missing_document(self, store):
        assert store.get_document("BOE", "nope") is None

    def test_returned_document_is_a_copy(self, store):
        store.upsert_document("BOE", "u", {"title": "original"})
        doc = store.get_document("BOE", "u")
        doc.title = "changed"
        assert store.get_document("BOE", "u").title == "original"


# ---------------------------------------------------------------------------
# Chunks
# ---------------------------------------------------------------------------

class TestChunks:
    """Tests for chunk replacement and listing."""

    def test_replace_swaps_whole_set(self, store):
        doc_id = store.upsert_document("BOE", "u", {})
        store.replace_chunks(doc_id, [_chunk(0, "a"), _chunk(1, "b"), _chunk(2, "c")])
        store.replace_chunks(doc_id, [_chunk(0, "new")])
        chunks = store.get_chunks(doc_id)
        assert [c.text for c in chunks] == ["new"]
        assert chunks[0].document_id == doc_id

    def test_replace_with_empty_clears(self, store):
        doc_id = store.upsert_document("BOE", "u", {})
        store.replace_chunks(doc_id, [_chunk(0, "a")])
        store.replace_chunks(doc_id, [])
        assert store.get_chunks(doc_id) == []

    def test_replace_unknown_document(self, store):
        with pytest.raises(KeyError):
            store.replace_chunks(99, [_chunk(0, "a")])

    def test_list_with_embeddings_skips_unembedded(self, store):
        doc_id = store.upsert_document("BOE", "u", {"title": "نظام العمل"})
        store.replace_chunks(doc_id, [_chunk(0, "a", [1.0, 0.0]), _chunk(1, "b"), _chunk(2, "c", [])])
        rows = store.list_chunks_with_embeddings(10)
        assert [r.text for r in rows] == ["a"]
        assert rows[0].source == "BOE"
        assert rows[0].url == "u"
        assert rows[0].title == "نظام العمل"
        assert rows[0].embedding == [1.0, 0.0]

    def test_list_with_embeddings_limit_and_order(self, store):
        first = store.upsert_document("BOE", "u1", {})
        second = store.upsert_document("BOE", "u2", {})
        store.replace_chunks(second, [_chunk(0, "s0", [1.0])])
        store.replace_chunks(first, [_chunk(0, "f0", [1.0]), _chunk(1, "f1", [1.0])])
        rows = store.list_chunks_with_embeddings(2)
        assert [r.text for r in rows] == ["f0", "f1"]

    def test_list_by_keyword_case_insensitive(self, store):
        doc_id = store.upsert_document("BOE", "u", {})
        store.replace_chunks(doc_id, [_chunk(0, "Labor LAW text"), _chunk(1, "other")])
        rows = store.list_chunks_by_keyword(["law"], 10)
        assert [r.text for r in rows] == ["Labor LAW text"]

    def test_list_by_keyword_any_term(self, store):
        doc_id = store.upsert_document("BOE", "u", {})
        store.replace_chunks(doc_id, [
            _chunk(0, "المادة 107 ساعات العمل"),
            _chunk(1, "الإجازة السنوية"),
            _chunk(2, "لا شيء هنا"),
        ])
        rows = store.list_chunks_by_keyword(["107", "الإجازة"], 10)
        assert [r.chunk_index for r in rows] == [0, 1]

    def test_list_by_keyword_limit(self, store):
        doc_id = store.upsert_document("BOE", "u", {})
        store.replace_chunks(doc_id, [_chunk(i, f"العمل {i}") for i in range(5)])
        assert len(store.list_chunks_by_keyword(["العمل"], 3)) == 3

    def test_listing_reflects_document_title_updates(self, store):
        doc_id = store.upsert_document("BOE", "u", {"title": "قديم"})
        store.replace_chunks(doc_id, [_chunk(0, "نص", [1.0])])
        store.upsert_document("BOE", "u", {"title": "جديد"})
        assert store.list_chunks_with_embeddings(10)[0].title == "جديد"


# ---------------------------------------------------------------------------
# Runs
# ---------------------------------------------------------------------------

class TestRuns:
    """Tests for crawl-run bookkeeping."""

    def test_create_run_starts_running(self, store):
        run_id = store.create_run()
        run = store.get_run(run_id)
        assert run.status == "running"
        assert run.finished_at is None

    def test_finish_run(self, store):
        run_id = store.create_run()
        store.finish_run(run_id, "success", 4, 2)
        run = store.get_run(run_id)
        assert run.status == "success"
        assert run.pages_crawled == 4
        assert run.documents_updated == 2
        assert run.finished_at is not None

    def test_finish_run_with_error(self, store):
        run_id = store.create_run()
        store.finish_run(run_id, "error", 1, 0, "boom")
        assert store.get_run(run_id).error == "boom"

    def test_invalid_status(self, store):
        run_id = store.create_run()
        with pytest.raises(ValueError):
            store.finish_run(run_id, "done", 0, 0)

    def test_run_ids_increase(self, store):
        assert store.create_run() < store.create_run()

    def test_missing_run(self, store):
        assert store.get_run(42) is None


# ---------------------------------------------------------------------------
# PostgreSQL store (mocked pool)
# ---------------------------------------------------------------------------

class TestPostgresStore:
    """Tests for PostgresLegalSourceStore without a database."""

    def _store_with_pool(self):
        from execution.legal_corpus.store import PostgresLegalSourceStore, PostgresStoreConfig
        store = PostgresLegalSourceStore(PostgresStoreConfig(connection_string="postgresql://test"))
        store._pool = MagicMock()
        return store

    def test_requires_connection_string(self):
        from execution.legal_corpus.store import PostgresLegalSourceStore
        with pytest.raises(ValueError):
            PostgresLegalSourceStore()

    def test_retries_once_on_stale_connection(self):
        import psycopg2
        store = self._store_with_pool()
        operation = MagicMock(side_effect=[psycopg2.OperationalError("gone"), "ok"])
        assert store._execute_with_retry(operation, "test") == "ok"
        assert operation.call_count == 2
        assert store._pool.getconn.call_count == 2

    def test_gives_up_after_second_failure(self):
        import psycopg2
        store = self._store_with_pool()
        operation = MagicMock(side_effect=psycopg2.InterfaceError("closed"))
        with pytest.raises(psycopg2.InterfaceError):
            store._execute_with_retry(operation, "test")
        assert operation.call_count == 2

    def test_other_errors_not_retried(self):
        store = self._store_with_pool()
        operation = MagicMock(side_effect=RuntimeError("bad sql"))
        with pytest.raises(RuntimeError):
            store._execute_with_retry(operation, "test")
        assert operation.call_count == 1

    def test_upsert_rejects_unknown_fields_before_query(self):
        store = self._store_with_pool()
        with pytest.raises(ValueError):
            store.upsert_document("BOE", "u", {"nope": 1})
        store._pool.getconn.assert_not_called()

    def test_finish_run_rejects_invalid_status(self):
        store = self._store_with_pool()
        with pytest.raises(ValueError):
            store.finish_run(1, "weird", 0, 0)

    def test_ping_false_on_database_error(self):
        import psycopg2
        store = self._store_with_pool()
        store._pool.getconn.side_effect = psycopg2.OperationalError("down")
        assert store.ping() is False

    def test_escape_like(self):
        from execution.legal_corpus.store import _escape_like
        assert _escape_like("50%_a") == "50\\%\\_a"


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

class TestCreateStore:
    """Tests for create_store()."""

    def test_in_memory_without_database_url(self):
        from execution.legal_corpus.config import LegalCorpusConfig
        from execution.legal_corpus.store import InMemoryLegalSourceStore, create_store
        store = create_store(LegalCorpusConfig(database_url=None))
        assert isinstance(store, InMemoryLegalSourceStore)
        assert store.ping() is True

    def test_postgres_with_database_url(self):
        from execution.legal_corpus.config import LegalCorpusConfig
        from execution.legal_corpus.store import PostgresLegalSourceStore, create_store
        with patch.object(PostgresLegalSourceStore, "connect") as connect, \
                patch.object(PostgresLegalSourceStore, "initialize_schema") as init_schema:
            store = create_store(LegalCorpusConfig(database_url="postgresql://test"))
        assert isinstance(store, PostgresLegalSourceStore)
        connect.assert_called_once()
        init_schema.assert_called_once()
