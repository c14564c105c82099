"""
Tests for execution/legal_corpus/chunker.py

Covers: window counts and lengths, overlap, whitespace collapsing,
        index stability and parameter validation.
"""

import math

import pytest

from conftest import long_arabic_text


def expected_chunk_count(length, max_chars=1200, overlap=150):
    if length == 0:
        return 0
    if length <= max_chars:
        return 1
    return math.ceil((length - max_chars) / (max_chars - overlap)) + 1


class TestChunkText:
    """Tests for chunk_text()."""

    def test_empty(self):
        from execution.legal_corpus.chunker import chunk_text
        assert chunk_text("") == []
        assert chunk_text(None) == []
        assert chunk_text("   \n\t ") == []

    def test_short_text_single_chunk(self):
        from execution.legal_corpus.chunker import chunk_text
        assert chunk_text("المادة الأولى") == ["المادة الأولى"]

    @pytest.mark.parametrize("length", [1, 500, 1199, 1200, 1201, 2250, 2251, 2500, 5000, 10000])
    def test_chunk_count(self, length):
        from execution.legal_corpus.chunker import chunk_text
        chunks = chunk_text(long_arabic_text(length))
        assert len(chunks) == expected_chunk_count(length)

    @pytest.mark.parametrize("length", [1201, 2500, 5000, 10000])
    def test_full_windows_except_last(self, length):
        from execution.legal_corpus.chunker import chunk_text
        chunks = chunk_text(long_arabic_text(length))
        assert all(len(c) == 1200 for c in chunks[:-1])
        assert 0 < len(chunks[-1]) <= 1200

    @pytest.mark.parametrize("length", [2500, 5000])
    def test_consecutive_chunks_share_overlap(self, length):
        from execution.legal_corpus.chunker import chunk_text
        chunks = chunk_text(long_arabic_text(length))
        for prev, nxt in zip(chunks, chunks[1:]):
            assert prev[-150:] == nxt[:150]

    def test_chunks_cover_source_offsets(self):
        from execution.legal_corpus.chunker import chunk_text
        text = long_arabic_text(3000)
        chunks = chunk_text(text)
        for i, chunk in enumerate(chunks):
            assert chunk == text[i * 1050:i * 1050 + 1200]

    def test_whitespace_collapsed(self):
        from execution.legal_corpus.chunker import chunk_text
        assert chunk_text("  المادة \n\n الأولى\t\tنص  ") == ["المادة الأولى نص"]

    def test_deterministic(self):
        from execution.legal_corpus.chunker import chunk_text
        text = long_arabic_text(4321)
        assert chunk_text(text) == chunk_text(text)

    def test_custom_window(self):
        from execution.legal_corpus.chunker import chunk_text
        chunks = chunk_text("abcdefghij", max_chars=4, overlap_chars=1)
        assert chunks == ["abcd", "defg", "ghij"]

    @pytest.mark.parametrize("max_chars,overlap", [(0, 0), (-1, 0), (100, 100), (100, 150), (100, -1)])
    def test_invalid_parameters(self, max_chars, overlap):
        from execution.legal_corpus.chunker import chunk_text
        with pytest.raises(ValueError):
            chunk_text("نص", max_chars=max_chars, overlap_chars=overlap)


class TestTextChunker:
    """Tests for the config-bound chunker used by the crawler."""

    def test_defaults(self):
        from execution.legal_corpus.chunker import TextChunker
        chunker = TextChunker()
        assert chunker.config.max_chars == 1200
        assert chunker.config.overlap_chars == 150
        assert len(chunker.chunk(long_arabic_text(2500))) == 3

    def test_custom_config(self):
        from execution.legal_corpus.chunker import ChunkConfig, TextChunker
        chunker = TextChunker(ChunkConfig(max_chars=100, overlap_chars=10))
        assert len(chunker.chunk(long_arabic_text(280))) == 3

    def test_invalid_config(self):
        from execution.legal_corpus.chunker import ChunkConfig, TextChunker
        with pytest.raises(ValueError):
            TextChunker(ChunkConfig(max_chars=100, overlap_chars=100))
