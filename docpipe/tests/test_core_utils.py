"""Tests for core utilities: text helpers, content hashing and chunking."""

import io

import pytest

from docpipe.core.chunker import make_chunks, split_paragraphs, window_sentences
from docpipe.core.hashing import fingerprint, fingerprint_stream, sha256
from docpipe.core.text import normalize, normalize_year, title_from_filename, to_text_filename


class TestTextNormalize:
    def test_collapses_mixed_whitespace(self):
        text = "Hello\t\t  world\n\n  \twith\t \n mixed   whitespace"
        assert normalize(text) == "Hello world with mixed whitespace"

    def test_normalizes_unicode_quotes_and_dashes(self):
        text = "\u201cHello\u201d and \u2018world\u2019 en\u2013dash em\u2014dash"
        assert normalize(text) == "\"Hello\" and 'world' en-dash em-dash"

    def test_none_returns_empty(self):
        assert normalize(None) == ""


class TestTitleFromFilename:
    def test_strips_extension_and_separators(self):
        assert title_from_filename("q3_market-report.pdf") == "q3 market report"

    def test_ignores_directories(self):
        assert title_from_filename("uploads/2024/Annual_Report.pdf") == "Annual Report"

    @pytest.mark.parametrize("filename", [None, "", "___.pdf", "--"])
    def test_falls_back_to_untitled(self, filename):
        assert title_from_filename(filename) == "Untitled"

    def test_text_filename(self):
        assert to_text_filename("deck.pdf") == "deck.txt"
        assert to_text_filename(None) == "document.txt"


class TestNormalizeYear:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (2024, 2024),
            ("2024", 2024),
            ("Published in March 2019", 2019),
            (" 2100 ", 2100),
            (1899, None),
            (2101, None),
            ("n/a", None),
            ("", None),
            (None, None),
            (True, None),
        ],
    )
    def test_normalize_year(self, value, expected):
        assert normalize_year(value) == expected


class TestHashing:
    def test_sha256_known_value(self):
        assert sha256("hello") == "2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"

    def test_sha256_rejects_bytes(self):
        with pytest.raises(TypeError):
            sha256(b"hello")

    def test_fingerprint_is_hash_of_raw_bytes(self):
        assert fingerprint(b"hello") == sha256("hello")

    def test_fingerprint_rejects_text(self):
        with pytest.raises(TypeError):
            fingerprint("hello")

    def test_identical_bytes_have_identical_fingerprints(self):
        assert fingerprint(b"%PDF-1.7 same") == fingerprint(bytearray(b"%PDF-1.7 same"))
        assert fingerprint(b"%PDF-1.7 same") != fingerprint(b"%PDF-1.7 other")

    def test_stream_matches_bytes(self):
        data = b"x" * 200_000
        assert fingerprint_stream(io.BytesIO(data)) == fingerprint(data)


class TestChunker:
    def test_form_feed_is_paragraph_break(self):
        assert split_paragraphs("Page one.\fPage two.") == ["Page one.", "Page two."]

    def test_short_paragraph_is_kept_whole(self):
        assert window_sentences("One.  Two.\nThree.", max_sentences=6) == ["One. Two. Three."]

    def test_long_paragraph_is_windowed_with_overlap(self):
        paragraph = "S1. S2. S3. S4. S5."
        assert window_sentences(paragraph, max_sentences=3, overlap=1) == ["S1. S2. S3.", "S3. S4. S5."]

    def test_make_chunks_keeps_document_order(self):
        text = "First paragraph. Still first.\n\nSecond paragraph."
        assert make_chunks(text) == ["First paragraph. Still first.", "Second paragraph."]

    def test_empty_text_has_no_chunks(self):
        assert make_chunks("") == []
        assert make_chunks("   \n\n  ") == []
