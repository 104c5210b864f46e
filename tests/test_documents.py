"""Tests for book loading and data-URI handling."""

from __future__ import annotations

import base64

import pytest

from aural_odyssey.documents import (
    UNSUPPORTED_FORMAT_MESSAGE,
    BookDocument,
    UnsupportedBookFormatError,
    document_from_bytes,
    load_book,
    mime_type_for,
    parse_data_uri,
)


class TestMimeTypeFor:
    """Extension → MIME type mapping."""

    @pytest.mark.parametrize("filename, expected", [
        ("book.txt", "text/plain"),
        ("BOOK.TXT", "text/plain"),
        ("novel.pdf", "application/pdf"),
        ("dir/novel.Pdf", "application/pdf"),
    ])
    def test_supported(self, filename, expected):
        assert mime_type_for(filename) == expected

    @pytest.mark.parametrize("filename", ["book.epub", "book.docx", "README", "book.txt.zip"])
    def test_unsupported(self, filename):
        with pytest.raises(UnsupportedBookFormatError, match="Unsupported file type"):
            mime_type_for(filename)


class TestLoadBook:
    """Reading books from disk."""

    def test_load_txt(self, tmp_path):
        path = tmp_path / "story.txt"
        path.write_text("Once upon a time.", encoding="utf-8")

        doc = load_book(path)

        assert doc.filename == "story.txt"
        assert doc.mime_type == "text/plain"
        assert doc.data == b"Once upon a time."

    def test_load_unsupported_does_not_read(self, tmp_path):
        with pytest.raises(UnsupportedBookFormatError) as exc_info:
            load_book(tmp_path / "missing.epub")
        assert str(exc_info.value) == UNSUPPORTED_FORMAT_MESSAGE

    def test_empty_file_rejected(self, tmp_path):
        path = tmp_path / "empty.pdf"
        path.write_bytes(b"")
        with pytest.raises(UnsupportedBookFormatError, match="is empty"):
            load_book(path)

    def test_document_from_bytes_strips_directories(self):
        doc = document_from_bytes("uploads/nested/book.pdf", b"%PDF-1.4")
        assert doc.filename == "book.pdf"
        assert doc.mime_type == "application/pdf"


class TestDataUri:
    """data:<mime>;base64,<payload> encoding and decoding."""

    def test_to_data_uri(self):
        doc = BookDocument(filename="a.txt", mime_type="text/plain", data=b"hello")
        assert doc.to_data_uri() == "data:text/plain;base64,aGVsbG8="
        assert doc.base64_data == "aGVsbG8="

    def test_parse_data_uri(self):
        payload = base64.b64encode(b"%PDF data").decode("ascii")
        mime, data = parse_data_uri("data:application/pdf;base64," + payload)
        assert mime == "application/pdf"
        assert data == b"%PDF data"

    def test_missing_mime_defaults_to_text(self):
        mime, data = parse_data_uri("data:;base64,aGk=")
        assert (mime, data) == ("text/plain", b"hi")

    @pytest.mark.parametrize("uri", [
        "text/plain;base64,aGk=",
        "data:text/plain;base64",
        "data:text/plain,hello",
        "data:text/plain;base64,not base64!",
    ])
    def test_invalid_uris(self, uri):
        with pytest.raises(ValueError):
            parse_data_uri(uri)

    def test_from_data_uri_rejects_unsupported_mime(self):
        with pytest.raises(UnsupportedBookFormatError):
            BookDocument.from_data_uri("data:image/png;base64,aGk=")

    def test_from_data_uri(self):
        doc = BookDocument.from_data_uri("data:text/plain;base64,aGk=", filename="x.txt")
        assert doc == BookDocument(filename="x.txt", mime_type="text/plain", data=b"hi")
