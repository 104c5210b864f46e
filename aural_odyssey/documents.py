"""Book file loading and data-URI encoding.

WHY: The model reads books as inline documents: a MIME type plus
base64-encoded bytes. Every surface (CLI, GUI, HTTP API) accepts a book
file, so validation and encoding live in one place.

HOW: load_book() checks the extension against SUPPORTED_BOOK_FORMATS and
reads the bytes into a BookDocument. to_data_uri() and parse_data_uri()
convert to and from the ``data:<mime>;base64,<payload>`` form.

RULES:
- Only .txt and .pdf files are accepted (case-insensitive extension)
- Anything else raises UnsupportedBookFormatError
- Empty files are rejected the same way as unreadable ones
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from pathlib import Path

from aural_odyssey.config import SUPPORTED_BOOK_FORMATS

UNSUPPORTED_FORMAT_MESSAGE = "Unsupported file type. Please upload a .txt or .pdf file."


class UnsupportedBookFormatError(ValueError):
    """Raised when a book file is not a supported .txt or .pdf file."""


@dataclass(frozen=True)
class BookDocument:
    """An uploaded book, ready to send to the model.

    Attributes:
        filename: Original file name (no directory part).
        mime_type: "text/plain" or "application/pdf".
        data: Raw file bytes.
    """

    filename: str
    mime_type: str
    data: bytes

    @property
    def base64_data(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_uri(self) -> str:
        """Return ``data:<mime>;base64,<payload>``."""
        return "data:{};base64,{}".format(self.mime_type, self.base64_data)

    @classmethod
    def from_data_uri(cls, uri: str, filename: str = "book") -> BookDocument:
        mime_type, data = parse_data_uri(uri)
        if mime_type not in SUPPORTED_BOOK_FORMATS.values():
            raise UnsupportedBookFormatError(UNSUPPORTED_FORMAT_MESSAGE)
        return cls(filename=filename, mime_type=mime_type, data=data)


def mime_type_for(filename: str) -> str:
    """Return the MIME type for a supported book filename.

    Raises:
        UnsupportedBookFormatError: If the extension is not supported.
    """
    ext = Path(filename).suffix.lower()
    mime = SUPPORTED_BOOK_FORMATS.get(ext)
    if mime is None:
        raise UnsupportedBookFormatError(UNSUPPORTED_FORMAT_MESSAGE)
    return mime


def document_from_bytes(filename: str, data: bytes) -> BookDocument:
    """Build a BookDocument from an uploaded filename and its content."""
    name = Path(filename).name
    mime = mime_type_for(name)
    if not data:
        raise UnsupportedBookFormatError("The uploaded file '{}' is empty.".format(name))
    return BookDocument(filename=name, mime_type=mime, data=data)


def load_book(path: Path | str) -> BookDocument:
    """Read a .txt or .pdf book from disk."""
    path = Path(path)
    mime_type_for(path.name)
    return document_from_bytes(path.name, path.read_bytes())


def parse_data_uri(uri: str) -> tuple[str, bytes]:
    """Split a base64 data URI into (mime_type, raw bytes).

    Raises:
        ValueError: If uri is not a base64 data URI.
    """
    if not uri.startswith("data:") or "," not in uri:
        raise ValueError("Expected a data URI of the form 'data:<mime>;base64,<data>'")
    header, payload = uri[len("data:"):].split(",", 1)
    if not header.endswith(";base64"):
        raise ValueError("Only base64-encoded data URIs are supported")
    mime_type = header[: -len(";base64")] or "text/plain"
    try:
        data = base64.b64decode(payload, validate=True)
    except binascii.Error as exc:
        raise ValueError("Invalid base64 payload in data URI: {}".format(exc)) from exc
    return mime_type, data
