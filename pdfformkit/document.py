"""Decoding raw bytes into document objects for the extractor and filler.

Both components decode their own instance from the caller's bytes; nothing
here caches or shares a parsed document.
"""

from __future__ import annotations

from io import BytesIO

import fitz
from pypdf import PasswordType, PdfReader

from . import config
from .errors import ERROR_MESSAGES, InvalidDocument
from .utils import configure_logger

logger = configure_logger(__name__)


def sniff_pdf_header(data: bytes) -> bool:
    """Return True when a ``%PDF-`` header appears near the start of ``data``."""

    return b"%PDF-" in bytes(data[: config.HEADER_SEARCH_BYTES])


def _require_header(data: bytes) -> None:
    if not data:
        raise InvalidDocument(ERROR_MESSAGES["invalid_document"], reason="empty buffer")
    if not sniff_pdf_header(data):
        raise InvalidDocument(ERROR_MESSAGES["invalid_document"], reason="missing %PDF header")


def load_reader(data: bytes) -> PdfReader:
    """Parse ``data`` with pypdf, forcing the page tree to load.

    Encrypted files are tried with the empty user password only.
    """

    _require_header(data)
    try:
        reader = PdfReader(BytesIO(bytes(data)))
    except Exception as exc:
        logger.debug("pypdf could not parse document: %s", exc)
        raise InvalidDocument(ERROR_MESSAGES["invalid_document"], reason=str(exc)) from exc

    if reader.is_encrypted:
        try:
            outcome = reader.decrypt("")
        except Exception as exc:
            raise InvalidDocument(ERROR_MESSAGES["encrypted_document"], reason=str(exc)) from exc
        if outcome == PasswordType.NOT_DECRYPTED:
            raise InvalidDocument(ERROR_MESSAGES["encrypted_document"], reason="password required")

    try:
        page_count = len(reader.pages)
    except Exception as exc:
        logger.debug("pypdf could not read page tree: %s", exc)
        raise InvalidDocument(ERROR_MESSAGES["invalid_document"], reason=str(exc)) from exc
    logger.debug("Loaded PDF with %d pages via pypdf", page_count)
    return reader


def open_document(data: bytes) -> fitz.Document:
    """Open ``data`` with PyMuPDF. The caller owns (and closes) the document."""

    _require_header(data)
    try:
        doc = fitz.open(stream=bytes(data), filetype="pdf")
    except Exception as exc:
        logger.debug("PyMuPDF could not open document: %s", exc)
        raise InvalidDocument(ERROR_MESSAGES["invalid_document"], reason=str(exc)) from exc

    if doc.needs_pass and not doc.authenticate(""):
        doc.close()
        raise InvalidDocument(ERROR_MESSAGES["encrypted_document"], reason="password required")
    logger.debug("Opened PDF with %d pages via PyMuPDF", doc.page_count)
    return doc


__all__ = ["load_reader", "open_document", "sniff_pdf_header"]
