"""Exception types raised by the extractor and filler."""

from __future__ import annotations

from typing import Optional

ERROR_MESSAGES = {
    "invalid_document": "The uploaded file appears to be corrupted or is not a valid PDF document.",
    "encrypted_document": "This PDF is password-protected. Please upload an unprotected PDF file.",
    "no_fields": "No form fields detected in this PDF. Please ensure the PDF contains fillable form fields.",
    "serialization_failed": "Failed to generate the filled PDF.",
    "upload_not_pdf": "Please upload a valid PDF file.",
    "upload_too_large": "File size exceeds the upload limit. Please upload a smaller file.",
}


class PdfFormError(Exception):
    """Base class for every error surfaced by pdfformkit."""

    code = "pdf_form_error"

    def __init__(self, message: str, *, reason: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.reason = reason

    def __str__(self) -> str:
        if self.reason:
            return f"{self.message} ({self.reason})"
        return self.message


class InvalidDocument(PdfFormError):
    """The bytes could not be decoded as a PDF (corrupt, truncated, encrypted)."""

    code = "invalid_document"


class NoFieldsDetected(PdfFormError):
    """Decoding worked but no logical form field survived classification."""

    code = "no_fields"


class SerializationFailed(PdfFormError):
    """The filled document could not be written back to bytes."""

    code = "serialization_failed"


class FieldReadError(PdfFormError):
    """A best-effort read of one field attribute failed.

    Never escapes the extractor: the read site substitutes its default.
    """

    code = "field_read_error"


class UploadRejected(PdfFormError):
    """An upload failed the session layer's pre-checks."""

    code = "upload_rejected"


__all__ = [
    "ERROR_MESSAGES",
    "FieldReadError",
    "InvalidDocument",
    "NoFieldsDetected",
    "PdfFormError",
    "SerializationFailed",
    "UploadRejected",
]
