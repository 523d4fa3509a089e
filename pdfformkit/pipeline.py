"""High level orchestration helpers for the upload → edit → generate flow."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

from . import config
from .document import sniff_pdf_header
from .errors import ERROR_MESSAGES, UploadRejected
from .filler import fill_fields
from .models import FillResult, ParseResult
from .parser import extract_fields
from .utils import is_blank


@dataclass(frozen=True)
class ParsedForm:
    """The uploaded bytes alongside what extraction found in them.

    ``pdf_bytes`` is never modified; every fill decodes it again.
    """

    pdf_bytes: bytes
    result: ParseResult
    filename: Optional[str] = None


def validate_upload(
    data: bytes,
    filename: Optional[str] = None,
    content_type: Optional[str] = None,
    max_bytes: Optional[int] = None,
) -> None:
    """Reject uploads that are obviously not PDFs or exceed the size limit."""

    limit = config.MAX_UPLOAD_BYTES if max_bytes is None else max_bytes
    if content_type is not None and content_type != config.PDF_CONTENT_TYPE:
        raise UploadRejected(ERROR_MESSAGES["upload_not_pdf"], reason=f"content type {content_type}")
    if filename is not None and not filename.lower().endswith(".pdf"):
        raise UploadRejected(ERROR_MESSAGES["upload_not_pdf"], reason=f"file name {filename}")
    if len(data) > limit:
        raise UploadRejected(ERROR_MESSAGES["upload_too_large"], reason=f"{len(data)} > {limit} bytes")
    if not sniff_pdf_header(data):
        raise UploadRejected(ERROR_MESSAGES["upload_not_pdf"], reason="missing %PDF header")


def parse_pdf(pdf_bytes: bytes, filename: Optional[str] = None) -> ParsedForm:
    result = extract_fields(pdf_bytes, filename)
    return ParsedForm(pdf_bytes=bytes(pdf_bytes), result=result, filename=filename)


def initial_values(parsed_form: ParsedForm) -> Dict[str, str]:
    """Seed the editable name → value map from the extracted fields."""

    return {field.name: field.value for field in parsed_form.result.fields}


def fill_parsed_form(parsed_form: ParsedForm, values: Mapping[str, str], flatten: bool = True) -> FillResult:
    return fill_fields(parsed_form.pdf_bytes, values, flatten=flatten)


def merge_values(current: Mapping[str, str], incoming: Mapping[str, str]) -> Dict[str, str]:
    """Overlay ``incoming`` on ``current``, ignoring names the document lacks."""

    merged = dict(current)
    for name, value in incoming.items():
        if name in merged:
            merged[name] = value
    return merged


def cleared_values(current: Mapping[str, str]) -> Dict[str, str]:
    return {name: "" for name in current}


def completion(values: Mapping[str, str]) -> Tuple[int, int]:
    """(non-blank values, total values)."""

    filled = sum(1 for value in values.values() if not is_blank(value))
    return filled, len(values)


def output_filename(filename: Optional[str]) -> str:
    """Download name for a generated document."""

    return f"filled_{filename or 'document.pdf'}"


__all__ = [
    "ParsedForm",
    "cleared_values",
    "completion",
    "fill_parsed_form",
    "initial_values",
    "merge_values",
    "output_filename",
    "parse_pdf",
    "validate_upload",
]
