"""pdfformkit package."""

from .errors import (
	FieldReadError,
	InvalidDocument,
	NoFieldsDetected,
	PdfFormError,
	SerializationFailed,
	UploadRejected,
)
from .filler import fill_fields, fill_pdf
from .models import (
	ControlKind,
	FieldDescriptor,
	FieldType,
	FieldWriteSkipped,
	FillResult,
	ParseResult,
	WriteSkipReason,
)
from .parser import deduplicate, extract_fields
from .pipeline import ParsedForm, fill_parsed_form, initial_values, parse_pdf, validate_upload
from .storage import EncryptedFileStore, KeyValueStore, MemoryStore, StorageError

__all__ = [
	"ControlKind",
	"EncryptedFileStore",
	"FieldDescriptor",
	"FieldReadError",
	"FieldType",
	"FieldWriteSkipped",
	"FillResult",
	"InvalidDocument",
	"KeyValueStore",
	"MemoryStore",
	"NoFieldsDetected",
	"ParseResult",
	"ParsedForm",
	"PdfFormError",
	"SerializationFailed",
	"StorageError",
	"UploadRejected",
	"WriteSkipReason",
	"deduplicate",
	"extract_fields",
	"fill_fields",
	"fill_parsed_form",
	"fill_pdf",
	"initial_values",
	"parse_pdf",
	"validate_upload",
]
