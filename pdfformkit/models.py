"""Data models for pdfformkit."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class FieldType(str, Enum):
    """Field types exposed to the editing UI."""

    TEXT = "text"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    SELECT = "select"
    SIGNATURE = "signature"


class ControlKind(Enum):
    """Concrete kind of interactive control behind a field.

    Classified once per field; value reads and writes dispatch on it.
    """

    TEXT = "text"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    DROPDOWN = "dropdown"
    SIGNATURE = "signature"
    UNKNOWN = "unknown"

    @property
    def field_type(self) -> FieldType:
        return _KIND_TO_FIELD_TYPE[self]

    @property
    def has_options(self) -> bool:
        return self in (ControlKind.RADIO, ControlKind.DROPDOWN)


_KIND_TO_FIELD_TYPE = {
    ControlKind.TEXT: FieldType.TEXT,
    ControlKind.CHECKBOX: FieldType.CHECKBOX,
    ControlKind.RADIO: FieldType.RADIO,
    ControlKind.DROPDOWN: FieldType.SELECT,
    ControlKind.SIGNATURE: FieldType.SIGNATURE,
    ControlKind.UNKNOWN: FieldType.TEXT,
}


# (x, y, width, height) in PDF user space
Rect = Tuple[float, float, float, float]


@dataclass(frozen=True)
class FieldDescriptor:
    """One logical form field, aggregated over all of its widgets."""

    name: str
    type: FieldType
    value: str
    required: bool
    page: int
    rect: Rect
    options: Optional[Tuple[str, ...]] = None
    usage_count: int = 1
    pages: Tuple[int, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "type": self.type.value,
            "value": self.value,
            "required": self.required,
            "page": self.page,
            "rect": list(self.rect),
            "usageCount": self.usage_count,
            "pages": list(self.pages),
        }
        if self.options is not None:
            data["options"] = list(self.options)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldDescriptor":
        options = data.get("options")
        pages = tuple(int(p) for p in data.get("pages") or [data.get("page", 1)])
        return cls(
            name=str(data["name"]),
            type=FieldType(data.get("type", FieldType.TEXT.value)),
            value=str(data.get("value", "")),
            required=bool(data.get("required", False)),
            page=int(data.get("page", 1)),
            rect=tuple(float(v) for v in data.get("rect", (0.0, 0.0, 0.0, 0.0))),  # type: ignore[arg-type]
            options=tuple(str(o) for o in options) if options is not None else None,
            usage_count=int(data.get("usageCount", 1)),
            pages=pages,
        )


@dataclass(frozen=True)
class ParseResult:
    """Outcome of one extraction call. Immutable."""

    fields: Tuple[FieldDescriptor, ...]
    page_count: int
    title: Optional[str] = None

    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    def get(self, name: str) -> Optional[FieldDescriptor]:
        for descriptor in self.fields:
            if descriptor.name == name:
                return descriptor
        return None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "fields": [f.to_dict() for f in self.fields],
            "pageCount": self.page_count,
        }
        if self.title is not None:
            data["title"] = self.title
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ParseResult":
        return cls(
            fields=tuple(FieldDescriptor.from_dict(f) for f in data.get("fields", [])),
            page_count=int(data.get("pageCount", 0)),
            title=data.get("title"),
        )


class WriteSkipReason(str, Enum):
    """Why a fill request for one field did not result in a write."""

    FIELD_NOT_FOUND = "field_not_found"
    INVALID_OPTION_VALUE = "invalid_option_value"
    UNSUPPORTED_CONTROL = "unsupported_control"
    WRITE_FAILED = "write_failed"


@dataclass(frozen=True)
class FieldWriteSkipped:
    """Non-fatal record of a field the filler left untouched."""

    name: str
    reason: WriteSkipReason
    detail: str = ""


@dataclass(frozen=True)
class FillResult:
    pdf_bytes: bytes
    written: Tuple[str, ...] = ()
    skipped: Tuple[FieldWriteSkipped, ...] = field(default_factory=tuple)
    flattened: bool = False

    @property
    def written_count(self) -> int:
        return len(self.written)

    def skipped_for(self, reason: WriteSkipReason) -> List[str]:
        return [s.name for s in self.skipped if s.reason == reason]


__all__ = [
    "ControlKind",
    "FieldDescriptor",
    "FieldType",
    "FieldWriteSkipped",
    "FillResult",
    "ParseResult",
    "Rect",
    "WriteSkipReason",
]
