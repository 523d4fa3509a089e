"""AcroForm field extraction.

Walks the interactive form's field tree, classifies every terminal field,
resolves the pages its widgets sit on and collapses repeated widgets of the
same logical field into one :class:`FieldDescriptor`.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple, TypeVar

from pypdf import PdfReader
from pypdf.generic import ArrayObject, DictionaryObject, IndirectObject

from . import config
from .document import load_reader
from .errors import ERROR_MESSAGES, FieldReadError, NoFieldsDetected
from .models import ControlKind, FieldDescriptor, ParseResult, Rect
from .utils import configure_logger, name_looks_required, strip_pdf_suffix

logger = configure_logger(__name__)

T = TypeVar("T")

# Field flag bits (PDF 32000-1, tables 221, 226, 230), 1-based bit positions
FF_REQUIRED = 1 << 1
FF_RADIO = 1 << 15
FF_PUSHBUTTON = 1 << 16
FF_COMBO = 1 << 17

_MAX_INHERIT_DEPTH = 32
_OFF = "/Off"

Identity = Tuple[Any, ...]


def _resolve(obj: Any) -> Any:
    return obj.get_object() if hasattr(obj, "get_object") else obj


def _raw(node: DictionaryObject, key: str) -> Any:
    """Dictionary entry without dereferencing indirect objects."""

    return dict.get(node, key)


def _identity(raw: Any) -> Identity:
    if isinstance(raw, IndirectObject):
        return ("ref", raw.idnum, raw.generation)
    return ("obj", id(raw))


def _inherited(node: DictionaryObject, key: str) -> Any:
    """Look ``key`` up on ``node`` or the nearest ancestor carrying it."""

    current: Optional[DictionaryObject] = node
    depth = 0
    while current is not None and depth < _MAX_INHERIT_DEPTH:
        if key in current:
            return current[key]
        parent = current.get("/Parent")
        current = _resolve(parent) if parent is not None else None
        depth += 1
    return None


def _text(obj: Any) -> str:
    obj = _resolve(obj)
    if obj is None:
        return ""
    if isinstance(obj, bytes):
        return obj.decode("latin-1")
    return str(obj)


def _name(obj: Any) -> str:
    """Name object without its leading slash."""

    text = _text(obj)
    return text[1:] if text.startswith("/") else text


def _best_effort(read: Callable[[], T], default: T, what: str, field_name: str) -> T:
    """Run one per-field read; any failure yields ``default``.

    A malformed field must never abort extraction of the whole document.
    """

    try:
        return read()
    except Exception as exc:
        error = exc if isinstance(exc, FieldReadError) else FieldReadError(f"unreadable {what}", reason=str(exc))
        logger.debug("Field '%s': %s; using %r", field_name, error, default)
        return default


class _TerminalField:
    """A terminal field node plus its widget annotations (raw references)."""

    def __init__(self, name: str, node: DictionaryObject, widgets: List[Any]) -> None:
        self.name = name
        self.node = node
        self.widgets = widgets

    def widget_dicts(self) -> List[DictionaryObject]:
        return [_resolve(w) for w in self.widgets]


def _iter_terminal_fields(reader: PdfReader) -> Iterator[_TerminalField]:
    """Yield terminal fields depth-first in the order they are stored."""

    root = _resolve(reader.trailer["/Root"])
    acroform = _resolve(root.get("/AcroForm"))
    if not isinstance(acroform, DictionaryObject):
        logger.info("Document has no /AcroForm dictionary")
        return
    fields = _resolve(acroform.get("/Fields"))
    if not isinstance(fields, ArrayObject):
        logger.info("AcroForm has no /Fields array")
        return

    seen: set = set()

    def walk(raw: Any, parent_name: str) -> Iterator[_TerminalField]:
        key = _identity(raw)
        if key in seen:
            return
        seen.add(key)
        node = _resolve(raw)
        if not isinstance(node, DictionaryObject):
            return
        partial = _text(node.get("/T")) if "/T" in node else ""
        if parent_name and partial:
            name = f"{parent_name}.{partial}"
        else:
            name = partial or parent_name

        kids = _resolve(node.get("/Kids"))
        kid_refs = list(kids) if isinstance(kids, ArrayObject) else []
        named_kids = [k for k in kid_refs if isinstance(_resolve(k), DictionaryObject) and "/T" in _resolve(k)]
        if named_kids:
            for kid in named_kids:
                yield from walk(kid, name)
            return
        if not name:
            logger.debug("Skipping nameless terminal field")
            return
        widgets = kid_refs if kid_refs else [raw]
        yield _TerminalField(name, node, widgets)

    for raw_field in fields:
        yield from walk(raw_field, "")


def classify_field(node: DictionaryObject) -> ControlKind:
    """Map a terminal field's /FT and /Ff onto a :class:`ControlKind`."""

    field_type = _text(_inherited(node, "/FT"))
    flags = _flags(node) or 0
    if field_type == "/Tx":
        return ControlKind.TEXT
    if field_type == "/Btn":
        if flags & FF_PUSHBUTTON:
            return ControlKind.UNKNOWN
        if flags & FF_RADIO:
            return ControlKind.RADIO
        return ControlKind.CHECKBOX
    if field_type == "/Ch":
        return ControlKind.DROPDOWN if flags & FF_COMBO else ControlKind.UNKNOWN
    if "sig" in field_type.lower():
        return ControlKind.SIGNATURE
    return ControlKind.UNKNOWN


def _flags(node: DictionaryObject) -> Optional[int]:
    raw = _inherited(node, "/Ff")
    if raw is None:
        return None
    return int(raw)


def _on_states(widget: DictionaryObject) -> List[str]:
    appearance = _resolve(widget.get("/AP"))
    if not isinstance(appearance, DictionaryObject):
        return []
    normal = _resolve(appearance.get("/N"))
    if not isinstance(normal, DictionaryObject):
        return []
    return [_name(state) for state in normal.keys() if state != _OFF]


def _opt_entries(node: DictionaryObject) -> Optional[List[Tuple[str, str]]]:
    """(export, display) pairs from /Opt, or None when the field has none."""

    opt = _resolve(_inherited(node, "/Opt"))
    if not isinstance(opt, ArrayObject):
        return None
    entries: List[Tuple[str, str]] = []
    for item in opt:
        item = _resolve(item)
        if isinstance(item, ArrayObject) and len(item) >= 2:
            entries.append((_text(item[0]), _text(item[1])))
        else:
            entries.append((_text(item), _text(item)))
    return entries


def _read_options(field: _TerminalField, kind: ControlKind) -> Optional[Tuple[str, ...]]:
    entries = _opt_entries(field.node)
    if entries is not None:
        return tuple(display for _, display in entries)
    if kind == ControlKind.DROPDOWN:
        return ()
    options: List[str] = []
    for widget in field.widget_dicts():
        for state in _on_states(widget):
            if state not in options:
                options.append(state)
    return tuple(options)


def _read_value(field: _TerminalField, kind: ControlKind) -> str:
    if kind == ControlKind.SIGNATURE:
        return ""
    raw = _resolve(_inherited(field.node, "/V"))
    if kind == ControlKind.CHECKBOX:
        if raw is None:
            widgets = field.widget_dicts()
            raw = widgets[0].get("/AS") if widgets else None
        return "true" if raw is not None and _text(raw) not in ("", _OFF) else "false"
    if kind == ControlKind.RADIO:
        if raw is None or _text(raw) == _OFF:
            raw = next(
                (w["/AS"] for w in field.widget_dicts() if _text(w.get("/AS")) not in ("", _OFF)),
                None,
            )
        if raw is None:
            return ""
        selected = _name(raw)
        entries = _opt_entries(field.node)
        if entries:
            for (_, display), widget in zip(entries, field.widget_dicts()):
                if selected in _on_states(widget):
                    return display
            if selected.isdigit() and int(selected) < len(entries):
                return entries[int(selected)][1]
        return selected
    if raw is None:
        return ""
    if isinstance(raw, ArrayObject):
        raw = _resolve(raw[0]) if len(raw) else ""
    if not isinstance(raw, (str, bytes, int, float)):
        # signature dictionaries, rich-text streams
        raise FieldReadError("non-text value", reason=type(raw).__name__)
    text = _text(raw)
    if kind == ControlKind.DROPDOWN:
        for export, display in _opt_entries(field.node) or []:
            if text == export:
                return display
    return text


def _read_rect(field: _TerminalField) -> Rect:
    widgets = field.widget_dicts()
    if not widgets:
        raise FieldReadError("no widgets")
    rect = _resolve(widgets[0].get("/Rect"))
    if not isinstance(rect, ArrayObject) or len(rect) != 4:
        raise FieldReadError("missing /Rect")
    x0, y0, x1, y1 = (float(_resolve(v)) for v in rect)
    return (min(x0, x1), min(y0, y1), abs(x1 - x0), abs(y1 - y0))


def _read_required(field: _TerminalField) -> bool:
    flags = _flags(field.node)
    if flags is None:
        raise FieldReadError("no /Ff")
    return bool(flags & FF_REQUIRED)


class _PageIndex:
    """Page lookups by object identity, shared by every field of one document."""

    def __init__(self, reader: PdfReader) -> None:
        self._pages = list(reader.pages)
        self._by_ref: Dict[Identity, int] = {}
        for index, page in enumerate(self._pages):
            ref = getattr(page, "indirect_reference", None)
            if ref is not None:
                self._by_ref[_identity(ref)] = index + 1
        self._annots: Optional[List[set]] = None

    @property
    def page_count(self) -> int:
        return len(self._pages)

    def page_for_reference(self, raw: Any) -> Optional[int]:
        return self._by_ref.get(_identity(raw))

    def page_for_annotation(self, widget_raw: Any) -> Optional[int]:
        target = _identity(widget_raw)
        for index, annots in enumerate(self._annotation_sets()):
            if target in annots:
                return index + 1
        return None

    def _annotation_sets(self) -> List[set]:
        if self._annots is None:
            self._annots = []
            for number, page in enumerate(self._pages, start=1):
                entries: set = set()
                try:
                    annots = _resolve(_raw(page, "/Annots"))
                    if isinstance(annots, ArrayObject):
                        entries = {_identity(a) for a in annots}
                except Exception as exc:
                    logger.debug("Could not scan annotations on page %d: %s", number, exc)
                self._annots.append(entries)
        return self._annots


def _resolve_widget_pages(field: _TerminalField, pages: _PageIndex) -> List[int]:
    """One page number per widget that could be placed, in widget order."""

    found: List[int] = []
    for position, widget_raw in enumerate(field.widgets, start=1):
        widget = _resolve(widget_raw)
        page_ref = _raw(widget, "/P") if isinstance(widget, DictionaryObject) else None
        if page_ref is not None:
            number = pages.page_for_reference(page_ref)
            if number is None:
                logger.debug("Widget %d of '%s' points at an unknown page", position, field.name)
                continue
        else:
            number = pages.page_for_annotation(widget_raw)
            if number is None:
                logger.debug("Could not find page for widget %d of '%s'", position, field.name)
                continue
        found.append(number)
    return found


def _raw_records(field: _TerminalField, pages: _PageIndex) -> List[FieldDescriptor]:
    name = field.name
    kind = _best_effort(lambda: classify_field(field.node), ControlKind.UNKNOWN, "field type", name)
    options: Optional[Tuple[str, ...]] = None
    if kind.has_options:
        options = _best_effort(lambda: _read_options(field, kind), None, "options", name)
    value = _best_effort(lambda: _read_value(field, kind), "", "value", name)
    rect = _best_effort(lambda: _read_rect(field), config.DEFAULT_RECT, "rect", name)
    widget_pages = _best_effort(lambda: _resolve_widget_pages(field, pages), [], "pages", name)
    if not widget_pages:
        logger.debug("No pages detected for '%s', defaulting to page 1", name)
        widget_pages = [1]
    required = _best_effort(lambda: _read_required(field), name_looks_required(name), "flags", name)

    logger.debug(
        "Field '%s' kind=%s widgets=%d pages=%s required=%s",
        name,
        kind.value,
        len(field.widgets),
        widget_pages,
        required,
    )
    return [
        FieldDescriptor(
            name=name,
            type=kind.field_type,
            value=value,
            required=required,
            page=page,
            rect=rect,
            options=options,
            usage_count=1,
            pages=(page,),
        )
        for page in widget_pages
    ]


def deduplicate(records: Sequence[FieldDescriptor]) -> List[FieldDescriptor]:
    """Collapse raw per-widget records into one record per field name.

    The first record of each name is kept (its ``page`` stays the first
    occurrence); ``usage_count`` is the number of raw records and ``pages``
    the sorted distinct pages among them.
    """

    groups: Dict[str, List[FieldDescriptor]] = {}
    for record in records:
        groups.setdefault(record.name, []).append(record)

    merged: List[FieldDescriptor] = []
    for group in groups.values():
        first = group[0]
        merged.append(
            replace(
                first,
                usage_count=len(group),
                pages=tuple(sorted({r.page for r in group})),
            )
        )
    return merged


def radio_option_states(pdf_bytes: bytes) -> Dict[str, Dict[str, str]]:
    """Radio groups carrying /Opt: option text -> on-state of the matching kid.

    /Opt entries pair with the group's widgets by position; both the export
    and the display text of an entry map to that widget's on-state name.
    """

    reader = load_reader(pdf_bytes)
    mapping: Dict[str, Dict[str, str]] = {}
    for field in _iter_terminal_fields(reader):
        kind = _best_effort(lambda: classify_field(field.node), ControlKind.UNKNOWN, "field type", field.name)
        if kind != ControlKind.RADIO:
            continue
        entries = _best_effort(lambda: _opt_entries(field.node), None, "options", field.name)
        if not entries:
            continue
        states = mapping.setdefault(field.name, {})
        for (export, display), widget in zip(entries, field.widget_dicts()):
            on_states = _on_states(widget)
            if on_states:
                states.setdefault(display, on_states[0])
                states.setdefault(export, on_states[0])
    return mapping


def extract_fields(pdf_bytes: bytes, filename: Optional[str] = None) -> ParseResult:
    """Extract the logical form fields of ``pdf_bytes``.

    Raises :class:`InvalidDocument` when the bytes cannot be decoded and
    :class:`NoFieldsDetected` when no field survives deduplication.
    """

    logger.info("Starting field extraction for %s (%d bytes)", filename or "<bytes>", len(pdf_bytes))
    reader = load_reader(pdf_bytes)
    pages = _PageIndex(reader)

    raw: List[FieldDescriptor] = []
    terminal_count = 0
    for field in _iter_terminal_fields(reader):
        terminal_count += 1
        raw.extend(_raw_records(field, pages))
    logger.info("Found %d form fields, %d raw widget records", terminal_count, len(raw))

    fields = deduplicate(raw)
    if not fields:
        raise NoFieldsDetected(ERROR_MESSAGES["no_fields"])
    logger.info("Deduplicated to %d unique fields", len(fields))
    for descriptor in fields:
        logger.debug(
            "  - %s: %d times on pages %s",
            descriptor.name,
            descriptor.usage_count,
            list(descriptor.pages),
        )

    return ParseResult(
        fields=tuple(fields),
        page_count=pages.page_count,
        title=strip_pdf_suffix(filename),
    )


__all__ = ["classify_field", "deduplicate", "extract_fields", "radio_option_states"]
