"""Write user-provided values into a PDF's form fields and flatten the result."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, cast

import fitz

from . import config
from .document import open_document
from .errors import ERROR_MESSAGES, PdfFormError, SerializationFailed
from .models import ControlKind, FieldWriteSkipped, FillResult, WriteSkipReason
from .parser import radio_option_states
from .utils import configure_logger, is_blank

logger = configure_logger(__name__)

# Choice field flag: combo box with an editable text entry
FF_EDIT = 1 << 18

_WIDGET_KIND_MAP: Dict[int, ControlKind] = {}
_WIDGET_INT_PAIRS = {
    "PDF_WIDGET_TYPE_TEXT": ControlKind.TEXT,
    "PDF_WIDGET_TYPE_CHECKBOX": ControlKind.CHECKBOX,
    "PDF_WIDGET_TYPE_RADIOBUTTON": ControlKind.RADIO,
    "PDF_WIDGET_TYPE_COMBOBOX": ControlKind.DROPDOWN,
    "PDF_WIDGET_TYPE_SIGNATURE": ControlKind.SIGNATURE,
}
for attr_name, widget_kind in _WIDGET_INT_PAIRS.items():
    constant = getattr(fitz, attr_name, None)
    if isinstance(constant, int):
        _WIDGET_KIND_MAP[constant] = widget_kind

# Widget types without any value a generic text write could set
_NO_TEXT_VALUE = {
    getattr(fitz, name)
    for name in ("PDF_WIDGET_TYPE_BUTTON", "PDF_WIDGET_TYPE_SIGNATURE")
    if isinstance(getattr(fitz, name, None), int)
}


class _SkipField(Exception):
    """Raised inside a write to record a specific skip reason."""

    def __init__(self, reason: WriteSkipReason, detail: str) -> None:
        super().__init__(detail)
        self.reason = reason
        self.detail = detail


def classify_widget(widget: fitz.Widget) -> ControlKind:
    """Map a PyMuPDF widget onto a :class:`ControlKind`."""

    widget_type = getattr(widget, "field_type", None)
    if isinstance(widget_type, int):
        return _WIDGET_KIND_MAP.get(widget_type, ControlKind.UNKNOWN)
    return ControlKind.UNKNOWN


def _normalize_field_name(name: Optional[str]) -> Optional[str]:
    """Widget field name as stored, or None when it has none."""

    if isinstance(name, str) and name:
        return name
    return None


class _RadioOptionIndex:
    """Radio /Opt text -> on-state name, read from the same bytes on first use."""

    def __init__(self, pdf_bytes: bytes) -> None:
        self._pdf_bytes = pdf_bytes
        self._states: Optional[Dict[str, Dict[str, str]]] = None

    def on_state_for(self, name: str, value: str) -> Optional[str]:
        if self._states is None:
            try:
                self._states = radio_option_states(self._pdf_bytes)
            except PdfFormError as exc:
                logger.warning("Could not read radio options: %s", exc)
                self._states = {}
        return self._states.get(name, {}).get(value)


def _index_widget_pages(doc: fitz.Document) -> Dict[str, List[int]]:
    """Field name -> page indexes holding one of its widgets."""

    index: Dict[str, List[int]] = {}
    for page_index in range(doc.page_count):
        page = doc[page_index]
        for widget in page.widgets() or []:
            name = _normalize_field_name(getattr(widget, "field_name", None))
            if name is None:
                continue
            pages = index.setdefault(name, [])
            if page_index not in pages:
                pages.append(page_index)
    return index


def _choice_matches(choices: Sequence[Any], value: str) -> Optional[str]:
    """Return the value to store when ``value`` names one of ``choices``."""

    for choice in choices:
        if isinstance(choice, (list, tuple)) and len(choice) >= 2:
            export, display = str(choice[0]), str(choice[1])
            if value in (export, display):
                return export
        elif str(choice) == value:
            return value
    return None


def _write_text(widgets: Sequence[fitz.Widget], value: str) -> None:
    for widget in widgets:
        cast(Any, widget).field_value = value
        widget.update()


def _write_checkbox(widgets: Sequence[fitz.Widget], value: str) -> None:
    checked = value.strip().lower() in config.CHECKED_VALUES
    for widget in widgets:
        on_state = widget.on_state() or "Yes"
        logger.debug("Checkbox '%s' on_state='%s', checked=%s", widget.field_name, on_state, checked)
        cast(Any, widget).field_value = on_state if checked else "Off"
        widget.update()


def _write_radio(widgets: Sequence[fitz.Widget], value: str) -> None:
    options: List[str] = []
    chosen: List[fitz.Widget] = []
    for widget in widgets:
        on_state = widget.on_state()
        if not isinstance(on_state, str):
            continue
        if on_state not in options:
            options.append(on_state)
        if on_state == value:
            chosen.append(widget)
    if not chosen:
        raise _SkipField(
            WriteSkipReason.INVALID_OPTION_VALUE,
            f"'{value}' is not one of {options}",
        )
    for widget in chosen:
        cast(Any, widget).field_value = widget.on_state()
        widget.update()


def _write_dropdown(widgets: Sequence[fitz.Widget], value: str) -> None:
    for widget in widgets:
        choices = list(getattr(widget, "choice_values", None) or [])
        stored = _choice_matches(choices, value)
        if stored is None:
            editable = bool((getattr(widget, "field_flags", 0) or 0) & FF_EDIT)
            if not editable:
                raise _SkipField(
                    WriteSkipReason.INVALID_OPTION_VALUE,
                    f"'{value}' is not one of {choices}",
                )
            stored = value
        cast(Any, widget).field_value = stored
        widget.update()


def _write_generic(widgets: Sequence[fitz.Widget], value: str) -> None:
    for widget in widgets:
        if widget.field_type in _NO_TEXT_VALUE:
            raise _SkipField(
                WriteSkipReason.UNSUPPORTED_CONTROL,
                f"{widget.field_type_string} widgets hold no text value",
            )
    try:
        _write_text(widgets, value)
    except Exception as exc:
        raise _SkipField(WriteSkipReason.UNSUPPORTED_CONTROL, f"generic text write failed: {exc}") from exc


_WRITERS = {
    ControlKind.TEXT: _write_text,
    ControlKind.CHECKBOX: _write_checkbox,
    ControlKind.RADIO: _write_radio,
    ControlKind.DROPDOWN: _write_dropdown,
    ControlKind.SIGNATURE: _write_generic,
    ControlKind.UNKNOWN: _write_generic,
}


def _apply_value(
    doc: fitz.Document,
    name: str,
    page_indexes: Sequence[int],
    value: str,
    radio_options: _RadioOptionIndex,
) -> ControlKind:
    """Write ``value`` to every widget of field ``name``.

    Pages are held for the whole write so widget references stay valid.
    """

    pages = [doc[i] for i in page_indexes]
    widgets: List[fitz.Widget] = []
    for page in pages:
        for widget in page.widgets() or []:
            if _normalize_field_name(getattr(widget, "field_name", None)) == name:
                widgets.append(widget)
    if not widgets:
        raise _SkipField(WriteSkipReason.FIELD_NOT_FOUND, "no widgets")
    kind = classify_widget(widgets[0])
    if kind == ControlKind.RADIO and not any(w.on_state() == value for w in widgets):
        # option text from /Opt rather than an on-state name
        value = radio_options.on_state_for(name, value) or value
    _WRITERS[kind](widgets, value)
    return kind


def fill_fields(pdf_bytes: bytes, values: Mapping[str, str], flatten: bool = True) -> FillResult:
    """Fill ``values`` (field name -> value) into a fresh copy of ``pdf_bytes``.

    Blank values and unknown names are skipped; per-field failures are
    recorded in :attr:`FillResult.skipped` and never abort the fill. The form
    is flattened only when at least one field was written.
    """

    logger.info("Starting fill with %d supplied values", len(values))
    doc = open_document(pdf_bytes)
    try:
        widget_pages = _index_widget_pages(doc)
        radio_options = _RadioOptionIndex(bytes(pdf_bytes))
        logger.debug("Available form fields: %s", list(widget_pages))

        written: List[str] = []
        skipped: List[FieldWriteSkipped] = []
        for name, value in values.items():
            if value is None or is_blank(str(value)):
                logger.debug("Skipping empty field: %s", name)
                continue
            value = str(value)
            page_indexes = widget_pages.get(name)
            if not page_indexes:
                logger.debug("No field named '%s' in this document; skipping", name)
                skipped.append(FieldWriteSkipped(name, WriteSkipReason.FIELD_NOT_FOUND))
                continue
            try:
                kind = _apply_value(doc, name, page_indexes, value, radio_options)
            except _SkipField as skip:
                logger.info("Could not fill field '%s': %s", name, skip.detail)
                skipped.append(FieldWriteSkipped(name, skip.reason, skip.detail))
                continue
            except Exception as exc:
                logger.warning("Could not fill field '%s': %s", name, exc)
                skipped.append(FieldWriteSkipped(name, WriteSkipReason.WRITE_FAILED, str(exc)))
                continue
            logger.debug("Filled %s field '%s'", kind.value, name)
            written.append(name)

        logger.info("Successfully filled %d fields, skipped %d", len(written), len(skipped))

        flattened = bool(written) and flatten
        if not written:
            logger.info("No fields were filled, skipping flattening")
        try:
            if flattened:
                doc.bake(annots=False, widgets=True)
                logger.info("Form flattened to preserve field values")
            output = doc.tobytes(garbage=4, deflate=True)
        except Exception as exc:
            raise SerializationFailed(ERROR_MESSAGES["serialization_failed"], reason=str(exc)) from exc
    finally:
        doc.close()

    logger.info("PDF generation complete, size: %d bytes", len(output))
    return FillResult(
        pdf_bytes=output,
        written=tuple(written),
        skipped=tuple(skipped),
        flattened=flattened,
    )


def fill_pdf(pdf_bytes: bytes, values: Mapping[str, str]) -> bytes:
    """Fill and flatten, returning only the output document's bytes."""

    return fill_fields(pdf_bytes, values).pdf_bytes


def skipped_summary(result: FillResult) -> Dict[str, Tuple[str, ...]]:
    """Group skipped field names by reason, for display."""

    summary: Dict[str, List[str]] = {}
    for skip in result.skipped:
        summary.setdefault(skip.reason.value, []).append(skip.name)
    return {reason: tuple(names) for reason, names in summary.items()}


__all__ = ["classify_widget", "fill_fields", "fill_pdf", "skipped_summary"]
