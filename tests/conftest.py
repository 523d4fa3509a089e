"""Shared fixtures: small form PDFs built in memory."""
from __future__ import annotations

import sys
from io import BytesIO
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import fitz
import pytest
from pypdf import PdfWriter
from pypdf.generic import (
    ArrayObject,
    DecodedStreamObject,
    DictionaryObject,
    FloatObject,
    NameObject,
    NumberObject,
    TextStringObject,
)

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

DEFAULT_RECT = (72.0, 700.0, 272.0, 724.0)


def _value_object(value: Any) -> Any:
    if isinstance(value, str) and value.startswith("/"):
        return NameObject(value)
    if isinstance(value, str):
        return TextStringObject(value)
    return value


def _appearance(writer: PdfWriter, states: Sequence[str]) -> DictionaryObject:
    normal = DictionaryObject()
    for state in list(states) + ["Off"]:
        stream = DecodedStreamObject()
        stream.set_data(b"")
        stream[NameObject("/Type")] = NameObject("/XObject")
        stream[NameObject("/Subtype")] = NameObject("/Form")
        stream[NameObject("/BBox")] = ArrayObject([FloatObject(0), FloatObject(0), FloatObject(20), FloatObject(20)])
        normal[NameObject(f"/{state}")] = writer._add_object(stream)
    return DictionaryObject({NameObject("/N"): normal})


def _widget(writer: PdfWriter, entry: Dict[str, Any]) -> DictionaryObject:
    rect = entry.get("rect", DEFAULT_RECT)
    widget = DictionaryObject({
        NameObject("/Type"): NameObject("/Annot"),
        NameObject("/Subtype"): NameObject("/Widget"),
        NameObject("/Rect"): ArrayObject([FloatObject(v) for v in rect]),
    })
    if entry.get("states"):
        widget[NameObject("/AP")] = _appearance(writer, entry["states"])
        widget[NameObject("/AS")] = NameObject(entry.get("as", "/Off"))
    return widget


def build_form_pdf(fields: Sequence[Dict[str, Any]], page_count: int = 1, acroform: bool = True) -> bytes:
    """Build a PDF whose AcroForm follows ``fields`` exactly, using pypdf objects.

    Field keys: ``name``, ``ft``, ``ff``, ``v``, ``opt``, ``kids`` (named
    child fields) and ``widgets``. Widget keys: ``page`` (0-based),
    ``rect``, ``p`` (write /P, default True), ``annot`` (list in the page's
    /Annots, default True), ``states`` and ``as``. A field with exactly one
    widget and ``merged`` true is stored as a combined field/widget dict.
    """

    writer = PdfWriter()
    for _ in range(page_count):
        writer.add_blank_page(width=612, height=792)
    pages = list(writer.pages)
    annots: Dict[int, List[Any]] = {i: [] for i in range(page_count)}

    def place(widget: DictionaryObject, ref: Any, widget_entry: Dict[str, Any]) -> None:
        page_index = widget_entry.get("page", 0)
        if widget_entry.get("p", True):
            widget[NameObject("/P")] = pages[page_index].indirect_reference
        if widget_entry.get("annot", True):
            annots[page_index].append(ref)

    def add_field(entry: Dict[str, Any], parent_ref: Optional[Any]) -> Any:
        node = DictionaryObject()
        if "name" in entry:
            node[NameObject("/T")] = TextStringObject(entry["name"])
        if "ft" in entry:
            node[NameObject("/FT")] = NameObject(entry["ft"])
        if entry.get("ff") is not None:
            node[NameObject("/Ff")] = NumberObject(entry["ff"])
        if "v" in entry:
            node[NameObject("/V")] = _value_object(entry["v"])
        if "opt" in entry:
            entries = []
            for item in entry["opt"]:
                if isinstance(item, (list, tuple)):
                    entries.append(ArrayObject([TextStringObject(item[0]), TextStringObject(item[1])]))
                else:
                    entries.append(TextStringObject(item))
            node[NameObject("/Opt")] = ArrayObject(entries)
        if parent_ref is not None:
            node[NameObject("/Parent")] = parent_ref

        widgets = entry.get("widgets", [{}])
        if entry.get("kids"):
            ref = writer._add_object(node)
            node[NameObject("/Kids")] = ArrayObject([add_field(kid, ref) for kid in entry["kids"]])
            return ref

        if len(widgets) == 1 and entry.get("merged", True):
            node.update(_widget(writer, widgets[0]))
            ref = writer._add_object(node)
            place(node, ref, widgets[0])
            return ref

        ref = writer._add_object(node)
        kid_refs = []
        for widget_entry in widgets:
            widget = _widget(writer, widget_entry)
            widget[NameObject("/Parent")] = ref
            widget_ref = writer._add_object(widget)
            place(widget, widget_ref, widget_entry)
            kid_refs.append(widget_ref)
        node[NameObject("/Kids")] = ArrayObject(kid_refs)
        return ref

    field_refs = [add_field(entry, None) for entry in fields]
    for index, refs in annots.items():
        if refs:
            pages[index][NameObject("/Annots")] = ArrayObject(refs)
    if acroform:
        writer._root_object[NameObject("/AcroForm")] = DictionaryObject({
            NameObject("/Fields"): ArrayObject(field_refs),
            NameObject("/DA"): TextStringObject("/Helv 0 Tf 0 g"),
            NameObject("/DR"): DictionaryObject({
                NameObject("/Font"): DictionaryObject({
                    NameObject("/Helv"): writer._add_object(DictionaryObject({
                        NameObject("/Type"): NameObject("/Font"),
                        NameObject("/Subtype"): NameObject("/Type1"),
                        NameObject("/BaseFont"): NameObject("/Helvetica"),
                        NameObject("/Encoding"): NameObject("/WinAnsiEncoding"),
                    })),
                }),
            }),
        })

    buffer = BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def build_widget_pdf(fields: Sequence[Dict[str, Any]], page_count: int = 1) -> bytes:
    """Build a form with PyMuPDF widgets (appearance streams included).

    Field keys: ``name``, ``type`` (a ``fitz.PDF_WIDGET_TYPE_*``),
    ``page`` (0-based), ``rect`` (top-left origin), ``value`` and ``choices``.
    """

    doc = fitz.open()
    for _ in range(page_count):
        doc.new_page()
    for entry in fields:
        page = doc[entry.get("page", 0)]
        widget = fitz.Widget()
        widget.field_name = entry["name"]
        widget.field_type = entry.get("type", fitz.PDF_WIDGET_TYPE_TEXT)
        widget.rect = fitz.Rect(*entry.get("rect", (72, 72, 272, 96)))
        if "choices" in entry:
            widget.choice_values = list(entry["choices"])
        if "value" in entry:
            widget.field_value = entry["value"]
        page.add_widget(widget)
    data = doc.tobytes()
    doc.close()
    return data


def widget_count(pdf_bytes: bytes) -> int:
    with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
        return sum(len(list(page.widgets() or [])) for page in doc)


def page_text(pdf_bytes: bytes) -> str:
    with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
        return "".join(page.get_text() for page in doc)


@pytest.fixture
def name_form() -> bytes:
    """Single page, one empty text field "Name"."""

    return build_widget_pdf([{"name": "Name", "value": ""}])


@pytest.fixture
def mixed_form() -> bytes:
    return build_widget_pdf(
        [
            {"name": "Name", "value": ""},
            {"name": "Agree", "type": fitz.PDF_WIDGET_TYPE_CHECKBOX, "rect": (72, 120, 90, 138), "value": False},
            {
                "name": "Colour",
                "type": fitz.PDF_WIDGET_TYPE_COMBOBOX,
                "rect": (72, 160, 272, 184),
                "choices": ["Red", "Green", "Blue"],
                "value": "Red",
            },
            {"name": "Notes", "page": 1, "rect": (72, 72, 472, 96), "value": "keep me"},
        ],
        page_count=2,
    )


@pytest.fixture
def radio_form() -> bytes:
    return build_form_pdf(
        [
            {
                "name": "Size",
                "ft": "/Btn",
                "ff": 1 << 15,
                "v": "/Off",
                "merged": False,
                "widgets": [
                    {"page": 0, "rect": (72, 600, 92, 620), "states": ["S"]},
                    {"page": 0, "rect": (102, 600, 122, 620), "states": ["M"]},
                    {"page": 0, "rect": (132, 600, 152, 620), "states": ["L"]},
                ],
            }
        ]
    )


def build_opt_radio_pdf(states=("0", "1"), value: str = "/Off") -> bytes:
    """Radio group "Colour" whose /Opt lists the kids' option text."""

    return build_form_pdf(
        [
            {
                "name": "Colour",
                "ft": "/Btn",
                "ff": 1 << 15,
                "v": value,
                "opt": ["Red", "Blue"],
                "merged": False,
                "widgets": [
                    {"page": 0, "rect": (72, 600, 92, 620), "states": [states[0]]},
                    {"page": 0, "rect": (102, 600, 122, 620), "states": [states[1]]},
                ],
            }
        ]
    )


@pytest.fixture
def opt_radio_form() -> bytes:
    return build_opt_radio_pdf()
