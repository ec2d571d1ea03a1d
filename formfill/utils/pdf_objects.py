"""Utilities for PDF object operations.

All PyMuPDF object-level access (opening, widget inspection, direct key writes,
flattening and serialization) must be implemented here.
Do not spread low-level PDF manipulation logic across other modules.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass

import fitz  # PyMuPDF

from formfill.utils.errors import UnreadableInputError

PDF_SIGNATURE = b"%PDF-"

# Field flag bits (PDF 32000-1, 12.7.3.1 and 12.7.4.4), 1-based bit positions.
_FF_REQUIRED = 1 << 1
_FF_MULTI_SELECT = 1 << 21

_WIDGET_KINDS = {
    fitz.PDF_WIDGET_TYPE_BUTTON: "button",
    fitz.PDF_WIDGET_TYPE_CHECKBOX: "checkbox",
    fitz.PDF_WIDGET_TYPE_COMBOBOX: "combobox",
    fitz.PDF_WIDGET_TYPE_LISTBOX: "listbox",
    fitz.PDF_WIDGET_TYPE_RADIOBUTTON: "radio",
    fitz.PDF_WIDGET_TYPE_SIGNATURE: "signature",
    fitz.PDF_WIDGET_TYPE_TEXT: "text",
}

UNFILLABLE_KINDS = frozenset({"button", "signature", "unknown"})


def open_pdf(data: bytes) -> fitz.Document:
    """Open PDF bytes with PyMuPDF.

    Raises:
        UnreadableInputError: when the buffer is empty or not a parseable PDF.
    """

    if not data:
        raise UnreadableInputError("empty template buffer", has_original=False)

    try:
        document = fitz.open(stream=data, filetype="pdf")
    except Exception as exc:  # noqa: BLE001
        raise UnreadableInputError(f"cannot open PDF: {exc}") from exc

    if not document.is_pdf or document.page_count == 0:
        document.close()
        raise UnreadableInputError("document has no pages")
    return document


def read_prefix_text(data: bytes, limit: int) -> str:
    """Decode a bounded prefix byte-for-byte so regex offsets match byte offsets."""

    return data[: max(limit, 0)].decode("latin-1")


def iter_widgets(document: fitz.Document) -> Iterator[tuple[int, fitz.Widget]]:
    """Yield ``(page_index, widget)`` for every form widget in page order."""

    for page_index, page in enumerate(document):
        for widget in page.widgets():
            yield page_index, widget


@dataclass
class WidgetIndex:
    """Widgets grouped by field name, with their pages kept alive for updates."""

    pages: list[fitz.Page]
    by_name: dict[str, list[fitz.Widget]]

    def lookup(self, field_name: str) -> list[fitz.Widget]:
        """Exact match first, then case-insensitive."""

        if field_name in self.by_name:
            return self.by_name[field_name]
        lowered = field_name.lower()
        for name, widgets in self.by_name.items():
            if name.lower() == lowered:
                return widgets
        return []


def build_widget_index(document: fitz.Document) -> WidgetIndex:
    pages = [document[index] for index in range(document.page_count)]
    by_name: dict[str, list[fitz.Widget]] = {}
    for page in pages:
        for widget in page.widgets():
            name = (widget.field_name or "").strip()
            if name:
                by_name.setdefault(name, []).append(widget)
    return WidgetIndex(pages=pages, by_name=by_name)


def widget_kind(widget: fitz.Widget) -> str:
    return _WIDGET_KINDS.get(widget.field_type, "unknown")


def widget_is_required(widget: fitz.Widget) -> bool:
    return bool((widget.field_flags or 0) & _FF_REQUIRED)


def widget_is_multi_select(widget: fitz.Widget) -> bool:
    return bool((widget.field_flags or 0) & _FF_MULTI_SELECT)


def widget_on_state(widget: fitz.Widget) -> str | None:
    """Return the export ("on") state name of a checkbox or radio widget."""

    try:
        state = widget.on_state()
    except Exception:  # noqa: BLE001
        return None
    if not isinstance(state, str) or not state or state == "Off":
        return None
    return state


def widget_choice_options(widget: fitz.Widget) -> list[str]:
    """Return choice export values; ``[export, display]`` pairs keep the export value."""

    options: list[str] = []
    for item in widget.choice_values or []:
        if isinstance(item, (list, tuple)):
            if not item:
                continue
            item = item[0]
        text = str(item)
        if text and text not in options:
            options.append(text)
    return options


def set_widget_value(
    document: fitz.Document,
    widget: fitz.Widget,
    value: str | bool | Sequence[str],
    *,
    regenerate_appearance: bool,
) -> None:
    """Write a value into a widget.

    With ``regenerate_appearance`` PyMuPDF rebuilds the appearance stream. Without
    it only the ``/V`` (and ``/AS`` for buttons) keys are written, which leaves
    XFA packets and existing appearance streams untouched.
    """

    kind = widget_kind(widget)
    if regenerate_appearance:
        if kind in {"checkbox", "radio"}:
            on_state = widget_on_state(widget) or "Yes"
            widget.field_value = on_state if value else "Off"
        elif kind == "listbox" and not isinstance(value, str):
            values = list(value)  # type: ignore[arg-type]
            widget.field_value = values[0]
            widget.update()
            # The appearance shows the first selection; /V carries all of them.
            if len(values) > 1:
                _write_field_value(document, widget, values)
            return
        else:
            widget.field_value = value
        widget.update()
        return

    if kind in {"checkbox", "radio"}:
        state = (widget_on_state(widget) or "Yes") if value else "Off"
        name = pdf_name(state)
        document.xref_set_key(widget.xref, "AS", name)
        document.xref_set_key(_field_xref(document, widget.xref), "V", name)
        return

    _write_field_value(document, widget, value)  # type: ignore[arg-type]


def _write_field_value(document: fitz.Document, widget: fitz.Widget, value: str | Sequence[str]) -> None:
    if isinstance(value, str):
        encoded = fitz.get_pdf_str(value)
    else:
        encoded = "[" + "".join(fitz.get_pdf_str(item) for item in value) + "]"
    document.xref_set_key(_field_xref(document, widget.xref), "V", encoded)


def pdf_name(value: str) -> str:
    """Render a PDF name object, escaping delimiter and whitespace bytes."""

    escaped = []
    for char in value:
        if char.isalnum() or char in "-_.":
            escaped.append(char)
        else:
            escaped.append("".join(f"#{byte:02X}" for byte in char.encode("utf-8")))
    return "/" + "".join(escaped)


def catalog_key_present(document: fitz.Document, key_path: str) -> bool:
    """Return True when the catalog has ``key_path`` (e.g. ``AcroForm/XFA``)."""

    kind, _value = document.xref_get_key(document.pdf_catalog(), key_path)
    return kind != "null"


def catalog_key_value(document: fitz.Document, key_path: str) -> str | None:
    kind, value = document.xref_get_key(document.pdf_catalog(), key_path)
    if kind == "null":
        return None
    return value


def metadata_text(document: fitz.Document) -> str:
    """Join document info strings (title, subject, author, ...) for text matching."""

    metadata = document.metadata or {}
    return " ".join(str(value) for value in metadata.values() if value)


def flatten_widgets(document: fitz.Document) -> None:
    """Bake widget appearances into page content and remove the form fields."""

    document.bake(annots=False, widgets=True)


def serialize_pdf(document: fitz.Document, *, compact: bool) -> bytes:
    """Serialize ``document``; ``compact`` enables garbage collection and deflate."""

    if compact:
        return document.tobytes(garbage=3, deflate=True)
    return document.tobytes(garbage=0, deflate=False)


def _field_xref(document: fitz.Document, widget_xref: int) -> int:
    """Return the xref holding the field value (the parent for title-less kids)."""

    title_kind, _ = document.xref_get_key(widget_xref, "T")
    if title_kind != "null":
        return widget_xref
    parent_kind, parent_value = document.xref_get_key(widget_xref, "Parent")
    if parent_kind != "xref":
        return widget_xref
    return int(parent_value.split()[0])
