"""Demo template and sample record builders."""

from __future__ import annotations

from collections.abc import Iterable

import fitz  # PyMuPDF

from formfill.templates.models import FieldDescriptor, SemanticType
from formfill.utils import pdf_objects

SAMPLE_TITLE = "Employee Information Form"

_TEXT_FIELDS: tuple[tuple[str, str], ...] = (
    ("first_name", "First name"),
    ("last_name", "Last name"),
    ("email", "Email"),
    ("phone", "Phone"),
    ("position", "Position"),
    ("start_date", "Start date"),
    ("salary", "Salary"),
)
_CHECKBOX_FIELDS: tuple[tuple[str, str], ...] = (
    ("full_time", "Full time"),
    ("remote_work", "Remote work"),
)
_DEPARTMENTS = ("Engineering", "Marketing", "Sales", "HR", "Finance")


def build_sample_template() -> bytes:
    """Return a one-page AcroForm PDF with text, checkbox and combo-box fields."""

    document = fitz.open()
    try:
        page = document.new_page(width=595, height=842)
        page.insert_text((72, 60), SAMPLE_TITLE, fontsize=18)
        document.set_metadata({"title": SAMPLE_TITLE, "creator": "formfill"})

        top = 100.0
        for field_name, label in _TEXT_FIELDS:
            page.insert_text((72, top + 14), label, fontsize=11)
            widget = fitz.Widget()
            widget.field_type = fitz.PDF_WIDGET_TYPE_TEXT
            widget.field_name = field_name
            widget.rect = fitz.Rect(200, top, 500, top + 20)
            widget.text_fontsize = 11
            page.add_widget(widget)
            top += 32

        page.insert_text((72, top + 14), "Department", fontsize=11)
        combo = fitz.Widget()
        combo.field_type = fitz.PDF_WIDGET_TYPE_COMBOBOX
        combo.field_name = "department"
        combo.choice_values = list(_DEPARTMENTS)
        combo.field_value = _DEPARTMENTS[0]
        combo.rect = fitz.Rect(200, top, 500, top + 20)
        combo.text_fontsize = 11
        page.add_widget(combo)
        top += 32

        for field_name, label in _CHECKBOX_FIELDS:
            page.insert_text((72, top + 14), label, fontsize=11)
            checkbox = fitz.Widget()
            checkbox.field_type = fitz.PDF_WIDGET_TYPE_CHECKBOX
            checkbox.field_name = field_name
            checkbox.field_value = False
            checkbox.rect = fitz.Rect(200, top, 218, top + 18)
            page.add_widget(checkbox)
            top += 32

        return pdf_objects.serialize_pdf(document, compact=True)
    finally:
        document.close()


def build_sample_record(fields: Iterable[FieldDescriptor]) -> dict[str, str]:
    """Build one example data row keyed by field name."""

    record: dict[str, str] = {}
    for descriptor in fields:
        if descriptor.semantic_type is SemanticType.BOOLEAN:
            record[descriptor.name] = "true"
        elif descriptor.semantic_type.is_choice:
            record[descriptor.name] = descriptor.choice_options[0] if descriptor.choice_options else "option1"
        else:
            record[descriptor.name] = "sample_value"
    return record
