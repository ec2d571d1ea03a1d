"""PyMuPDF builders for test templates."""

from __future__ import annotations

from collections.abc import Sequence

import fitz  # PyMuPDF


def build_form_pdf(
    text_fields: Sequence[str] = (),
    checkboxes: Sequence[str] = (),
    combos: dict[str, list[str]] | None = None,
    metadata: dict[str, str] | None = None,
    pages: int = 1,
) -> bytes:
    """Build an AcroForm PDF with one widget per name, laid out top to bottom."""

    document = fitz.open()
    try:
        for _ in range(pages):
            document.new_page(width=595, height=842)
        page = document[0]
        page.insert_text((72, 50), "Test form", fontsize=12)
        top = 80.0

        for name in text_fields:
            widget = fitz.Widget()
            widget.field_type = fitz.PDF_WIDGET_TYPE_TEXT
            widget.field_name = name
            widget.rect = fitz.Rect(72, top, 400, top + 20)
            page.add_widget(widget)
            top += 28

        for name in checkboxes:
            widget = fitz.Widget()
            widget.field_type = fitz.PDF_WIDGET_TYPE_CHECKBOX
            widget.field_name = name
            widget.field_value = False
            widget.rect = fitz.Rect(72, top, 90, top + 18)
            page.add_widget(widget)
            top += 28

        for name, options in (combos or {}).items():
            widget = fitz.Widget()
            widget.field_type = fitz.PDF_WIDGET_TYPE_COMBOBOX
            widget.field_name = name
            widget.choice_values = list(options)
            widget.field_value = options[0]
            widget.rect = fitz.Rect(72, top, 400, top + 20)
            page.add_widget(widget)
            top += 28

        if metadata:
            document.set_metadata(metadata)
        return document.tobytes()
    finally:
        document.close()


def make_complex(data: bytes) -> bytes:
    """Add an XFA entry and signature flags to the AcroForm dictionary."""

    document = fitz.open(stream=data, filetype="pdf")
    try:
        catalog = document.pdf_catalog()
        kind, value = document.xref_get_key(catalog, "AcroForm")
        if kind == "xref":
            acroform = int(value.split()[0])
            document.xref_set_key(acroform, "XFA", "[]")
            document.xref_set_key(acroform, "SigFlags", "3")
        else:
            document.xref_set_key(catalog, "AcroForm/XFA", "[]")
            document.xref_set_key(catalog, "AcroForm/SigFlags", "3")
        return document.tobytes()
    finally:
        document.close()


def blank_pdf(pages: int = 1) -> bytes:
    document = fitz.open()
    try:
        for _ in range(pages):
            document.new_page()
        return document.tobytes()
    finally:
        document.close()


def widget_values(data: bytes) -> dict[str, object]:
    document = fitz.open(stream=data, filetype="pdf")
    try:
        values: dict[str, object] = {}
        for page in document:
            for widget in page.widgets():
                values[widget.field_name] = widget.field_value
        return values
    finally:
        document.close()


def corrupt_startxref(data: bytes) -> bytes:
    """Point the trailing startxref at a bogus offset so the file needs repair."""

    marker = data.rindex(b"startxref")
    head, tail = data[:marker], data[marker:]
    lines = tail.split(b"\n")
    lines[1] = b"999999"
    return head + b"\n".join(lines)


def build_choice_form_pdf(
    radios: dict[str, list[str]] | None = None,
    listboxes: dict[str, list[str]] | None = None,
    checkboxes: Sequence[str] = (),
    text_fields: Sequence[str] = (),
    multi_select: bool = True,
) -> bytes:
    """Assemble an AcroForm by hand so radio kids carry distinct on-state names."""

    objects: list[bytes] = []

    def add(body: str | bytes) -> int:
        objects.append(body.encode("latin-1") if isinstance(body, str) else body)
        return len(objects)

    def stream(header: str, content: bytes) -> bytes:
        return f"<< {header} /Length {len(content)} >>\nstream\n".encode("latin-1") + content + b"\nendstream"

    catalog = add("")
    pages = add("")
    page = add("")
    acroform = add("")
    font = add("<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica /Encoding /WinAnsiEncoding >>")
    content = add(stream("", b"BT /Helv 12 Tf 72 800 Td (Choice form) Tj ET"))
    on_look = add(stream("/Type /XObject /Subtype /Form /BBox [0 0 14 14]", b"q 0 g 3 3 8 8 re f Q"))
    off_look = add(stream("/Type /XObject /Subtype /Form /BBox [0 0 14 14]", b""))

    fields: list[int] = []
    annots: list[int] = []
    top = 760

    for name in text_fields:
        widget = add(
            f"<< /Type /Annot /Subtype /Widget /FT /Tx /T ({name}) /Rect [72 {top} 400 {top + 20}] "
            f"/P {page} 0 R /DA (/Helv 10 Tf 0 g) /F 4 >>"
        )
        fields.append(widget)
        annots.append(widget)
        top -= 30

    for name in checkboxes:
        widget = add(
            f"<< /Type /Annot /Subtype /Widget /FT /Btn /T ({name}) /V /Off /AS /Off "
            f"/Rect [72 {top} 86 {top + 14}] /P {page} 0 R /F 4 "
            f"/AP << /N << /Yes {on_look} 0 R /Off {off_look} 0 R >> >> >>"
        )
        fields.append(widget)
        annots.append(widget)
        top -= 30

    for name, states in (radios or {}).items():
        parent = add("")
        kids: list[int] = []
        left = 72
        for state in states:
            kid = add(
                f"<< /Type /Annot /Subtype /Widget /Parent {parent} 0 R /AS /Off "
                f"/Rect [{left} {top} {left + 14} {top + 14}] /P {page} 0 R /F 4 "
                f"/AP << /N << /{state} {on_look} 0 R /Off {off_look} 0 R >> >> >>"
            )
            kids.append(kid)
            annots.append(kid)
            left += 60
        kid_refs = " ".join(f"{kid} 0 R" for kid in kids)
        # Radio (bit 16) plus NoToggleToOff (bit 15).
        objects[parent - 1] = f"<< /FT /Btn /Ff 49152 /T ({name}) /V /Off /Kids [{kid_refs}] >>".encode("latin-1")
        fields.append(parent)
        top -= 30

    flags = 1 << 21 if multi_select else 0
    for name, options in (listboxes or {}).items():
        opt = "".join(f"({option})" for option in options)
        widget = add(
            f"<< /Type /Annot /Subtype /Widget /FT /Ch /Ff {flags} /T ({name}) /Opt [{opt}] "
            f"/Rect [72 {top - 40} 300 {top + 14}] /P {page} 0 R /DA (/Helv 10 Tf 0 g) /F 4 >>"
        )
        fields.append(widget)
        annots.append(widget)
        top -= 70

    def refs(numbers: list[int]) -> str:
        return " ".join(f"{number} 0 R" for number in numbers)

    objects[catalog - 1] = f"<< /Type /Catalog /Pages {pages} 0 R /AcroForm {acroform} 0 R >>".encode("latin-1")
    objects[pages - 1] = f"<< /Type /Pages /Kids [{page} 0 R] /Count 1 >>".encode("latin-1")
    objects[page - 1] = (
        f"<< /Type /Page /Parent {pages} 0 R /MediaBox [0 0 595 842] /Contents {content} 0 R "
        f"/Resources << /Font << /Helv {font} 0 R >> >> /Annots [{refs(annots)}] >>"
    ).encode("latin-1")
    objects[acroform - 1] = (
        f"<< /Fields [{refs(fields)}] /DA (/Helv 0 Tf 0 g) /DR << /Font << /Helv {font} 0 R >> >> >>"
    ).encode("latin-1")

    out = bytearray(b"%PDF-1.7\n%\xe2\xe3\xcf\xd3\n")
    offsets: list[int] = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += f"{number} 0 obj\n".encode("latin-1") + body + b"\nendobj\n"
    xref_at = len(out)
    out += f"xref\n0 {len(objects) + 1}\n".encode("latin-1")
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += f"{offset:010d} 00000 n \n".encode("latin-1")
    out += f"trailer\n<< /Size {len(objects) + 1} /Root {catalog} 0 R >>\nstartxref\n{xref_at}\n".encode("latin-1")
    out += b"%%EOF\n"
    return bytes(out)


def field_key(data: bytes, field_name: str, key: str) -> list[str]:
    """Return ``key`` of every widget named ``field_name``, read from the widget or its parent."""

    document = fitz.open(stream=data, filetype="pdf")
    try:
        found: list[str] = []
        for page in document:
            for widget in page.widgets():
                if widget.field_name != field_name:
                    continue
                kind, value = document.xref_get_key(widget.xref, key)
                if kind == "null":
                    parent_kind, parent = document.xref_get_key(widget.xref, "Parent")
                    if parent_kind == "xref":
                        kind, value = document.xref_get_key(int(parent.split()[0]), key)
                found.append(value if kind != "null" else "")
        return found
    finally:
        document.close()
