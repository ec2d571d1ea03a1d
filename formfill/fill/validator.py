"""Post-fill output validation."""

from __future__ import annotations

import fitz  # PyMuPDF

from formfill.config.models import EngineSettings
from formfill.utils.errors import ValidationFailedError
from formfill.utils.pdf_objects import PDF_SIGNATURE


def validate_output(data: bytes, settings: EngineSettings) -> None:
    """Check that ``data`` is a well-formed PDF.

    Checks, in order: minimum size, ``%PDF-`` header, reopen, page count,
    no repair needed on open.

    Raises:
        ValidationFailedError: naming the first failing check.
    """

    if len(data) < settings.min_output_bytes:
        raise ValidationFailedError(
            f"Output is {len(data)} bytes, below minimum {settings.min_output_bytes}",
            check="min_size",
        )
    if not data.startswith(PDF_SIGNATURE):
        raise ValidationFailedError("Output does not start with %PDF-", check="signature")

    try:
        document = fitz.open(stream=data, filetype="pdf")
    except Exception as exc:  # noqa: BLE001
        raise ValidationFailedError(f"Output cannot be reopened: {exc}", check="reopen") from exc

    try:
        if document.page_count < 1:
            raise ValidationFailedError("Output has no pages", check="page_count")
        if document.is_repaired:
            raise ValidationFailedError("Output needed repair on open", check="repaired")
    finally:
        document.close()
