"""ZIP packaging of batch results."""

from __future__ import annotations

import io
import json
import zipfile

from formfill.fill.models import BatchResult


def build_archive(batch: BatchResult) -> bytes:
    """Return a ZIP with one PDF per produced result, failure notes and a summary."""

    buffer = io.BytesIO()
    used_names: set[str] = set()
    with zipfile.ZipFile(buffer, mode="w", compression=zipfile.ZIP_DEFLATED) as archive:
        for result in batch.results:
            if result.outcome == "failed":
                archive.writestr(f"errors/{result.record_id}.txt", result.note or "failed")
                continue
            name = _unique_name(result.output_name or f"{result.record_id}.pdf", used_names)
            archive.writestr(name, result.data)

        summary = {
            "section": batch.section,
            "summary": batch.summary.model_dump(mode="json"),
            "results": [result.report() for result in batch.results],
        }
        archive.writestr("summary.json", json.dumps(summary, ensure_ascii=False, indent=2))
    return buffer.getvalue()


def _unique_name(name: str, used: set[str]) -> str:
    candidate = name
    stem = name[:-4] if name.endswith(".pdf") else name
    counter = 2
    while candidate in used:
        candidate = f"{stem}_{counter}.pdf"
        counter += 1
    used.add(candidate)
    return candidate
