"""Batch orchestration: one template, many records, isolated failures."""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable, Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor

from formfill.config.models import EngineSettings
from formfill.fill.engine import SafeFillEngine
from formfill.fill.models import BatchResult, BatchSummary, FillResult
from formfill.templates.models import DataRecord, FieldMapping, Template
from formfill.utils.errors import RecordProcessingFailedError
from formfill.utils.events import EventSink, ProgressEvent, emit_diagnostic

_COMPONENT = "batch"
_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9_]+")


def run_batch(
    template: Template,
    records: Sequence[DataRecord],
    mappings: Sequence[FieldMapping] | None,
    *,
    settings: EngineSettings,
    section: str = "document",
    engine: SafeFillEngine | None = None,
    sink: EventSink | None = None,
) -> BatchResult:
    """Fill every record in input order and summarize the outcomes.

    Progress events are emitted from the calling thread after each record and
    once more when the batch completes. A record that raises becomes a
    ``failed`` result; the batch always continues.

    ``max_workers > 1`` is experimental: PyMuPDF does not support concurrent use
    from several threads, so each worker opens its own document but shares the
    library state. Keep the default of 1 for production batches.
    """

    engine = engine or SafeFillEngine(settings, sink=sink)
    mapping_list = list(mappings or [])
    total = len(records)
    emit_diagnostic(sink, _COMPONENT, "start", section=section, total=total, workers=settings.max_workers)
    if settings.max_workers > 1:
        emit_diagnostic(
            sink,
            _COMPONENT,
            "experimental_concurrency",
            level="warning",
            workers=settings.max_workers,
        )

    results: list[FillResult] = []
    for current, result in enumerate(_iter_results(engine, template, records, mapping_list, settings), start=1):
        result.output_name = build_output_name(
            section, records[current - 1], mapping_list, settings.name_like_columns
        )
        results.append(result)
        if sink is not None:
            sink.on_progress(
                ProgressEvent(
                    current=current,
                    total=total,
                    status="error" if result.outcome == "failed" else "processing",
                    record_id=result.record_id,
                    error=result.note,
                )
            )

    if sink is not None:
        sink.on_progress(ProgressEvent(current=total, total=total, status="completed"))

    summary = summarize(results)
    emit_diagnostic(sink, _COMPONENT, "done", section=section, **summary.model_dump())
    return BatchResult(section=section, summary=summary, results=results)


def summarize(results: Iterable[FillResult]) -> BatchSummary:
    counts = {"filled": 0, "filled_with_original_fallback": 0, "failed": 0}
    for result in results:
        counts[result.outcome] += 1
    total = sum(counts.values())
    succeeded = counts["filled"] + counts["filled_with_original_fallback"]
    return BatchSummary(
        total=total,
        filled=counts["filled"],
        fallback=counts["filled_with_original_fallback"],
        failed=counts["failed"],
        success_rate=(succeeded / total) if total else 0.0,
    )


def build_output_name(
    section: str,
    record: DataRecord,
    mappings: Sequence[FieldMapping],
    name_like_columns: Sequence[str],
) -> str:
    """``{section}_{record_id}.pdf``, with the record's name inserted when known."""

    parts = [_safe_fragment(section) or "document"]
    name = _name_value(record, mappings, name_like_columns)
    if name:
        parts.append(name)
    parts.append(_safe_fragment(record.record_id) or "record")
    return "_".join(parts) + ".pdf"


def _iter_results(
    engine: SafeFillEngine,
    template: Template,
    records: Sequence[DataRecord],
    mappings: list[FieldMapping],
    settings: EngineSettings,
) -> Iterator[FillResult]:
    if settings.max_workers <= 1 or len(records) <= 1:
        for record in records:
            yield _process_record(engine, template, record, mappings)
        return

    with ThreadPoolExecutor(max_workers=settings.max_workers) as executor:
        yield from executor.map(lambda item: _process_record(engine, template, item, mappings), records)


def _process_record(
    engine: SafeFillEngine,
    template: Template,
    record: DataRecord,
    mappings: list[FieldMapping],
) -> FillResult:
    try:
        return engine.fill(template, record, mappings)
    except Exception as exc:  # noqa: BLE001
        failure = RecordProcessingFailedError(
            f"Record '{record.record_id}' failed: {type(exc).__name__}: {exc}",
            record_id=record.record_id,
            cause=exc,
        )
        emit_diagnostic(
            engine.sink,
            _COMPONENT,
            "record_failed",
            level="error",
            record_id=record.record_id,
            error_type=type(exc).__name__,
            error_message=str(exc),
        )
        return FillResult(record_id=record.record_id, outcome="failed", note=str(failure))


def _name_value(
    record: DataRecord,
    mappings: Sequence[FieldMapping],
    name_like_columns: Sequence[str],
) -> str | None:
    columns = {column.lower() for column in name_like_columns}
    for mapping in mappings:
        if mapping.source_column and mapping.source_column.lower() in columns:
            raw = record.get(mapping.source_column)
            fragment = _safe_fragment(str(raw)) if raw is not None else ""
            if fragment:
                return fragment
    return None


def _safe_fragment(value: str) -> str:
    ascii_text = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    return _UNSAFE_CHARS_RE.sub("_", ascii_text.strip()).strip("_")
