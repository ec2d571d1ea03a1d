"""Safe-fill engine: a state machine that never returns corrupted bytes.

States: loaded -> classified -> filled | skipped_unfillable -> validated -> done.
Any exception raised by a state handler jumps straight to ``done`` with the
original template bytes.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from formfill.config.models import EngineSettings
from formfill.fill.models import FieldFillEntry, FillResult, FillState
from formfill.fill.pdf_filler import FilledDocument, PyMuPDFFiller
from formfill.fill.validator import validate_output
from formfill.fill.values import resolve_mappings, select_priority_mappings
from formfill.templates.models import ClassificationResult, DataRecord, FieldMapping, Template
from formfill.utils.errors import UnreadableInputError
from formfill.utils.events import EventSink, emit_diagnostic

_COMPONENT = "engine"


class PdfFiller(Protocol):
    """Writes values into a private copy of the template bytes."""

    def fill(
        self,
        data: bytes,
        assignments: Sequence[tuple[FieldMapping, str]],
        *,
        complex_document: bool,
        settings: EngineSettings,
        sink: EventSink | None = None,
    ) -> FilledDocument:
        """Return the serialized working copy and per-field log."""


@dataclass
class _FillRun:
    template: Template
    record: DataRecord
    mappings: Sequence[FieldMapping]
    state: FillState = "loaded"
    states: list[FillState] = field(default_factory=list)
    classification: ClassificationResult | None = None
    assignments: list[tuple[FieldMapping, str]] = field(default_factory=list)
    entries: list[FieldFillEntry] = field(default_factory=list)
    output: bytes | None = None
    fields_filled: int = 0
    skipped: bool = False
    fallback_reason: str | None = None


class SafeFillEngine:
    """Fill one record into a template, falling back to the original bytes."""

    def __init__(
        self,
        settings: EngineSettings,
        *,
        filler: PdfFiller | None = None,
        validator: Callable[[bytes, EngineSettings], None] = validate_output,
        sink: EventSink | None = None,
    ) -> None:
        self.settings = settings
        self.filler = filler or PyMuPDFFiller()
        self.validator = validator
        self.sink = sink
        self._handlers: dict[FillState, Callable[[_FillRun], FillState]] = {
            "loaded": self._classify,
            "classified": self._fill,
            "filled": self._validate,
            "skipped_unfillable": self._validate_skipped,
            "validated": self._finish,
        }

    def fill(
        self,
        template: Template,
        record: DataRecord,
        mappings: Sequence[FieldMapping] | None,
    ) -> FillResult:
        """Fill ``record`` into ``template``.

        Raises:
            UnreadableInputError: only when the template buffer is empty.
        """

        if not template.data:
            raise UnreadableInputError("empty template buffer", has_original=False)

        run = _FillRun(template=template, record=record, mappings=list(mappings or []))
        while run.state != "done":
            run.states.append(run.state)
            handler = self._handlers[run.state]
            try:
                run.state = handler(run)
            except Exception as exc:  # noqa: BLE001
                run.fallback_reason = f"{type(exc).__name__}: {exc}"
                run.output = None
                emit_diagnostic(
                    self.sink,
                    _COMPONENT,
                    "fallback",
                    level="warning",
                    record_id=record.record_id,
                    state=run.states[-1],
                    reason=run.fallback_reason,
                )
                run.state = "done"
        run.states.append("done")
        return self._result(run)

    def _classify(self, run: _FillRun) -> FillState:
        run.classification = run.template.classification
        emit_diagnostic(
            self.sink,
            _COMPONENT,
            "classified",
            level="debug",
            record_id=run.record.record_id,
            complexity=run.classification.complexity,
        )
        return "classified"

    def _fill(self, run: _FillRun) -> FillState:
        if run.classification is None:
            raise RuntimeError("fill reached before classification")
        assignments = resolve_mappings(run.mappings, run.record)
        if run.classification.is_complex:
            assignments = select_priority_mappings(
                assignments,
                self.settings.priority_name_fragments,
                self.settings.complex_priority_limit,
            )
        run.assignments = assignments
        if not assignments:
            return self._skip(run, "no_resolved_mappings")

        filled = self.filler.fill(
            run.template.data,
            assignments,
            complex_document=run.classification.is_complex,
            settings=self.settings,
            sink=self.sink,
        )
        run.entries = list(filled.entries)
        if filled.fields_filled == 0:
            return self._skip(run, "no_field_filled")

        run.output = filled.data
        run.fields_filled = filled.fields_filled
        return "filled"

    def _skip(self, run: _FillRun, reason: str) -> FillState:
        run.skipped = True
        emit_diagnostic(self.sink, _COMPONENT, "skipped_unfillable", record_id=run.record.record_id, reason=reason)
        return "skipped_unfillable"

    def _validate(self, run: _FillRun) -> FillState:
        if run.output is None:
            raise RuntimeError("validation reached without filled output")
        self.validator(run.output, self.settings)
        return "validated"

    def _validate_skipped(self, run: _FillRun) -> FillState:
        # The original is returned unmodified, so it must pass the same checks.
        self.validator(run.template.data, self.settings)
        return "validated"

    def _finish(self, run: _FillRun) -> FillState:
        return "done"

    def _result(self, run: _FillRun) -> FillResult:
        if run.fallback_reason is not None:
            outcome = "filled_with_original_fallback"
            data = run.template.data
            fields_filled = 0
        elif run.skipped or run.output is None:
            outcome = "filled"
            data = run.template.data
            fields_filled = 0
        else:
            outcome = "filled"
            data = run.output
            fields_filled = run.fields_filled

        emit_diagnostic(
            self.sink,
            _COMPONENT,
            "done",
            record_id=run.record.record_id,
            outcome=outcome,
            fields_attempted=len(run.assignments),
            fields_filled=fields_filled,
        )
        return FillResult(
            record_id=run.record.record_id,
            outcome=outcome,
            data=data,
            fields_attempted=len(run.assignments),
            fields_filled=fields_filled,
            classification=run.classification,
            entries=run.entries,
            states=run.states,
            fallback_reason=run.fallback_reason,
        )
