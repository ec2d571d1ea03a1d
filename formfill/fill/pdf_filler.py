"""Apply resolved values to the widgets of a private working copy."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

import fitz  # PyMuPDF

from formfill.config.models import EngineSettings
from formfill.fill.models import FieldFillEntry
from formfill.fill.values import coerce_boolean, match_choice, match_choices, sanitize_text
from formfill.templates.field_types import native_semantic_type
from formfill.templates.models import FieldMapping, SemanticType
from formfill.utils import pdf_objects
from formfill.utils.errors import FieldNotFoundError, UnsupportedFieldOperationError
from formfill.utils.events import EventSink, emit_diagnostic

_COMPONENT = "filler"


@dataclass
class FilledDocument:
    """Serialized working copy plus the per-field log."""

    data: bytes
    entries: list[FieldFillEntry] = field(default_factory=list)

    @property
    def fields_filled(self) -> int:
        return sum(1 for entry in self.entries if entry.status == "filled")


class PyMuPDFFiller:
    """Default widget filler.

    Simple documents get regenerated appearances and optional flattening.
    Complex documents only receive direct ``/V`` and ``/AS`` writes.
    """

    def fill(
        self,
        data: bytes,
        assignments: Sequence[tuple[FieldMapping, str]],
        *,
        complex_document: bool,
        settings: EngineSettings,
        sink: EventSink | None = None,
    ) -> FilledDocument:
        document = pdf_objects.open_pdf(data)
        try:
            index = pdf_objects.build_widget_index(document)
            entries = [
                self._fill_field(document, index, mapping, value, complex_document, settings, sink)
                for mapping, value in assignments
            ]

            if not complex_document and settings.flatten_simple and any(e.status == "filled" for e in entries):
                try:
                    pdf_objects.flatten_widgets(document)
                except Exception as exc:  # noqa: BLE001
                    emit_diagnostic(
                        sink,
                        _COMPONENT,
                        "flatten_skipped",
                        level="warning",
                        error_type=type(exc).__name__,
                        error_message=str(exc),
                    )

            output = pdf_objects.serialize_pdf(document, compact=not complex_document)
            return FilledDocument(data=output, entries=entries)
        finally:
            document.close()

    def _fill_field(
        self,
        document: fitz.Document,
        index: pdf_objects.WidgetIndex,
        mapping: FieldMapping,
        value: str,
        complex_document: bool,
        settings: EngineSettings,
        sink: EventSink | None,
    ) -> FieldFillEntry:
        try:
            widgets = index.lookup(mapping.field_name)
            if not widgets:
                raise FieldNotFoundError(
                    f"No addressable control for field '{mapping.field_name}'",
                    field_name=mapping.field_name,
                )
            written = self._apply(document, widgets, mapping.field_name, value, complex_document, settings)
        except FieldNotFoundError as exc:
            emit_diagnostic(sink, _COMPONENT, "field_not_found", level="debug", field_name=mapping.field_name)
            return FieldFillEntry(field_name=mapping.field_name, status="not_found", reason=str(exc))
        except UnsupportedFieldOperationError as exc:
            emit_diagnostic(
                sink,
                _COMPONENT,
                "field_unsupported",
                level="warning",
                field_name=mapping.field_name,
                options=list(exc.options),
            )
            return FieldFillEntry(field_name=mapping.field_name, status="unsupported", reason=str(exc))
        except Exception as exc:  # noqa: BLE001
            emit_diagnostic(
                sink,
                _COMPONENT,
                "field_error",
                level="warning",
                field_name=mapping.field_name,
                error_type=type(exc).__name__,
                error_message=str(exc),
            )
            return FieldFillEntry(
                field_name=mapping.field_name,
                status="error",
                reason=f"{type(exc).__name__}: {exc}",
            )

        return FieldFillEntry(
            field_name=mapping.field_name,
            status="filled",
            value=written,
            widget_count=len(widgets),
        )

    def _apply(
        self,
        document: fitz.Document,
        widgets: list[fitz.Widget],
        field_name: str,
        value: str,
        complex_document: bool,
        settings: EngineSettings,
    ) -> str:
        regenerate = not complex_document
        kinds = {pdf_objects.widget_kind(widget) for widget in widgets}
        fillable = [w for w in widgets if pdf_objects.widget_kind(w) not in pdf_objects.UNFILLABLE_KINDS]
        if not fillable:
            raise UnsupportedFieldOperationError(
                f"Field '{field_name}' has no fillable widget ({', '.join(sorted(kinds))})",
                field_name=field_name,
                value=value,
            )

        first = fillable[0]
        kind = pdf_objects.widget_kind(first)
        semantic_type = native_semantic_type(kind, multi_select=pdf_objects.widget_is_multi_select(first))

        if kind == "radio":
            options = [state for state in (pdf_objects.widget_on_state(w) for w in fillable) if state]
            chosen = match_choice(value, options, field_name=field_name)
            # The selected button goes last so its /V write wins on a shared parent.
            ordered = sorted(fillable, key=lambda w: pdf_objects.widget_on_state(w) == chosen)
            for widget in ordered:
                selected = pdf_objects.widget_on_state(widget) == chosen
                pdf_objects.set_widget_value(document, widget, selected, regenerate_appearance=regenerate)
            return chosen

        if semantic_type is SemanticType.BOOLEAN:
            checked = coerce_boolean(value, settings.truthy_tokens)
            for widget in fillable:
                pdf_objects.set_widget_value(document, widget, checked, regenerate_appearance=regenerate)
            return "true" if checked else "false"

        if semantic_type is SemanticType.MULTI_CHOICE:
            selections = match_choices(value, pdf_objects.widget_choice_options(first), field_name=field_name)
            for widget in fillable:
                pdf_objects.set_widget_value(document, widget, selections, regenerate_appearance=regenerate)
            return ", ".join(selections)

        if semantic_type is SemanticType.SINGLE_CHOICE:
            chosen = match_choice(value, pdf_objects.widget_choice_options(first), field_name=field_name)
            for widget in fillable:
                pdf_objects.set_widget_value(document, widget, chosen, regenerate_appearance=regenerate)
            return chosen

        text = sanitize_text(value, settings.text_max_length)
        max_length = getattr(first, "text_maxlen", 0) or 0
        if max_length > 0:
            text = text[:max_length]
        for widget in fillable:
            pdf_objects.set_widget_value(document, widget, text, regenerate_appearance=regenerate)
        return text
