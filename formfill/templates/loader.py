"""Template loading: classify, discover and freeze a template once per upload."""

from __future__ import annotations

from formfill.config.models import EngineSettings
from formfill.templates.classifier import classify_document
from formfill.templates.discovery import discover_fields
from formfill.templates.models import Template
from formfill.utils.errors import UnreadableInputError
from formfill.utils.events import EventSink, emit_diagnostic


def load_template(
    data: bytes,
    file_name: str,
    settings: EngineSettings,
    sink: EventSink | None = None,
) -> Template:
    """Build an immutable :class:`Template` from uploaded bytes.

    Raises:
        UnreadableInputError: when ``data`` is empty. Unparseable non-empty
            bytes still produce a template with placeholder fields.
    """

    if not data:
        raise UnreadableInputError("empty template buffer", has_original=False)

    payload = bytes(data)
    classification = classify_document(payload, settings)
    discovery = discover_fields(payload, settings, classification=classification, sink=sink)
    emit_diagnostic(
        sink,
        "loader",
        "template_loaded",
        file_name=file_name,
        complexity=classification.complexity,
        stage=discovery.stage,
        field_count=len(discovery.fields),
    )
    return Template(
        data=payload,
        file_name=file_name,
        page_count=discovery.page_count,
        fields=tuple(discovery.fields),
        classification=classification,
        discovery_stage=discovery.stage,
    )
