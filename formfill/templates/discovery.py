"""Field discovery as an ordered pipeline of strategies with a sufficiency gate.

Stages, in order:
- structured_catalog: widgets exposed by the AcroForm control table
- pattern_scan: regex scan of the raw bytes (XFA patterns for complex documents)
- domain_lexicon: fixed field list of a configured form family
- synthetic_placeholder: numbered generic fields, only when nothing else was found
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol

import fitz  # PyMuPDF

from formfill.config.models import EngineSettings
from formfill.templates.classifier import classify_document, has_form_elements
from formfill.templates.field_types import infer_semantic_type, native_semantic_type
from formfill.templates.lexicons import get_lexicon
from formfill.templates.models import (
    ClassificationResult,
    DiscoveryResult,
    FieldDescriptor,
    SemanticType,
)
from formfill.templates.name_validation import is_valid_field_name
from formfill.utils import pdf_objects
from formfill.utils.errors import UnreadableInputError
from formfill.utils.events import EventSink, emit_diagnostic

_COMPONENT = "discovery"

_LITERAL = r"\(((?:[^()\\]|\\.)*)\)"
_ESCAPES = {"n": "\n", "r": "\r", "t": "\t", "b": "\b", "f": "\f", "(": "(", ")": ")", "\\": "\\"}
_OCTAL_RE = re.compile(r"\\([0-7]{1,3})|\\(.)|\\$", re.DOTALL)
_INDEX_SUFFIX_RE = re.compile(r"\[[^\]]*\]")
_BIND_MATCH_KEYWORDS = frozenset({"once", "none", "global", "dataref"})


@dataclass
class DiscoveryContext:
    """Inputs shared by all strategies of one discovery run."""

    data: bytes
    settings: EngineSettings
    classification: ClassificationResult
    document: fitz.Document | None
    page_count: int


class DiscoveryStrategy(Protocol):
    """One discovery stage."""

    name: str

    def attempt(self, context: DiscoveryContext) -> list[FieldDescriptor] | None:
        """Return discovered descriptors, or None when the stage does not apply."""


@dataclass(frozen=True)
class ScanPattern:
    """A regex whose first group yields a candidate field name."""

    name: str
    regex: re.Pattern[str]
    decode: Callable[[str], str]


class StructuredCatalogStrategy:
    """Read names, native types and options straight from form widgets."""

    name = "structured_catalog"

    def attempt(self, context: DiscoveryContext) -> list[FieldDescriptor] | None:
        if context.document is None:
            return None

        order: list[str] = []
        kinds: dict[str, str] = {}
        options: dict[str, list[str]] = {}
        required: dict[str, bool] = {}
        multi: dict[str, bool] = {}

        for _page_index, widget in pdf_objects.iter_widgets(context.document):
            kind = pdf_objects.widget_kind(widget)
            field_name = (widget.field_name or "").strip()
            if kind in pdf_objects.UNFILLABLE_KINDS or not field_name:
                continue

            if field_name not in kinds:
                order.append(field_name)
                kinds[field_name] = kind
                options[field_name] = []
                required[field_name] = False
                multi[field_name] = False

            required[field_name] = required[field_name] or pdf_objects.widget_is_required(widget)
            multi[field_name] = multi[field_name] or pdf_objects.widget_is_multi_select(widget)
            if kind == "radio":
                state = pdf_objects.widget_on_state(widget)
                if state is not None and state not in options[field_name]:
                    options[field_name].append(state)
            elif kind in {"combobox", "listbox"}:
                for option in pdf_objects.widget_choice_options(widget):
                    if option not in options[field_name]:
                        options[field_name].append(option)

        return [
            FieldDescriptor(
                name=field_name,
                semantic_type=native_semantic_type(kinds[field_name], multi_select=multi[field_name]),
                choice_options=tuple(options[field_name]),
                required=required[field_name],
            )
            for field_name in order
        ]


class PatternScanStrategy:
    """Scan raw bytes for field-name patterns of AcroForm and XFA forms."""

    name = "pattern_scan"

    def __init__(
        self,
        conventional: Sequence[ScanPattern] | None = None,
        xml_driven: Sequence[ScanPattern] | None = None,
    ) -> None:
        self._conventional = list(conventional if conventional is not None else CONVENTIONAL_PATTERNS)
        self._xml_driven = list(xml_driven if xml_driven is not None else XML_DRIVEN_PATTERNS)

    def patterns_for(self, classification: ClassificationResult) -> list[ScanPattern]:
        if classification.is_complex:
            return self._conventional + self._xml_driven
        return list(self._conventional)

    def attempt(self, context: DiscoveryContext) -> list[FieldDescriptor] | None:
        text = pdf_objects.read_prefix_text(context.data, context.settings.pattern_scan_bytes)
        if not text:
            return None

        names = scan_field_names(text, self.patterns_for(context.classification))
        return [
            FieldDescriptor(name=name, semantic_type=infer_semantic_type(name), synthetic=True)
            for name in names
        ]


class DomainLexiconStrategy:
    """Synthesize descriptors from the configured domain lexicon."""

    name = "domain_lexicon"

    def attempt(self, context: DiscoveryContext) -> list[FieldDescriptor] | None:
        lexicon_name = context.settings.domain_lexicon
        if lexicon_name is None:
            return None
        lexicon = get_lexicon(lexicon_name)
        return [
            FieldDescriptor(name=name, semantic_type=infer_semantic_type(name), synthetic=True)
            for name in lexicon.field_names
        ]


class SyntheticPlaceholderStrategy:
    """Numbered generic fields bounded by page count; never empty."""

    name = "synthetic_placeholder"

    def attempt(self, context: DiscoveryContext) -> list[FieldDescriptor] | None:
        settings = context.settings
        pages = max(context.page_count, 1)
        fields: list[FieldDescriptor] = []
        for page_number in range(1, pages + 1):
            for index in range(1, settings.placeholder_fields_per_page + 1):
                if len(fields) >= settings.placeholder_max_fields:
                    return fields
                fields.append(
                    FieldDescriptor(
                        name=f"page{page_number}_field{index}",
                        semantic_type=SemanticType.TEXT,
                        synthetic=True,
                    )
                )
        return fields


def default_strategies() -> list[DiscoveryStrategy]:
    """Stages 1-3 in evaluation order. The placeholder stage is the terminal fallback."""

    return [StructuredCatalogStrategy(), PatternScanStrategy(), DomainLexiconStrategy()]


def discover_fields(
    data: bytes,
    settings: EngineSettings,
    *,
    classification: ClassificationResult | None = None,
    strategies: Sequence[DiscoveryStrategy] | None = None,
    fallback: DiscoveryStrategy | None = None,
    sink: EventSink | None = None,
) -> DiscoveryResult:
    """Run the discovery cascade and return the catalog of the chosen stage.

    The first stage whose output reaches ``settings.min_sufficient_fields`` wins.
    When none does, the earliest non-empty output is used; the placeholder
    fallback runs only when every stage came back empty.
    """

    if classification is None:
        classification = classify_document(data, settings)

    document: fitz.Document | None
    try:
        document = pdf_objects.open_pdf(data)
    except UnreadableInputError as exc:
        document = None
        emit_diagnostic(sink, _COMPONENT, "document_unreadable", level="warning", reason=str(exc))

    page_count = document.page_count if document is not None else 0
    context = DiscoveryContext(
        data=data,
        settings=settings,
        classification=classification,
        document=document,
        page_count=page_count,
    )
    emit_diagnostic(
        sink,
        _COMPONENT,
        "start",
        complexity=classification.complexity,
        page_count=page_count,
        has_form_elements=has_form_elements(data),
    )

    ordered = list(strategies) if strategies is not None else default_strategies()
    terminal = fallback if fallback is not None else SyntheticPlaceholderStrategy()
    attempts: dict[str, int] = {}
    best: tuple[str, list[FieldDescriptor]] | None = None

    try:
        for strategy in ordered:
            fields = _run_strategy(strategy, context, sink)
            if fields is None:
                continue
            attempts[strategy.name] = len(fields)
            if _is_sufficient(fields, settings):
                emit_diagnostic(sink, _COMPONENT, "stage_sufficient", stage=strategy.name, count=len(fields))
                return _result(fields, strategy.name, True, context, attempts)
            if fields and best is None:
                best = (strategy.name, fields)

        if best is not None:
            emit_diagnostic(sink, _COMPONENT, "insufficient_best_effort", stage=best[0], count=len(best[1]))
            return _result(best[1], best[0], False, context, attempts)

        fields = _run_strategy(terminal, context, sink) or []
        attempts[terminal.name] = len(fields)
        emit_diagnostic(sink, _COMPONENT, "placeholder_fallback", count=len(fields))
        return _result(fields, terminal.name, _is_sufficient(fields, settings), context, attempts)
    finally:
        if document is not None:
            document.close()


def scan_field_names(text: str, patterns: Iterable[ScanPattern]) -> list[str]:
    """Apply ``patterns`` in order; return validated names, first-seen order."""

    seen: set[str] = set()
    names: list[str] = []
    for pattern in patterns:
        for match in pattern.regex.finditer(text):
            raw = match.group(1)
            if raw is None:
                continue
            candidate = pattern.decode(raw).strip()
            if candidate in seen or not is_valid_field_name(candidate):
                continue
            seen.add(candidate)
            names.append(candidate)
    return names


def decode_pdf_literal(raw: str) -> str:
    """Decode a PDF literal string body (escapes, octal, UTF-16BE with BOM)."""

    def _replace(match: re.Match[str]) -> str:
        octal, escaped = match.group(1), match.group(2)
        if octal is not None:
            return chr(int(octal, 8) & 0xFF)
        if escaped is None or escaped in "\r\n":
            return ""
        return _ESCAPES.get(escaped, escaped)

    decoded = _OCTAL_RE.sub(_replace, raw)
    return _decode_text_bytes(decoded.encode("latin-1", errors="replace"))


def decode_pdf_hex(raw: str) -> str:
    """Decode a PDF hex string body."""

    digits = "".join(raw.split())
    if len(digits) % 2:
        digits += "0"
    try:
        payload = bytes.fromhex(digits)
    except ValueError:
        return ""
    return _decode_text_bytes(payload)


def clean_reference(raw: str) -> str:
    """Reduce an XFA SOM reference (``$record.a.b[*]``) to its last name segment."""

    reference = _INDEX_SUFFIX_RE.sub("", raw.strip())
    for prefix in ("$record.", "$data.", "$template.", "$form."):
        if reference.startswith(prefix):
            reference = reference[len(prefix) :]
    return reference.rsplit(".", maxsplit=1)[-1]


def _decode_text_bytes(payload: bytes) -> str:
    if payload.startswith(b"\xfe\xff"):
        return payload[2:].decode("utf-16-be", errors="ignore")
    return payload.decode("latin-1")


def _identity(raw: str) -> str:
    return raw


def _bind_match(raw: str) -> str:
    # match="once|none|global|dataRef" is a binding mode, not a field name.
    if raw.strip().lower() in _BIND_MATCH_KEYWORDS:
        return ""
    return clean_reference(raw)


def _pattern(name: str, regex: str, decode: Callable[[str], str] = _identity, flags: int = 0) -> ScanPattern:
    return ScanPattern(name=name, regex=re.compile(regex, flags), decode=decode)


CONVENTIONAL_PATTERNS: tuple[ScanPattern, ...] = (
    _pattern("acro_title_literal", r"/T\s*" + _LITERAL, decode_pdf_literal),
    _pattern("acro_title_hex", r"/T\s*<([0-9A-Fa-f\s]+)>", decode_pdf_hex),
    _pattern("acro_tooltip_literal", r"/TU\s*" + _LITERAL, decode_pdf_literal),
    _pattern("acro_tooltip_hex", r"/TU\s*<([0-9A-Fa-f\s]+)>", decode_pdf_hex),
    _pattern("js_get_field_double", r"getField\(\s*\"([^\"]+)\"\s*\)"),
    _pattern("js_get_field_single", r"getField\(\s*'([^']+)'\s*\)"),
    _pattern("js_event_target", r"event\.target\.name\s*={2,3}\s*\"([^\"]+)\""),
    _pattern("js_field_index", r"\bfield\[\s*[\"']([^\"']+)[\"']\s*\]"),
)

XML_DRIVEN_PATTERNS: tuple[ScanPattern, ...] = (
    _pattern("xfa_field_double", r"<(?:\w+:)?field\b[^>]*?\bname\s*=\s*\"([^\"]+)\"", flags=re.IGNORECASE),
    _pattern("xfa_field_single", r"<(?:\w+:)?field\b[^>]*?\bname\s*=\s*'([^']+)'", flags=re.IGNORECASE),
    _pattern("xfa_excl_group", r"<(?:\w+:)?exclGroup\b[^>]*?\bname\s*=\s*\"([^\"]+)\"", flags=re.IGNORECASE),
    _pattern("xfa_bind_ref", r"<(?:\w+:)?bind\b[^>]*?\bref\s*=\s*\"([^\"]+)\"", clean_reference, re.IGNORECASE),
    _pattern("xfa_bind_match", r"<(?:\w+:)?bind\b[^>]*?\bmatch\s*=\s*\"([^\"]+)\"", _bind_match, re.IGNORECASE),
    _pattern("xfa_record_ref", r"\$record\.([A-Za-z_][\w.]*)", clean_reference),
    _pattern("xfa_data_ref", r"\$data\.([A-Za-z_][\w.]*)", clean_reference),
    _pattern("xfa_template_ref", r"\$template\.([A-Za-z_][\w.]*)", clean_reference),
    _pattern("xfa_resolve_node", r"xfa\.resolveNodes?\(\s*\"([^\"]+)\"\s*\)", clean_reference),
    _pattern("xfa_subform", r"<(?:\w+:)?subform\b[^>]*?\bname\s*=\s*\"([^\"]+)\"", flags=re.IGNORECASE),
    _pattern("xfa_subform_set", r"<(?:\w+:)?subformSet\b[^>]*?\bname\s*=\s*\"([^\"]+)\"", flags=re.IGNORECASE),
    _pattern("xfa_data_node", r"\bdataNode\s*=\s*\"([^\"]+)\""),
)


def _run_strategy(
    strategy: DiscoveryStrategy, context: DiscoveryContext, sink: EventSink | None
) -> list[FieldDescriptor] | None:
    try:
        fields = strategy.attempt(context)
    except Exception as exc:  # noqa: BLE001
        emit_diagnostic(
            sink,
            _COMPONENT,
            "stage_failed",
            level="warning",
            stage=strategy.name,
            error_type=type(exc).__name__,
            error_message=str(exc),
        )
        return None
    if fields is None:
        emit_diagnostic(sink, _COMPONENT, "stage_not_applicable", level="debug", stage=strategy.name)
        return None
    return _dedupe(fields)


def _dedupe(fields: list[FieldDescriptor]) -> list[FieldDescriptor]:
    seen: set[str] = set()
    unique: list[FieldDescriptor] = []
    for descriptor in fields:
        if descriptor.name in seen:
            continue
        seen.add(descriptor.name)
        unique.append(descriptor)
    return unique


def _is_sufficient(fields: list[FieldDescriptor], settings: EngineSettings) -> bool:
    return len(fields) >= settings.min_sufficient_fields


def _result(
    fields: list[FieldDescriptor],
    stage: str,
    sufficient: bool,
    context: DiscoveryContext,
    attempts: dict[str, int],
) -> DiscoveryResult:
    return DiscoveryResult(
        fields=fields,
        stage=stage,
        sufficient=sufficient,
        page_count=context.page_count,
        classification=context.classification,
        attempts=dict(attempts),
    )
