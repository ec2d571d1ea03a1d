"""Document classifier: Simple (flat AcroForm) vs Complex (XFA, signed, locked)."""

from __future__ import annotations

from formfill.config.models import EngineSettings
from formfill.templates.lexicons import get_lexicon
from formfill.templates.models import ClassificationResult
from formfill.utils import pdf_objects
from formfill.utils.errors import UnreadableInputError

# Raw byte markers; each marker counts once no matter how often it occurs.
_STRUCTURAL_MARKERS: tuple[tuple[str, tuple[bytes, ...]], ...] = (
    ("raw:xfa_key", (b"/XFA",)),
    ("raw:xfa_namespace", (b"<xfa:", b"<xdp:", b"xmlns:xfa")),
    ("raw:sig_flags", (b"/SigFlags",)),
    ("raw:signature_field", (b"/FT /Sig", b"/FT/Sig", b"/Type /Sig", b"/Type/Sig")),
    ("raw:byte_range", (b"/ByteRange",)),
    ("raw:need_appearances_false", (b"/NeedAppearances false", b"/NeedAppearances  false")),
    ("raw:doc_mdp", (b"/DocMDP",)),
    ("raw:perms", (b"/Perms",)),
)


def classify_document(data: bytes, settings: EngineSettings) -> ClassificationResult:
    """Classify ``data`` as simple or complex. Never raises.

    Empty or unreadable input is complex. Otherwise the number of distinct
    structural plus domain signals is compared to the configured threshold.
    """

    if not data:
        return ClassificationResult(complexity="complex", signals=["empty_input"], readable=False)

    prefix = data[: settings.classifier_scan_bytes]
    structural = [name for name, markers in _STRUCTURAL_MARKERS if any(m in prefix for m in markers)]

    readable = True
    metadata = ""
    try:
        document = pdf_objects.open_pdf(data)
    except UnreadableInputError:
        readable = False
    else:
        try:
            structural.extend(_parsed_signals(document, set(structural)))
            metadata = pdf_objects.metadata_text(document)
        except Exception:  # noqa: BLE001
            structural.append("parsed:catalog_unreadable")
        finally:
            document.close()

    domain = _domain_signals(prefix, metadata, settings)
    signals = structural + domain
    if not readable:
        signals.append("unreadable_input")

    complex_doc = not readable or len(signals) >= settings.complex_signal_threshold
    return ClassificationResult(
        complexity="complex" if complex_doc else "simple",
        signals=signals,
        structural_count=len(structural),
        domain_count=len(domain),
        readable=readable,
    )


def has_form_elements(data: bytes, limit: int = 1024 * 1024) -> bool:
    """Cheap check for form structures in the raw bytes."""

    prefix = data[:limit]
    markers = (
        b"/AcroForm",
        b"/Subtype/Widget",
        b"/Subtype /Widget",
        b"/FT/Tx",
        b"/FT /Tx",
        b"/FT/Btn",
        b"/FT /Btn",
        b"/FT/Ch",
        b"/FT /Ch",
        b"/XFA",
    )
    return any(marker in prefix for marker in markers)


def _parsed_signals(document, already: set[str]) -> list[str]:
    signals: list[str] = []
    if pdf_objects.catalog_key_present(document, "AcroForm/XFA"):
        signals.append("parsed:xfa_key")

    sig_flags = pdf_objects.catalog_key_value(document, "AcroForm/SigFlags")
    if sig_flags is not None and sig_flags.strip() not in {"", "0"}:
        signals.append("parsed:sig_flags")

    need_appearances = pdf_objects.catalog_key_value(document, "AcroForm/NeedAppearances")
    if need_appearances is not None and need_appearances.strip() == "false":
        if "raw:need_appearances_false" not in already:
            signals.append("parsed:need_appearances_false")

    if "raw:signature_field" not in already:
        for _page_index, widget in pdf_objects.iter_widgets(document):
            if pdf_objects.widget_kind(widget) == "signature":
                signals.append("parsed:signature_field")
                break
    return signals


def _domain_signals(prefix: bytes, metadata: str, settings: EngineSettings) -> list[str]:
    phrases = list(settings.domain_signal_phrases)
    if settings.domain_lexicon is not None:
        for phrase in sorted(get_lexicon(settings.domain_lexicon).signal_phrases):
            if phrase not in phrases:
                phrases.append(phrase)
    if not phrases:
        return []

    haystack = (prefix.decode("latin-1") + "\n" + metadata).lower()
    return [f"domain:{phrase}" for phrase in phrases if phrase in haystack]
