"""Semantic field type mapping: native widget types and name-based inference."""

from __future__ import annotations

from formfill.templates.models import SemanticType

# Ordered: the first matching rule wins.
_NAME_RULES: tuple[tuple[SemanticType, tuple[str, ...]], ...] = (
    (
        SemanticType.BOOLEAN,
        (
            "checkbox",
            "check",
            "toggle",
            "agree",
            "consent",
            "accept",
            "subscribe",
            "opt_in",
            "optin",
            "minor",
            "electric",
            "hibrid",
            "hybrid",
            "reprezentant",
            "da_nu",
            "yes_no",
            "full_time",
            "part_time",
            "remote",
            "eligible",
        ),
    ),
    (
        SemanticType.SINGLE_CHOICE,
        (
            "dropdown",
            "select",
            "choice",
            "judet",
            "localitate",
            "tip_",
            "region",
            "county",
            "category",
            "department",
            "gender",
        ),
    ),
    (
        SemanticType.DATE,
        ("date", "data", "dob", "birth", "nastere"),
    ),
    (
        SemanticType.NUMBER,
        (
            "suma",
            "numar",
            "cod",
            "telefon",
            "phone",
            "amount",
            "salary",
            "total",
            "qty",
            "quantity",
            "zip",
            "postal",
            "cnp",
        ),
    ),
)

_NATIVE_TYPES = {
    "checkbox": SemanticType.BOOLEAN,
    "radio": SemanticType.SINGLE_CHOICE,
    "combobox": SemanticType.SINGLE_CHOICE,
    "text": SemanticType.TEXT,
}


def infer_semantic_type(name: str) -> SemanticType:
    """Guess a semantic type from a bare field name. Best effort only."""

    lowered = name.lower()
    for semantic_type, fragments in _NAME_RULES:
        if any(fragment in lowered for fragment in fragments):
            return semantic_type
    return SemanticType.TEXT


def native_semantic_type(widget_kind: str, *, multi_select: bool = False) -> SemanticType:
    """Map a PDF widget kind to a semantic type without inspecting the name."""

    if widget_kind == "listbox":
        return SemanticType.MULTI_CHOICE if multi_select else SemanticType.SINGLE_CHOICE
    return _NATIVE_TYPES.get(widget_kind, SemanticType.TEXT)
