"""Field-name quality gate for candidates recovered by pattern scanning."""

from __future__ import annotations

import re

_MIN_LENGTH = 2
_MAX_LENGTH = 100

_DENYLIST = frozenset(
    {
        # structural containers
        "form",
        "data",
        "template",
        "subform",
        "exdata",
        "bind",
        "xfa",
        "pdf",
        "page",
        "document",
        "root",
        "datasets",
        "config",
        "xmlns",
        "version",
        "encoding",
        # software products
        "adobe",
        "acrobat",
        "reader",
        "designer",
        "livecycle",
        # style properties
        "font",
        "color",
        "size",
        "width",
        "height",
        "margin",
        "padding",
    }
)
_LITERALS = frozenset({"true", "false", "null", "undefined", "yes", "no", "none", "nan"})

_BRACKETS_RE = re.compile(r"[<>{}\[\]]")
_LETTER_RE = re.compile(r"[^\W\d_]")
_NUMBER_RE = re.compile(r"[+-]?\d+(?:[.,]\d+)?")
_URL_RE = re.compile(r"^(?:https?|ftp|file):", re.IGNORECASE)
_EXTENSION_RE = re.compile(r"\.(?:pdf|xml|html?|js|css|xdp|xfa)$", re.IGNORECASE)


def is_valid_field_name(candidate: str) -> bool:
    """Return True when ``candidate`` looks like a real field name.

    Rules:
    - length within [2, 100] after stripping
    - starts with a letter and contains at least one letter
    - no bracket characters
    - not a denylisted structural/software/style token
    - not a URL, boolean/null literal, pure number or file name
    """

    name = candidate.strip()
    if not _MIN_LENGTH <= len(name) <= _MAX_LENGTH:
        return False
    if _BRACKETS_RE.search(name):
        return False
    if not _LETTER_RE.match(name[0]) or not _LETTER_RE.search(name):
        return False

    lowered = name.lower()
    if lowered in _DENYLIST or lowered in _LITERALS:
        return False
    if _NUMBER_RE.fullmatch(name):
        return False
    if _URL_RE.match(name):
        return False
    if _EXTENSION_RE.search(name):
        return False
    return True
