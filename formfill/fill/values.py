"""Mapping resolution and value coercion by semantic type."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

from formfill.templates.models import DataRecord, FieldMapping
from formfill.utils.errors import UnsupportedFieldOperationError

_WHITESPACE_CONTROLS_RE = re.compile(r"[\t\r\n\v\f]+")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f-\x9f]")
_MULTI_SPLIT_RE = re.compile(r"[;,|]")


def resolve_value(mapping: FieldMapping, record: DataRecord) -> str | None:
    """Return the record value for ``mapping``, else its default, else None."""

    if mapping.source_column:
        raw = record.get(mapping.source_column)
        if raw is not None:
            text = str(raw).strip()
            if text:
                return text
    if mapping.default_value is not None:
        default = str(mapping.default_value).strip()
        if default:
            return default
    return None


def resolve_mappings(
    mappings: Iterable[FieldMapping], record: DataRecord
) -> list[tuple[FieldMapping, str]]:
    """Resolve all mappings in order, dropping those with no value."""

    resolved: list[tuple[FieldMapping, str]] = []
    for mapping in mappings:
        value = resolve_value(mapping, record)
        if value is not None:
            resolved.append((mapping, value))
    return resolved


def select_priority_mappings(
    resolved: Sequence[tuple[FieldMapping, str]],
    fragments: Sequence[str],
    limit: int,
) -> list[tuple[FieldMapping, str]]:
    """Keep mappings whose field name contains a priority fragment.

    Fragment order is priority order; ties keep input order.
    """

    if limit <= 0 or not fragments:
        return []

    ranked: list[tuple[int, int, tuple[FieldMapping, str]]] = []
    for position, item in enumerate(resolved):
        lowered = item[0].field_name.lower()
        rank = next((index for index, fragment in enumerate(fragments) if fragment in lowered), None)
        if rank is not None:
            ranked.append((rank, position, item))
    ranked.sort(key=lambda entry: (entry[0], entry[1]))
    return [item for _rank, _position, item in ranked[:limit]]


def coerce_boolean(value: str, truthy_tokens: Iterable[str]) -> bool:
    return value.strip().lower() in set(truthy_tokens)


def match_choice(value: str, options: Sequence[str], *, field_name: str | None = None) -> str:
    """Match ``value`` against ``options``: exact, case-insensitive, then substring.

    Raises:
        UnsupportedFieldOperationError: when no option matches.
    """

    candidate = value.strip()
    if candidate in options:
        return candidate

    lowered = candidate.casefold()
    for option in options:
        if option.casefold() == lowered:
            return option
    if lowered:
        for option in options:
            if lowered in option.casefold():
                return option

    raise UnsupportedFieldOperationError(
        f"Value '{candidate}' matches no option",
        field_name=field_name,
        value=candidate,
        options=tuple(options),
    )


def match_choices(value: str, options: Sequence[str], *, field_name: str | None = None) -> list[str]:
    """Match a delimited multi-choice value; every part must match an option."""

    parts = [part.strip() for part in _MULTI_SPLIT_RE.split(value) if part.strip()]
    matched: list[str] = []
    for part in parts or [value]:
        option = match_choice(part, options, field_name=field_name)
        if option not in matched:
            matched.append(option)
    return matched


def sanitize_text(value: str, max_length: int) -> str:
    """Drop control characters and cap the length."""

    text = _WHITESPACE_CONTROLS_RE.sub(" ", value)
    text = _CONTROL_CHARS_RE.sub("", text).strip()
    return text[:max_length]
